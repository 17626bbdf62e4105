"""处理任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence, Tuple

from quantpress.core.models import RGBA

InputMode = str  # paths | stdin
OutputMode = str  # suffix | path | stdout

DEFAULT_SPEED = 3
DITHERED_SUFFIX = "-fs8.png"
ORDERED_SUFFIX = "-or8.png"


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """量化引擎配置，创建后只读，由所有工作线程共享。"""

    min_quality: int = 0
    max_quality: int = 100
    min_quality_enforced: bool = False
    speed: int = DEFAULT_SPEED
    fast_compression: bool = False
    max_colors: int = 0  # 0 表示自动（256）
    posterize: int = 0
    dithering_level: float = 1.0
    fixed_palette: Tuple[RGBA, ...] = ()

    @property
    def palette_limit(self) -> int:
        return self.max_colors or 256


@dataclass(frozen=True, slots=True)
class IOPlan:
    """输入来源与输出去向。"""

    input_mode: InputMode
    inputs: Tuple[Path, ...] = ()
    output_mode: OutputMode = "suffix"
    suffix: str = DITHERED_SUFFIX
    output_path: Optional[Path] = None
    force: bool = False
    skip_if_larger: bool = False
    strip_metadata: bool = False

    @property
    def input_count(self) -> int:
        return 1 if self.input_mode == "stdin" else len(self.inputs)


@dataclass(slots=True)
class RawOptions:
    """命令行解析后、尚未校验的原始参数。"""

    files: Sequence[str] = field(default_factory=list)
    quality: Optional[str] = None
    speed: int = DEFAULT_SPEED
    colors: Optional[int] = None
    posterize: Optional[int] = None
    floyd: Optional[float] = None
    no_dither: bool = False
    map_file: Optional[Path] = None
    output: Optional[Path] = None
    extension: Optional[str] = None
    force: bool = False
    skip_if_larger: bool = False
    strip: bool = False
