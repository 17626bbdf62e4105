"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple

import numpy as np

from quantpress.core.exceptions import ErrorKind

RGBA = Tuple[int, int, int, int]

STDIN_MARKER = "-"


class PixelFormat(Enum):
    """解码后像素存储的格式标签：(通道数, 位深)。"""

    RGB8 = (3, 8)
    RGBA8 = (4, 8)
    RGB16 = (3, 16)
    RGBA16 = (4, 16)
    GRAY8 = (1, 8)
    GRAY16 = (1, 16)
    GRAYA8 = (2, 8)
    GRAYA16 = (2, 16)

    @property
    def channels(self) -> int:
        return self.value[0]

    @property
    def bit_depth(self) -> int:
        return self.value[1]

    @property
    def dtype(self) -> type:
        return np.uint16 if self.bit_depth == 16 else np.uint8


@dataclass(slots=True)
class DecodedImage:
    """解码得到的位图，pixels 形状为 (height, width, channels)。"""

    width: int
    height: int
    pixel_format: PixelFormat
    pixels: np.ndarray
    icc_profile: Optional[bytes] = None
    text: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class InputDescriptor:
    """批处理中的单个输入。path 为 None 时表示标准输入。"""

    index: int
    path: Optional[Path]

    @property
    def is_stdin(self) -> bool:
        return self.path is None

    @property
    def display_name(self) -> str:
        return "stdin" if self.path is None else str(self.path)


@dataclass(slots=True)
class FileOutcome:
    """记录单个文件的处理结果（用于报告/日志）。"""

    index: int
    source: str
    status: str
    output_path: Optional[Path] = None
    bytes_written: int = 0
    kind: Optional[ErrorKind] = None
    message: Optional[str] = None
    quality: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.status == "processed"


@dataclass(slots=True)
class BatchReport:
    """批处理汇总，outcomes 按输入顺序排列。"""

    outcomes: list[FileOutcome]

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def succeeded(self) -> list[FileOutcome]:
        return [outcome for outcome in self.outcomes if outcome.ok]

    @property
    def failed(self) -> list[FileOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.ok]

    @property
    def first_failure(self) -> Optional[FileOutcome]:
        """按输入顺序（而非完成顺序）返回第一个失败。"""

        for outcome in self.outcomes:
            if not outcome.ok:
                return outcome
        return None
