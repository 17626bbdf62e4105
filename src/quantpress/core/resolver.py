"""参数校验与归一化：生成共享的 EngineConfig 与 IOPlan。"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Optional, Sequence, Tuple

from quantpress.core.config import (
    DITHERED_SUFFIX,
    ORDERED_SUFFIX,
    EngineConfig,
    IOPlan,
    RawOptions,
)
from quantpress.core.exceptions import EngineError, InvalidArgumentError, MissingArgumentError
from quantpress.core.models import RGBA, STDIN_MARKER
from quantpress.processing import engine
from quantpress.processing.image_loader import read_image_from_path
from quantpress.processing.worker import convert_image

LOGGER = logging.getLogger(__name__)

MIN_SPEED = 1
MAX_SPEED = 11
FAST_COMPRESSION_SPEED = 10


def parse_quality(value: str) -> Tuple[int, int]:
    """解析质量区间。

    N   -> (N*9/10, N)，自动推导最低值
    -N  -> (0, N)
    N-  -> (N, 100)
    N-M -> (N, M)
    """

    left, sep, right = value.strip().partition("-")
    if not sep:
        target = _parse_quality_number(left, "质量值不是数字")
        floor, ceiling = target * 9 // 10, target
    elif right == "":
        floor, ceiling = _parse_quality_number(left, "第一个数字无效"), 100
    elif left == "":
        floor, ceiling = 0, _parse_quality_number(right, "第二个数字无效")
    else:
        floor = _parse_quality_number(left, "第一个数字无效")
        ceiling = _parse_quality_number(right, "第二个数字无效")

    if ceiling < floor:
        raise InvalidArgumentError(f"质量区间无效: {value}（上限 {ceiling} 小于下限 {floor}）")
    return floor, ceiling


def _parse_quality_number(text: str, message: str) -> int:
    try:
        value = int(text)
    except ValueError as exc:
        raise InvalidArgumentError(f"{message}: {text!r}") from exc
    if not 0 <= value <= 100:
        raise InvalidArgumentError(f"质量值必须在 0-100 之间: {value}")
    return value


def validate_speed(speed: int) -> Tuple[int, bool]:
    """返回 (速度, 是否启用快速压缩)。"""

    if not MIN_SPEED <= speed <= MAX_SPEED:
        raise InvalidArgumentError(f"速度必须在 {MIN_SPEED}（慢）到 {MAX_SPEED}（快）之间: {speed}")
    return speed, speed >= FAST_COMPRESSION_SPEED


def resolve_dithering(floyd: Optional[float], no_dither: bool, speed: int, fast_compression: bool) -> float:
    """显式强度优先，其次是 --nofs，最后按压缩模式给出默认值。速度 11 始终关闭抖动。"""

    if speed == MAX_SPEED:
        return 0.0
    if floyd is not None:
        return min(max(float(floyd), 0.0), 1.0)
    if no_dither:
        return 0.0
    return 0.0 if fast_compression else 1.0


def apply_legacy_colors(files: Sequence[str], colors: Optional[int]) -> Tuple[list[str], Optional[int]]:
    """兼容旧版调用方式：第一个位置参数若是小整数且不是已存在的文件，则视为颜色数。"""

    remaining = list(files)
    if colors is not None or not remaining:
        return remaining, colors

    first = remaining[0]
    try:
        legacy = int(first)
    except ValueError:
        return remaining, colors
    if not 0 <= legacy <= 255 or Path(first).exists():
        return remaining, colors

    LOGGER.warning("位置参数颜色数已废弃，请改用 --colors %d", legacy)
    remaining.pop(0)
    if not remaining:
        remaining.append(STDIN_MARKER)
    return remaining, legacy


def validate_colors(colors: Optional[int]) -> int:
    if colors is None or colors == 0:
        return 0
    if not 2 <= colors <= 256:
        raise InvalidArgumentError(f"颜色数量必须在 2-256 之间: {colors}")
    return colors


def validate_posterize(bits: Optional[int]) -> int:
    if bits is None:
        return 0
    if not 0 <= bits <= 4:
        raise InvalidArgumentError(f"色调分离位数必须在 0-4 之间: {bits}")
    return bits


def resolve_io_plan(
    files: Sequence[str],
    *,
    output: Optional[Path],
    extension: Optional[str],
    dithering_level: float,
    force: bool = False,
    skip_if_larger: bool = False,
    strip_metadata: bool = False,
) -> IOPlan:
    """确定输入来源与输出方式，并检查互斥与数量约束。"""

    if not files:
        raise MissingArgumentError("没有指定输入文件")

    if extension is not None and output is not None:
        raise InvalidArgumentError("--ext 与 --output 不能同时使用")
    if extension is not None and not extension:
        raise InvalidArgumentError("--ext 不能为空")

    stdin_mode = len(files) == 1 and files[0] == STDIN_MARKER
    if stdin_mode and extension is not None:
        raise InvalidArgumentError("从标准输入读取时输出到标准输出，--ext 没有意义")

    common = {"force": force, "skip_if_larger": skip_if_larger, "strip_metadata": strip_metadata}
    inputs: Tuple[Path, ...] = () if stdin_mode else tuple(Path(name) for name in files)
    input_mode = "stdin" if stdin_mode else "paths"

    if (output is not None and str(output) == STDIN_MARKER) or (output is None and stdin_mode):
        if len(files) != 1:
            raise InvalidArgumentError(
                "输出到标准输出（-o -）时只能指定一个输入文件。文件名包含空格时请加引号。"
            )
        return IOPlan(input_mode=input_mode, inputs=inputs, output_mode="stdout", **common)

    if output is not None:
        if len(files) != 1:
            raise InvalidArgumentError("使用 --output 时只能指定一个输入文件。文件名包含空格时请加引号。")
        return IOPlan(input_mode=input_mode, inputs=inputs, output_mode="path", output_path=output, **common)

    suffix = extension or (DITHERED_SUFFIX if dithering_level > 0 else ORDERED_SUFFIX)
    return IOPlan(input_mode=input_mode, inputs=inputs, output_mode="suffix", suffix=suffix, **common)


def load_fixed_palette(config: EngineConfig, map_file: Path) -> Tuple[RGBA, ...]:
    """读取调色板图片并量化，结果作为整批处理的固定颜色。

    速度、色调分离等设置沿用主配置，但不施加质量下限。
    """

    image, _ = read_image_from_path(map_file)
    map_config = dataclasses.replace(
        config,
        min_quality=0,
        max_quality=100,
        min_quality_enforced=False,
        fixed_palette=(),
    )
    engine_image = convert_image(image)
    try:
        result = engine.quantize(map_config, engine_image)
    except EngineError as exc:
        raise EngineError(f"调色板图片量化失败: {exc}", exc.kind) from exc

    palette = tuple(result.palette_vec())
    LOGGER.info("从 %s 载入固定调色板 %d 色", map_file, len(palette))
    return palette


def resolve_options(raw: RawOptions) -> Tuple[EngineConfig, IOPlan]:
    """校验原始参数，返回 (EngineConfig, IOPlan)。任何配置错误都在处理文件之前抛出。"""

    posterize = validate_posterize(raw.posterize)
    speed, fast_compression = validate_speed(raw.speed)
    dithering_level = resolve_dithering(raw.floyd, raw.no_dither, speed, fast_compression)

    min_quality, max_quality = (0, 100)
    if raw.quality is not None:
        min_quality, max_quality = parse_quality(raw.quality)

    files, colors = apply_legacy_colors(raw.files, raw.colors)
    max_colors = validate_colors(colors)

    plan = resolve_io_plan(
        files,
        output=raw.output,
        extension=raw.extension,
        dithering_level=dithering_level,
        force=raw.force,
        skip_if_larger=raw.skip_if_larger,
        strip_metadata=raw.strip,
    )

    config = EngineConfig(
        min_quality=min_quality,
        max_quality=max_quality,
        min_quality_enforced=min_quality > 0,
        speed=speed,
        fast_compression=fast_compression,
        max_colors=max_colors,
        posterize=posterize,
        dithering_level=dithering_level,
    )

    if raw.map_file is not None:
        config = dataclasses.replace(config, fixed_palette=load_fixed_palette(config, raw.map_file))

    return config, plan
