"""颜色量化引擎：Pillow 负责调色板生成，numpy 负责质量评估与重映射。"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional

import numpy as np
from PIL import Image

from quantpress.core.config import EngineConfig
from quantpress.core.exceptions import EngineError, ErrorKind
from quantpress.core.models import RGBA
from quantpress.processing.adapter import BufferSource, PixelSource
from quantpress.utils.colors import posterize_channels, premultiply

LOGGER = logging.getLogger(__name__)

MAX_COLORS = 256
MAX_SPEED = 10
MAX_DIFF = 1e20
NEAREST_CHUNK = 1 << 14

# Floyd-Steinberg 误差扩散权重。
FS_RIGHT = 7 / 16
FS_DOWN_LEFT = 3 / 16
FS_DOWN = 5 / 16
FS_DOWN_RIGHT = 1 / 16


@dataclass(slots=True)
class EngineImage:
    """引擎内部使用的 RGBA8 图像，以及量化时强制保留的固定颜色。"""

    width: int
    height: int
    pixels: np.ndarray
    fixed_colors: list[RGBA] = field(default_factory=list)

    def add_fixed_color(self, color: RGBA) -> None:
        if len(self.fixed_colors) >= MAX_COLORS:
            raise EngineError(f"固定颜色数量不能超过 {MAX_COLORS}", ErrorKind.UNSUPPORTED)
        if len(color) != 4 or any(not 0 <= int(c) <= 255 for c in color):
            raise EngineError(f"无效的固定颜色: {color!r}", ErrorKind.INVALID_ARGUMENT)
        self.fixed_colors.append(tuple(int(c) for c in color))


@dataclass(slots=True)
class QuantizationResult:
    """量化产出：调色板、达到的质量以及重映射时使用的抖动强度。"""

    palette: np.ndarray
    quality: int
    min_quality: int
    dithering_level: float = 1.0

    @property
    def meets_floor(self) -> bool:
        return self.quality >= self.min_quality

    def palette_vec(self) -> list[RGBA]:
        return [tuple(int(c) for c in entry) for entry in self.palette]

    def set_dithering_level(self, level: float) -> None:
        if not 0.0 <= level <= 1.0:
            raise EngineError(f"抖动强度必须在 0.0-1.0 之间: {level}", ErrorKind.INVALID_ARGUMENT)
        self.dithering_level = float(level)

    def remapped(self, image: EngineImage) -> tuple[list[RGBA], np.ndarray]:
        """将图像映射到调色板，返回 (调色板, 形状为 (height, width) 的索引缓冲区)。"""

        if self.palette.size == 0:
            raise EngineError("调色板为空", ErrorKind.INTERNAL_ERROR)

        colors = premultiply(image.pixels)
        palette = premultiply(self.palette)
        nearest = _nearest_indices(colors.reshape(-1, 4), palette).reshape(image.height, image.width)
        if self.dithering_level <= 0 or len(palette) < 2:
            return self.palette_vec(), nearest

        # 每个像素都与调色板完全一致时没有误差可扩散。
        if np.array_equal(self.palette[nearest], image.pixels):
            return self.palette_vec(), nearest

        opaque = bool((image.pixels[..., 3] == 0xFF).all() and (self.palette[:, 3] == 0xFF).all())
        if opaque and self.dithering_level == 1.0:
            indices = _pillow_floyd_steinberg(image.pixels, self.palette)
        else:
            indices = _floyd_steinberg(colors, palette, self.dithering_level)
        return self.palette_vec(), indices


def create_image(source: PixelSource) -> EngineImage:
    """校验像素源并生成引擎图像。行函数在此处逐行调用。"""

    width, height = source.width, source.height
    if width <= 0 or height <= 0:
        raise EngineError(f"图像尺寸无效: {width}x{height}", ErrorKind.WRONG_INPUT_COLOR_TYPE)

    if isinstance(source, BufferSource):
        buffer = source.buffer
        if buffer.dtype != np.uint8 or buffer.shape != (height, width, 4):
            raise EngineError(
                f"像素缓冲区与尺寸不符: {buffer.shape} {buffer.dtype}, 期望 ({height}, {width}, 4) uint8",
                ErrorKind.WRONG_INPUT_COLOR_TYPE,
            )
        return EngineImage(width=width, height=height, pixels=buffer)

    pixels = np.empty((height, width, 4), dtype=np.uint8)
    try:
        for y in range(height):
            source.fill_row(pixels[y], y)
    except (ValueError, IndexError) as exc:
        raise EngineError(f"像素行转换失败: {exc}", ErrorKind.WRONG_INPUT_COLOR_TYPE) from exc
    return EngineImage(width=width, height=height, pixels=pixels)


def quantize(config: EngineConfig, image: EngineImage) -> QuantizationResult:
    """为图像生成调色板。

    固定颜色优先占用调色板位置；剩余位置由 Pillow 量化填充。
    当质量高于上限时逐步减少颜色数，以更少的颜色满足目标质量。
    """

    limit = config.palette_limit
    if not 2 <= limit <= MAX_COLORS:
        raise EngineError(f"颜色数量必须在 2-{MAX_COLORS} 之间", ErrorKind.INVALID_ARGUMENT)

    speed = min(config.speed, MAX_SPEED)
    bits = config.posterize
    flat = image.pixels.reshape(-1, 4)
    fixed = np.array(image.fixed_colors, dtype=np.uint8).reshape(-1, 4)
    free = limit - len(fixed)

    if free <= 0:
        palette = fixed[:limit]
        quality = _measure_quality(flat, palette)
    else:
        palette = _combine(fixed, _select_palette(image.pixels, free, speed, bits), limit)
        quality = _measure_quality(flat, palette)

        colors = len(palette) - len(fixed)
        while config.max_quality < 100 and quality >= config.max_quality and colors > 2:
            colors = max(2, colors // 2)
            candidate = _combine(fixed, _select_palette(image.pixels, colors, speed, bits), limit)
            candidate_quality = _measure_quality(flat, candidate)
            if candidate_quality < config.max_quality:
                break
            palette, quality = candidate, candidate_quality

    LOGGER.info("调色板 %d 色，质量 %d（目标 %d-%d）", len(palette), quality, config.min_quality, config.max_quality)
    return QuantizationResult(
        palette=palette,
        quality=quality,
        min_quality=config.min_quality,
        dithering_level=config.dithering_level,
    )


def quality_to_mse(quality: int) -> float:
    if quality <= 0:
        return MAX_DIFF
    # 曲线大致与 libjpeg 的质量刻度一致。
    return 2.5 / pow(210.0 + quality, 1.2) * (100.1 - quality) / 100.0


def mse_to_quality(mse: float) -> int:
    for quality in range(100, 0, -1):
        if mse <= quality_to_mse(quality) + 0.000001:
            return quality
    return 0


def kmeans_iterations(speed: int) -> int:
    iterations = max(8 - speed, 0)
    return iterations + iterations * iterations // 2


def _select_palette(pixels: np.ndarray, colors: int, speed: int, bits: int) -> np.ndarray:
    """bits 作用于输出调色板；速度 8 及以上只额外降低送入 Pillow 的直方图精度。"""

    flat = posterize_channels(pixels.reshape(-1, 4), bits)
    unique = np.unique(flat, axis=0)
    if len(unique) <= colors:
        return unique

    histogram_bits = max(bits, 1 if speed >= 8 else 0)
    source = posterize_channels(pixels.reshape(-1, 4), histogram_bits).reshape(pixels.shape)
    opaque = bool((flat[:, 3] == 0xFF).all())
    try:
        if opaque:
            image = Image.fromarray(np.ascontiguousarray(source[:, :, :3]))
            method = Image.Quantize.MEDIANCUT
        else:
            image = Image.fromarray(np.ascontiguousarray(source))
            method = Image.Quantize.FASTOCTREE
        quantized = image.quantize(
            colors=colors,
            method=method,
            kmeans=kmeans_iterations(speed),
            dither=Image.Dither.NONE,
        )
    except (ValueError, OSError) as exc:
        raise EngineError(f"调色板生成失败: {exc}", ErrorKind.INTERNAL_ERROR) from exc

    mode = quantized.palette.mode
    raw = np.array(quantized.getpalette(mode), dtype=np.uint8).reshape(-1, len(mode))
    if len(mode) == 3:
        raw = np.concatenate([raw, np.full((len(raw), 1), 0xFF, dtype=np.uint8)], axis=1)
    used = np.unique(np.asarray(quantized))
    palette = raw[used[used < len(raw)]]
    if opaque:
        palette[:, 3] = 0xFF
    return posterize_channels(palette, bits)


def _combine(fixed: np.ndarray, selected: np.ndarray, limit: int) -> np.ndarray:
    """固定颜色在前，去掉重复项后截断到上限。"""

    seen: set[tuple[int, ...]] = set()
    entries: list[tuple[int, ...]] = []
    for entry in (*fixed.tolist(), *selected.tolist()):
        key = tuple(entry)
        if key in seen:
            continue
        seen.add(key)
        entries.append(key)
    return np.array(entries[:limit], dtype=np.uint8).reshape(-1, 4)


def _measure_quality(flat: np.ndarray, palette: np.ndarray) -> int:
    colors = premultiply(flat)
    entries = premultiply(palette)
    indices = _nearest_indices(colors, entries)
    diff = (colors - entries[indices]) / 255.0
    mse = float((diff * diff).sum(axis=1).mean()) if len(diff) else 0.0
    return mse_to_quality(mse)


def _nearest_indices(colors: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """colors 与 palette 均为预乘 float32，返回最近调色板项的 uint8 索引。"""

    palette_sq = (palette * palette).sum(axis=1)
    indices = np.empty(len(colors), dtype=np.uint8)
    for start in range(0, len(colors), NEAREST_CHUNK):
        chunk = colors[start : start + NEAREST_CHUNK]
        distances = palette_sq[np.newaxis, :] - 2.0 * (chunk @ palette.T)
        indices[start : start + NEAREST_CHUNK] = distances.argmin(axis=1)
    return indices


def _pillow_floyd_steinberg(pixels: np.ndarray, palette: np.ndarray) -> np.ndarray:
    """不透明图像的全强度抖动交给 Pillow 的 C 实现。"""

    height, width = pixels.shape[:2]
    entries = palette[:, :3]
    # Pillow 要求 256 项调色板，用最后一项补齐。
    padded = np.concatenate([entries, np.repeat(entries[-1:], MAX_COLORS - len(entries), axis=0)])
    palette_image = Image.new("P", (1, 1))
    palette_image.putpalette(padded.astype(np.uint8).tobytes())

    try:
        source = Image.fromarray(np.ascontiguousarray(pixels[:, :, :3]))
        dithered = source.quantize(palette=palette_image, dither=Image.Dither.FLOYDSTEINBERG)
    except (ValueError, OSError) as exc:
        raise EngineError(f"抖动重映射失败: {exc}", ErrorKind.INTERNAL_ERROR) from exc

    indices = np.asarray(dithered, dtype=np.uint8).reshape(height, width)
    return np.minimum(indices, len(entries) - 1).astype(np.uint8)


def _floyd_steinberg(colors: np.ndarray, palette: np.ndarray, level: float) -> np.ndarray:
    """带透明度或非整数强度时使用的逐像素误差扩散。"""

    height, width = colors.shape[:2]
    work = colors.copy()
    indices = np.empty((height, width), dtype=np.uint8)

    for y in range(height):
        row = work[y]
        below: Optional[np.ndarray] = work[y + 1] if y + 1 < height else None
        for x in range(width):
            pixel = np.clip(row[x], 0.0, 255.0)
            delta = palette - pixel
            idx = int((delta * delta).sum(axis=1).argmin())
            indices[y, x] = idx

            error = (pixel - palette[idx]) * level
            if x + 1 < width:
                row[x + 1] += error * FS_RIGHT
            if below is not None:
                if x > 0:
                    below[x - 1] += error * FS_DOWN_LEFT
                below[x] += error * FS_DOWN
                if x + 1 < width:
                    below[x + 1] += error * FS_DOWN_RIGHT

    return indices
