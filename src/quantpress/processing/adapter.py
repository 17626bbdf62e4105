"""像素格式适配：将各种解码结果统一为 RGBA8 像素源。"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Union

import numpy as np

from quantpress.core.models import DecodedImage, PixelFormat

RowFunction = Callable[[np.ndarray, int], None]
PixelConverter = Callable[[np.ndarray, np.ndarray], None]


@dataclass(frozen=True, slots=True)
class BufferSource:
    """已经是 RGBA8 的像素，直接引用解码缓冲区。"""

    width: int
    height: int
    buffer: np.ndarray


@dataclass(frozen=True, slots=True)
class RowSource:
    """按行生成 RGBA8 像素，fill_row(dest_row, y) 写入 (width, 4) 的目标行。"""

    width: int
    height: int
    fill_row: RowFunction


PixelSource = Union[BufferSource, RowSource]


def _rgb8(src: np.ndarray, dest: np.ndarray) -> None:
    dest[:, :3] = src
    dest[:, 3] = 0xFF


def _rgb16(src: np.ndarray, dest: np.ndarray) -> None:
    dest[:, :3] = (src >> 8).astype(np.uint8)
    dest[:, 3] = 0xFF


def _rgba16(src: np.ndarray, dest: np.ndarray) -> None:
    dest[:] = (src >> 8).astype(np.uint8)


def _gray8(src: np.ndarray, dest: np.ndarray) -> None:
    dest[:, :3] = src[:, :1]
    dest[:, 3] = 0xFF


def _gray16(src: np.ndarray, dest: np.ndarray) -> None:
    dest[:, :3] = (src[:, :1] >> 8).astype(np.uint8)
    dest[:, 3] = 0xFF


def _graya8(src: np.ndarray, dest: np.ndarray) -> None:
    dest[:, :3] = src[:, :1]
    dest[:, 3] = src[:, 1]


def _graya16(src: np.ndarray, dest: np.ndarray) -> None:
    high = (src >> 8).astype(np.uint8)
    dest[:, :3] = high[:, :1]
    dest[:, 3] = high[:, 1]


_CONVERTERS: dict[PixelFormat, PixelConverter] = {
    PixelFormat.RGB8: _rgb8,
    PixelFormat.RGB16: _rgb16,
    PixelFormat.RGBA16: _rgba16,
    PixelFormat.GRAY8: _gray8,
    PixelFormat.GRAY16: _gray16,
    PixelFormat.GRAYA8: _graya8,
    PixelFormat.GRAYA16: _graya16,
}


def adapt_image(image: DecodedImage) -> PixelSource:
    """根据像素格式选择一次转换函数，返回可供量化引擎读取的像素源。

    RGBA8 直接复用原缓冲区，不做复制；其余格式返回逐行转换函数。
    行函数只读取不可变的源数组，可在多个线程中并发调用不同的行。
    """

    if image.pixel_format is PixelFormat.RGBA8:
        return BufferSource(width=image.width, height=image.height, buffer=image.pixels)

    convert = _CONVERTERS[image.pixel_format]
    return RowSource(width=image.width, height=image.height, fill_row=_row_converter(image.pixels, convert))


def _row_converter(pixels: np.ndarray, convert: PixelConverter) -> RowFunction:
    def fill_row(dest: np.ndarray, y: int) -> None:
        convert(pixels[y], dest)

    return fill_row
