"""图片读取与解码实现。"""

from __future__ import annotations

import io
import logging
from pathlib import Path
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from quantpress.core.exceptions import ImageReadError
from quantpress.core.models import DecodedImage, PixelFormat

LOGGER = logging.getLogger(__name__)

_DIRECT_MODES = {
    "RGB": PixelFormat.RGB8,
    "RGBA": PixelFormat.RGBA8,
    "L": PixelFormat.GRAY8,
    "LA": PixelFormat.GRAYA8,
}

_GRAY16_MODES = {"I;16", "I;16L", "I;16B", "I;16N", "I"}


def read_image_from_path(path: Path) -> tuple[DecodedImage, bytes]:
    """读取文件并解码，返回解码结果与原始字节。"""

    try:
        data = path.read_bytes()
    except OSError as exc:
        shown = path if path.is_absolute() else Path.cwd() / path
        raise ImageReadError(f"无法读取文件 '{shown}': {exc}") from exc

    return load_image_bytes(data, name=str(path)), data


def load_image_bytes(data: bytes, name: str = "stdin") -> DecodedImage:
    """将原始字节解码为 DecodedImage。"""

    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return _to_decoded(img)
    except (UnidentifiedImageError, OSError, ValueError) as exc:
        LOGGER.debug("无法识别图像 %s: %s", name, exc)
        raise ImageReadError(f"无法解码图像 '{name}': {exc}") from exc


def _to_decoded(img: Image.Image) -> DecodedImage:
    icc_profile: Optional[bytes] = img.info.get("icc_profile")
    text = {key: value for key, value in getattr(img, "text", {}).items() if isinstance(value, str)}

    mode = img.mode
    has_transparency = "transparency" in img.info

    if mode in _GRAY16_MODES:
        # "I" 模式为 32 位有符号整数，16 位 PNG 的取值范围在 0-65535。
        gray = np.clip(np.asarray(img), 0, 0xFFFF).astype(np.uint16)
        if has_transparency:
            alpha = np.where(gray == img.info["transparency"], 0, 0xFFFF).astype(np.uint16)
            pixels = np.stack([gray, alpha], axis=-1)
            pixel_format = PixelFormat.GRAYA16
        else:
            pixels = gray[:, :, np.newaxis]
            pixel_format = PixelFormat.GRAY16
    elif mode in _DIRECT_MODES and not has_transparency:
        pixel_format = _DIRECT_MODES[mode]
        pixels = np.asarray(img, dtype=np.uint8).reshape(img.height, img.width, pixel_format.channels)
    else:
        # 调色板、CMYK、带 tRNS 的图像等统一转换。
        target = "RGBA" if has_transparency or mode in {"PA", "RGBa", "La"} else "RGB"
        converted = img.convert(target)
        pixel_format = _DIRECT_MODES[target]
        pixels = np.asarray(converted, dtype=np.uint8).reshape(img.height, img.width, pixel_format.channels)

    return DecodedImage(
        width=img.width,
        height=img.height,
        pixel_format=pixel_format,
        pixels=np.ascontiguousarray(pixels),
        icc_profile=icc_profile,
        text=text,
    )
