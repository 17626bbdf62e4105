"""调色板 PNG 编码。"""

from __future__ import annotations

import io
from typing import Mapping, Optional, Sequence

import numpy as np
from PIL import Image, PngImagePlugin

from quantpress.core.exceptions import EncodingError
from quantpress.core.models import RGBA


def encode_png(
    palette: Sequence[RGBA],
    indices: np.ndarray,
    width: int,
    height: int,
    *,
    fast: bool = False,
    icc_profile: Optional[bytes] = None,
    text: Optional[Mapping[str, str]] = None,
) -> bytes:
    """将调色板与索引缓冲区编码为 PNG8 字节流。"""

    if not palette or len(palette) > 256:
        raise EncodingError(f"调色板大小无效: {len(palette)}")
    if indices.shape != (height, width):
        raise EncodingError(f"索引缓冲区尺寸 {indices.shape} 与图像 {width}x{height} 不符")

    image = Image.frombytes("P", (width, height), np.ascontiguousarray(indices, dtype=np.uint8).tobytes())
    image.putpalette([channel for entry in palette for channel in entry[:3]])

    save_params: dict = {"compress_level": 1} if fast else {"optimize": True}
    alphas = bytes(entry[3] for entry in palette)
    if any(alpha < 255 for alpha in alphas):
        save_params["transparency"] = alphas.rstrip(b"\xff")
    if icc_profile:
        save_params["icc_profile"] = icc_profile
    if text:
        info = PngImagePlugin.PngInfo()
        for key, value in text.items():
            info.add_text(key, value)
        save_params["pnginfo"] = info

    buffer = io.BytesIO()
    try:
        image.save(buffer, format="PNG", **save_params)
    except (OSError, ValueError) as exc:
        raise EncodingError(f"PNG 编码失败: {exc}") from exc
    return buffer.getvalue()
