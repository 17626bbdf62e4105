"""颜色工具函数。"""

from __future__ import annotations

import numpy as np

from quantpress.core.exceptions import InvalidArgumentError


def posterize_channels(values: np.ndarray, bits: int) -> np.ndarray:
    """清除每个通道的低 bits 位，并用高位补齐以保持 0-255 的满量程。"""

    if bits < 0 or bits > 4:
        raise InvalidArgumentError(f"色调分离位数必须在 0-4 之间: {bits}")
    if bits == 0:
        return values

    mask = (0xFF << bits) & 0xFF
    high = values & mask
    return high | (high >> (8 - bits))


def premultiply(rgba: np.ndarray) -> np.ndarray:
    """将 (..., 4) 的 RGBA8 数组转换为预乘 Alpha 的 float32 数组（0-255）。"""

    colors = rgba.astype(np.float32)
    alpha = colors[..., 3:4] / 255.0
    colors[..., :3] *= alpha
    return colors
