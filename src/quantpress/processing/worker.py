"""单个文件的处理流程（在工作线程中执行）。"""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from typing import BinaryIO, Optional

from quantpress.core.config import EngineConfig
from quantpress.core.exceptions import (
    EngineError,
    ErrorKind,
    ImageReadError,
    QualityTooLowError,
    QuantPressError,
    WrongInputColorTypeError,
)
from quantpress.core.models import DecodedImage, FileOutcome, InputDescriptor
from quantpress.core.output_manager import OutputManager
from quantpress.processing import engine
from quantpress.processing.adapter import adapt_image
from quantpress.processing.encoder import encode_png
from quantpress.processing.image_loader import load_image_bytes, read_image_from_path

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ProcessingTask:
    """描述单个输入的处理任务。config 与 output 在所有任务间共享且只读。"""

    descriptor: InputDescriptor
    config: EngineConfig
    output: OutputManager
    strip_metadata: bool = False
    stdin: Optional[BinaryIO] = None


@dataclass(slots=True)
class EncodedImage:
    """编码完成的 PNG 及其质量。"""

    data: bytes
    quality: int


def run_task(task: ProcessingTask) -> FileOutcome:
    """执行 解码 -> 适配 -> 量化 -> 重映射 -> 编码 -> 写入，错误只影响当前文件。"""

    descriptor = task.descriptor
    try:
        image, original = _read_input(task)
        encoded = quantize_image(task.config, image, strip_metadata=task.strip_metadata)
        destination = task.output.resolve_destination(descriptor)
        written = task.output.write(destination, encoded.data, original)
    except QuantPressError as exc:
        LOGGER.error("%s: %s", descriptor.display_name, exc)
        return _failure(descriptor, exc.kind, str(exc))
    except MemoryError:
        LOGGER.error("%s: 内存不足", descriptor.display_name)
        return _failure(descriptor, ErrorKind.OUT_OF_MEMORY, "内存不足")
    except Exception as exc:  # noqa: BLE001
        LOGGER.exception("处理 %s 时出现未预期的异常", descriptor.display_name)
        return _failure(descriptor, ErrorKind.INTERNAL_ERROR, f"内部错误: {exc}")

    return FileOutcome(
        index=descriptor.index,
        source=descriptor.display_name,
        status="processed",
        output_path=destination,
        bytes_written=written,
        quality=encoded.quality,
    )


def quantize_image(config: EngineConfig, image: DecodedImage, *, strip_metadata: bool = False) -> EncodedImage:
    """对已解码的图片执行量化与编码。低于最低质量时在写入前失败。"""

    engine_image = convert_image(image)
    for color in config.fixed_palette:
        try:
            engine_image.add_fixed_color(color)
        except EngineError as exc:
            raise EngineError(f"固定调色板错误: {exc}", exc.kind) from exc

    try:
        result = engine.quantize(config, engine_image)
    except EngineError as exc:
        raise EngineError(f"量化失败: {exc}", exc.kind) from exc

    if config.min_quality_enforced and not result.meets_floor:
        raise QualityTooLowError(f"质量 {result.quality} 低于最低要求 {config.min_quality}")

    try:
        result.set_dithering_level(config.dithering_level)
    except EngineError as exc:
        raise EngineError(f"抖动强度无效: {exc}", exc.kind) from exc

    try:
        palette, indices = result.remapped(engine_image)
    except EngineError as exc:
        raise EngineError(f"重映射失败: {exc}", exc.kind) from exc

    data = encode_png(
        palette,
        indices,
        image.width,
        image.height,
        fast=config.fast_compression,
        icc_profile=None if strip_metadata else image.icc_profile,
        text=None if strip_metadata else image.text,
    )
    return EncodedImage(data=data, quality=result.quality)


def convert_image(image: DecodedImage) -> engine.EngineImage:
    """将解码结果交给引擎；引擎拒绝像素源时报告 WrongInputColorType。"""

    try:
        return engine.create_image(adapt_image(image))
    except EngineError as exc:
        raise WrongInputColorTypeError(f"内部错误: {exc}") from exc


def _read_input(task: ProcessingTask) -> tuple[DecodedImage, bytes]:
    path = task.descriptor.path
    if path is not None:
        return read_image_from_path(path)

    stream = task.stdin if task.stdin is not None else sys.stdin.buffer
    try:
        data = stream.read()
    except OSError as exc:
        raise ImageReadError(f"读取标准输入失败: {exc}") from exc
    return load_image_bytes(data), data


def _failure(descriptor: InputDescriptor, kind: ErrorKind, message: str) -> FileOutcome:
    return FileOutcome(
        index=descriptor.index,
        source=descriptor.display_name,
        status="failed",
        kind=kind,
        message=message,
    )
