"""输出路径决策、覆盖策略与写入。"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import BinaryIO, Optional

from quantpress.core.config import IOPlan
from quantpress.core.exceptions import ImageWriteError, NotOverwritingError
from quantpress.core.models import InputDescriptor

LOGGER = logging.getLogger(__name__)


def derive_output_path(source: Path, suffix: str) -> Path:
    """去掉文件名的最后一个扩展名后追加后缀。

    photo.png + -fs8.png -> photo-fs8.png；photo -> photo-fs8.png。
    只处理文件名部分，目录名中的点不受影响。
    """

    stem = source.name.rsplit(".", 1)[0]
    return source.with_name(f"{stem}{suffix}")


class OutputManager:
    """负责按 IOPlan 确定输出位置，并执行覆盖与体积比较策略。"""

    def __init__(self, plan: IOPlan, stdout: Optional[BinaryIO] = None) -> None:
        self.plan = plan
        self._stdout = stdout

    def resolve_destination(self, descriptor: InputDescriptor) -> Optional[Path]:
        """返回输出文件路径，None 表示写到标准输出。"""

        mode = self.plan.output_mode
        if mode == "stdout":
            return None
        if mode == "path":
            assert self.plan.output_path is not None
            return self.plan.output_path
        assert descriptor.path is not None
        return derive_output_path(descriptor.path, self.plan.suffix)

    def write(self, destination: Optional[Path], new_data: bytes, original_data: bytes) -> int:
        """按策略写入，返回实际写出的字节数。"""

        if destination is None:
            return self._write_stdout(new_data, original_data)

        compare_size = len(original_data)
        if destination.is_file():
            existing_size = destination.stat().st_size
            compare_size = min(compare_size, existing_size)
            if not self.plan.force:
                raise NotOverwritingError(f"跳过 {destination}：文件已存在，使用 --force 覆盖")

        if self.plan.skip_if_larger and len(new_data) >= compare_size:
            raise NotOverwritingError(
                f"跳过 {destination}：新文件 {len(new_data)}B 不小于原文件 {compare_size}B"
            )

        try:
            destination.write_bytes(new_data)
        except OSError as exc:
            raise ImageWriteError(f"无法写入 '{destination}': {exc}") from exc

        LOGGER.info("已写入 %s（%d 字节）", destination, len(new_data))
        return len(new_data)

    def _write_stdout(self, new_data: bytes, original_data: bytes) -> int:
        # 新结果不够小时仍把原始字节写到流中，但依然报告失败。
        use_original = self.plan.skip_if_larger and len(new_data) >= len(original_data)
        data = original_data if use_original else new_data

        stream = self._stdout if self._stdout is not None else sys.stdout.buffer
        try:
            stream.write(data)
            stream.flush()
        except OSError as exc:
            raise ImageWriteError(f"无法写入标准输出: {exc}") from exc

        if use_original:
            raise NotOverwritingError(
                f"保留原图：新文件 {len(new_data)}B 不小于原文件 {len(original_data)}B"
            )
        return len(data)
