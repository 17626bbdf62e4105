"""报告生成工具。"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from quantpress.core.exceptions import exit_code_for
from quantpress.core.models import FileOutcome

HEADER = ["source", "output_path", "status", "error_kind", "exit_code", "bytes_written", "quality", "message"]


def write_csv_report(outcomes: Iterable[FileOutcome], report_path: Path) -> Path:
    """将处理结果按输入顺序写入 CSV 报告。"""

    report_path.parent.mkdir(parents=True, exist_ok=True)
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for record in outcomes:
            writer.writerow(
                [
                    record.source,
                    _format_output(record.output_path, record.ok),
                    record.status,
                    record.kind.value if record.kind else "",
                    exit_code_for(record.kind),
                    record.bytes_written,
                    _format_quality(record.quality),
                    record.message or "",
                ]
            )
    return report_path


def _format_output(path: Path | None, ok: bool) -> str:
    if not ok:
        return ""
    if path is None:
        return "stdout"
    return str(path)


def _format_quality(value: int | None) -> str:
    if value is None:
        return ""
    return str(value)
