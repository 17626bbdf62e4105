"""批处理执行：按输入并发运行单文件流程，并按输入顺序汇总结果。"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import BinaryIO, Callable, Optional

from quantpress.core.config import EngineConfig, IOPlan
from quantpress.core.exceptions import ErrorKind
from quantpress.core.models import BatchReport, FileOutcome, InputDescriptor
from quantpress.core.output_manager import OutputManager
from quantpress.core.progress import ProgressUpdate
from quantpress.processing.worker import ProcessingTask, run_task

LOGGER = logging.getLogger(__name__)


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]


def build_descriptors(plan: IOPlan) -> list[InputDescriptor]:
    """根据 IOPlan 生成按顺序编号的输入描述。"""

    if plan.input_mode == "stdin":
        return [InputDescriptor(index=0, path=None)]
    return [InputDescriptor(index=idx, path=path) for idx, path in enumerate(plan.inputs)]


def process_batch(
    config: EngineConfig,
    plan: IOPlan,
    progress_callback: ProgressCallback = None,
    *,
    max_workers: Optional[int] = None,
    stdin: Optional[BinaryIO] = None,
    stdout: Optional[BinaryIO] = None,
) -> BatchReport:
    """批量处理入口：单个输入同步执行，多个输入使用线程池并发执行。

    单个文件失败不会中断其他文件。结果表按输入序号寻址，
    因此 first_failure 与线程完成顺序无关。
    """

    output_manager = OutputManager(plan, stdout=stdout)
    tasks = [
        ProcessingTask(
            descriptor=descriptor,
            config=config,
            output=output_manager,
            strip_metadata=plan.strip_metadata,
            stdin=stdin,
        )
        for descriptor in build_descriptors(plan)
    ]
    total = len(tasks)
    results: list[Optional[FileOutcome]] = [None] * total
    LOGGER.info("待处理文件 %d 个", total)

    if total == 1:
        results[0] = run_task(tasks[0])
        _emit_progress(progress_callback, 1, total, tasks[0].descriptor.display_name)
        return BatchReport(outcomes=[results[0]])

    workers = min(total, max_workers or os.cpu_count() or 1)
    completed = 0
    with ThreadPoolExecutor(max_workers=max(workers, 1), thread_name_prefix="quantpress") as executor:
        future_map = {executor.submit(run_task, task): task for task in tasks}
        for future in as_completed(future_map):
            task = future_map[future]
            try:
                outcome = future.result()
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("任务执行异常：%s", exc)
                outcome = FileOutcome(
                    index=task.descriptor.index,
                    source=task.descriptor.display_name,
                    status="failed",
                    kind=ErrorKind.INTERNAL_ERROR,
                    message=str(exc),
                )
            results[task.descriptor.index] = outcome
            completed += 1
            _emit_progress(progress_callback, completed, total, task.descriptor.display_name)

    return BatchReport(outcomes=[outcome for outcome in results if outcome is not None])


def _emit_progress(
    callback: ProgressCallback,
    completed: int,
    total: int,
    message: Optional[str] = None,
) -> None:
    if not callback:
        return
    callback(ProgressUpdate(total=total, completed=completed, message=message))
