"""命令行入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from quantpress.core.config import DEFAULT_SPEED, RawOptions
from quantpress.core.exceptions import QuantPressError, exit_code_for
from quantpress.core.models import BatchReport
from quantpress.core.progress import ProgressUpdate
from quantpress.core.report import write_csv_report
from quantpress.core.resolver import resolve_options
from quantpress.processing.pipeline import process_batch
from quantpress.utils.logging import setup_logging

app = typer.Typer(
    help=(
        "将真彩色 PNG 批量转换为更小的 8 位调色板 PNG。"
        "输出文件名为输入文件名去掉扩展名后加上 -fs8.png / -or8.png 或自定义后缀；"
        "输入为标准输入（-）时结果写到标准输出。目标文件已存在时默认跳过，使用 --force 覆盖。"
    )
)


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("量化图片", total=update.total)
        progress.update(task_id, completed=update.completed)

    return callback


def _run_batch(config, plan, max_workers: Optional[int]) -> BatchReport:
    if plan.input_count <= 1:
        return process_batch(config, plan, max_workers=max_workers)

    # 进度条写到 stderr，标准输出可能承载图像数据。
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
        console=Console(stderr=True),
        transient=True,
    )
    with progress:
        return process_batch(
            config,
            plan,
            progress_callback=_build_progress_callback(progress),
            max_workers=max_workers,
        )


@app.command("run")
def run_cli(  # noqa: PLR0913
    files: Optional[List[str]] = typer.Argument(None, help="要转换的 PNG 图片路径（'-' 表示标准输入）"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出状态信息"),
    force: bool = typer.Option(False, "--force", "-f", help="覆盖已存在的输出文件"),
    extension: Optional[str] = typer.Option(None, "--ext", metavar="-fs8.png", help="输出文件的自定义后缀"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="写到该文件（'-' 表示标准输出）"),
    skip_if_larger: bool = typer.Option(False, "--skip-if-larger", help="只在结果比原图小时保存"),
    no_dither: bool = typer.Option(False, "--nofs", "--ordered", help="关闭抖动"),
    speed: int = typer.Option(DEFAULT_SPEED, "--speed", "-s", metavar="N", help="速度/质量权衡，1=慢，11=快且粗糙"),
    quality: Optional[str] = typer.Option(
        None, "--quality", "-Q", metavar="min-max", help="低于 min 不保存，高于 max 时减少颜色 (0-100)"
    ),
    strip: bool = typer.Option(False, "--strip", help="移除可选的元数据"),
    floyd: Optional[float] = typer.Option(None, "--floyd", metavar="0.x", help="Floyd-Steinberg 抖动强度 (0-1)"),
    posterize: Optional[int] = typer.Option(None, "--posterize", metavar="N", help="降低颜色精度（如 ARGB4444 输出）"),
    colors: Optional[int] = typer.Option(None, "--colors", "-N", metavar="256", hidden=True, help="最多使用的颜色数"),
    map_file: Optional[Path] = typer.Option(None, "--map", metavar="pal.png", help="使用该图片的调色板"),
    max_workers: Optional[int] = typer.Option(None, "--workers", "-w", help="并发线程数量，默认取 CPU 数"),
    report: Optional[Path] = typer.Option(None, "--report", help="将每个文件的处理结果写入 CSV"),
) -> None:
    """执行批量量化。"""

    setup_logging(logging.INFO if verbose else logging.WARNING)
    logging.getLogger(__name__).debug("CLI 参数解析完成")

    raw = RawOptions(
        files=files or [],
        quality=quality,
        speed=speed,
        colors=colors,
        posterize=posterize,
        floyd=floyd,
        no_dither=no_dither,
        map_file=map_file,
        output=output,
        extension=extension,
        force=force,
        skip_if_larger=skip_if_larger,
        strip=strip,
    )

    try:
        config, plan = resolve_options(raw)
    except QuantPressError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=exit_code_for(exc.kind)) from exc

    result = _run_batch(config, plan, max_workers)

    if report is not None:
        try:
            write_csv_report(result.outcomes, report)
        except OSError as exc:
            logging.getLogger(__name__).error("写入报告失败：%s", exc)

    first_failure = result.first_failure
    if first_failure is None:
        return

    failed = len(result.failed)
    if result.total > 1:
        typer.echo(f"{result.total} 个文件中有 {failed} 个处理失败", err=True)
    typer.echo(f"error: {first_failure.message}", err=True)
    raise typer.Exit(code=exit_code_for(first_failure.kind))


if __name__ == "__main__":
    app()
