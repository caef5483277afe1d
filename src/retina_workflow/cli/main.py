"""命令行入口。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
)

from retina_workflow.core.config import DEFAULT_EXTENSIONS, DensityFlag, JobConfig, OutputConfig, WorkflowConfig
from retina_workflow.core.exceptions import InvalidConfigurationError
from retina_workflow.core.progress import ProgressUpdate
from retina_workflow.processing.pipeline import process_batch
from retina_workflow.utils.logging import setup_logging

app = typer.Typer(help="根据 @2x/@3x 等高分辨率图片批量生成低分辨率版本。")


def _parse_flag(value: str) -> DensityFlag:
    """解析形如 ``@2x:2:@2x`` 的密度标记，输出后缀可省略。"""

    parts = value.split(":")
    if len(parts) not in (2, 3):
        raise typer.BadParameter("密度标记必须形如 @2x:2 或 @2x:2:@2x")
    suffix = parts[0]
    try:
        scale = float(parts[1])
    except ValueError as exc:  # noqa: FBT003
        raise typer.BadParameter(f"缩放倍数必须为数字: {parts[1]}") from exc
    suffix_out = parts[2] if len(parts) == 3 else ""
    return DensityFlag(suffix=suffix, scale=scale, suffix_out=suffix_out)


def _build_progress_callback(progress: Progress):
    task_id: Optional[int] = None

    def callback(update: ProgressUpdate) -> None:
        nonlocal task_id
        if update.total == 0:
            return
        if task_id is None:
            task_id = progress.add_task("生成衍生图", total=update.total)
        progress.update(task_id, completed=update.completed)
        if update.message:
            progress.log(update.message)

    return callback


@app.command("run")
def run_cli(  # noqa: PLR0913
    source: List[Path] = typer.Argument(..., help="源图片文件，可指定多个（不遍历目录）"),
    output: Path = typer.Option(..., "--output", "-o", help="输出目录"),
    base: Optional[Path] = typer.Option(None, "--base", help="计算相对路径的根目录，默认取源文件的公共父目录"),
    flag: Optional[List[str]] = typer.Option(
        None, "--flag", "-f", help="密度标记 后缀:倍数[:输出后缀]，可重复；不指定时使用 @1x~@4x"
    ),
    extension: Optional[List[str]] = typer.Option(None, "--ext", help="允许的扩展名，可重复"),
    round_up: bool = typer.Option(True, "--round-up/--round-down", help="尺寸取整方式"),
    quality: float = typer.Option(1.0, "--quality", "-q", help="编码画质 0.0~1.0"),
    max_workers: int = typer.Option(4, "--workers", "-w", help="并发线程数量"),
    conflict_strategy: str = typer.Option("overwrite", "--on-conflict", help="输出已存在时的策略 overwrite/skip"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """执行批量处理。"""

    setup_logging(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger(__name__).debug("CLI 参数解析完成")

    workflow = WorkflowConfig(round_up=round_up, quality=quality, max_workers=max_workers)
    if flag:
        workflow.flags = tuple(_parse_flag(value) for value in flag)
    workflow.extensions = tuple(extension) if extension else DEFAULT_EXTENSIONS

    output_dir = output.expanduser().resolve()
    job = JobConfig(
        sources=[p.expanduser() for p in source],
        output=OutputConfig(output_dir=output_dir, conflict_strategy=conflict_strategy),
        workflow=workflow,
        base=base.expanduser() if base else None,
    )

    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TimeElapsedColumn(),
        TimeRemainingColumn(),
    )

    try:
        with progress:
            result = process_batch(job, progress_callback=_build_progress_callback(progress))
    except InvalidConfigurationError as exc:
        typer.echo(f"配置错误：{exc}", err=True)
        raise typer.Exit(code=2) from exc

    typer.echo(
        f"处理完成：生成 {len(result.succeeded)} 张，原样输出 {len(result.skipped)} 张，失败 {len(result.failed)} 张。"
    )
    typer.echo(f"报告文件：{output_dir / job.output.report_filename}")
    if result.failed:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
