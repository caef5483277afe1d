"""处理流水线：过滤、规划、并发生成衍生图与输出管理。"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor, as_completed
from functools import partial
from typing import Callable, Iterable, Iterator, Optional

from retina_workflow.core.config import JobConfig, WorkflowConfig
from retina_workflow.core.exceptions import (
    DecodeError,
    ImageWriteError,
    ResizeError,
    RetinaWorkflowError,
    UnsupportedInputError,
)
from retina_workflow.core.models import BatchResult, FileOutcome, FileRecord
from retina_workflow.core.output_manager import OutputManager
from retina_workflow.core.progress import ProgressUpdate
from retina_workflow.core.report import write_csv_report
from retina_workflow.core.scanner import read_file_records
from retina_workflow.processing.merger import merge_derivatives
from retina_workflow.processing.path_info import SizeProbe, extract_path_info, probe_size, split_extension
from retina_workflow.processing.planner import ExistsProbe, path_exists, plan_derivatives
from retina_workflow.processing.resizer import ResizeFunc, execute_work_item, resize_image

LOGGER = logging.getLogger(__name__)


ProgressCallback = Optional[Callable[[ProgressUpdate], None]]
FileGroup = tuple[list[FileRecord], FileOutcome]

ERROR_STATUSES = {
    UnsupportedInputError: "error-stream",
    DecodeError: "error-decode",
    ResizeError: "error-resize",
}


def dispatch_file(
    record: FileRecord,
    config: WorkflowConfig,
    *,
    resize_func: ResizeFunc = resize_image,
    exists: ExistsProbe = path_exists,
    size_probe: SizeProbe = probe_size,
    executor: Optional[Executor] = None,
) -> FileGroup:
    """处理单个输入文件，返回要输出的文件组与处理结果。

    出错时文件组为空，错误写入 FileOutcome。
    """

    try:
        return _dispatch(record, config, resize_func, exists, size_probe, executor)
    except RetinaWorkflowError as exc:
        status = next(
            (value for kind, value in ERROR_STATUSES.items() if isinstance(exc, kind)),
            "error-worker",
        )
        LOGGER.error("处理失败 %s: %s", record.path, exc)
        return [], FileOutcome(source_path=record.path, status=status, message=str(exc))


def _dispatch(
    record: FileRecord,
    config: WorkflowConfig,
    resize_func: ResizeFunc,
    exists: ExistsProbe,
    size_probe: SizeProbe,
    executor: Optional[Executor],
) -> FileGroup:
    if record.is_null():
        return [record], FileOutcome(source_path=record.path, status="passthrough-null")
    if record.is_stream():
        raise UnsupportedInputError(f"不支持流式输入: {record.path}")

    _, extension = split_extension(record.path)
    if extension.lower() not in config.normalized_extensions():
        LOGGER.debug("扩展名不在允许列表中: %s (%s)", extension, record.path.name)
        return [record], FileOutcome(source_path=record.path, status="passthrough-extension")

    info = extract_path_info(record, config.flags, size_probe=size_probe)
    if info.flag is None:
        LOGGER.debug("文件名中没有匹配的密度后缀: %s", info.basename)
        return [record], FileOutcome(source_path=record.path, status="passthrough-no-flag")

    renamed = FileRecord(path=info.sibling(info.flag.suffix_out), base=record.base, contents=record.contents)
    work_list = plan_derivatives(info, config.flags, exists=exists)
    LOGGER.info("%s: 需要生成 %d 个衍生图", info.basename, len(work_list))

    task = partial(
        execute_work_item,
        info=info,
        source=record.contents,
        quality=config.quality,
        round_up=config.round_up,
        resize_func=resize_func,
    )
    group = merge_derivatives(work_list, renamed, task, executor=executor)

    outcome = FileOutcome(
        source_path=record.path,
        status="processed",
        outputs=[item.path for item in group],
    )
    return group, outcome


def process_stream(
    records: Iterable[FileRecord],
    config: WorkflowConfig,
    *,
    resize_func: ResizeFunc = resize_image,
    exists: ExistsProbe = path_exists,
    size_probe: SizeProbe = probe_size,
) -> Iterator[FileGroup]:
    """逐个文件产出 (文件组, 结果)。

    多个文件同时处理，按完成先后产出；同一文件的文件组总是完整产出。
    """

    config.validate()
    options = dict(resize_func=resize_func, exists=exists, size_probe=size_probe)

    if config.max_workers <= 1:
        for record in records:
            try:
                group = dispatch_file(record, config, **options)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("任务执行异常：%s", exc)
                group = ([], FileOutcome(source_path=record.path, status="error-worker", message=str(exc)))
            yield group
        return

    with ThreadPoolExecutor(
        max_workers=config.max_workers, thread_name_prefix="resize"
    ) as resize_pool, ThreadPoolExecutor(max_workers=config.max_workers, thread_name_prefix="file") as file_pool:
        future_map = {
            file_pool.submit(dispatch_file, record, config, executor=resize_pool, **options): record
            for record in records
        }
        for future in as_completed(future_map):
            record = future_map[future]
            try:
                group = future.result()
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("任务执行异常：%s", exc)
                group = ([], FileOutcome(source_path=record.path, status="error-worker", message=str(exc)))
            yield group


def process_batch(job: JobConfig, progress_callback: ProgressCallback = None) -> BatchResult:
    """批量处理入口：读取源文件、生成衍生图、写出结果与报告。

    文件组的写出不是原子的：写到一半失败时，已写出的文件会保留在输出目录，
    该文件的结果记为 ``error-write``。
    """

    job.workflow.validate()
    output_manager = OutputManager(job.output)

    records = list(read_file_records(job.sources, job.base))
    total = len(records)
    LOGGER.info("读取到 %d 个输入文件", total)

    successes: list[FileOutcome] = []
    skipped: list[FileOutcome] = []
    failed: list[FileOutcome] = []
    emitted: list[FileRecord] = []
    completed = 0

    _emit_progress(progress_callback, completed, total, 0, "开始执行处理任务")

    for group, outcome in process_stream(records, job.workflow):
        try:
            for item in group:
                output_manager.write(item)
        except ImageWriteError as exc:
            LOGGER.error("写入失败：%s", exc)
            outcome = FileOutcome(source_path=outcome.source_path, status="error-write", message=str(exc))
        else:
            emitted.extend(group)

        _record_outcome(outcome, successes, skipped, failed)
        completed += 1
        _emit_progress(progress_callback, completed, total, len(failed), f"完成 {outcome.source_path.name}")

    result = BatchResult(succeeded=successes, skipped=skipped, failed=failed, records=emitted)
    _write_report(job, output_manager, result)
    _emit_progress(progress_callback, total, total, len(failed), "处理完成")
    return result


def _record_outcome(
    outcome: FileOutcome,
    successes: list[FileOutcome],
    skipped: list[FileOutcome],
    failed: list[FileOutcome],
) -> None:
    if outcome.status == "processed":
        successes.append(outcome)
    elif outcome.status.startswith("passthrough"):
        skipped.append(outcome)
    else:
        failed.append(outcome)


def _emit_progress(
    callback: ProgressCallback,
    completed: int,
    total: int,
    failed: int,
    message: Optional[str] = None,
) -> None:
    if not callback:
        return
    callback(ProgressUpdate(total=total, completed=completed, failed=failed, message=message))


def _write_report(job: JobConfig, output_manager: OutputManager, result: BatchResult) -> None:
    try:
        write_csv_report(result.all_outcomes(), output_manager.output_dir, job.output.report_filename)
    except OSError as exc:
        LOGGER.error("写入报告失败：%s", exc)
