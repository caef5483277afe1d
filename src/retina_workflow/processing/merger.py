"""衍生图的并发生成与汇合。

同一输入文件的所有缩放任务同时提交，全部完成后按完成顺序输出衍生图，
最后追加（已重命名的）原图。任一任务失败时整组作废，不输出部分结果。
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, as_completed
from typing import Callable, Optional, Sequence

from retina_workflow.core.exceptions import RetinaWorkflowError
from retina_workflow.core.models import FileRecord, WorkItem

LOGGER = logging.getLogger(__name__)

WorkTask = Callable[[WorkItem], FileRecord]


class FanOutContext:
    """单个输入文件的汇合状态：剩余计数、结果缓冲与首个错误。"""

    def __init__(self, original: FileRecord, expected: int) -> None:
        self.original = original
        self.expected = expected
        self._lock = threading.Lock()
        self._remaining = expected
        self._results: list[FileRecord] = []
        self._error: Optional[BaseException] = None

    @property
    def remaining(self) -> int:
        with self._lock:
            return self._remaining

    def add(self, record: FileRecord) -> bool:
        """记录一个完成的衍生图，返回是否为最后一个。"""

        with self._lock:
            self._results.append(record)
            self._remaining -= 1
            return self._remaining == 0

    def fail(self, exc: BaseException) -> bool:
        """记录失败的分支，只保留第一个错误。"""

        with self._lock:
            if self._error is None:
                self._error = exc
            self._remaining -= 1
            return self._remaining == 0

    def finalize(self) -> list[FileRecord]:
        """返回衍生图（完成顺序）加原图；存在失败分支时抛出首个错误。"""

        with self._lock:
            if self._remaining:
                raise RuntimeError(f"仍有 {self._remaining} 个分支未完成")
            if self._error is not None:
                raise self._error
            return [*self._results, self.original]


def merge_derivatives(
    items: Sequence[WorkItem],
    original: FileRecord,
    task: WorkTask,
    executor: Optional[Executor] = None,
) -> list[FileRecord]:
    """执行 ``items`` 中的全部任务并汇合为一组输出。

    ``executor`` 为 None 时按规划顺序串行执行。
    """

    if not items:
        return [original]

    context = FanOutContext(original, len(items))

    if executor is None:
        for item in items:
            try:
                context.add(task(item))
            except (RetinaWorkflowError, OSError) as exc:
                context.fail(exc)
        return context.finalize()

    futures = {executor.submit(task, item): item for item in items}
    for future in as_completed(futures):
        item = futures[future]
        try:
            context.add(future.result())
        except (RetinaWorkflowError, OSError) as exc:
            LOGGER.warning("衍生图生成失败 %s: %s", item.target.name, exc)
            context.fail(exc)

    return context.finalize()
