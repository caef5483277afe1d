"""环节三：测试衍生图并发生成与汇合。"""

from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from retina_workflow.core.exceptions import ResizeError
from retina_workflow.core.models import FileRecord, WorkItem
from retina_workflow.processing.merger import FanOutContext, merge_derivatives


def _items(base: Path) -> list[WorkItem]:
    return [
        WorkItem(3, base / "photo@3x.png"),
        WorkItem(2, base / "photo@2x.png"),
        WorkItem(1, base / "photo.png"),
    ]


def _task(delays: dict[float, float]):
    def run(item: WorkItem) -> FileRecord:
        time.sleep(delays.get(item.scale, 0))
        return FileRecord(path=item.target, base=item.target.parent, contents=str(item.scale).encode())

    return run


def test_empty_work_list_emits_original_only(tmp_path: Path) -> None:
    original = FileRecord(path=tmp_path / "photo.png", base=tmp_path, contents=b"x")

    assert merge_derivatives([], original, _task({})) == [original]


def test_serial_merge_keeps_plan_order(tmp_path: Path) -> None:
    original = FileRecord(path=tmp_path / "photo@4x.png", base=tmp_path, contents=b"x")

    group = merge_derivatives(_items(tmp_path), original, _task({}))

    assert [record.path.name for record in group] == ["photo@3x.png", "photo@2x.png", "photo.png", "photo@4x.png"]


@pytest.mark.parametrize(
    "delays",
    [
        {3: 0.05, 2: 0.02, 1: 0.0},
        {3: 0.0, 2: 0.02, 1: 0.05},
        {3: 0.02, 2: 0.0, 1: 0.05},
    ],
)
def test_concurrent_merge_emits_original_last(tmp_path: Path, delays: dict[float, float]) -> None:
    original = FileRecord(path=tmp_path / "photo@4x.png", base=tmp_path, contents=b"x")

    with ThreadPoolExecutor(max_workers=3) as executor:
        group = merge_derivatives(_items(tmp_path), original, _task(delays), executor=executor)

    assert len(group) == 4
    assert group[-1] is original
    assert {record.path.name for record in group[:-1]} == {"photo@3x.png", "photo@2x.png", "photo.png"}


def test_concurrent_tasks_run_in_parallel(tmp_path: Path) -> None:
    original = FileRecord(path=tmp_path / "photo@4x.png", base=tmp_path, contents=b"x")
    barrier = threading.Barrier(3, timeout=5)

    def waiting_task(item: WorkItem) -> FileRecord:
        # 三个任务必须同时在运行，否则 Barrier 超时。
        barrier.wait()
        return FileRecord(path=item.target, base=tmp_path, contents=b"")

    with ThreadPoolExecutor(max_workers=3) as executor:
        group = merge_derivatives(_items(tmp_path), original, waiting_task, executor=executor)

    assert group[-1] is original


def test_failure_discards_whole_group(tmp_path: Path) -> None:
    original = FileRecord(path=tmp_path / "photo@4x.png", base=tmp_path, contents=b"x")
    finished: list[float] = []
    lock = threading.Lock()

    def flaky_task(item: WorkItem) -> FileRecord:
        if item.scale == 2:
            raise ResizeError("boom", path=item.target)
        time.sleep(0.01)
        with lock:
            finished.append(item.scale)
        return FileRecord(path=item.target, base=tmp_path, contents=b"")

    with ThreadPoolExecutor(max_workers=3) as executor:
        with pytest.raises(ResizeError):
            merge_derivatives(_items(tmp_path), original, flaky_task, executor=executor)

    # 失败不会中断其他分支。
    assert sorted(finished) == [1, 3]


def test_serial_failure_raises_first_error(tmp_path: Path) -> None:
    original = FileRecord(path=tmp_path / "photo@4x.png", base=tmp_path, contents=b"x")

    def failing_task(item: WorkItem) -> FileRecord:
        raise ResizeError(f"failed {item.scale}")

    with pytest.raises(ResizeError, match="failed 3"):
        merge_derivatives(_items(tmp_path), original, failing_task)


def test_context_counts_down_once_per_branch(tmp_path: Path) -> None:
    original = FileRecord(path=tmp_path / "a.png", base=tmp_path, contents=b"")
    context = FanOutContext(original, expected=2)
    derivative = FileRecord(path=tmp_path / "b.png", base=tmp_path, contents=b"")

    assert context.add(derivative) is False
    assert context.remaining == 1
    with pytest.raises(RuntimeError):
        context.finalize()
    assert context.add(derivative) is True
    assert context.finalize() == [derivative, derivative, original]
