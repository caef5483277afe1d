"""衍生图规划：决定需要生成哪些尺寸。"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Callable, Sequence

from retina_workflow.core.config import DensityFlag
from retina_workflow.core.models import PathInfo, WorkItem

LOGGER = logging.getLogger(__name__)

ExistsProbe = Callable[[Path], bool]


def path_exists(path: Path) -> bool:
    """同步检查文件是否存在，访问失败视为不存在。"""

    try:
        return os.path.exists(path)
    except (OSError, ValueError):
        return False


def plan_derivatives(
    info: PathInfo,
    flags: Sequence[DensityFlag],
    exists: ExistsProbe = path_exists,
) -> list[WorkItem]:
    """按倍数从大到小遍历阶梯，生成比源图小的衍生图任务。

    遇到磁盘上已存在的较小尺寸源文件时立即停止：该文件通常经过人工优化，
    更小的尺寸应由它派生，不能被覆盖。
    """

    if info.flag is None:
        return []

    work_list: list[WorkItem] = []
    ordered = sorted(flags, key=lambda flag: flag.scale, reverse=True)

    for flag in ordered:
        if flag.scale >= info.flag.scale:
            continue

        existing = info.sibling(flag.suffix)
        if exists(existing):
            LOGGER.debug("已存在较小尺寸源文件，停止规划: %s", existing)
            break

        work_list.append(WorkItem(scale=flag.scale, target=info.sibling(flag.suffix_out)))

    return work_list
