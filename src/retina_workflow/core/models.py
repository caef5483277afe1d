"""核心数据模型定义。"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Optional, Union

from retina_workflow.core.config import DensityFlag

Contents = Union[bytes, BinaryIO, None]


@dataclass(slots=True)
class FileRecord:
    """流水线中的单个文件：路径、根目录与内容。

    ``contents`` 为 ``None`` 表示空文件记录，为文件对象表示流式输入。
    """

    path: Path
    base: Path
    contents: Contents = None

    def is_null(self) -> bool:
        return self.contents is None

    def is_stream(self) -> bool:
        return self.contents is not None and not isinstance(self.contents, (bytes, bytearray))

    @property
    def relative_path(self) -> Path:
        """相对于 base 的路径，无法计算时退化为文件名。"""

        try:
            return self.path.relative_to(self.base)
        except ValueError:
            return Path(self.path.name)


@dataclass(slots=True)
class PathInfo:
    """从输入文件路径拆解出的信息。"""

    path: Path
    base: Path
    directory: Path
    basename: str
    name: str
    extension: str
    flag: Optional[DensityFlag]
    size: tuple[int, int]

    @property
    def partial(self) -> str:
        """去掉密度后缀与扩展名的路径，用于拼接同级文件。"""

        return os.path.join(str(self.directory), "") + self.name

    def sibling(self, suffix: str) -> Path:
        return self.directory / f"{self.name}{suffix}.{self.extension}"


@dataclass(frozen=True, slots=True)
class WorkItem:
    """一条待生成的衍生图任务。"""

    scale: float
    target: Path


@dataclass(slots=True)
class FileOutcome:
    """记录单个文件的处理结果（用于报告/日志）。"""

    source_path: Path
    status: str
    outputs: list[Path] = field(default_factory=list)
    message: Optional[str] = None


@dataclass(slots=True)
class BatchResult:
    """批处理阶段性的产出。"""

    succeeded: list[FileOutcome]
    skipped: list[FileOutcome]
    failed: list[FileOutcome]
    records: list[FileRecord] = field(default_factory=list)

    def all_outcomes(self) -> list[FileOutcome]:
        """返回所有结果记录，方便生成报告。"""

        return [*self.succeeded, *self.skipped, *self.failed]
