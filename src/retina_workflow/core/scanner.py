"""读取命令行传入的源文件，构造 FileRecord。

只接受显式给出的文件，目录不做遍历。
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, Optional, Sequence

from retina_workflow.core.models import FileRecord

LOGGER = logging.getLogger(__name__)


def _common_base(paths: Sequence[Path]) -> Path:
    """计算所有源文件的公共父目录，作为默认 base。"""

    parents = [str(path.parent) for path in paths]
    if not parents:
        return Path.cwd()
    return Path(os.path.commonpath(parents))


def read_file_records(sources: Sequence[Path], base: Optional[Path] = None) -> Iterator[FileRecord]:
    """按给定顺序读取源文件内容，逐个产出 FileRecord。"""

    files: list[Path] = []
    seen_paths: set[Path] = set()

    for source in sources:
        resolved = source.resolve()
        if resolved in seen_paths:
            continue
        seen_paths.add(resolved)

        if not resolved.is_file():
            LOGGER.warning("忽略非文件输入: %s", source)
            continue
        files.append(resolved)

    root = base.resolve() if base is not None else _common_base(files)

    for path in files:
        try:
            contents = path.read_bytes()
        except OSError as exc:
            LOGGER.error("读取文件失败 %s: %s", path, exc)
            continue
        yield FileRecord(path=path, base=root, contents=contents)
