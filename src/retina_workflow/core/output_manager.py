"""输出写入与冲突处理模块。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from retina_workflow.core.config import OutputConfig
from retina_workflow.core.exceptions import ImageWriteError, InvalidConfigurationError
from retina_workflow.core.models import FileRecord

LOGGER = logging.getLogger(__name__)

VALID_STRATEGIES = {"overwrite", "skip"}


class OutputManager:
    """负责处理输出目录、冲突策略与文件写入。"""

    def __init__(self, config: OutputConfig) -> None:
        if config.conflict_strategy not in VALID_STRATEGIES:
            raise InvalidConfigurationError(f"未知的冲突策略: {config.conflict_strategy}")
        self.config = config
        self.output_dir = config.output_dir.resolve()
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def destination_for(self, record: FileRecord) -> Path:
        """保持相对 base 的目录结构，计算输出路径。"""

        return self.output_dir / record.relative_path

    def write(self, record: FileRecord) -> Optional[Path]:
        """写入单个文件；skip 策略下目标已存在时返回 None。"""

        if record.is_null() or record.is_stream():
            return None

        destination = self.destination_for(record)
        if destination.exists() and self.config.conflict_strategy == "skip":
            LOGGER.info("跳过输出（已存在）：%s", destination)
            return None

        try:
            destination.parent.mkdir(parents=True, exist_ok=True)
            destination.write_bytes(record.contents)
        except OSError as exc:
            raise ImageWriteError(f"写入文件失败: {destination}") from exc

        return destination
