"""处理任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Sequence

from retina_workflow.core.exceptions import InvalidConfigurationError

ConflictStrategy = str  # overwrite | skip


@dataclass(frozen=True, slots=True)
class DensityFlag:
    """密度标记：输入文件名后缀、缩放倍数与输出后缀。"""

    suffix: str
    scale: float
    suffix_out: str = ""


DEFAULT_FLAGS: tuple[DensityFlag, ...] = (
    DensityFlag("@1x", 1, ""),
    DensityFlag("@2x", 2, "@2x"),
    DensityFlag("@3x", 3, "@3x"),
    DensityFlag("@4x", 4, "@4x"),
)

DEFAULT_EXTENSIONS: tuple[str, ...] = ("jpg", "jpeg", "png")


@dataclass(slots=True)
class WorkflowConfig:
    """衍生图生成的核心配置。"""

    flags: Sequence[DensityFlag] = DEFAULT_FLAGS
    extensions: Sequence[str] = DEFAULT_EXTENSIONS
    round_up: bool = True
    quality: float = 1.0
    max_workers: int = 4

    def validate(self) -> None:
        """检查密度阶梯与并发设置，不合法时抛出 InvalidConfigurationError。"""

        if not self.flags:
            raise InvalidConfigurationError("密度阶梯不能为空")

        for flag in self.flags:
            if not flag.suffix:
                raise InvalidConfigurationError("密度后缀不能为空")
            if flag.scale <= 0:
                raise InvalidConfigurationError(f"缩放倍数必须大于 0: {flag.suffix}={flag.scale}")

        suffixes = [flag.suffix for flag in self.flags]
        for idx, suffix in enumerate(suffixes):
            for other in suffixes[idx + 1 :]:
                if suffix == other:
                    raise InvalidConfigurationError(f"密度后缀重复: {suffix}")
                # 一个后缀是另一个的结尾时，首个匹配规则会产生歧义。
                if suffix.endswith(other) or other.endswith(suffix):
                    raise InvalidConfigurationError(f"密度后缀存在歧义: {suffix} / {other}")

        if self.max_workers < 1:
            raise InvalidConfigurationError("max_workers 必须大于等于 1")

    def normalized_extensions(self) -> frozenset[str]:
        """返回小写、不带点号的扩展名集合。"""

        return frozenset(ext.lower().lstrip(".") for ext in self.extensions)


@dataclass(slots=True)
class OutputConfig:
    """输出目录与冲突策略配置。"""

    output_dir: Path
    conflict_strategy: ConflictStrategy = "overwrite"
    report_filename: str = "report.csv"


@dataclass(slots=True)
class JobConfig:
    """单次批处理任务的配置集合。"""

    sources: Sequence[Path]
    output: OutputConfig
    workflow: WorkflowConfig = field(default_factory=WorkflowConfig)
    base: Path | None = None
