"""报告生成工具。"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from retina_workflow.core.models import FileOutcome

HEADER = ["source_path", "status", "outputs", "message"]


def write_csv_report(outcomes: Iterable[FileOutcome], output_dir: Path, filename: str) -> Path:
    """将处理结果写入 CSV 报告。"""

    report_path = output_dir / filename
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for record in outcomes:
            writer.writerow(
                [
                    str(record.source_path),
                    record.status,
                    ";".join(str(path) for path in record.outputs),
                    record.message or "",
                ]
            )
    return report_path
