"""尺寸与画质换算。"""

from __future__ import annotations

import math


def compute_target_size(
    width: int,
    height: int,
    target_scale: float,
    source_scale: float,
    round_up: bool = True,
) -> tuple[int, int]:
    """按 target_scale / source_scale 的比例计算目标宽高，结果至少为 1。"""

    ratio = target_scale / source_scale
    rounding = math.ceil if round_up else math.floor
    target_w = int(rounding(width * ratio))
    target_h = int(rounding(height * ratio))
    return max(target_w, 1), max(target_h, 1)


def quality_to_percent(quality: float) -> int:
    """0.0~1.0 的画质映射为 0~100 的整数，越界时截断。"""

    return max(0, min(100, int(math.floor(quality * 100))))
