from __future__ import annotations

import math
from typing import Mapping

from stitchplan.core.constants import GAP_THRESHOLD, HORIZON_WEEKS
from stitchplan.core.models import ProductionRun


def round_half_up(value: float) -> int:
    """Nearest whole unit, halves away from zero (2.5 -> 3)."""
    if value < 0:
        return -round_half_up(-value)
    return int(math.floor(value + 0.5))


def partition_runs(
    demand: Mapping[int, float],
    start_week: int,
    end_week: int | None = None,
    *,
    gap_threshold: int = GAP_THRESHOLD,
    horizon: int = HORIZON_WEEKS,
) -> list[ProductionRun]:
    """Group weekly demand into runs separated by `gap_threshold` zero weeks.

    Weeks are scanned from `start_week` to `end_week` (or `horizon` when no
    end is given). Interior zero weeks shorter than the threshold stay
    inside the run; a run always ends at its last non-zero week.
    """
    last_week = end_week if end_week is not None else max(horizon, start_week)
    runs: list[ProductionRun] = []

    run_start: int | None = None
    last_nonzero: int | None = None
    qty = 0.0
    zero_streak = 0

    def close() -> None:
        if run_start is not None and last_nonzero is not None:
            runs.append(ProductionRun(start_week=run_start, end_week=last_nonzero, quantity=round_half_up(qty)))

    for week in range(start_week, last_week + 1):
        d = float(demand.get(week) or 0.0)
        if d > 0:
            if run_start is None:
                run_start = week
                qty = 0.0
            qty += d
            last_nonzero = week
            zero_streak = 0
            continue

        if run_start is None:
            continue
        zero_streak += 1
        if zero_streak >= gap_threshold:
            close()
            run_start = None
            last_nonzero = None
            qty = 0.0
            zero_streak = 0

    close()
    return runs
