from __future__ import annotations

import logging
import math
from dataclasses import dataclass

from stitchplan.core.constants import (
    DEFAULT_BUDGETED_EFFICIENCY,
    MAX_DURATION_DAYS,
    SEWING_PROCESS_ID,
    WORK_DAY_MINUTES,
    WORK_DAYS_PER_WEEK,
)
from stitchplan.core.efficiency import EfficiencyCurve
from stitchplan.core.models import Order, PlanningPolicy

logger = logging.getLogger(__name__)

INFEASIBLE = math.inf


def is_infeasible(value: float | None) -> bool:
    return value is not None and math.isinf(value)


def duration_minutes(
    quantity: float,
    sam: float,
    curve: EfficiencyCurve,
    lines: int = 1,
    *,
    work_day_minutes: int = WORK_DAY_MINUTES,
) -> float:
    """Working minutes needed to produce `quantity` on `lines` parallel lines.

    Walks production day by day, applying the curve's efficiency for the
    current day. Returns 0 when inputs are missing (no quantity, no SAM,
    empty curve) and `INFEASIBLE` when efficiency drops to zero or the walk
    would exceed `MAX_DURATION_DAYS`.
    """
    if quantity <= 0 or sam <= 0 or lines <= 0 or curve.is_empty:
        return 0.0

    remaining = float(quantity)
    elapsed = 0.0
    ceiling = float(work_day_minutes) * MAX_DURATION_DAYS

    while remaining > 1e-9:
        if elapsed > ceiling:
            logger.warning("Duration exceeds %d working days (qty=%s sam=%s)", MAX_DURATION_DAYS, quantity, sam)
            return INFEASIBLE
        day = int(elapsed // work_day_minutes) + 1
        eff = curve.efficiency_on(day)
        if eff <= 0:
            logger.warning("Efficiency %.1f on production day %d is not positive; duration infeasible", eff, day)
            return INFEASIBLE

        rate = lines / (sam / (eff / 100.0))  # units per minute
        minutes_left_today = work_day_minutes - (elapsed % work_day_minutes)
        minutes_needed = remaining / rate
        step = min(minutes_left_today, minutes_needed)
        elapsed += step
        remaining -= step * rate

    return elapsed


def duration_days(
    quantity: float,
    sam: float,
    curve: EfficiencyCurve,
    lines: int = 1,
    *,
    work_day_minutes: int = WORK_DAY_MINUTES,
) -> float:
    minutes = duration_minutes(quantity, sam, curve, lines, work_day_minutes=work_day_minutes)
    if is_infeasible(minutes):
        return INFEASIBLE
    return float(math.ceil(minutes / work_day_minutes - 1e-9)) if minutes > 0 else 0.0


def quantity_in_minutes(
    minutes: float,
    sam: float,
    curve: EfficiencyCurve,
    lines: int = 1,
    *,
    start_day: int = 1,
    work_day_minutes: int = WORK_DAY_MINUTES,
) -> float:
    """Units producible in `minutes` of working time, starting on production day `start_day`."""
    if minutes <= 0 or sam <= 0 or lines <= 0 or curve.is_empty:
        return 0.0

    produced = 0.0
    elapsed = 0.0
    while elapsed < minutes - 1e-9:
        day = start_day + int(elapsed // work_day_minutes)
        eff = curve.efficiency_on(day)
        minutes_left_today = work_day_minutes - (elapsed % work_day_minutes)
        step = min(minutes_left_today, minutes - elapsed)
        if eff > 0:
            produced += step * lines / (sam / (eff / 100.0))
        elapsed += step
    return produced


def weekly_output(
    sam: float,
    efficiency: float,
    lines: int = 1,
    operators: int = 1,
    *,
    work_day_minutes: int = WORK_DAY_MINUTES,
    work_days_per_week: int = WORK_DAYS_PER_WEEK,
) -> float:
    """Units per week at a flat efficiency. Zero when SAM or efficiency is missing."""
    if sam <= 0 or efficiency <= 0 or lines <= 0 or operators <= 0:
        return 0.0
    return work_days_per_week * work_day_minutes * operators * lines * (efficiency / 100.0) / sam


@dataclass(frozen=True)
class Throughput:
    """Full ramp-up capacity of one line for a style."""

    sam: float
    operators: int
    efficiency: float

    @classmethod
    def for_order(cls, order: Order, *, default_efficiency: float = DEFAULT_BUDGETED_EFFICIENCY) -> "Throughput":
        curve = EfficiencyCurve.for_order(order)
        efficiency = curve.peak or order.budgeted_efficiency or default_efficiency
        if order.operations:
            sam = sum(op.sam for op in order.operations)
            operators = sum(op.operators for op in order.operations)
            return cls(sam=sam, operators=max(operators, 1), efficiency=efficiency)
        return cls(sam=order.sam_for(SEWING_PROCESS_ID), operators=1, efficiency=efficiency)

    def weekly(self, lines: int = 1, **kwargs) -> float:
        return weekly_output(self.sam, self.efficiency, lines, self.operators, **kwargs)

    def daily(self, lines: int = 1, *, work_day_minutes: int = WORK_DAY_MINUTES) -> float:
        return weekly_output(
            self.sam,
            self.efficiency,
            lines,
            self.operators,
            work_day_minutes=work_day_minutes,
            work_days_per_week=1,
        )


def process_duration_minutes(
    order: Order,
    process_id: str,
    quantity: float,
    *,
    lines: int = 1,
    policy: PlanningPolicy | None = None,
    work_day_minutes: int = WORK_DAY_MINUTES,
) -> float:
    """Minutes a process takes for `quantity` units of `order`.

    Sewing follows the ramp-up curve for firm orders and the flat
    budgeted line throughput for forecast orders; any other process is
    `sam * quantity`.
    """
    policy = policy or PlanningPolicy.for_order(order)
    if process_id != SEWING_PROCESS_ID:
        return max(0.0, order.sam_for(process_id) * quantity)

    if policy == PlanningPolicy.FORECAST:
        throughput = Throughput.for_order(order)
        daily = throughput.daily(lines, work_day_minutes=work_day_minutes)
        if daily <= 0:
            return 0.0
        return quantity / daily * work_day_minutes

    curve = EfficiencyCurve.for_order(order)
    return duration_minutes(
        quantity,
        order.sam_for(SEWING_PROCESS_ID),
        curve,
        lines,
        work_day_minutes=work_day_minutes,
    )
