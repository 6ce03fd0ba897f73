from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from typing import Iterable

from stitchplan.core.calendar import is_working_day
from stitchplan.core.constants import SEWING_PROCESS_ID, WORKING_HOURS_END, WORKING_HOURS_START
from stitchplan.core.efficiency import EfficiencyCurve
from stitchplan.core.models import Order, ScheduledProcess, UnplannedBatch
from stitchplan.planner.tna import latest_sewing_start


def _worked_minutes(item: ScheduledProcess, day: date) -> float:
    lo = max(item.start, datetime.combine(day, time(WORKING_HOURS_START)))
    hi = min(item.end, datetime.combine(day, time(WORKING_HOURS_END)))
    return max(0.0, (hi - lo).total_seconds() / 60.0)


def daily_sewing_output(order: Order, items: Iterable[ScheduledProcess]) -> dict[date, float]:
    """Units sewn per calendar day for `order` across its scheduled sewing items.

    Each item ramps up from its own first production day.
    """
    curve = EfficiencyCurve.for_order(order)
    sam = order.sam_for(SEWING_PROCESS_ID)
    output: dict[date, float] = {}
    if sam <= 0 or curve.is_empty:
        return output

    sewing = sorted(
        (p for p in items if p.order_id == order.order_id and p.process_id == SEWING_PROCESS_ID),
        key=lambda p: p.start,
    )
    for item in sewing:
        production_day = 0
        day = item.start.date()
        while day <= item.end.date():
            if is_working_day(day):
                minutes = _worked_minutes(item, day)
                if minutes > 0:
                    production_day += 1
                    eff = curve.efficiency_on(production_day)
                    if eff > 0:
                        output[day] = output.get(day, 0.0) + minutes / (sam / (eff / 100.0))
            day += timedelta(days=1)
    return dict(sorted(output.items()))


def sewing_days_for_quantity(order: Order, items: Iterable[ScheduledProcess], target: float) -> int | None:
    """Sewing days until cumulative output reaches `target`; None if it never does."""
    if target <= 0:
        return 0
    total = 0.0
    for count, qty in enumerate(daily_sewing_output(order, items).values(), start=1):
        total += qty
        if total >= target - 1e-9:
            return count
    return None


def unplanned_batches(
    order: Order,
    process_id: str,
    items: Iterable[ScheduledProcess],
    batch_size: int,
) -> list[UnplannedBatch]:
    """Batches of `process_id` not yet covered by scheduled quantity."""
    if batch_size <= 0 or order.quantity <= 0:
        return []
    total_batches = int(math.ceil(order.quantity / batch_size))
    sizes = [batch_size] * (total_batches - 1) + [order.quantity - batch_size * (total_batches - 1)]

    covered = sum(p.quantity for p in items if p.order_id == order.order_id and p.process_id == process_id)
    latest = latest_sewing_start(order) if process_id == SEWING_PROCESS_ID else None

    out: list[UnplannedBatch] = []
    for number, size in enumerate(sizes, start=1):
        if covered >= size:
            covered -= size
            continue
        out.append(
            UnplannedBatch(
                order_id=order.order_id,
                process_id=process_id,
                quantity=size - covered,
                batch_number=number,
                total_batches=total_batches,
                latest_start=latest,
            )
        )
        covered = 0
    return out
