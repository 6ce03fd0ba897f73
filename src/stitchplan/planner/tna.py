from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time

from stitchplan.core.calendar import add_business_days, calculate_start_datetime, sub_business_days
from stitchplan.core.constants import (
    DEFAULT_BUDGETED_EFFICIENCY,
    PACKING_PROCESS_ID,
    SEWING_PROCESS_ID,
    WORK_DAY_MINUTES,
    WORKING_HOURS_END,
)
from stitchplan.core.duration import is_infeasible, process_duration_minutes
from stitchplan.core.efficiency import EfficiencyCurve
from stitchplan.core.models import Order, PlanningPolicy, TnaProcess

logger = logging.getLogger(__name__)

CK_LEAD_DAYS = 3  # business days between material check and first process


@dataclass(frozen=True)
class TnaPlan:
    processes: list[TnaProcess] = field(default_factory=list)
    ck_date: date | None = None
    batch_size: int = 0
    policy: PlanningPolicy = PlanningPolicy.FIRM

    def for_process(self, process_id: str) -> TnaProcess | None:
        for p in self.processes:
            if p.process_id == process_id:
                return p
        return None


def minimum_run_quantity(order: Order, process_id: str, *, lines: int = 1) -> int:
    """Units a process turns out over its minimum run days."""
    sam = order.sam_for(process_id)
    if sam <= 0:
        return 0
    days = order.min_run_days.get(process_id, 1)
    if process_id == SEWING_PROCESS_ID:
        peak = max(EfficiencyCurve.for_order(order).peak, order.budgeted_efficiency or DEFAULT_BUDGETED_EFFICIENCY)
        return int(math.floor(lines * WORK_DAY_MINUTES * days / (sam / (peak / 100.0))))
    return int(math.floor(days * WORK_DAY_MINUTES / sam))


def _fallback_batch(quantity: int) -> int:
    return max(1, quantity // 5)


def process_batch_size(order: Order, *, lines: int = 1) -> int:
    """Batch size that keeps every process up to sewing busy for its minimum run."""
    if order.quantity <= 0:
        return 0
    routing = list(order.process_ids)
    if SEWING_PROCESS_ID in routing:
        routing = routing[: routing.index(SEWING_PROCESS_ID) + 1]
    moq = max((minimum_run_quantity(order, pid, lines=lines) for pid in routing), default=0)
    if moq <= 0:
        return _fallback_batch(order.quantity)
    return min(moq, order.quantity)


def packing_batch_size(order: Order) -> int:
    if order.quantity <= 0:
        return 0
    moq = minimum_run_quantity(order, PACKING_PROCESS_ID)
    if moq <= 0:
        return _fallback_batch(order.quantity)
    return min(moq, order.quantity)


def _days(order: Order, process_id: str, quantity: float, lines: int, policy: PlanningPolicy) -> float:
    minutes = process_duration_minutes(order, process_id, quantity, lines=lines, policy=policy)
    if is_infeasible(minutes):
        return math.inf
    return float(math.ceil(minutes / WORK_DAY_MINUTES - 1e-9)) if minutes > 0 else 0.0


def generate_tna_plan(
    order: Order,
    *,
    lines: int = 1,
    batch_size: int | None = None,
    policy: PlanningPolicy | None = None,
) -> TnaPlan:
    """Earliest (ASAP) and latest (ALAP) start dates per process.

    The forward pass anchors the first process at the due date minus the
    whole routing's duration and lets each next process start once the
    previous one has finished its first batch. The backward pass ends the
    last process on the due date and staggers earlier processes by their
    batch time. Firm and forecast orders differ only in how sewing time
    is derived (see `process_duration_minutes`).
    """
    policy = policy or PlanningPolicy.for_order(order)
    if order.due_date is None or order.quantity <= 0:
        return TnaPlan(policy=policy)

    batch = batch_size if batch_size is not None else process_batch_size(order, lines=lines)
    batch = max(1, min(batch, order.quantity))

    durations = [_days(order, pid, order.quantity, lines, policy) for pid in order.process_ids]
    batch_days = [_days(order, pid, batch, lines, policy) for pid in order.process_ids]
    if any(math.isinf(d) for d in durations + batch_days):
        logger.warning("TNA for order %s skipped: infeasible process duration", order.order_id)
        return TnaPlan(batch_size=batch, policy=policy)

    anchor = sub_business_days(order.due_date, sum(durations))

    earliest: list[date] = []
    current = anchor
    for i in range(len(order.process_ids)):
        earliest.append(current)
        current = add_business_days(current, batch_days[i])

    latest: list[date] = [order.due_date] * len(order.process_ids)
    latest[-1] = sub_business_days(order.due_date, durations[-1])
    for i in range(len(order.process_ids) - 2, -1, -1):
        latest[i] = sub_business_days(latest[i + 1], batch_days[i])

    processes = [
        TnaProcess(
            process_id=pid,
            duration_days=durations[i],
            earliest_start=earliest[i],
            latest_start=latest[i],
        )
        for i, pid in enumerate(order.process_ids)
    ]
    return TnaPlan(
        processes=processes,
        ck_date=sub_business_days(anchor, CK_LEAD_DAYS),
        batch_size=batch,
        policy=policy,
    )


def latest_sewing_start(order: Order, *, lines: int = 1) -> datetime | None:
    """Last moment sewing can start so the final packing batch meets the due date.

    Only firm orders have one; forecast orders return None.
    """
    if PlanningPolicy.for_order(order) == PlanningPolicy.FORECAST:
        return None
    if order.due_date is None or order.quantity <= 0:
        return None

    due = datetime.combine(order.due_date, time(WORKING_HOURS_END))
    packing_minutes = 0.0
    if PACKING_PROCESS_ID in order.process_ids:
        pbs = packing_batch_size(order)
        if pbs > 0:
            last_batch = order.quantity - pbs * (math.ceil(order.quantity / pbs) - 1)
            packing_minutes = last_batch * order.sam_for(PACKING_PROCESS_ID)
    sewing_deadline = calculate_start_datetime(due, packing_minutes)

    sewing_minutes = process_duration_minutes(
        order, SEWING_PROCESS_ID, order.quantity, lines=lines, policy=PlanningPolicy.FIRM
    )
    if is_infeasible(sewing_minutes):
        return None
    return calculate_start_datetime(sewing_deadline, sewing_minutes)
