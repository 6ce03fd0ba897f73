from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from stitchplan.core.constants import PlanningParams
from stitchplan.core.duration import Throughput
from stitchplan.core.models import ForecastSnapshot, Order, TentativePlan, week_label
from stitchplan.planner.capacity import ACCEPTED, DROPPED, search_capacity
from stitchplan.planner.runs import partition_runs

logger = logging.getLogger(__name__)


def plan_horizon(
    demand: Mapping[int, float],
    *,
    start_week: int,
    end_week: int | None = None,
    throughput: Throughput,
    carry_over: float = 0.0,
    simulation_floor: int | None = None,
    params: PlanningParams | None = None,
) -> TentativePlan:
    """Partition demand into runs and size each one, threading inventory forward."""
    params = params or PlanningParams()
    floor = start_week if simulation_floor is None else simulation_floor
    scan_start = max(start_week, floor)

    runs = partition_runs(
        demand,
        scan_start,
        end_week,
        gap_threshold=params.gap_threshold,
        horizon=params.horizon_weeks,
    )

    weekly_plan: dict[int, int] = {}
    planned = []
    dropped = []
    carry = float(carry_over)
    for number, run in enumerate(runs, start=1):
        result = search_capacity(
            run,
            demand=demand,
            carry_over=carry,
            simulation_floor=floor,
            throughput=throughput,
            params=params,
            run_number=number,
        )
        carry = result.carry_out
        if result.status == ACCEPTED and result.planned is not None:
            planned.append(result.planned)
            for week, qty in result.weekly_plan.items():
                weekly_plan[week] = weekly_plan.get(week, 0) + qty
        elif result.status == DROPPED:
            dropped.append(run)

    return TentativePlan(
        weekly_plan=dict(sorted(weekly_plan.items())),
        runs=planned,
        dropped_runs=dropped,
        carry_out=carry,
    )


def generate_tentative_plan(
    order: Order,
    snapshot: ForecastSnapshot | None,
    simulation_floor: int | None = None,
    carry_over: float = 0.0,
    *,
    params: PlanningParams | None = None,
) -> TentativePlan:
    """Tentative weekly sewing plan for one order from one forecast snapshot.

    Pure and deterministic. Without a snapshot the plan is empty.
    """
    params = params or PlanningParams()
    if snapshot is None:
        return TentativePlan(weekly_plan={}, runs=[], carry_out=carry_over)

    floor = snapshot.snapshot_week if simulation_floor is None else simulation_floor
    throughput = Throughput.for_order(order, default_efficiency=params.default_budgeted_efficiency)
    return plan_horizon(
        snapshot.weekly_demand(),
        start_week=snapshot.snapshot_week,
        throughput=throughput,
        carry_over=carry_over,
        simulation_floor=floor,
        params=params,
    )


def snapshot_as_of(snapshots: Iterable[ForecastSnapshot], week: int) -> ForecastSnapshot | None:
    """Latest snapshot taken at or before `week`."""
    best: ForecastSnapshot | None = None
    for snap in snapshots:
        if snap.snapshot_week <= week and (best is None or snap.snapshot_week > best.snapshot_week):
            best = snap
    return best


def aggregate_demand(
    snapshots_by_order: Mapping[str, Sequence[ForecastSnapshot]],
    snapshot_week: int,
    *,
    exact: bool = False,
) -> dict[int, float]:
    """PO + FC demand per week summed over all orders of a CC.

    Each order contributes its latest snapshot at or before `snapshot_week`,
    or with `exact` only a snapshot taken in that very week.
    """
    total: dict[int, float] = {}
    for order_id in sorted(snapshots_by_order):
        snaps = snapshots_by_order[order_id]
        if exact:
            snap = next((s for s in snaps if s.snapshot_week == snapshot_week), None)
        else:
            snap = snapshot_as_of(snaps, snapshot_week)
        if snap is None:
            continue
        for week, qty in snap.weekly_demand().items():
            total[week] = total.get(week, 0.0) + qty
    return dict(sorted(total.items()))


@dataclass(frozen=True)
class HistoryPlan:
    current: TentativePlan
    produced: dict[int, int] = field(default_factory=dict)
    opening_inventory: float = 0.0
    demand: dict[int, float] = field(default_factory=dict)


def plan_with_history(
    orders: Sequence[Order],
    snapshots_by_order: Mapping[str, Sequence[ForecastSnapshot]],
    snapshot_week: int,
    *,
    params: PlanningParams | None = None,
) -> HistoryPlan:
    """Plan a CC at `snapshot_week`, replaying earlier snapshots first.

    Every earlier week in which a snapshot was taken is planned with the
    snapshots of that week only; the quantity that plan put in its own week
    counts as produced, and the resulting inventory seeds the next one.
    Weeks without a snapshot are skipped and leave inventory untouched. The
    current plan starts from the inventory accumulated this way.
    """
    params = params or PlanningParams()
    if not orders:
        return HistoryPlan(current=TentativePlan(weekly_plan={}, runs=[]))

    throughput = Throughput.for_order(orders[0], default_efficiency=params.default_budgeted_efficiency)
    weeks_seen = {s.snapshot_week for snaps in snapshots_by_order.values() for s in snaps}
    if not weeks_seen:
        return HistoryPlan(current=TentativePlan(weekly_plan={}, runs=[]))

    produced: dict[int, int] = {}
    inventory = 0.0
    for week in range(min(weeks_seen), snapshot_week):
        if week not in weeks_seen:
            continue
        demand = aggregate_demand(snapshots_by_order, week, exact=True)
        past = plan_horizon(
            demand,
            start_week=week,
            throughput=throughput,
            carry_over=inventory,
            simulation_floor=week,
            params=params,
        )
        made = past.weekly_plan.get(week, 0)
        produced[week] = made
        inventory += made - demand.get(week, 0.0)
        logger.debug("History %s: produced=%d inventory=%.1f", week_label(week), made, inventory)

    demand = aggregate_demand(snapshots_by_order, snapshot_week)
    current = plan_horizon(
        demand,
        start_week=snapshot_week,
        throughput=throughput,
        carry_over=inventory,
        simulation_floor=snapshot_week,
        params=params,
    )
    return HistoryPlan(current=current, produced=produced, opening_inventory=inventory, demand=demand)


def allocate_to_models(
    weekly_plan: Mapping[int, int],
    demand_by_order: Mapping[str, Mapping[int, float]],
) -> dict[str, dict[int, int]]:
    """Split a CC plan across its orders.

    Each plan week goes, whole, to the order whose projected closing
    inventory at its next demand week is lowest. Ties go to the smaller
    order id.
    """
    order_ids = sorted(demand_by_order)
    allocation: dict[str, dict[int, int]] = {oid: {} for oid in order_ids}
    if not order_ids:
        return allocation

    def projected(order_id: str, week: int) -> float | None:
        demand = demand_by_order[order_id]
        upcoming = [w for w, q in demand.items() if w >= week and q > 0]
        if not upcoming:
            return None
        horizon = min(upcoming)
        supplied = sum(q for w, q in allocation[order_id].items() if w <= horizon)
        consumed = sum(q for w, q in demand.items() if w <= horizon)
        return supplied - consumed

    for week in sorted(weekly_plan):
        qty = weekly_plan[week]
        if qty <= 0:
            continue
        best_id = order_ids[0]
        best_value: float | None = None
        for order_id in order_ids:
            value = projected(order_id, week)
            if value is None:
                continue
            if best_value is None or value < best_value:
                best_id, best_value = order_id, value
        allocation[best_id][week] = qty
    return allocation
