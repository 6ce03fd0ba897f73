from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable, Sequence

from stitchplan.capacity.matcher import (
    MatchResult,
    deallocate_line,
    empty_buffer,
    match_capacity,
    new_line_group,
)
from stitchplan.core.constants import SEWING_PROCESS_ID, PlanningParams
from stitchplan.core.models import (
    ForecastSnapshot,
    LineGroup,
    Order,
    RampUpEntry,
    ScheduledProcess,
    SewingLine,
    TentativePlan,
    UnplannedBatch,
)
from stitchplan.planner.tentative import (
    HistoryPlan,
    allocate_to_models,
    generate_tentative_plan,
    plan_with_history,
    snapshot_as_of,
)
from stitchplan.planner.tna import TnaPlan, generate_tna_plan, latest_sewing_start, process_batch_size
from stitchplan.timeline.batches import unplanned_batches
from stitchplan.timeline.scheduler import Timeline

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CcPlan:
    cc_no: str
    history: HistoryPlan
    allocation: dict[str, dict[int, int]] = field(default_factory=dict)


class PlanningSession:
    """All mutable planning state for one user session.

    Orders, snapshots, the timeline and the line catalog live here and are
    changed only through these methods. Planning calls themselves are pure.
    """

    def __init__(
        self,
        *,
        orders: Iterable[Order] = (),
        snapshots: Iterable[ForecastSnapshot] = (),
        items: Iterable[ScheduledProcess] = (),
        horizon_end: datetime | None = None,
        lines: Iterable[SewingLine] = (),
        groups: Iterable[LineGroup] = (),
        buffer: SewingLine | None = None,
        params: PlanningParams | None = None,
    ):
        self.params = params or PlanningParams()
        self.orders: dict[str, Order] = {o.order_id: o for o in orders}
        self.snapshots: dict[str, list[ForecastSnapshot]] = {}
        for snap in snapshots:
            self.add_snapshot(snap)
        self.timeline = Timeline(items, horizon_end, lookahead_days=self.params.horizon_lookahead_days)
        self.lines: dict[str, SewingLine] = {ln.line_id: ln for ln in lines}
        self.groups: dict[str, LineGroup] = {g.group_id: g for g in groups}
        self.buffer = buffer or empty_buffer()

    # ---- orders & snapshots ----

    def order(self, order_id: str) -> Order:
        try:
            return self.orders[order_id]
        except KeyError:
            raise KeyError(f"unknown order {order_id}") from None

    def add_order(self, order: Order) -> None:
        self.orders[order.order_id] = order

    def add_snapshot(self, snapshot: ForecastSnapshot) -> None:
        snaps = [s for s in self.snapshots.get(snapshot.order_id, []) if s.snapshot_week != snapshot.snapshot_week]
        snaps.append(snapshot)
        snaps.sort(key=lambda s: s.snapshot_week)
        self.snapshots[snapshot.order_id] = snaps

    def snapshot(self, order_id: str, week: int | None = None) -> ForecastSnapshot | None:
        snaps = self.snapshots.get(order_id, [])
        if not snaps:
            return None
        if week is None:
            return snaps[-1]
        return snapshot_as_of(snaps, week)

    def orders_in_cc(self, cc_no: str) -> list[Order]:
        return sorted((o for o in self.orders.values() if o.ocn == cc_no), key=lambda o: o.order_id)

    def update_ramp_up(self, order_id: str, entries: Sequence[RampUpEntry]) -> Order:
        """Replace the whole ramp-up scheme of an order."""
        order = replace(self.order(order_id), ramp_up=tuple(entries))
        self.orders[order_id] = order
        logger.info("Ramp-up of %s replaced (%d entries)", order_id, len(entries))
        return order

    def set_lines(self, order_id: str, lines: int) -> Order:
        order = replace(self.order(order_id), lines=lines)
        self.orders[order_id] = order
        return order

    # ---- planning ----

    def generate_tentative_plan(
        self,
        order_id: str,
        snapshot_week: int | None = None,
        simulation_floor: int | None = None,
        carry_over: float = 0.0,
    ) -> TentativePlan:
        return generate_tentative_plan(
            self.order(order_id),
            self.snapshot(order_id, snapshot_week),
            simulation_floor,
            carry_over,
            params=self.params,
        )

    def plan_cc(self, cc_no: str, snapshot_week: int) -> CcPlan:
        orders = self.orders_in_cc(cc_no)
        snaps = {o.order_id: self.snapshots.get(o.order_id, []) for o in orders}
        history = plan_with_history(orders, snaps, snapshot_week, params=self.params)

        demand_by_order = {}
        for o in orders:
            snap = self.snapshot(o.order_id, snapshot_week)
            demand_by_order[o.order_id] = snap.weekly_demand() if snap else {}
        allocation = allocate_to_models(history.current.weekly_plan, demand_by_order)
        return CcPlan(cc_no=cc_no, history=history, allocation=allocation)

    def tna(self, order_id: str) -> TnaPlan:
        order = self.order(order_id)
        return generate_tna_plan(order, lines=order.lines)

    def unplanned(self, order_id: str, process_id: str) -> list[UnplannedBatch]:
        order = self.order(order_id)
        items = self.timeline.items_for(order_id, process_id)
        return unplanned_batches(order, process_id, items, process_batch_size(order, lines=order.lines))

    # ---- timeline ----

    def place(
        self, item_id: str, resource_id: str, start: datetime, *, view_mode: str = "hour"
    ) -> ScheduledProcess | None:
        item = self.timeline.get(item_id)
        if item is None:
            raise KeyError(f"unknown item {item_id}")
        return self.timeline.place(item, resource_id, start, view_mode=view_mode)

    def place_new(
        self,
        order_id: str,
        process_id: str,
        quantity: int,
        resource_id: str,
        start: datetime,
        *,
        view_mode: str = "hour",
    ) -> ScheduledProcess | None:
        order = self.order(order_id)
        latest = latest_sewing_start(order, lines=order.lines) if process_id == SEWING_PROCESS_ID else None
        return self.timeline.place_new(
            order,
            process_id,
            quantity,
            resource_id,
            start,
            lines=order.lines,
            view_mode=view_mode,
            latest_start=latest,
        )

    def undo(self, item_id: str) -> list[str]:
        return self.timeline.undo(item_id)

    def split(self, item_ids: Sequence[str], quantities: Sequence[int]) -> list[ScheduledProcess]:
        first = self.timeline.get(item_ids[0]) if item_ids else None
        if first is None:
            raise KeyError("unknown item to split")
        order = self.order(first.order_id)
        return self.timeline.split(item_ids, quantities, order, lines=order.lines)

    def auto_place(self, order_id: str, process_id: str, resource_id: str, start: datetime) -> list[ScheduledProcess]:
        """Place every open batch of a process back to back."""
        order = self.order(order_id)
        batches = self.unplanned(order_id, process_id)
        if not batches:
            return []
        return self.timeline.auto_place_batches(
            order,
            process_id,
            [b.quantity for b in batches],
            resource_id,
            start,
            lines=order.lines,
            latest_start=batches[0].latest_start,
        )

    # ---- capacity ----

    def free_lines(self) -> list[SewingLine]:
        taken = {lid for g in self.groups.values() for lid in g.line_ids}
        return [ln for lid, ln in sorted(self.lines.items()) if lid not in taken]

    def create_line_group(self, cc_no: str) -> LineGroup:
        orders = self.orders_in_cc(cc_no)
        operations = orders[0].operations if orders else ()
        group = new_line_group(cc_no, operations, self.groups.values())
        self.groups[group.group_id] = group
        return group

    def match_capacity(self, group_id: str, line_ids: Sequence[str] | None = None) -> MatchResult:
        group = self.groups[group_id]
        if line_ids is None:
            available = self.free_lines()
        else:
            available = [self.lines[lid] for lid in line_ids]
        result = match_capacity(group, available, self.buffer)
        self.groups[group_id] = result.group
        self.buffer = result.buffer
        return result

    def release_line(self, group_id: str, line_id: str) -> LineGroup:
        group, self.buffer = deallocate_line(self.groups[group_id], self.lines[line_id], self.buffer)
        self.groups[group_id] = group
        return group
