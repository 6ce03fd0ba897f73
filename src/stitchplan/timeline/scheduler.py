from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from datetime import datetime, time, timedelta
from typing import Iterable, Sequence

from stitchplan.core.calendar import calculate_end_datetime, next_working_moment
from stitchplan.core.constants import HORIZON_LOOKAHEAD_DAYS, WORKING_HOURS_START
from stitchplan.core.duration import is_infeasible, process_duration_minutes
from stitchplan.core.models import Order, PlanningPolicy, ScheduledProcess

logger = logging.getLogger(__name__)

VIEW_MODES = ("hour", "day")


def new_item_id(process_id: str, order_id: str) -> str:
    return f"{process_id}-{order_id}-{uuid.uuid4().hex[:8]}"


class Timeline:
    """Scheduled processes per resource, kept free of overlaps.

    Placing an item pushes every item it collides with (and anything those
    collide with in turn) forward, keeping each item's working-time
    duration. The visible horizon grows when the tail passes it.
    """

    def __init__(
        self,
        items: Iterable[ScheduledProcess] = (),
        horizon_end: datetime | None = None,
        *,
        lookahead_days: int = HORIZON_LOOKAHEAD_DAYS,
    ):
        self._items: dict[str, ScheduledProcess] = {}
        for item in items:
            if item.item_id in self._items:
                raise ValueError(f"duplicate item id {item.item_id}")
            self._items[item.item_id] = item
        self.horizon_end = horizon_end
        self.lookahead_days = lookahead_days

    # ---- queries ----

    @property
    def items(self) -> list[ScheduledProcess]:
        return sorted(self._items.values(), key=lambda p: (p.resource_id, p.start, p.item_id))

    def get(self, item_id: str) -> ScheduledProcess | None:
        return self._items.get(item_id)

    def items_on(self, resource_id: str) -> list[ScheduledProcess]:
        return sorted(
            (p for p in self._items.values() if p.resource_id == resource_id),
            key=lambda p: (p.start, p.item_id),
        )

    def items_for(self, order_id: str, process_id: str | None = None) -> list[ScheduledProcess]:
        return sorted(
            (
                p
                for p in self._items.values()
                if p.order_id == order_id and (process_id is None or p.process_id == process_id)
            ),
            key=lambda p: (p.start, p.item_id),
        )

    def check_no_overlap(self) -> list[tuple[str, str]]:
        """Pairs of overlapping item ids on the same resource (empty when valid)."""
        clashes: list[tuple[str, str]] = []
        by_resource: dict[str, list[ScheduledProcess]] = {}
        for p in self._items.values():
            by_resource.setdefault(p.resource_id, []).append(p)
        for row in by_resource.values():
            row.sort(key=lambda p: (p.start, p.item_id))
            for i, a in enumerate(row):
                for b in row[i + 1:]:
                    if b.start >= a.end:
                        break
                    if a.overlaps(b.start, b.end):
                        clashes.append((a.item_id, b.item_id))
        return clashes

    # ---- placement ----

    def place(
        self,
        item: ScheduledProcess,
        resource_id: str,
        start: datetime,
        *,
        view_mode: str = "hour",
    ) -> ScheduledProcess | None:
        """Put `item` on `resource_id` at `start` and cascade displaced items.

        An item already on the timeline is moved and keeps its batch linkage
        and auto-scheduled flag. An item whose duration is infeasible is left
        where it was and None is returned.
        """
        if view_mode not in VIEW_MODES:
            raise ValueError(f"view_mode must be one of {VIEW_MODES}, got {view_mode!r}")
        if is_infeasible(item.duration_minutes):
            logger.warning("Cannot place %s on %s: infeasible duration", item.item_id, resource_id)
            return None

        if view_mode == "day":
            start = datetime.combine(start.date(), time(WORKING_HOURS_START))
        start = next_working_moment(start)
        end = calculate_end_datetime(start, item.duration_minutes)

        self._items.pop(item.item_id, None)
        placed = replace(item, resource_id=resource_id, start=start, end=end)

        others = [p for p in self.items_on(resource_id) if p.start >= start or p.overlaps(start, end)]
        self._items[placed.item_id] = placed

        last_end = end
        shifted = 0
        for p in others:
            if p.start >= last_end:
                last_end = max(last_end, p.end)
                continue
            new_start = next_working_moment(max(p.start, last_end))
            new_end = calculate_end_datetime(new_start, p.duration_minutes)
            self._items[p.item_id] = replace(p, start=new_start, end=new_end)
            logger.debug("Shifted %s on %s: %s -> %s", p.item_id, resource_id, p.start, new_start)
            last_end = new_end
            shifted += 1

        if shifted:
            logger.info("Placed %s on %s; %d item(s) shifted", placed.item_id, resource_id, shifted)
        self._extend_horizon()
        return placed

    def _extend_horizon(self) -> None:
        if not self._items:
            return
        latest = max(p.end for p in self._items.values())
        if self.horizon_end is None or latest > self.horizon_end:
            self.horizon_end = latest + timedelta(days=self.lookahead_days)

    def place_new(
        self,
        order: Order,
        process_id: str,
        quantity: int,
        resource_id: str,
        start: datetime,
        *,
        lines: int = 1,
        policy: PlanningPolicy | None = None,
        view_mode: str = "hour",
        item_id: str | None = None,
        latest_start: datetime | None = None,
    ) -> ScheduledProcess | None:
        """Create and place an item for `quantity` units. None when its duration is infeasible."""
        if process_id not in order.process_ids:
            raise ValueError(f"process {process_id} is not in the routing of order {order.order_id}")
        minutes = process_duration_minutes(order, process_id, quantity, lines=lines, policy=policy)
        if is_infeasible(minutes):
            logger.warning("Cannot schedule %s for order %s: infeasible duration", process_id, order.order_id)
            return None
        item = ScheduledProcess(
            item_id=item_id or new_item_id(process_id, order.order_id),
            order_id=order.order_id,
            process_id=process_id,
            resource_id=resource_id,
            start=start,
            end=start,
            duration_minutes=minutes,
            quantity=quantity,
            latest_start=latest_start,
        )
        return self.place(item, resource_id, start, view_mode=view_mode)

    def undo(self, item_id: str) -> list[str]:
        """Remove an item; batches sharing a parent go as a whole group."""
        item = self._items.get(item_id)
        if item is None:
            return []
        if item.parent_id:
            removed = [p.item_id for p in self._items.values() if p.parent_id == item.parent_id]
        else:
            removed = [item_id]
        for rid in removed:
            del self._items[rid]
        logger.info("Removed %d item(s) starting from %s", len(removed), item_id)
        return removed

    def _place_sequence(
        self,
        order: Order,
        process_id: str,
        quantities: Sequence[int],
        resource_id: str,
        start: datetime,
        *,
        parent_id: str,
        lines: int,
        policy: PlanningPolicy | None,
        auto_scheduled: bool,
        latest_start: datetime | None = None,
    ) -> list[ScheduledProcess]:
        durations = [process_duration_minutes(order, process_id, q, lines=lines, policy=policy) for q in quantities]
        if any(is_infeasible(d) for d in durations):
            raise ValueError(f"order {order.order_id}: infeasible duration for {process_id} batch")

        placed: list[ScheduledProcess] = []
        cursor = start
        total = len(quantities)
        for idx, (qty, minutes) in enumerate(zip(quantities, durations), start=1):
            child = ScheduledProcess(
                item_id=f"{parent_id}-{idx}-{uuid.uuid4().hex[:6]}",
                order_id=order.order_id,
                process_id=process_id,
                resource_id=resource_id,
                start=cursor,
                end=cursor,
                duration_minutes=minutes,
                quantity=qty,
                is_split=True,
                parent_id=parent_id,
                batch_number=idx,
                total_batches=total,
                auto_scheduled=auto_scheduled,
                latest_start=latest_start,
            )
            child = self.place(child, resource_id, cursor)
            placed.append(child)
            cursor = child.end
        return placed

    def split(
        self,
        item_ids: Sequence[str],
        quantities: Sequence[int],
        order: Order,
        *,
        lines: int = 1,
        policy: PlanningPolicy | None = None,
    ) -> list[ScheduledProcess]:
        """Replace items with batches of `quantities`, laid end to end from the earliest one."""
        if not item_ids:
            raise ValueError("nothing to split")
        items = []
        for item_id in item_ids:
            item = self._items.get(item_id)
            if item is None:
                raise ValueError(f"unknown item {item_id}")
            items.append(item)
        if any(q <= 0 for q in quantities) or not quantities:
            raise ValueError("split quantities must be positive")
        if sum(quantities) != sum(p.quantity for p in items):
            raise ValueError("split quantities must add up to the quantity being split")
        process_ids = {p.process_id for p in items}
        if len(process_ids) != 1 or any(p.order_id != order.order_id for p in items):
            raise ValueError("can only split items of one order and process")

        anchor = min(items, key=lambda p: (p.start, p.item_id))
        for q in quantities:
            if is_infeasible(process_duration_minutes(order, anchor.process_id, q, lines=lines, policy=policy)):
                raise ValueError(f"order {order.order_id}: infeasible duration for a batch of {q}")
        parent_id = anchor.parent_id or f"{anchor.item_id}-split-{uuid.uuid4().hex[:8]}"
        for p in items:
            del self._items[p.item_id]

        return self._place_sequence(
            order,
            anchor.process_id,
            list(quantities),
            anchor.resource_id,
            anchor.start,
            parent_id=parent_id,
            lines=lines,
            policy=policy,
            auto_scheduled=False,
            latest_start=anchor.latest_start,
        )

    def auto_place_batches(
        self,
        order: Order,
        process_id: str,
        quantities: Sequence[int],
        resource_id: str,
        start: datetime,
        *,
        lines: int = 1,
        policy: PlanningPolicy | None = None,
        latest_start: datetime | None = None,
    ) -> list[ScheduledProcess]:
        """Place a batch group back to back; the group is undone as one unit."""
        if not quantities or any(q <= 0 for q in quantities):
            raise ValueError("batch quantities must be positive")
        parent_id = f"{process_id}-{order.order_id}-auto-{uuid.uuid4().hex[:8]}"
        return self._place_sequence(
            order,
            process_id,
            list(quantities),
            resource_id,
            start,
            parent_id=parent_id,
            lines=lines,
            policy=policy,
            auto_scheduled=True,
            latest_start=latest_start,
        )
