from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum

from stitchplan.core.constants import OFFSET_CAP


_WEEK_RE = re.compile(r"^W(\d+)$")


def parse_week(label: str | int) -> int:
    """'W10' -> 10. Integers pass through."""
    if isinstance(label, int):
        return label
    m = _WEEK_RE.match(str(label).strip().upper())
    if not m:
        raise ValueError(f"invalid week label: {label!r}")
    return int(m.group(1))


def week_label(week: int) -> str:
    return f"W{int(week)}"


class OrderType(str, Enum):
    FIRM = "Firm PO"
    FORECAST = "Forecasted"


class PlanningPolicy(str, Enum):
    """How durations and advisory dates are derived for an order."""

    FIRM = "firm"
    FORECAST = "forecast"

    @classmethod
    def for_order(cls, order: "Order") -> "PlanningPolicy":
        return cls.FORECAST if order.order_type == OrderType.FORECAST else cls.FIRM


@dataclass(frozen=True)
class RampUpEntry:
    day: int
    efficiency: float  # percentage, 85 means 85%


@dataclass(frozen=True)
class SewingOperation:
    operation: str
    machine: str
    operators: int
    sam: float
    grade: str | None = None


@dataclass(frozen=True)
class Order:
    order_id: str
    style: str
    quantity: int
    process_ids: tuple[str, ...]
    process_sam: dict[str, float]
    color: str = ""
    ocn: str = ""
    buyer: str = ""
    due_date: date | None = None
    budgeted_efficiency: float | None = None
    ramp_up: tuple[RampUpEntry, ...] = ()
    order_type: OrderType = OrderType.FIRM
    operations: tuple[SewingOperation, ...] = ()
    lines: int = 1
    min_run_days: dict[str, int] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.order_id:
            raise ValueError("order_id is required")
        if not self.process_ids:
            raise ValueError(f"order {self.order_id}: process_ids must be a non-empty sequence")
        if len(set(self.process_ids)) != len(self.process_ids):
            raise ValueError(f"order {self.order_id}: process_ids contains duplicates")
        if self.quantity < 0:
            raise ValueError(f"order {self.order_id}: quantity must be >= 0")
        if self.lines < 1:
            raise ValueError(f"order {self.order_id}: lines must be >= 1")
        validate_ramp_up(self.ramp_up, owner=self.order_id)

    def sam_for(self, process_id: str) -> float:
        return float(self.process_sam.get(process_id) or 0.0)


def validate_ramp_up(entries: tuple[RampUpEntry, ...] | list[RampUpEntry], *, owner: str = "") -> None:
    prefix = f"order {owner}: " if owner else ""
    last_day = 0
    for entry in entries:
        if entry.day < 1:
            raise ValueError(f"{prefix}ramp-up day must be >= 1, got {entry.day}")
        if entry.day <= last_day:
            raise ValueError(f"{prefix}ramp-up entries must have strictly ascending days")
        if not (0 < entry.efficiency <= 100):
            raise ValueError(f"{prefix}ramp-up efficiency must be in (0, 100], got {entry.efficiency}")
        last_day = entry.day


@dataclass(frozen=True)
class ForecastComposition:
    po: float = 0.0
    fc: float = 0.0

    @property
    def total(self) -> float:
        return self.po + self.fc


@dataclass(frozen=True)
class ForecastSnapshot:
    """Weekly demand for one order as seen at `snapshot_week`.

    `forecasts` maps a week label ("W12") to a size breakdown; the
    "total" key carries the week total.
    """

    order_id: str
    snapshot_week: int
    forecasts: dict[str, dict[str, ForecastComposition]]

    def __post_init__(self) -> None:
        if self.snapshot_week < 0:
            raise ValueError("snapshot_week must be >= 0")
        for label in self.forecasts:
            parse_week(label)

    def weekly_demand(self) -> dict[int, float]:
        """PO + FC per week, using the total row or summing sizes when absent."""
        out: dict[int, float] = {}
        for label, by_size in self.forecasts.items():
            total = by_size.get("total")
            if total is not None:
                qty = total.total
            else:
                qty = sum(c.total for c in by_size.values())
            out[parse_week(label)] = out.get(parse_week(label), 0.0) + qty
        return out


@dataclass(frozen=True)
class ProductionRun:
    start_week: int
    end_week: int
    quantity: int

    def __post_init__(self) -> None:
        if self.end_week < self.start_week:
            raise ValueError("run end_week must be >= start_week")
        if self.quantity < 0:
            raise ValueError("run quantity must be >= 0")

    @property
    def weeks(self) -> range:
        return range(self.start_week, self.end_week + 1)


@dataclass(frozen=True)
class PlannedRun:
    run_number: int
    run: ProductionRun
    lines: int
    start_week: int
    end_week: int
    offset: int
    quantity: int
    simulation_floor: int
    offset_cap: int = OFFSET_CAP

    def __post_init__(self) -> None:
        if self.lines < 1:
            raise ValueError("planned run needs at least one line")
        if not (0 <= self.offset <= self.offset_cap):
            raise ValueError(f"offset {self.offset} outside 0..{self.offset_cap}")
        if self.start_week != self.run.start_week - self.offset:
            raise ValueError("start_week must equal run start minus offset")
        if self.start_week < self.simulation_floor:
            raise ValueError("start_week before simulation floor")
        if self.end_week < self.start_week:
            raise ValueError("end_week must be >= start_week")

    def as_row(self) -> dict:
        return {
            "run_number": self.run_number,
            "start_week": week_label(self.start_week),
            "end_week": week_label(self.end_week),
            "quantity": self.quantity,
            "lines": self.lines,
            "offset": self.offset,
        }


@dataclass(frozen=True)
class TentativePlan:
    weekly_plan: dict[int, int]
    runs: list[PlannedRun]
    dropped_runs: list[ProductionRun] = field(default_factory=list)
    carry_out: float = 0.0

    def plan_by_label(self) -> dict[str, int]:
        return {week_label(w): q for w, q in sorted(self.weekly_plan.items())}


@dataclass(frozen=True)
class ScheduledProcess:
    item_id: str
    order_id: str
    process_id: str
    resource_id: str
    start: datetime
    end: datetime
    duration_minutes: float
    quantity: int
    is_split: bool = False
    parent_id: str | None = None
    batch_number: int | None = None
    total_batches: int | None = None
    auto_scheduled: bool = False
    latest_start: datetime | None = None

    def __post_init__(self) -> None:
        if not self.item_id:
            raise ValueError("item_id is required")
        if not self.resource_id:
            raise ValueError(f"{self.item_id}: resource_id is required")
        if self.end < self.start:
            raise ValueError(f"{self.item_id}: end before start")
        if self.duration_minutes < 0:
            raise ValueError(f"{self.item_id}: negative duration")
        if self.quantity < 0:
            raise ValueError(f"{self.item_id}: negative quantity")

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return self.start < end and self.end > start


@dataclass(frozen=True)
class UnplannedBatch:
    order_id: str
    process_id: str
    quantity: int
    batch_number: int
    total_batches: int
    latest_start: datetime | None = None


@dataclass(frozen=True)
class Machine:
    machine_id: str
    name: str
    process_ids: tuple[str, ...]
    unit_id: str = ""
    is_moveable: bool = False


@dataclass(frozen=True)
class SewingLine:
    line_id: str
    name: str
    machine_counts: dict[str, int]

    def __post_init__(self) -> None:
        for machine_type, count in self.machine_counts.items():
            if count < 0:
                raise ValueError(f"line {self.line_id}: negative count for {machine_type}")

    @property
    def total_machines(self) -> int:
        return sum(self.machine_counts.values())


@dataclass(frozen=True)
class LineAllocation:
    line_id: str
    machine_counts: dict[str, int]
    is_partial: bool = False


@dataclass(frozen=True)
class LineGroup:
    group_id: str
    name: str
    cc_no: str
    requirements: dict[str, int]
    allocations: tuple[LineAllocation, ...] = ()

    @property
    def line_ids(self) -> list[str]:
        return [a.line_id for a in self.allocations]


@dataclass(frozen=True)
class TnaProcess:
    process_id: str
    duration_days: float
    earliest_start: date
    latest_start: date
