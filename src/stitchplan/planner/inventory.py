from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping


@dataclass(frozen=True)
class InventoryRow:
    week: int
    opening: float
    supply: float
    demand: float
    closing: float


@dataclass(frozen=True)
class InventoryTrace:
    rows: list[InventoryRow] = field(default_factory=list)
    opening: float = 0.0

    @property
    def min_closing(self) -> float:
        if not self.rows:
            return self.opening
        return min(r.closing for r in self.rows)

    @property
    def final_closing(self) -> float:
        if not self.rows:
            return self.opening
        return self.rows[-1].closing


def simulate_inventory(
    weeks: Iterable[int],
    supply: Mapping[int, float],
    demand: Mapping[int, float],
    opening: float = 0.0,
) -> InventoryTrace:
    """Finished-goods balance per week: closing = opening + supply - demand."""
    rows: list[InventoryRow] = []
    current = float(opening)
    for week in weeks:
        s = float(supply.get(week) or 0.0)
        d = float(demand.get(week) or 0.0)
        closing = current + s - d
        rows.append(InventoryRow(week=week, opening=current, supply=s, demand=d, closing=closing))
        current = closing
    return InventoryTrace(rows=rows, opening=float(opening))


def closing_inventory_series(
    weeks: Iterable[int],
    demand: Mapping[int, float],
    supply: Mapping[int, float],
    opening: float = 0.0,
) -> dict[int, float]:
    """Week -> closing FG inventory, for the plan report."""
    trace = simulate_inventory(weeks, supply, demand, opening)
    return {r.week: r.closing for r in trace.rows}
