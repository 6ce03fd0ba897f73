from __future__ import annotations

from dataclasses import dataclass

from stitchplan.core.models import Order, RampUpEntry


@dataclass(frozen=True)
class EfficiencyCurve:
    """Ramp-up efficiency by production day.

    Day numbers are 1-based. Entries are expected in ascending day order
    (Order validates this). Days past the last entry hold the last (peak)
    efficiency; days before the first entry also fall back to it.
    """

    entries: tuple[RampUpEntry, ...] = ()

    @classmethod
    def flat(cls, efficiency: float) -> "EfficiencyCurve":
        return cls((RampUpEntry(day=1, efficiency=float(efficiency)),))

    @classmethod
    def for_order(cls, order: Order) -> "EfficiencyCurve":
        if order.ramp_up:
            return cls(tuple(order.ramp_up))
        if order.budgeted_efficiency:
            return cls.flat(order.budgeted_efficiency)
        return cls()

    @property
    def is_empty(self) -> bool:
        return not self.entries

    @property
    def peak(self) -> float:
        if not self.entries:
            return 0.0
        return max(e.efficiency for e in self.entries)

    def efficiency_on(self, day: int) -> float:
        if not self.entries:
            return 0.0
        eff = self.entries[-1].efficiency
        for entry in self.entries:
            if day >= entry.day:
                eff = entry.efficiency
            else:
                break
        return eff
