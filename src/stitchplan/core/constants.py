from __future__ import annotations

from dataclasses import dataclass, fields, replace

# Working calendar
WORK_DAY_MINUTES = 8 * 60
WORK_DAYS_PER_WEEK = 6
WORKING_HOURS_START = 9
WORKING_HOURS_END = 17

# Tentative plan
GAP_THRESHOLD = 4  # consecutive zero-demand weeks that close a run
OFFSET_CAP = 4  # max weeks of advance production for an accepted run
MAX_LINES = 100  # line-count ceiling for one capacity search
HORIZON_WEEKS = 52  # last week scanned when a window has no end
DEFAULT_BUDGETED_EFFICIENCY = 85.0

# Timeline
HORIZON_LOOKAHEAD_DAYS = 3
MAX_DURATION_DAYS = 10000  # duration loop ceiling, beyond it the item is infeasible

SEWING_PROCESS_ID = "sewing"
PACKING_PROCESS_ID = "packing"

OFFSET_CHECKS = ("required", "effective")


@dataclass(frozen=True)
class PlanningParams:
    """Tunables for the planning core.

    Defaults are the module constants above. `offset_check` selects which
    offset is compared against `offset_cap` during the capacity search:
    "effective" (default) uses the offset left after clamping the start to
    the simulation floor, "required" uses the advance weeks the simulation
    asks for before clamping.
    """

    work_day_minutes: int = WORK_DAY_MINUTES
    work_days_per_week: int = WORK_DAYS_PER_WEEK
    gap_threshold: int = GAP_THRESHOLD
    offset_cap: int = OFFSET_CAP
    max_lines: int = MAX_LINES
    horizon_weeks: int = HORIZON_WEEKS
    horizon_lookahead_days: int = HORIZON_LOOKAHEAD_DAYS
    default_budgeted_efficiency: float = DEFAULT_BUDGETED_EFFICIENCY
    offset_check: str = "effective"

    def __post_init__(self) -> None:
        if self.work_day_minutes <= 0:
            raise ValueError("work_day_minutes must be positive")
        if self.work_days_per_week <= 0 or self.work_days_per_week > 7:
            raise ValueError("work_days_per_week must be in 1..7")
        if self.gap_threshold < 1:
            raise ValueError("gap_threshold must be >= 1")
        if self.offset_cap < 0:
            raise ValueError("offset_cap must be >= 0")
        if self.max_lines < 1:
            raise ValueError("max_lines must be >= 1")
        if self.horizon_weeks < 1:
            raise ValueError("horizon_weeks must be >= 1")
        if self.offset_check not in OFFSET_CHECKS:
            raise ValueError(f"offset_check must be one of {OFFSET_CHECKS}, got {self.offset_check!r}")

    @classmethod
    def from_config(cls, raw: dict[str, str | None]) -> "PlanningParams":
        """Build params from string config values, ignoring empty entries."""
        overrides: dict[str, object] = {}
        for f in fields(cls):
            value = raw.get(f.name)
            if value is None or str(value).strip() == "":
                continue
            text = str(value).strip()
            if f.type in ("int", int):
                overrides[f.name] = int(float(text))
            elif f.type in ("float", float):
                overrides[f.name] = float(text)
            else:
                overrides[f.name] = text
        return replace(cls(), **overrides)
