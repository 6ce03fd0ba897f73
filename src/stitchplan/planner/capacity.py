from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Mapping

from stitchplan.core.constants import PlanningParams
from stitchplan.core.duration import Throughput
from stitchplan.core.models import PlannedRun, ProductionRun, week_label
from stitchplan.planner.inventory import InventoryTrace, simulate_inventory
from stitchplan.planner.runs import round_half_up

logger = logging.getLogger(__name__)

ACCEPTED = "accepted"
COVERED = "covered"  # carried inventory already satisfies the run
DROPPED = "dropped"  # no line count met the offset cap
NO_CAPACITY = "no_capacity"  # missing SAM / efficiency, nothing can be planned


@dataclass(frozen=True)
class CapacityResult:
    status: str
    run: ProductionRun
    planned: PlannedRun | None
    weekly_plan: dict[int, int] = field(default_factory=dict)
    carry_out: float = 0.0
    attempts: int = 0
    trace: InventoryTrace | None = None

    @property
    def accepted(self) -> bool:
        return self.status == ACCEPTED


def _weekly_allocation(net: float, out: float, start_week: int) -> dict[int, int]:
    """Full-capacity weeks from `start_week` until `net` is covered.

    Rounding is applied to the running total so whole-unit weeks add up to
    the rounded net quantity. Rounding every week on its own (the way the
    planning sheets did it) can land one unit above or below the net.
    """
    plan: dict[int, int] = {}
    weeks = int(math.ceil(net / out - 1e-9))
    produced = 0.0
    booked = 0
    for i in range(weeks):
        produced = min(net, produced + out)
        qty = round_half_up(produced) - booked
        plan[start_week + i] = qty
        booked += qty
    return plan


def search_capacity(
    run: ProductionRun,
    *,
    demand: Mapping[int, float],
    carry_over: float = 0.0,
    simulation_floor: int,
    throughput: Throughput,
    params: PlanningParams | None = None,
    run_number: int = 1,
) -> CapacityResult:
    """Find the smallest line count whose start offset stays within the cap.

    For each candidate line count the run's natural span is simulated with
    full-capacity supply from the second week on (the first week is a cold
    start). The deepest shortfall decides how many weeks production has to
    start early. Lines only increase; when `params.max_lines` is exhausted
    the run is reported as dropped.

    Runs that are not accepted plan nothing. They still consume carried
    inventory, which is floored at zero so an unplanned run leaves no debt
    for the runs after it.
    """
    params = params or PlanningParams()
    if run.start_week < simulation_floor:
        raise ValueError(
            f"run starting {week_label(run.start_week)} is before simulation floor {week_label(simulation_floor)}"
        )

    gross = float(run.quantity)
    net = max(0.0, gross - carry_over)
    if run.quantity <= 0 or net <= 0:
        return CapacityResult(status=COVERED, run=run, planned=None, carry_out=max(0.0, carry_over - gross))

    weeks = list(run.weeks)
    attempts = 0
    for lines in range(1, params.max_lines + 1):
        out = throughput.weekly(
            lines,
            work_day_minutes=params.work_day_minutes,
            work_days_per_week=params.work_days_per_week,
        )
        if out <= 0:
            logger.warning("No sewing throughput for run %s..%s; nothing planned",
                           week_label(run.start_week), week_label(run.end_week))
            return CapacityResult(
                status=NO_CAPACITY, run=run, planned=None, carry_out=max(0.0, carry_over - gross)
            )

        attempts += 1
        supply = {w: out for w in weeks if w != run.start_week}
        trace = simulate_inventory(weeks, supply, demand, opening=carry_over)
        shortfall = -min(0.0, trace.min_closing)
        required = int(math.ceil(shortfall / out - 1e-9)) if shortfall > 0 else 0
        start_week = max(run.start_week - required, simulation_floor)
        effective = run.start_week - start_week
        checked = required if params.offset_check == "required" else effective

        logger.debug(
            "Run %s lines=%d out=%.1f min_closing=%.1f required=%d effective=%d",
            week_label(run.start_week), lines, out, trace.min_closing, required, effective,
        )
        if checked > params.offset_cap:
            continue

        weekly_plan = _weekly_allocation(net, out, start_week)
        planned_total = sum(weekly_plan.values())
        planned = PlannedRun(
            run_number=run_number,
            run=run,
            lines=lines,
            start_week=start_week,
            end_week=max(weekly_plan),
            offset=effective,
            quantity=planned_total,
            simulation_floor=simulation_floor,
            offset_cap=params.offset_cap,
        )
        logger.info(
            "Run %d accepted: %s-%s qty=%d lines=%d offset=%d",
            run_number, week_label(planned.start_week), week_label(planned.end_week),
            planned_total, lines, effective,
        )
        return CapacityResult(
            status=ACCEPTED,
            run=run,
            planned=planned,
            weekly_plan=weekly_plan,
            carry_out=carry_over + planned_total - gross,
            attempts=attempts,
            trace=trace,
        )

    logger.warning(
        "Run %d (%s-%s, qty=%d) dropped: offset cap %d not met with %d lines",
        run_number, week_label(run.start_week), week_label(run.end_week),
        run.quantity, params.offset_cap, params.max_lines,
    )
    return CapacityResult(
        status=DROPPED,
        run=run,
        planned=None,
        carry_out=max(0.0, carry_over - gross),
        attempts=attempts,
    )
