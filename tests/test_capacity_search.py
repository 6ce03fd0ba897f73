from __future__ import annotations

import pytest

from stitchplan.core.constants import PlanningParams
from stitchplan.core.duration import Throughput
from stitchplan.core.models import ProductionRun
from stitchplan.planner.capacity import ACCEPTED, COVERED, DROPPED, NO_CAPACITY, search_capacity
from stitchplan.planner.inventory import simulate_inventory

RUN = ProductionRun(start_week=10, end_week=10, quantity=1000)
DEMAND = {10: 1000.0}
SINGLE_OPERATOR = Throughput(sam=25.0, operators=1, efficiency=85.0)  # 97.92 units/week/line
SIX_OPERATORS = Throughput(sam=25.0, operators=6, efficiency=85.0)  # 587.52 units/week/line


def test_escalates_lines_until_offset_fits():
    result = search_capacity(RUN, demand=DEMAND, simulation_floor=1, throughput=SINGLE_OPERATOR)
    assert result.status == ACCEPTED
    planned = result.planned
    assert planned.lines == 3
    assert planned.offset == 4
    assert planned.start_week == 6
    assert planned.end_week == 9
    assert result.weekly_plan == {6: 294, 7: 294, 8: 293, 9: 119}
    assert sum(result.weekly_plan.values()) == 1000
    assert result.attempts == 3
    assert result.carry_out == pytest.approx(0.0)


def test_single_line_when_capacity_is_enough():
    result = search_capacity(RUN, demand=DEMAND, simulation_floor=1, throughput=SIX_OPERATORS)
    assert result.planned.lines == 1
    assert result.planned.start_week == 8
    assert result.weekly_plan == {8: 588, 9: 412}


def test_first_week_of_run_gets_no_supply():
    result = search_capacity(
        ProductionRun(10, 11, 200),
        demand={10: 100.0, 11: 100.0},
        simulation_floor=1,
        throughput=SIX_OPERATORS,
    )
    # week 10 closes at -100 with zero supply, so one week of advance is needed
    assert result.trace.rows[0].supply == 0
    assert result.trace.min_closing == pytest.approx(-100.0)
    assert result.planned.offset == 1


def test_start_never_before_simulation_floor():
    result = search_capacity(RUN, demand=DEMAND, simulation_floor=8, throughput=SINGLE_OPERATOR)
    # the clamped offset of 2 is within the cap, so one line is enough
    assert result.planned.lines == 1
    assert result.planned.start_week == 8
    assert result.planned.offset == 2


def test_required_offset_check_escalates_before_clamping():
    params = PlanningParams(offset_check="required")
    result = search_capacity(RUN, demand=DEMAND, simulation_floor=8, throughput=SINGLE_OPERATOR, params=params)
    assert result.planned.lines == 3
    assert result.planned.start_week == 8
    assert result.planned.offset == 2


def test_run_dropped_when_line_ceiling_reached():
    params = PlanningParams(max_lines=2)
    result = search_capacity(RUN, demand=DEMAND, simulation_floor=1, throughput=SINGLE_OPERATOR, params=params)
    assert result.status == DROPPED
    assert result.planned is None
    assert result.weekly_plan == {}
    assert result.attempts == 2
    # a dropped run leaves no debt behind
    assert result.carry_out == pytest.approx(0.0)


def test_carry_over_reduces_planned_quantity():
    result = search_capacity(RUN, demand=DEMAND, carry_over=400.0, simulation_floor=1, throughput=SIX_OPERATORS)
    assert result.planned.start_week == 8
    assert result.weekly_plan == {8: 588, 9: 12}
    assert result.carry_out == pytest.approx(0.0)


def test_run_covered_by_inventory_is_skipped():
    result = search_capacity(RUN, demand=DEMAND, carry_over=1500.0, simulation_floor=1, throughput=SIX_OPERATORS)
    assert result.status == COVERED
    assert result.planned is None
    assert result.carry_out == pytest.approx(500.0)


def test_missing_sam_plans_nothing():
    result = search_capacity(
        RUN, demand=DEMAND, simulation_floor=1, throughput=Throughput(sam=0.0, operators=1, efficiency=85.0)
    )
    assert result.status == NO_CAPACITY
    assert result.weekly_plan == {}


def test_run_before_floor_is_rejected():
    with pytest.raises(ValueError):
        search_capacity(RUN, demand=DEMAND, simulation_floor=11, throughput=SIX_OPERATORS)


def test_offset_always_within_cap():
    demands = [{10: 50.0}, {10: 5000.0}, {10: 300.0, 11: 0.0, 12: 900.0}, {10: 10.0, 11: 10.0, 12: 2000.0}]
    for demand in demands:
        run = ProductionRun(10, max(demand), round(sum(demand.values())))
        result = search_capacity(run, demand=demand, simulation_floor=1, throughput=SINGLE_OPERATOR)
        assert result.status == ACCEPTED
        assert 0 <= result.planned.offset <= 4


@pytest.mark.parametrize("throughput", [SINGLE_OPERATOR, SIX_OPERATORS])
@pytest.mark.parametrize("carry", [0.0, 150.0, 499.0])
@pytest.mark.parametrize(
    "demand",
    [
        {10: 50.0},
        {10: 1000.0},
        {10: 300.0, 11: 0.0, 12: 900.0},
        {10: 10.0, 11: 10.0, 12: 2000.0},
        {10: 400.0, 11: 400.0, 12: 400.0, 13: 400.0},
    ],
)
def test_accepted_plan_keeps_inventory_non_negative(demand, carry, throughput):
    run = ProductionRun(10, max(demand), round(sum(demand.values())))
    result = search_capacity(run, demand=demand, carry_over=carry, simulation_floor=1, throughput=throughput)
    if result.status == COVERED:
        assert carry >= run.quantity
        return
    assert result.status == ACCEPTED

    planned = result.planned
    weeks = range(planned.start_week, max(run.end_week, planned.end_week) + 1)
    trace = simulate_inventory(weeks, result.weekly_plan, demand, opening=carry)
    assert trace.min_closing >= 0
    # net quantity is gross minus carry, so the run ends exactly balanced
    assert trace.final_closing == pytest.approx(0.0)
