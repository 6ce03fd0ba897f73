from __future__ import annotations

from datetime import date, datetime

from stitchplan.core.models import Order, OrderType, PlanningPolicy
from stitchplan.planner.tna import (
    generate_tna_plan,
    latest_sewing_start,
    packing_batch_size,
    process_batch_size,
)


def _order(**kw) -> Order:
    base = dict(
        order_id="O1",
        style="POLO",
        quantity=960,
        process_ids=("cutting", "sewing", "packing"),
        process_sam={"cutting": 1.0, "sewing": 10.0, "packing": 0.5},
        budgeted_efficiency=100.0,
        due_date=date(2026, 3, 14),  # Saturday
    )
    base.update(kw)
    return Order(**base)


def test_batch_sizes_from_minimum_runs():
    order = _order()
    # cutting turns out 480/day, sewing 48/day -> cutting dominates
    assert process_batch_size(order) == 480
    assert packing_batch_size(order) == 960
    assert process_batch_size(_order(quantity=300)) == 300


def test_batch_size_fallback_without_sam():
    order = _order(process_sam={})
    assert process_batch_size(order) == 192
    assert packing_batch_size(order) == 192


def test_forward_and_backward_passes():
    plan = generate_tna_plan(_order())
    assert plan.batch_size == 480
    assert plan.policy == PlanningPolicy.FIRM
    cutting, sewing, packing = plan.processes
    assert (cutting.duration_days, sewing.duration_days, packing.duration_days) == (2.0, 20.0, 1.0)

    assert cutting.earliest_start == date(2026, 2, 16)
    assert sewing.earliest_start == date(2026, 2, 17)
    assert packing.earliest_start == date(2026, 2, 28)

    assert packing.latest_start == date(2026, 3, 13)
    assert sewing.latest_start == date(2026, 3, 2)
    assert cutting.latest_start == date(2026, 2, 28)

    assert plan.ck_date == date(2026, 2, 12)
    assert plan.for_process("sewing") is sewing


def test_forecast_policy_uses_same_calculator():
    plan = generate_tna_plan(_order(order_type=OrderType.FORECAST))
    assert plan.policy == PlanningPolicy.FORECAST
    # flat line throughput equals the 100% curve here, so dates match the firm plan
    assert plan.for_process("sewing").earliest_start == date(2026, 2, 17)


def test_no_due_date_gives_empty_plan():
    assert generate_tna_plan(_order(due_date=None)).processes == []


def test_latest_sewing_start_leaves_room_for_last_packing_batch():
    assert latest_sewing_start(_order()) == datetime(2026, 2, 19, 9, 0)


def test_forecast_orders_have_no_latest_sewing_start():
    assert latest_sewing_start(_order(order_type=OrderType.FORECAST)) is None
