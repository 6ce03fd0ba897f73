"""Planner package.

Weekly tentative planning: run partitioning, inventory simulation, the
line-count capacity search and the TNA (time and action) batch calculator.
Everything here is pure; nothing touches the database.
"""

from stitchplan.planner.capacity import CapacityResult, search_capacity
from stitchplan.planner.inventory import InventoryTrace, closing_inventory_series, simulate_inventory
from stitchplan.planner.runs import partition_runs, round_half_up
from stitchplan.planner.tentative import (
    HistoryPlan,
    aggregate_demand,
    allocate_to_models,
    generate_tentative_plan,
    plan_horizon,
    plan_with_history,
    snapshot_as_of,
)
from stitchplan.planner.tna import (
    TnaPlan,
    generate_tna_plan,
    latest_sewing_start,
    packing_batch_size,
    process_batch_size,
)

__all__ = [
    "CapacityResult",
    "HistoryPlan",
    "InventoryTrace",
    "TnaPlan",
    "aggregate_demand",
    "allocate_to_models",
    "closing_inventory_series",
    "generate_tentative_plan",
    "generate_tna_plan",
    "latest_sewing_start",
    "packing_batch_size",
    "partition_runs",
    "plan_horizon",
    "plan_with_history",
    "process_batch_size",
    "round_half_up",
    "search_capacity",
    "simulate_inventory",
    "snapshot_as_of",
]
