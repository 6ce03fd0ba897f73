"""Timeline package.

Per-resource placement of scheduled processes with forward cascading, plus
helpers that read sewing output and open batches off the timeline.
"""

from stitchplan.timeline.batches import daily_sewing_output, sewing_days_for_quantity, unplanned_batches
from stitchplan.timeline.scheduler import Timeline, new_item_id

__all__ = [
    "Timeline",
    "daily_sewing_output",
    "new_item_id",
    "sewing_days_for_quantity",
    "unplanned_batches",
]
