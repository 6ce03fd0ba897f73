from __future__ import annotations

import io
from datetime import date, datetime
from pathlib import Path

import pandas as pd
import pytest

from stitchplan.core.models import (
    ForecastComposition,
    ForecastSnapshot,
    Order,
    OrderType,
    RampUpEntry,
    SewingLine,
    SewingOperation,
)
from stitchplan.data.db import Db
from stitchplan.data.excel_io import export_plan_excel_bytes, import_forecast_excel_bytes, normalize_col_name
from stitchplan.data.repository import Repository
from stitchplan.session import PlanningSession


def make_excel_bytes(data: dict) -> bytes:
    """Create a minimal Excel file from a column->values dict."""
    bio = io.BytesIO()
    pd.DataFrame(data).to_excel(bio, index=False)
    bio.seek(0)
    return bio.read()


@pytest.fixture()
def repo(tmp_path) -> Repository:
    db = Db(Path(tmp_path) / "test.db")
    db.ensure_schema()
    return Repository(db)


def _order() -> Order:
    return Order(
        order_id="A",
        ocn="CC-1",
        buyer="ACME",
        style="TEE",
        color="NAVY",
        quantity=1000,
        process_ids=("cutting", "sewing", "packing"),
        process_sam={"cutting": 0.5, "sewing": 12.0, "packing": 0.4},
        due_date=date(2026, 4, 30),
        budgeted_efficiency=80.0,
        ramp_up=(RampUpEntry(1, 50.0), RampUpEntry(3, 85.0)),
        order_type=OrderType.FORECAST,
        operations=(SewingOperation(operation="body", machine="SNLS", operators=4, sam=12.0),),
        lines=2,
        min_run_days={"sewing": 2},
    )


def test_config_roundtrip_and_audit(repo):
    assert repo.get_config(key="offset_cap") is None
    repo.set_config(key="offset_cap", value="5")
    repo.set_config(key="offset_check", value="effective")
    params = repo.get_planning_params()
    assert params.offset_cap == 5
    assert params.offset_check == "effective"

    entries = repo.get_recent_audit_entries()
    assert entries[0]["category"] == "CONFIG"
    assert "offset_check" in entries[0]["message"]


def test_empty_config_key_rejected(repo):
    with pytest.raises(ValueError):
        repo.get_config(key=" ")
    with pytest.raises(ValueError):
        repo.set_config(key="", value="1")


def test_order_persists_all_fields(repo):
    repo.upsert_orders([_order()])
    assert repo.get_order("A") == _order()
    assert repo.get_order("missing") is None

    repo.update_ramp_up("A", [RampUpEntry(1, 70.0)])
    assert repo.get_order("A").ramp_up == (RampUpEntry(1, 70.0),)
    with pytest.raises(ValueError):
        repo.update_ramp_up("A", [RampUpEntry(1, 0.0)])

    repo.set_order_lines("A", 3)
    assert repo.get_order("A").lines == 3


def test_session_snapshot_roundtrip(repo):
    session = PlanningSession(
        orders=[_order()],
        snapshots=[
            ForecastSnapshot(
                order_id="A",
                snapshot_week=4,
                forecasts={"W8": {"S": ForecastComposition(po=10, fc=5), "M": ForecastComposition(po=3)}},
            )
        ],
        lines=[SewingLine(line_id="L1", name="Line 1", machine_counts={"SNLS": 4, "OL": 1})],
    )
    group = session.create_line_group("CC-1")
    session.match_capacity(group.group_id)
    item = session.place_new("A", "cutting", 960, "CUT-1", datetime(2026, 2, 16, 9, 0))
    repo.save_session(session)

    loaded = repo.load_session()
    assert loaded.orders == session.orders
    assert loaded.snapshot("A").weekly_demand() == {8: 18.0}
    assert loaded.groups == session.groups
    assert loaded.buffer.machine_counts == {"OL": 1}
    assert loaded.timeline.get(item.item_id) == item
    assert loaded.timeline.horizon_end == session.timeline.horizon_end


def test_import_forecast_excel(repo):
    content = make_excel_bytes(
        {
            "Order ID": ["A", "A", "A", "B"],
            "Snapshot Week": ["W3", "W3", "W3", 3],
            "Week": ["W5", "W5", "W6", 7],
            "Size": ["S", "M", None, None],
            "PO": [10, 5, 0, 4],
            "FC": [1, 0, 7, None],
        }
    )
    snaps = import_forecast_excel_bytes(content)
    by_order = {s.order_id: s for s in snaps}
    assert by_order["A"].snapshot_week == 3
    assert by_order["A"].weekly_demand() == {5: 16.0, 6: 7.0}
    assert by_order["B"].weekly_demand() == {7: 4.0}

    for snap in snaps:
        repo.save_snapshot(snap)
    assert {s.order_id for s in repo.get_snapshots()} == {"A", "B"}


def test_import_forecast_missing_columns():
    with pytest.raises(ValueError, match="missing columns"):
        import_forecast_excel_bytes(make_excel_bytes({"order_id": ["A"], "week": ["W1"]}))


def test_export_plan_excel(repo):
    session = PlanningSession(
        orders=[_order()],
        snapshots=[
            ForecastSnapshot(order_id="A", snapshot_week=1, forecasts={"W6": {"total": ForecastComposition(po=300)}})
        ],
    )
    plan = session.generate_tentative_plan("A")
    content = export_plan_excel_bytes(plan)
    sheets = pd.read_excel(io.BytesIO(content), sheet_name=None)
    assert set(sheets) == {"runs", "weekly_plan"}
    assert int(sheets["weekly_plan"]["quantity"].sum()) == 300
    assert list(sheets["runs"]["start_week"]) == [r.as_row()["start_week"] for r in plan.runs]


def test_normalize_col_name():
    assert normalize_col_name("  Snapshot Week ") == "snapshot_week"
    assert normalize_col_name("PO Qty.") == "po_qty"
    assert normalize_col_name("Año") == "ano"
