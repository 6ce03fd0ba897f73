from __future__ import annotations

import io
import re
import unicodedata

import pandas as pd

from stitchplan.core.models import ForecastComposition, ForecastSnapshot, TentativePlan, parse_week, week_label


def read_excel_bytes(content: bytes) -> pd.DataFrame:
    """Read .xlsx bytes into a DataFrame (first sheet)."""
    bio = io.BytesIO(content)
    df = pd.read_excel(bio)
    df.columns = [str(c).strip() for c in df.columns]
    return df


def normalize_col_name(name: str) -> str:
    """Normalize Excel column names to an ASCII snake_case token ("PO Qty" -> "po_qty")."""
    s = str(name or "").strip().lower()
    s = unicodedata.normalize("NFKD", s)
    s = "".join(ch for ch in s if not unicodedata.combining(ch))
    s = s.replace("\u00a0", " ")
    s = re.sub(r"[^a-z0-9 ]+", " ", s)
    s = re.sub(r"\s+", "_", s).strip("_")
    return s


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    df.columns = [normalize_col_name(c) for c in df.columns]
    return df


def coerce_float(value, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        if pd.isna(value):
            return default
    except (TypeError, ValueError):
        pass
    s = str(value).strip().replace(",", "")
    if not s:
        return default
    return float(s)


_REQUIRED_FORECAST_COLS = {"order_id", "snapshot_week", "week", "po", "fc"}


def forecast_snapshots_from_frame(df: pd.DataFrame) -> list[ForecastSnapshot]:
    df = normalize_columns(df)
    missing = _REQUIRED_FORECAST_COLS - set(df.columns)
    if missing:
        raise ValueError(f"forecast sheet is missing columns: {', '.join(sorted(missing))}")

    grouped: dict[tuple[str, int], dict[str, dict[str, ForecastComposition]]] = {}
    for rec in df.to_dict(orient="records"):
        order_id = str(rec.get("order_id") or "").strip()
        if not order_id or order_id.lower() == "nan":
            continue
        snapshot_week = parse_week(_week_token(rec["snapshot_week"]))
        week = week_label(parse_week(_week_token(rec["week"])))
        size = str(rec.get("size") or "total").strip() or "total"
        if size.lower() == "nan":
            size = "total"
        comp = ForecastComposition(po=coerce_float(rec.get("po")), fc=coerce_float(rec.get("fc")))
        by_size = grouped.setdefault((order_id, snapshot_week), {}).setdefault(week, {})
        prev = by_size.get(size)
        if prev is not None:
            comp = ForecastComposition(po=prev.po + comp.po, fc=prev.fc + comp.fc)
        by_size[size] = comp

    return [
        ForecastSnapshot(order_id=oid, snapshot_week=sw, forecasts=forecasts)
        for (oid, sw), forecasts in sorted(grouped.items())
    ]


def _week_token(value) -> str | int:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, int):
        return value
    s = str(value).strip()
    return int(s) if s.isdigit() else s


def import_forecast_excel_bytes(content: bytes) -> list[ForecastSnapshot]:
    """Forecast snapshots from an xlsx with columns order_id, snapshot_week, week, po, fc[, size]."""
    return forecast_snapshots_from_frame(read_excel_bytes(content))


def plan_frames(plan: TentativePlan) -> tuple[pd.DataFrame, pd.DataFrame]:
    runs = pd.DataFrame(
        [r.as_row() for r in plan.runs],
        columns=["run_number", "start_week", "end_week", "quantity", "lines", "offset"],
    )
    weekly = pd.DataFrame(
        [{"week": week_label(w), "quantity": q} for w, q in sorted(plan.weekly_plan.items())],
        columns=["week", "quantity"],
    )
    return runs, weekly


def export_plan_excel_bytes(plan: TentativePlan) -> bytes:
    runs, weekly = plan_frames(plan)
    bio = io.BytesIO()
    with pd.ExcelWriter(bio, engine="openpyxl") as writer:
        runs.to_excel(writer, sheet_name="runs", index=False)
        weekly.to_excel(writer, sheet_name="weekly_plan", index=False)
    return bio.getvalue()
