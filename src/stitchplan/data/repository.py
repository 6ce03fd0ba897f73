from __future__ import annotations

import json
import logging
from dataclasses import asdict, fields, replace
from datetime import date, datetime
from typing import Iterable

from stitchplan.capacity.matcher import BUFFER_LINE_ID, empty_buffer
from stitchplan.core.constants import PlanningParams
from stitchplan.core.models import (
    ForecastComposition,
    ForecastSnapshot,
    LineAllocation,
    LineGroup,
    Order,
    OrderType,
    RampUpEntry,
    ScheduledProcess,
    SewingLine,
    SewingOperation,
)
from stitchplan.data.db import Db
from stitchplan.session import PlanningSession

logger = logging.getLogger(__name__)


def _dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


class Repository:
    def __init__(self, db: Db):
        self.db = db

    def log_audit(self, category: str, message: str, details: str | None = None) -> None:
        """Record a business event in the audit log."""
        try:
            with self.db.connect() as con:
                con.execute(
                    "INSERT INTO audit_log (category, message, details) VALUES (?, ?, ?)",
                    (category, message, details),
                )
        except Exception:
            # Don't crash the caller over audit failures
            logger.exception("Failed to write audit log")

    def get_recent_audit_entries(self, limit: int = 100) -> list[dict]:
        with self.db.connect() as con:
            rows = con.execute("SELECT * FROM audit_log ORDER BY id DESC LIMIT ?", (limit,)).fetchall()
        return [dict(r) for r in rows]

    # ---------------- config ----------------

    def get_config(self, *, key: str, default: str | None = None) -> str | None:
        key = str(key).strip()
        if not key:
            raise ValueError("empty config key")
        with self.db.connect() as con:
            row = con.execute("SELECT config_value FROM app_config WHERE config_key = ?", (key,)).fetchone()
        if row is None:
            return default
        return str(row[0])

    def set_config(self, *, key: str, value: str) -> None:
        key = str(key).strip()
        if not key:
            raise ValueError("empty config key")

        old = self.get_config(key=key, default="(none)")
        self.log_audit("CONFIG", f"Updated '{key}'", f"From '{old}' to '{value}'")
        with self.db.connect() as con:
            con.execute(
                """
                INSERT INTO app_config(config_key, config_value, updated_at)
                VALUES(?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(config_key) DO UPDATE SET
                    config_value=excluded.config_value,
                    updated_at=CURRENT_TIMESTAMP
                """,
                (key, str(value)),
            )

    def get_planning_params(self) -> PlanningParams:
        names = [f.name for f in fields(PlanningParams)]
        raw = {name: self.get_config(key=name) for name in names}
        return PlanningParams.from_config(raw)

    # ---------------- orders ----------------

    @staticmethod
    def _order_from_row(row) -> Order:
        return Order(
            order_id=row["order_id"],
            ocn=row["ocn"],
            buyer=row["buyer"],
            style=row["style"],
            color=row["color"],
            quantity=int(row["quantity"]),
            process_ids=tuple(json.loads(row["process_ids"])),
            process_sam={k: float(v) for k, v in json.loads(row["process_sam"]).items()},
            due_date=date.fromisoformat(row["due_date"]) if row["due_date"] else None,
            budgeted_efficiency=row["budgeted_efficiency"],
            ramp_up=tuple(RampUpEntry(day=int(e["day"]), efficiency=float(e["efficiency"])) for e in json.loads(row["ramp_up"])),
            order_type=OrderType(row["order_type"]),
            operations=tuple(SewingOperation(**op) for op in json.loads(row["operations"])),
            lines=int(row["lines"]),
            min_run_days={k: int(v) for k, v in json.loads(row["min_run_days"]).items()},
        )

    def upsert_orders(self, orders: Iterable[Order]) -> int:
        rows = [
            (
                o.order_id,
                o.ocn,
                o.buyer,
                o.style,
                o.color,
                o.quantity,
                json.dumps(list(o.process_ids)),
                json.dumps(o.process_sam),
                o.due_date.isoformat() if o.due_date else None,
                o.budgeted_efficiency,
                json.dumps([{"day": e.day, "efficiency": e.efficiency} for e in o.ramp_up]),
                o.order_type.value,
                json.dumps([asdict(op) for op in o.operations]),
                o.lines,
                json.dumps(o.min_run_days),
            )
            for o in orders
        ]
        with self.db.connect() as con:
            con.executemany(
                """
                INSERT INTO orders(order_id, ocn, buyer, style, color, quantity, process_ids, process_sam,
                                   due_date, budgeted_efficiency, ramp_up, order_type, operations, lines, min_run_days)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(order_id) DO UPDATE SET
                    ocn=excluded.ocn, buyer=excluded.buyer, style=excluded.style, color=excluded.color,
                    quantity=excluded.quantity, process_ids=excluded.process_ids, process_sam=excluded.process_sam,
                    due_date=excluded.due_date, budgeted_efficiency=excluded.budgeted_efficiency,
                    ramp_up=excluded.ramp_up, order_type=excluded.order_type, operations=excluded.operations,
                    lines=excluded.lines, min_run_days=excluded.min_run_days, updated_at=CURRENT_TIMESTAMP
                """,
                rows,
            )
        return len(rows)

    def get_orders(self) -> list[Order]:
        with self.db.connect() as con:
            rows = con.execute("SELECT * FROM orders ORDER BY order_id").fetchall()
        return [self._order_from_row(r) for r in rows]

    def get_order(self, order_id: str) -> Order | None:
        with self.db.connect() as con:
            row = con.execute("SELECT * FROM orders WHERE order_id = ?", (order_id,)).fetchone()
        return self._order_from_row(row) if row else None

    def update_ramp_up(self, order_id: str, entries: Iterable[RampUpEntry]) -> None:
        entries = list(entries)
        order = self.get_order(order_id)
        if order is None:
            raise KeyError(f"unknown order {order_id}")
        # Validate through the model before writing
        replace(order, ramp_up=tuple(entries))
        with self.db.connect() as con:
            con.execute(
                "UPDATE orders SET ramp_up = ?, updated_at = CURRENT_TIMESTAMP WHERE order_id = ?",
                (json.dumps([{"day": e.day, "efficiency": e.efficiency} for e in entries]), order_id),
            )
        self.log_audit("RAMP_UP", f"Replaced ramp-up of {order_id}", f"{len(entries)} entries")

    def set_order_lines(self, order_id: str, lines: int) -> None:
        if int(lines) < 1:
            raise ValueError("lines must be >= 1")
        with self.db.connect() as con:
            con.execute(
                "UPDATE orders SET lines = ?, updated_at = CURRENT_TIMESTAMP WHERE order_id = ?",
                (int(lines), order_id),
            )

    # ---------------- forecast snapshots ----------------

    def save_snapshot(self, snapshot: ForecastSnapshot) -> None:
        rows = [
            (snapshot.order_id, snapshot.snapshot_week, week, size, comp.po, comp.fc)
            for week, by_size in snapshot.forecasts.items()
            for size, comp in by_size.items()
        ]
        with self.db.connect() as con:
            con.execute(
                "DELETE FROM forecast_snapshot WHERE order_id = ? AND snapshot_week = ?",
                (snapshot.order_id, snapshot.snapshot_week),
            )
            con.executemany(
                "INSERT INTO forecast_snapshot(order_id, snapshot_week, week, size, po, fc) VALUES(?, ?, ?, ?, ?, ?)",
                rows,
            )

    def get_snapshots(self, order_id: str | None = None) -> list[ForecastSnapshot]:
        sql = "SELECT * FROM forecast_snapshot"
        params: tuple = ()
        if order_id is not None:
            sql += " WHERE order_id = ?"
            params = (order_id,)
        sql += " ORDER BY order_id, snapshot_week, week, size"
        with self.db.connect() as con:
            rows = con.execute(sql, params).fetchall()

        grouped: dict[tuple[str, int], dict[str, dict[str, ForecastComposition]]] = {}
        for r in rows:
            key = (r["order_id"], int(r["snapshot_week"]))
            grouped.setdefault(key, {}).setdefault(r["week"], {})[r["size"]] = ForecastComposition(
                po=float(r["po"]), fc=float(r["fc"])
            )
        return [
            ForecastSnapshot(order_id=oid, snapshot_week=week, forecasts=forecasts)
            for (oid, week), forecasts in grouped.items()
        ]

    # ---------------- lines & groups ----------------

    def upsert_sewing_lines(self, lines: Iterable[SewingLine]) -> None:
        with self.db.connect() as con:
            con.executemany(
                """
                INSERT INTO sewing_line(line_id, name, machine_counts) VALUES(?, ?, ?)
                ON CONFLICT(line_id) DO UPDATE SET name=excluded.name, machine_counts=excluded.machine_counts
                """,
                [(ln.line_id, ln.name, json.dumps(ln.machine_counts)) for ln in lines if ln.line_id != BUFFER_LINE_ID],
            )

    def get_sewing_lines(self) -> list[SewingLine]:
        with self.db.connect() as con:
            rows = con.execute("SELECT * FROM sewing_line ORDER BY line_id").fetchall()
        return [
            SewingLine(line_id=r["line_id"], name=r["name"], machine_counts=json.loads(r["machine_counts"]))
            for r in rows
        ]

    def replace_line_groups(self, groups: Iterable[LineGroup]) -> None:
        rows = [
            (
                g.group_id,
                g.name,
                g.cc_no,
                json.dumps(g.requirements),
                json.dumps([asdict(a) for a in g.allocations]),
            )
            for g in groups
        ]
        with self.db.connect() as con:
            con.execute("DELETE FROM line_group")
            con.executemany(
                "INSERT INTO line_group(group_id, name, cc_no, requirements, allocations) VALUES(?, ?, ?, ?, ?)",
                rows,
            )

    def get_line_groups(self) -> list[LineGroup]:
        with self.db.connect() as con:
            rows = con.execute("SELECT * FROM line_group ORDER BY group_id").fetchall()
        return [
            LineGroup(
                group_id=r["group_id"],
                name=r["name"],
                cc_no=r["cc_no"],
                requirements=json.loads(r["requirements"]),
                allocations=tuple(LineAllocation(**a) for a in json.loads(r["allocations"])),
            )
            for r in rows
        ]

    # ---------------- timeline ----------------

    def _get_state(self, key: str) -> str | None:
        with self.db.connect() as con:
            row = con.execute("SELECT state_value FROM timeline_state WHERE state_key = ?", (key,)).fetchone()
        return str(row[0]) if row else None

    def _set_state(self, key: str, value: str | None) -> None:
        with self.db.connect() as con:
            if value is None:
                con.execute("DELETE FROM timeline_state WHERE state_key = ?", (key,))
                return
            con.execute(
                """
                INSERT INTO timeline_state(state_key, state_value) VALUES(?, ?)
                ON CONFLICT(state_key) DO UPDATE SET state_value=excluded.state_value
                """,
                (key, value),
            )

    def get_buffer(self) -> SewingLine:
        raw = self._get_state("buffer")
        if not raw:
            return empty_buffer()
        return SewingLine(line_id=BUFFER_LINE_ID, name="Buffer", machine_counts=json.loads(raw))

    def set_buffer(self, buffer: SewingLine) -> None:
        self._set_state("buffer", json.dumps(buffer.machine_counts))

    def get_horizon_end(self) -> datetime | None:
        return _dt(self._get_state("horizon_end"))

    def set_horizon_end(self, value: datetime | None) -> None:
        self._set_state("horizon_end", value.isoformat() if value else None)

    def replace_scheduled_processes(self, items: Iterable[ScheduledProcess]) -> None:
        rows = [
            (
                p.item_id,
                p.order_id,
                p.process_id,
                p.resource_id,
                p.start.isoformat(),
                p.end.isoformat(),
                p.duration_minutes,
                p.quantity,
                int(p.is_split),
                p.parent_id,
                p.batch_number,
                p.total_batches,
                int(p.auto_scheduled),
                p.latest_start.isoformat() if p.latest_start else None,
            )
            for p in items
        ]
        with self.db.connect() as con:
            con.execute("DELETE FROM scheduled_process")
            con.executemany(
                """
                INSERT INTO scheduled_process(item_id, order_id, process_id, resource_id, start_at, end_at,
                    duration_minutes, quantity, is_split, parent_id, batch_number, total_batches,
                    auto_scheduled, latest_start)
                VALUES(?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                rows,
            )

    def get_scheduled_processes(self) -> list[ScheduledProcess]:
        with self.db.connect() as con:
            rows = con.execute("SELECT * FROM scheduled_process ORDER BY resource_id, start_at").fetchall()
        return [
            ScheduledProcess(
                item_id=r["item_id"],
                order_id=r["order_id"],
                process_id=r["process_id"],
                resource_id=r["resource_id"],
                start=datetime.fromisoformat(r["start_at"]),
                end=datetime.fromisoformat(r["end_at"]),
                duration_minutes=float(r["duration_minutes"]),
                quantity=int(r["quantity"]),
                is_split=bool(r["is_split"]),
                parent_id=r["parent_id"],
                batch_number=r["batch_number"],
                total_batches=r["total_batches"],
                auto_scheduled=bool(r["auto_scheduled"]),
                latest_start=_dt(r["latest_start"]),
            )
            for r in rows
        ]

    # ---------------- session snapshot ----------------

    def load_session(self) -> PlanningSession:
        return PlanningSession(
            orders=self.get_orders(),
            snapshots=self.get_snapshots(),
            items=self.get_scheduled_processes(),
            horizon_end=self.get_horizon_end(),
            lines=self.get_sewing_lines(),
            groups=self.get_line_groups(),
            buffer=self.get_buffer(),
            params=self.get_planning_params(),
        )

    def save_session(self, session: PlanningSession) -> None:
        self.upsert_orders(session.orders.values())
        for snaps in session.snapshots.values():
            for snap in snaps:
                self.save_snapshot(snap)
        self.upsert_sewing_lines(session.lines.values())
        self.replace_line_groups(session.groups.values())
        self.set_buffer(session.buffer)
        self.replace_scheduled_processes(session.timeline.items)
        self.set_horizon_end(session.timeline.horizon_end)
        logger.info(
            "Session saved: %d orders, %d scheduled items",
            len(session.orders), len(session.timeline.items),
        )
