from __future__ import annotations


from contextlib import contextmanager
import sqlite3
from pathlib import Path


class Db:
    def __init__(self, path: Path):
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def connect(self):
        con = sqlite3.connect(self.path, timeout=20.0)
        con.row_factory = sqlite3.Row
        con.execute("PRAGMA foreign_keys=ON;")
        try:
            yield con
            con.commit()
        except Exception:
            con.rollback()
            raise
        finally:
            con.close()

    def ensure_schema(self) -> None:
        con = sqlite3.connect(self.path, timeout=10.0)
        try:
            con.execute("PRAGMA journal_mode=WAL;")
            con.execute("PRAGMA foreign_keys=ON;")

            # AUDIT LOG
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS audit_log (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL DEFAULT(datetime('now', 'localtime')),
                    category TEXT NOT NULL,
                    message TEXT NOT NULL,
                    details TEXT
                );
                """
            )

            con.executescript(
                """
                CREATE TABLE IF NOT EXISTS app_config (
                    config_key TEXT PRIMARY KEY,
                    config_value TEXT NOT NULL,
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                -- Orders: list/dict fields are stored as JSON text
                CREATE TABLE IF NOT EXISTS orders (
                    order_id TEXT PRIMARY KEY,
                    ocn TEXT NOT NULL DEFAULT '',
                    buyer TEXT NOT NULL DEFAULT '',
                    style TEXT NOT NULL,
                    color TEXT NOT NULL DEFAULT '',
                    quantity INTEGER NOT NULL CHECK (quantity >= 0),
                    process_ids TEXT NOT NULL,
                    process_sam TEXT NOT NULL DEFAULT '{}',
                    due_date TEXT,
                    budgeted_efficiency REAL,
                    ramp_up TEXT NOT NULL DEFAULT '[]',
                    order_type TEXT NOT NULL DEFAULT 'Firm PO',
                    operations TEXT NOT NULL DEFAULT '[]',
                    lines INTEGER NOT NULL DEFAULT 1,
                    min_run_days TEXT NOT NULL DEFAULT '{}',
                    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
                );

                CREATE TABLE IF NOT EXISTS forecast_snapshot (
                    order_id TEXT NOT NULL,
                    snapshot_week INTEGER NOT NULL,
                    week TEXT NOT NULL,
                    size TEXT NOT NULL DEFAULT 'total',
                    po REAL NOT NULL DEFAULT 0,
                    fc REAL NOT NULL DEFAULT 0,
                    PRIMARY KEY (order_id, snapshot_week, week, size)
                );
                CREATE INDEX IF NOT EXISTS idx_forecast_snapshot_order ON forecast_snapshot(order_id, snapshot_week);

                CREATE TABLE IF NOT EXISTS sewing_line (
                    line_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    machine_counts TEXT NOT NULL DEFAULT '{}'
                );

                CREATE TABLE IF NOT EXISTS line_group (
                    group_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    cc_no TEXT NOT NULL DEFAULT '',
                    requirements TEXT NOT NULL DEFAULT '{}',
                    allocations TEXT NOT NULL DEFAULT '[]'
                );

                CREATE TABLE IF NOT EXISTS scheduled_process (
                    item_id TEXT PRIMARY KEY,
                    order_id TEXT NOT NULL,
                    process_id TEXT NOT NULL,
                    resource_id TEXT NOT NULL,
                    start_at TEXT NOT NULL,
                    end_at TEXT NOT NULL,
                    duration_minutes REAL NOT NULL,
                    quantity INTEGER NOT NULL,
                    is_split INTEGER NOT NULL DEFAULT 0,
                    parent_id TEXT,
                    batch_number INTEGER,
                    total_batches INTEGER,
                    auto_scheduled INTEGER NOT NULL DEFAULT 0,
                    latest_start TEXT
                );
                CREATE INDEX IF NOT EXISTS idx_scheduled_process_resource ON scheduled_process(resource_id, start_at);

                -- Singleton values of the timeline (horizon, buffer line)
                CREATE TABLE IF NOT EXISTS timeline_state (
                    state_key TEXT PRIMARY KEY,
                    state_value TEXT NOT NULL
                );
                """
            )
            con.commit()
        finally:
            con.close()
