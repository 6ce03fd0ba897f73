from __future__ import annotations

import logging
from dataclasses import fields
from datetime import datetime

from nicegui import events, ui

from stitchplan.core.constants import PlanningParams
from stitchplan.core.models import week_label
from stitchplan.data.excel_io import export_plan_excel_bytes, import_forecast_excel_bytes
from stitchplan.data.repository import Repository
from stitchplan.planner.inventory import closing_inventory_series
from stitchplan.ui.widgets import page_container, render_nav, rows_table

logger = logging.getLogger(__name__)


def _parse_quantities(text: str) -> list[int]:
    return [int(float(t)) for t in str(text or "").replace(";", ",").split(",") if t.strip()]


def register_pages(repo: Repository) -> None:
    @ui.page("/")
    def tentative_plan_page() -> None:
        render_nav("plan")
        session = repo.load_session()
        cc_options = sorted({o.ocn for o in session.orders.values() if o.ocn})
        weeks = sorted({s.snapshot_week for snaps in session.snapshots.values() for s in snaps})

        with page_container():
            ui.label("Tentative plan").classes("text-2xl font-semibold")
            if not cc_options or not weeks:
                ui.label("No orders or forecast snapshots loaded yet. Upload a forecast in /config.").classes(
                    "text-slate-600"
                )
                return

            with ui.row().classes("items-end gap-4"):
                cc_select = ui.select(cc_options, value=cc_options[0], label="CC")
                week_select = ui.select({w: week_label(w) for w in weeks}, value=weeks[-1], label="Snapshot")
                ui.button("Plan", on_click=lambda: render_plan.refresh())

            @ui.refreshable
            def render_plan() -> None:
                cc_plan = session.plan_cc(cc_select.value, int(week_select.value))
                plan = cc_plan.history.current
                if plan.dropped_runs:
                    ui.label(
                        f"{len(plan.dropped_runs)} run(s) could not be planned within the offset cap"
                    ).classes("text-amber-700")

                rows_table(
                    [("run_number", "Run"), ("start_week", "Start"), ("end_week", "End"),
                     ("quantity", "Qty"), ("lines", "Lines"), ("offset", "Offset")],
                    [r.as_row() for r in plan.runs],
                )

                demand = cc_plan.history.demand
                span = sorted(set(demand) | set(plan.weekly_plan))
                closing = closing_inventory_series(
                    span, demand, plan.weekly_plan, opening=cc_plan.history.opening_inventory
                )
                rows_table(
                    [("week", "Week"), ("demand", "Demand"), ("plan", "Plan"), ("fgci", "FG closing")],
                    [
                        {
                            "week": week_label(w),
                            "demand": round(demand.get(w, 0.0)),
                            "plan": plan.weekly_plan.get(w, 0),
                            "fgci": round(closing.get(w, 0.0)),
                        }
                        for w in span
                    ],
                )

                ui.label("Allocation per order").classes("text-lg font-semibold mt-4")
                rows_table(
                    [("order_id", "Order"), ("weeks", "Weeks")],
                    [
                        {"order_id": oid, "weeks": ", ".join(f"{week_label(w)}:{q}" for w, q in sorted(a.items()))}
                        for oid, a in cc_plan.allocation.items()
                    ],
                )
                ui.button(
                    "Export xlsx",
                    on_click=lambda: ui.download(export_plan_excel_bytes(plan), f"plan_{cc_select.value}.xlsx"),
                ).props("outline")

            render_plan()

    @ui.page("/timeline")
    def timeline_page() -> None:
        render_nav("timeline")
        session = repo.load_session()

        def commit(message: str) -> None:
            repo.save_session(session)
            ui.notify(message)
            render_items.refresh()

        with page_container():
            ui.label("Timeline").classes("text-2xl font-semibold")
            order_ids = sorted(session.orders)
            with ui.card().classes("p-4 w-full"):
                with ui.row().classes("items-end gap-3"):
                    order_in = ui.select(order_ids, label="Order", value=order_ids[0] if order_ids else None)
                    process_in = ui.input("Process", value="sewing")
                    qty_in = ui.number("Quantity", value=0, min=0)
                    resource_in = ui.input("Resource")
                    start_in = ui.input("Start (YYYY-MM-DD HH:MM)")

                    def do_place() -> None:
                        try:
                            item = session.place_new(
                                order_in.value,
                                str(process_in.value).strip(),
                                int(qty_in.value or 0),
                                str(resource_in.value).strip(),
                                datetime.fromisoformat(str(start_in.value).strip()),
                            )
                        except (KeyError, ValueError) as ex:
                            ui.notify(f"Cannot place: {ex}", color="negative")
                            return
                        if item is None:
                            ui.notify("Duration is infeasible for this order", color="warning")
                            return
                        commit(f"Placed {item.item_id}")

                    ui.button("Place", on_click=do_place)

            with ui.row().classes("items-end gap-3"):
                item_in = ui.input("Item id")
                split_in = ui.input("Split quantities (e.g. 300,200)")

                def do_undo() -> None:
                    removed = session.undo(str(item_in.value).strip())
                    commit(f"Removed {len(removed)} item(s)")

                def do_split() -> None:
                    try:
                        children = session.split([str(item_in.value).strip()], _parse_quantities(split_in.value))
                    except (KeyError, ValueError) as ex:
                        ui.notify(f"Cannot split: {ex}", color="negative")
                        return
                    commit(f"Split into {len(children)} batches")

                ui.button("Undo", on_click=do_undo).props("outline")
                ui.button("Split", on_click=do_split).props("outline")

            @ui.refreshable
            def render_items() -> None:
                if session.timeline.horizon_end:
                    ui.label(f"Horizon until {session.timeline.horizon_end:%Y-%m-%d}").classes("text-slate-600")
                rows_table(
                    [("item_id", "Item"), ("resource_id", "Resource"), ("order_id", "Order"),
                     ("process_id", "Process"), ("quantity", "Qty"), ("start", "Start"), ("end", "End")],
                    [
                        {
                            "item_id": p.item_id,
                            "resource_id": p.resource_id,
                            "order_id": p.order_id,
                            "process_id": p.process_id,
                            "quantity": p.quantity,
                            "start": f"{p.start:%Y-%m-%d %H:%M}",
                            "end": f"{p.end:%Y-%m-%d %H:%M}",
                        }
                        for p in session.timeline.items
                    ],
                )

            render_items()

    @ui.page("/capacity")
    def capacity_page() -> None:
        render_nav("capacity")
        session = repo.load_session()

        with page_container():
            ui.label("Line capacity").classes("text-2xl font-semibold")
            cc_options = sorted({o.ocn for o in session.orders.values() if o.ocn})
            with ui.row().classes("items-end gap-3"):
                cc_select = ui.select(cc_options, label="CC", value=cc_options[0] if cc_options else None)

                def do_create() -> None:
                    if not cc_select.value:
                        return
                    group = session.create_line_group(cc_select.value)
                    result = session.match_capacity(group.group_id)
                    repo.save_session(session)
                    ui.notify(f"{group.name}: {len(result.allocated)} line(s) allocated")
                    render_groups.refresh()

                ui.button("Create group and match lines", on_click=do_create)

            @ui.refreshable
            def render_groups() -> None:
                rows_table(
                    [("name", "Group"), ("cc_no", "CC"), ("lines", "Lines"), ("requirements", "Requirements")],
                    [
                        {
                            "name": g.name,
                            "cc_no": g.cc_no,
                            "lines": ", ".join(g.line_ids),
                            "requirements": ", ".join(f"{k}:{v}" for k, v in g.requirements.items()),
                        }
                        for g in session.groups.values()
                    ],
                )
                buffered = ", ".join(f"{k}:{v}" for k, v in session.buffer.machine_counts.items()) or "-"
                ui.label(f"Buffer: {buffered}").classes("text-slate-600")

            render_groups()

    @ui.page("/config")
    def config_page() -> None:
        render_nav("config")
        params = repo.get_planning_params()

        with page_container():
            ui.label("Configuration").classes("text-2xl font-semibold")
            inputs = {}
            with ui.grid(columns=3).classes("gap-3"):
                for f in fields(PlanningParams):
                    inputs[f.name] = ui.input(f.name, value=str(getattr(params, f.name)))

            def save() -> None:
                raw = {name: str(inp.value) for name, inp in inputs.items()}
                try:
                    PlanningParams.from_config(raw)
                except ValueError as ex:
                    ui.notify(f"Invalid value: {ex}", color="negative")
                    return
                for key, value in raw.items():
                    repo.set_config(key=key, value=value)
                ui.notify("Saved")

            ui.button("Save", on_click=save)

            ui.separator()
            ui.label("Forecast upload").classes("text-lg font-semibold")

            def on_upload(e: events.UploadEventArguments) -> None:
                try:
                    snapshots = import_forecast_excel_bytes(e.content.read())
                except ValueError as ex:
                    ui.notify(f"Could not read forecast: {ex}", color="negative")
                    return
                for snap in snapshots:
                    repo.save_snapshot(snap)
                repo.log_audit("FORECAST", "Forecast uploaded", f"{len(snapshots)} snapshots")
                ui.notify(f"Loaded {len(snapshots)} snapshots")

            ui.upload(on_upload=on_upload, auto_upload=True).props("accept=.xlsx")
