from __future__ import annotations

from contextlib import contextmanager

from nicegui import ui


_THEME_APPLIED = False


def apply_theme() -> None:
    ui.colors(
        primary="#0f766e",  # teal-700
        secondary="#0ea5e9",
        positive="#16a34a",
        negative="#dc2626",
        warning="#f59e0b",
    )
    ui.add_css(
        """
        body { background: #f8fafc; }
        .sp-container { max-width: 1280px; margin: 0 auto; padding: 16px; }
        .sp-header { border-bottom: 1px solid rgba(15, 23, 42, 0.08); }
        .sp-table .q-table th, .sp-table .q-table td { padding: 6px 8px; }
        """
    )


def ensure_theme() -> None:
    """Apply theme once, from within a page context."""
    global _THEME_APPLIED
    if _THEME_APPLIED:
        return
    apply_theme()
    _THEME_APPLIED = True


@contextmanager
def page_container():
    with ui.element("div").classes("sp-container"):
        yield


def render_nav(active: str | None = None) -> None:
    ensure_theme()
    active_key = active or "plan"
    sections: list[tuple[str, str, str]] = [
        ("plan", "Tentative plan", "/"),
        ("timeline", "Timeline", "/timeline"),
        ("capacity", "Line capacity", "/capacity"),
        ("config", "Config", "/config"),
    ]
    with ui.header().classes("sp-header bg-white text-slate-900"):
        with ui.row().classes("w-full items-center justify-between gap-4 px-4 py-2"):
            ui.label("StitchPlan").classes("text-xl md:text-2xl font-semibold leading-none")
            with ui.row().classes("items-center gap-1"):
                for key, label, path in sections:
                    props = "dense no-caps" + (" unelevated" if key == active_key else " flat")
                    ui.button(label, on_click=lambda p=path: ui.navigate.to(p)).props(props)


def rows_table(columns: list[tuple[str, str]], rows: list[dict], *, row_key: str | None = None):
    cols = [{"name": name, "label": label, "field": name, "align": "left"} for name, label in columns]
    return ui.table(columns=cols, rows=rows, row_key=row_key or columns[0][0]).classes("w-full sp-table")
