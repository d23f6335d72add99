"""
Warehouse Fill Planner (Streamlit)

Two tabs sharing one snapshot:
- Calculator: stock x unit volume versus category / cell capacity
  (core.capacity), published to the forecast through core.snapshot_store
- Forecast: monthly fill projection (core.forecast) driven by the supply
  wave schedule (core.waves) and optional historical calibration
  (core.calibration, core.blending)
"""

from __future__ import annotations

from datetime import date
from pathlib import Path
from typing import Dict, Optional

import pandas as pd
import streamlit as st

from core import capacity, data_ingest, exports
from core.calibration import CalibrationEstimate, run_calibration
from core.forecast import ForecastResult, SimulationParameters, StartConditions, simulate
from core.snapshot_store import CalcSnapshot, SqliteSnapshotStore
from core.waves import SupplyWave, WaveSchedule, default_schedule
from visualization import forecast_chart
from config import warehouse as config

APP_TITLE = "Warehouse Fill Planner"
APP_TAGLINE = "Current fill by category and a month-by-month projection of volume and cell occupancy."

DATA_DIR = Path(__file__).parent / config.DEFAULT_DATA_DIR

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

SORT_LABELS = {
    "overflow_cbm": "Overflow",
    "fill_pct": "Fill %",
    "volume_cbm": "Volume",
    "capacity_cbm": "Capacity",
    "category": "Category",
}


# ===========================
# Session State Management
# ===========================

def init_session_state():
    today = date.today()
    defaults = {
        # Calculator
        "capacity_result": None,
        "sort_key": "overflow_cbm",
        "sort_desc": True,
        "category_query": "",
        "hide_zero": True,
        "hide_uncategorized": True,
        # Forecast inputs
        "capacity_volume": config.DEFAULT_CAPACITY_M3,
        "capacity_cells": float(config.DEFAULT_CAPACITY_CELLS),
        "start_stock_volume": config.DEFAULT_START_STOCK_M3,
        "horizon_months": config.DEFAULT_HORIZON_MONTHS,
        "protect_months": config.DEFAULT_PROTECT_MONTHS,
        "growth_yoy": config.DEFAULT_GROWTH_YOY,
        "sell_thru": config.DEFAULT_SELL_THRU,
        "coef_ss": config.DEFAULT_COEF_SS,
        "coef_fw": config.DEFAULT_COEF_FW,
        "avg_new_sku_volume": config.DEFAULT_AVG_NEW_SKU_M3,
        "cell_turnover_efficiency": config.DEFAULT_CELL_TURNOVER_EFFICIENCY,
        "use_calibration": config.DEFAULT_USE_CALIBRATION,
        "blend_weight": config.DEFAULT_BLEND_WEIGHT,
        "share_policy": config.DEFAULT_SHARE_POLICY,
        "use_snapshot": True,
        "override_active_skus": False,
        "start_active_skus": 0.0,
        # Calibration
        "calibration": CalibrationEstimate(),
        "calibration_report": None,
        "calibration_message": None,
        "calibration_ok": None,
        # Waves
        "waves": default_schedule(today.year),
        "wave_editor_rev": 0,
    }
    for key, value in defaults.items():
        if key not in st.session_state:
            st.session_state[key] = value


def get_snapshot_store() -> SqliteSnapshotStore:
    """
    Per-session snapshot store.

    Every session gets its own store instance on the shared database, so
    `poll()` picks up snapshots published by other sessions. The latest
    snapshot seen is kept in a session-local inbox fed by the subscription.
    """
    if "snapshot_store" not in st.session_state:
        store = SqliteSnapshotStore(config.SNAPSHOT_DB_PATH, config.SNAPSHOT_KEY)
        inbox = {"snapshot": store.read()}
        store.subscribe(lambda snapshot: inbox.update(snapshot=snapshot))
        st.session_state["snapshot_store"] = store
        st.session_state["snapshot_inbox"] = inbox
    return st.session_state["snapshot_store"]


def latest_snapshot() -> Optional[CalcSnapshot]:
    store = get_snapshot_store()
    store.poll()
    return st.session_state["snapshot_inbox"]["snapshot"]


@st.cache_data
def load_default_tables(data_dir: str) -> Dict[str, Optional[pd.DataFrame]]:
    """Load the bundled reference/capacity/cell tables (cached across reruns)."""
    loaders = {
        "reference": data_ingest.load_reference_table,
        "capacity_by_category": data_ingest.load_capacity_by_category,
        "capacity_by_category_role": data_ingest.load_capacity_by_category_role,
        "cell_map": data_ingest.load_cell_map,
    }
    tables = {}
    for key, loader in loaders.items():
        path = Path(data_dir) / config.DEFAULT_DATA_FILES[key]
        tables[key] = loader(str(path)) if path.exists() else None
    return tables


# ===========================
# Utility helpers
# ===========================

def download_excel(label: str, df: pd.DataFrame, filename: str, help: str | None = None, key: str = None):
    """Render an Excel download button for a dataframe."""
    if df is None or df.empty:
        st.button(label, disabled=True, help="Nothing to download yet", key=key)
        return

    st.download_button(
        label=label,
        data=exports.export_to_excel(df),
        file_name=filename,
        mime=XLSX_MIME,
        help=help,
        key=key,
    )


def format_metric(value, suffix="", decimals=1):
    try:
        return f"{float(value):,.{decimals}f}{suffix}"
    except (TypeError, ValueError):
        return f"{value}{suffix}"


def load_upload(label: str, loader, uploaded, default: Optional[pd.DataFrame]) -> Optional[pd.DataFrame]:
    """Parse an optional upload, falling back to the bundled table."""
    if uploaded is None:
        return default
    try:
        return loader(uploaded)
    except ValueError as exc:
        st.error(f"{label}: {exc}")
        return None


def publish_snapshot(result: capacity.CapacityResult):
    """Write the calculator totals unless the stored snapshot already matches."""
    store = get_snapshot_store()
    current = store.read()
    if current is not None and current.totals == result.totals.rounded():
        return
    store.write(result.to_snapshot())


# ===========================
# Calculator tab
# ===========================

def render_calculator_tab():
    st.subheader("Capacity calculator")
    st.caption("Upload current stock; reference, category capacity and the cell map default to the bundled tables.")

    try:
        defaults = load_default_tables(str(DATA_DIR))
    except ValueError as exc:
        st.error(f"Bundled tables could not be read: {exc}")
        defaults = {key: None for key in config.DEFAULT_DATA_FILES}

    inventory_file = st.file_uploader(
        "Stock file (SKU + available pieces)", type=["csv", "xlsx", "xls"], key="upload_inventory"
    )
    with st.expander("Reference tables", expanded=any(v is None for v in defaults.values())):
        ref_file = st.file_uploader("SKU reference", type=["json", "csv", "xlsx"], key="upload_reference")
        cap_file = st.file_uploader("Capacity by category", type=["json", "csv", "xlsx"], key="upload_cap")
        role_file = st.file_uploader("Capacity by category and role", type=["json", "csv", "xlsx"], key="upload_cap_role")
        cells_file = st.file_uploader("Cell map", type=["json", "csv", "xlsx"], key="upload_cells")

    reference = load_upload("SKU reference", data_ingest.load_reference_table, ref_file, defaults["reference"])
    cap_by_cat = load_upload(
        "Capacity by category", data_ingest.load_capacity_by_category, cap_file, defaults["capacity_by_category"]
    )
    cap_by_role = load_upload(
        "Capacity by category and role", data_ingest.load_capacity_by_category_role,
        role_file, defaults["capacity_by_category_role"],
    )
    cell_map = load_upload("Cell map", data_ingest.load_cell_map, cells_file, defaults["cell_map"])

    missing = [name for name, df in [
        ("SKU reference", reference),
        ("capacity by category", cap_by_cat),
        ("capacity by category and role", cap_by_role),
        ("cell map", cell_map),
    ] if df is None]
    if missing:
        st.warning(f"Missing tables: {', '.join(missing)}")
        return

    if inventory_file is None:
        st.info("Upload a stock file to calculate fill.")
        return

    try:
        inventory = data_ingest.load_inventory_file(inventory_file)
    except ValueError as exc:
        st.error(f"File error: {exc}")
        return

    sort_cols = st.columns([2, 1, 2, 1, 1])
    with sort_cols[0]:
        st.selectbox(
            "Sort by", capacity.SORT_KEYS, key="sort_key", format_func=lambda k: SORT_LABELS.get(k, k)
        )
    with sort_cols[1]:
        st.checkbox("Descending", key="sort_desc")
    with sort_cols[2]:
        st.text_input("Search category", key="category_query")
    with sort_cols[3]:
        st.checkbox("Hide empty", key="hide_zero")
    with sort_cols[4]:
        st.checkbox("Hide uncategorized", key="hide_uncategorized")

    result = capacity.calculate_capacity(
        inventory, reference, cap_by_cat, cap_by_role, cell_map,
        sort_key=st.session_state["sort_key"],
        descending=st.session_state["sort_desc"],
    )
    st.session_state["capacity_result"] = result
    publish_snapshot(result)

    totals = result.totals
    metric_cols = st.columns(4)
    metric_cols[0].metric("Capacity", format_metric(totals.total_capacity, " m3"))
    metric_cols[1].metric("Stock volume", format_metric(totals.total_fact, " m3"))
    metric_cols[2].metric("Fill", format_metric(totals.fill_pct_total, "%"))
    metric_cols[3].metric("Overflow", format_metric(totals.total_overflow, " m3"))

    if result.missing_volume:
        st.warning(f"{result.missing_volume} SKUs have no unit volume and count as 0 m3.")
    if result.missing_category:
        st.caption(f"{result.missing_category} SKUs have no category.")

    shown = capacity.filter_categories(
        result.categories,
        query=st.session_state["category_query"],
        hide_zero=st.session_state["hide_zero"],
        hide_uncategorized=st.session_state["hide_uncategorized"],
    )

    st.markdown("### Categories")
    forecast_chart.render_category_chart(shown)
    st.dataframe(exports.create_category_report(result).loc[shown.index], use_container_width=True, hide_index=True)

    st.markdown("### Cell roles")
    st.dataframe(exports.create_role_report(result), use_container_width=True, hide_index=True)

    dl_cols = st.columns(2)
    with dl_cols[0]:
        st.download_button(
            "Download report (.xlsx)",
            data=exports.export_capacity_workbook(result),
            file_name="capacity_report.xlsx",
            mime=XLSX_MIME,
            key="dl_capacity_xlsx",
        )
    with dl_cols[1]:
        st.download_button(
            "Download categories (.csv)",
            data=exports.export_to_csv(exports.create_category_report(result)),
            file_name="capacity_categories.csv",
            mime="text/csv",
            key="dl_capacity_csv",
        )


# ===========================
# Forecast tab
# ===========================

def build_start_conditions(
    state, snapshot: Optional[CalcSnapshot], calculator_cells: Optional[int] = None
) -> StartConditions:
    """
    Starting point from the forecast inputs.

    Args:
        state: Session state (or any mapping with the forecast input keys)
        snapshot: Latest calculator snapshot, if any
        calculator_cells: Cell count of the calculator's cell map

    Returns:
        StartConditions; the snapshot supplies capacity and stock when it
        exists and is selected, the active-SKU override applies either way
    """
    active = float(state["start_active_skus"]) if state["override_active_skus"] else None
    manual = StartConditions(
        capacity_volume=float(state["capacity_volume"]),
        capacity_cells=float(state["capacity_cells"]),
        start_stock_volume=float(state["start_stock_volume"]),
        start_active_skus=active,
    )
    if snapshot is None or not state["use_snapshot"]:
        return manual

    cells = calculator_cells if calculator_cells else manual.capacity_cells
    return StartConditions.from_snapshot(snapshot, capacity_cells=cells, fallback=manual)


def render_start_conditions() -> StartConditions:
    snapshot = latest_snapshot()

    st.markdown("**Starting point**")
    if snapshot is not None:
        st.checkbox("Use calculator snapshot", key="use_snapshot")
        st.caption(
            f"Snapshot {snapshot.saved_at[:19]}: capacity {snapshot.totals.total_capacity:,.1f} m3, "
            f"stock {snapshot.totals.total_fact:,.1f} m3 ({snapshot.totals.fill_pct_total:.1f}%)"
        )
    else:
        st.caption("No calculator snapshot yet, using the values below.")

    use_snapshot = snapshot is not None and st.session_state["use_snapshot"]
    cols = st.columns(4)
    cols[0].number_input(
        "Capacity (m3)", min_value=0.0, step=1.0, key="capacity_volume", disabled=use_snapshot
    )
    cols[1].number_input("Capacity (cells)", min_value=0.0, step=1.0, key="capacity_cells")
    cols[2].number_input(
        "Starting stock (m3)", min_value=0.0, step=1.0, key="start_stock_volume", disabled=use_snapshot
    )
    with cols[3]:
        st.checkbox(
            "Set active SKU cells", key="override_active_skus",
            help="Otherwise estimated from volume fill",
        )
        st.number_input(
            "Active SKU cells (optional)", min_value=0.0, step=1.0, key="start_active_skus",
            disabled=not st.session_state["override_active_skus"],
        )

    result = st.session_state.get("capacity_result")
    calculator_cells = result.total_cells if result is not None else None
    return build_start_conditions(st.session_state, snapshot, calculator_cells)


def render_parameters() -> SimulationParameters:
    st.markdown("**Rates**")
    cols = st.columns(4)
    cols[0].slider(
        "YoY growth", config.MIN_GROWTH_YOY, config.MAX_GROWTH_YOY, step=0.01, key="growth_yoy",
        help="Annual growth of wave volumes, compounded monthly",
    )
    cols[1].slider(
        "Sell-through / month", config.MIN_SELL_THRU, config.MAX_SELL_THRU, step=0.005, key="sell_thru",
    )
    cols[2].number_input("SS coefficient (Apr-Sep)", min_value=0.0, step=0.05, key="coef_ss")
    cols[3].number_input("FW coefficient (Oct-Mar)", min_value=0.0, step=0.05, key="coef_fw")

    st.markdown("**SKU turnover**")
    cols = st.columns(4)
    cols[0].number_input(
        "Avg new SKU volume (m3)", min_value=config.MIN_AVG_NEW_SKU_M3, step=0.005, format="%.3f",
        key="avg_new_sku_volume",
    )
    cols[1].slider("Cell turnover efficiency", 0.0, 1.0, step=0.01, key="cell_turnover_efficiency")
    cols[2].number_input(
        "Protected months", min_value=0, max_value=config.MAX_PROTECT_MONTHS, step=1, key="protect_months",
        help="New SKUs offset cell closures this many months after arrival",
    )
    cols[3].slider(
        "Horizon (months)", config.MIN_HORIZON_MONTHS, config.MAX_HORIZON_MONTHS, step=1, key="horizon_months",
    )

    cols = st.columns(3)
    cols[0].checkbox("Blend with history", key="use_calibration")
    cols[1].slider(
        "History weight", 0.0, 1.0, step=0.05, key="blend_weight",
        disabled=not st.session_state["use_calibration"],
    )
    cols[2].selectbox(
        "Co-scheduled wave share",
        [config.SHARE_POLICY_VOLUME_WEIGHTED, config.SHARE_POLICY_SIMPLE_MEAN],
        key="share_policy",
        format_func=lambda p: p.replace("_", " ").capitalize(),
    )

    today = date.today()
    return SimulationParameters(
        growth_yoy=float(st.session_state["growth_yoy"]),
        sell_thru=float(st.session_state["sell_thru"]),
        coef_ss=float(st.session_state["coef_ss"]),
        coef_fw=float(st.session_state["coef_fw"]),
        avg_new_sku_volume=float(st.session_state["avg_new_sku_volume"]),
        cell_turnover_efficiency=float(st.session_state["cell_turnover_efficiency"]),
        protect_months=int(st.session_state["protect_months"]),
        horizon_months=int(st.session_state["horizon_months"]),
        use_calibration=bool(st.session_state["use_calibration"]),
        blend_weight=float(st.session_state["blend_weight"]),
        share_policy=st.session_state["share_policy"],
        base_year=today.year,
        base_month=today.month - 1,
    )


def render_calibration_panel():
    with st.expander("Historical calibration"):
        st.caption(
            "Sales (date dd.mm.yyyy or a spreadsheet date, SKU, qty), "
            "movements (SKU, opening, inbound) and unit volumes."
        )
        cols = st.columns(3)
        sales_file = cols[0].file_uploader("Sales", type=["csv", "xlsx"], key="upload_sales")
        moves_file = cols[1].file_uploader("Movements", type=["csv", "xlsx"], key="upload_movements")
        volume_file = cols[2].file_uploader("Unit volumes", type=["csv", "xlsx"], key="upload_volumes")

        if st.button("Calibrate", key="run_calibration"):
            outcome = run_calibration(st.session_state["calibration"], sales_file, moves_file, volume_file)
            st.session_state["calibration"] = outcome.estimate
            st.session_state["calibration_ok"] = outcome.ok
            st.session_state["calibration_message"] = outcome.message
            if outcome.report is not None:
                st.session_state["calibration_report"] = outcome.report

        message = st.session_state["calibration_message"]
        if message:
            if st.session_state["calibration_ok"]:
                st.success(message)
            else:
                st.error(message)

        st.caption(f"History: {st.session_state['calibration'].format_summary()}")

        report = st.session_state["calibration_report"]
        if report is not None:
            for warning in report.warnings:
                st.warning(warning)
            if report.skus_without_volume:
                st.caption(f"{report.skus_without_volume} SKUs had no unit volume.")
            monthly = pd.DataFrame(
                list(report.monthly_sales_volume.items()), columns=["month", "sales_m3"]
            )
            st.dataframe(monthly, use_container_width=True, hide_index=True)


def _wave_key(field_name: str, index: int) -> str:
    return f"wave_{st.session_state['wave_editor_rev']}_{index}_{field_name}"


def _bump_wave_editor():
    st.session_state["wave_editor_rev"] += 1


def add_wave():
    today = date.today()
    st.session_state["waves"].add(year=today.year, month_index=today.month - 1)
    _bump_wave_editor()


def remove_wave(index: int):
    st.session_state["waves"].remove(index)
    _bump_wave_editor()


def update_wave(index: int, field_name: str):
    value = st.session_state[_wave_key(field_name, index)]
    if field_name == "month_index":
        value = config.MONTH_LABELS.index(value)
    st.session_state["waves"].update(index, **{field_name: value})


def render_wave_row(index: int, wave: SupplyWave):
    cols = st.columns([2, 1, 1, 1, 2, 2, 1])
    cols[0].text_input(
        "Label", value=wave.label, key=_wave_key("label", index),
        on_change=update_wave, args=(index, "label"), label_visibility="collapsed",
    )
    cols[1].selectbox(
        "Season", config.SEASONS, index=config.SEASONS.index(wave.season),
        key=_wave_key("season", index), on_change=update_wave, args=(index, "season"),
        label_visibility="collapsed",
    )
    cols[2].number_input(
        "Year", min_value=2000, max_value=2100, value=int(wave.year), step=1,
        key=_wave_key("year", index), on_change=update_wave, args=(index, "year"),
        label_visibility="collapsed",
    )
    cols[3].selectbox(
        "Month", config.MONTH_LABELS, index=int(wave.month_index),
        key=_wave_key("month_index", index), on_change=update_wave, args=(index, "month_index"),
        label_visibility="collapsed",
    )
    cols[4].number_input(
        "Volume (m3)", min_value=0.0, value=float(wave.base_volume), step=5.0,
        key=_wave_key("base_volume", index), on_change=update_wave, args=(index, "base_volume"),
        label_visibility="collapsed",
    )
    cols[5].slider(
        "New SKU share", 0.0, 1.0, value=float(wave.new_sku_share), step=0.05,
        key=_wave_key("new_sku_share", index), on_change=update_wave, args=(index, "new_sku_share"),
        label_visibility="collapsed",
    )
    cols[6].button("Remove", key=_wave_key("remove", index), on_click=remove_wave, args=(index,))


def render_wave_editor():
    st.markdown("**Supply waves**")
    schedule: WaveSchedule = st.session_state["waves"]

    header = st.columns([2, 1, 1, 1, 2, 2, 1])
    for col, title in zip(header, ["Label", "Season", "Year", "Month", "Volume (m3)", "New SKU share", ""]):
        col.caption(title)

    for index, wave in enumerate(schedule):
        render_wave_row(index, wave)

    st.button("Add wave", key="add_wave", on_click=add_wave)


def render_forecast_result(result: ForecastResult):
    markers = result.markers
    cols = st.columns(3)
    cols[0].metric("First month >= 80%", markers.first80 or "-")
    cols[1].metric("First month >= 100%", markers.first100 or "-")
    if result.rates is not None:
        cols[2].metric("Effective sell-through", f"{result.rates.sell_thru * 100:.1f}%")

    if not result.ok:
        st.error(f"Simulation failed: {result.error}")
        return

    forecast_chart.render_forecast_chart(result)

    table = exports.forecast_to_dataframe(result)
    st.dataframe(table, use_container_width=True, hide_index=True)

    dl_cols = st.columns(2)
    with dl_cols[0]:
        st.download_button(
            "Download forecast (.csv)",
            data=exports.export_forecast_csv(result),
            file_name="forecast.csv",
            mime="text/csv",
            key="dl_forecast_csv",
        )
    with dl_cols[1]:
        download_excel("Download forecast (.xlsx)", table, "forecast.xlsx", key="dl_forecast_xlsx")


def render_forecast_tab():
    st.subheader("Fill forecast")

    start = render_start_conditions()
    params = render_parameters()

    for issue in params.validate():
        if issue.startswith("WARNING"):
            st.warning(issue.replace("WARNING: ", ""))

    render_calibration_panel()
    render_wave_editor()

    calibration = st.session_state["calibration"]
    result = simulate(params, start, st.session_state["waves"], calibration)

    st.markdown("---")
    render_forecast_result(result)


def main():
    st.set_page_config(page_title=APP_TITLE, layout="wide")
    init_session_state()

    st.title(APP_TITLE)
    st.caption(APP_TAGLINE)

    calc_tab, forecast_tab = st.tabs(["Calculator", "Forecast"])
    with calc_tab:
        render_calculator_tab()
    with forecast_tab:
        render_forecast_tab()


if __name__ == "__main__":
    main()
