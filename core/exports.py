"""
Export utilities for calculator and forecast outputs.

CSV for the monthly forecast (stable column names, fixed rounding) and
Excel workbooks for the capacity report.
"""
import io
from typing import Union

import pandas as pd

from config import warehouse as config
from core.capacity import CapacityResult
from core.forecast import ForecastResult

VOLUME_COLUMNS = ["arrivals", "sales", "stockEnd", "activeSkusEnd"]
PCT_COLUMNS = ["pctM3", "pctCells"]
INT_COLUMNS = ["newSkus", "closedSkus"]


def forecast_to_dataframe(result: ForecastResult) -> pd.DataFrame:
    """
    Monthly forecast rows as a DataFrame.

    Columns follow config.FORECAST_EXPORT_COLUMNS; volumes are rounded to
    EXPORT_VOLUME_DECIMALS and percentages to EXPORT_PCT_DECIMALS.

    Args:
        result: Output of forecast.simulate

    Returns:
        DataFrame, empty (with headers) for a failed run
    """
    df = pd.DataFrame(result.records(), columns=config.FORECAST_EXPORT_COLUMNS)
    if df.empty:
        return df

    df[VOLUME_COLUMNS] = df[VOLUME_COLUMNS].astype(float).round(config.EXPORT_VOLUME_DECIMALS)
    df[PCT_COLUMNS] = df[PCT_COLUMNS].astype(float).round(config.EXPORT_PCT_DECIMALS)
    df[INT_COLUMNS] = df[INT_COLUMNS].astype(int)
    return df


def export_forecast_csv(result: ForecastResult) -> bytes:
    """Forecast rows as comma-separated UTF-8 bytes with a header line."""
    df = forecast_to_dataframe(result)
    return df.to_csv(index=False).encode("utf-8")


def parse_forecast_csv(data: Union[bytes, str]) -> pd.DataFrame:
    """Read a CSV produced by export_forecast_csv back into a DataFrame."""
    if isinstance(data, bytes):
        data = data.decode("utf-8")
    df = pd.read_csv(io.StringIO(data), dtype={"ym": str, "month": str, "labels": str}, keep_default_na=False)
    for col in VOLUME_COLUMNS + PCT_COLUMNS:
        df[col] = df[col].astype(float)
    for col in INT_COLUMNS:
        df[col] = df[col].astype(int)
    return df


def create_category_report(result: CapacityResult) -> pd.DataFrame:
    """Category vs capacity table for export."""
    df = result.categories.copy()
    for col in ["volume_cbm", "capacity_cbm", "overflow_cbm"]:
        df[col] = df[col].astype(float).round(config.EXPORT_VOLUME_DECIMALS)
    df["fill_pct"] = df["fill_pct"].apply(
        lambda v: None if v is None else round(float(v), config.EXPORT_PCT_DECIMALS)
    )
    return df


def create_role_report(result: CapacityResult) -> pd.DataFrame:
    """Allocated volume per cell role for export."""
    df = result.roles.copy()
    if df.empty:
        return df
    df["allocated_cbm"] = df["allocated_cbm"].astype(float).round(config.EXPORT_VOLUME_DECIMALS)
    df["pct_of_total_capacity"] = df["pct_of_total_capacity"].astype(float).round(config.EXPORT_PCT_DECIMALS)
    return df


def create_totals_report(result: CapacityResult) -> pd.DataFrame:
    """One-row summary of warehouse totals."""
    totals = result.totals
    return pd.DataFrame([{
        "total_capacity_m3": round(totals.total_capacity, config.EXPORT_VOLUME_DECIMALS),
        "total_fact_m3": round(totals.total_fact, config.EXPORT_VOLUME_DECIMALS),
        "fill_pct_total": round(totals.fill_pct_total, config.EXPORT_PCT_DECIMALS),
        "total_overflow_m3": round(totals.total_overflow, config.EXPORT_VOLUME_DECIMALS),
        "total_cells": result.total_cells,
        "skus_missing_volume": result.missing_volume,
        "skus_missing_category": result.missing_category,
    }])


def export_to_csv(df: pd.DataFrame) -> bytes:
    """Export DataFrame to CSV bytes for download."""
    return df.to_csv(index=False).encode("utf-8")


def export_to_excel(df: pd.DataFrame, sheet_name: str = "Sheet1") -> bytes:
    """
    Export DataFrame to Excel bytes for download.

    Args:
        df: DataFrame to export
        sheet_name: Name of the Excel sheet

    Returns:
        Excel file as bytes
    """
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)
    return output.getvalue()


def export_multi_sheet_excel(sheets: dict) -> bytes:
    """
    Export multiple DataFrames to a single Excel file with multiple sheets.

    Args:
        sheets: Dict of {sheet_name: dataframe}

    Returns:
        Excel file as bytes
    """
    output = io.BytesIO()
    with pd.ExcelWriter(output, engine='openpyxl') as writer:
        for sheet_name, df in sheets.items():
            df.to_excel(writer, sheet_name=sheet_name, index=False)
    return output.getvalue()


def export_capacity_workbook(result: CapacityResult) -> bytes:
    """Full calculator report: totals, categories, roles and SKU volumes."""
    return export_multi_sheet_excel({
        "Totals": create_totals_report(result),
        "Categories": create_category_report(result),
        "Roles": create_role_report(result),
        "SKU volumes": result.sku_volumes,
    })
