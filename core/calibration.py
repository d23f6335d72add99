"""
Historical calibration of forecast rates.

Derives sell-through, seasonal coefficients and the new-SKU share from
three exports:
- Sales: date (dd.mm.yyyy or a spreadsheet date), SKU, pieces sold
- Movements: SKU, opening stock, inbound pieces
- Volume reference: SKU, unit volume (m3)

Everything is measured in volume (pieces x unit volume). Growth is not
derived from history and stays at 0.

Usage Example:
    from core.calibration import run_calibration, CalibrationEstimate

    outcome = run_calibration(CalibrationEstimate(), "sales.csv", "moves.csv", "volumes.xlsx")
    if outcome.ok:
        print(outcome.estimate)
    else:
        print(outcome.message)
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd

from config import warehouse as config
from core import data_ingest

logger = logging.getLogger(__name__)

ISO_DATE_PATTERN = re.compile(r"^(\d{4})-(\d{1,2})-\d{1,2}(?:[ T].*)?$")


class CalibrationError(ValueError):
    """History files cannot support an estimate."""


@dataclass
class CalibrationEstimate:
    """Rates derived from history (or defaults before any calibration)."""
    sell_thru: float = config.DEFAULT_HIST_SELL_THRU
    coef_ss: float = config.DEFAULT_HIST_COEF_SS
    coef_fw: float = config.DEFAULT_HIST_COEF_FW
    share_new: float = config.DEFAULT_HIST_SHARE_NEW
    growth_yoy: float = config.DEFAULT_HIST_GROWTH_YOY

    def format_summary(self) -> str:
        return (
            f"sell-thru ~ {self.sell_thru * 100:.1f}%, SS ~ {self.coef_ss:.2f}, "
            f"FW ~ {self.coef_fw:.2f}, new SKUs ~ {self.share_new * 100:.0f}%"
        )


@dataclass
class CalibrationReport:
    """
    Estimate plus the intermediate figures it was derived from.

    Attributes:
        estimate: Derived rates
        monthly_sales_volume: {"YYYY-MM": m3 sold}, chronological
        total_opening_volume: Opening stock volume (m3)
        avg_monthly_sales_volume: Mean of monthly_sales_volume
        skus_without_volume: Sold or stocked SKUs missing from the volume reference
        skipped_sales_rows: Sales rows without a usable date
        warnings: Fallbacks that were applied
    """
    estimate: CalibrationEstimate
    monthly_sales_volume: Dict[str, float]
    total_opening_volume: float
    avg_monthly_sales_volume: float
    skus_without_volume: int = 0
    skipped_sales_rows: int = 0
    warnings: list[str] = field(default_factory=list)


@dataclass
class CalibrationOutcome:
    estimate: CalibrationEstimate
    ok: bool
    message: str
    report: Optional[CalibrationReport] = None


def parse_sales_month(value) -> Optional[Tuple[int, int]]:
    """
    Extract (year, month) from a sales date.

    Text dates are `dd.mm.yyyy`. Spreadsheet dates arrive either as
    datetime objects or, when the sheet is read as text, in ISO form
    (`yyyy-mm-dd[ hh:mm:ss]`). Returns None when no year/month can be read.
    """
    if isinstance(value, (datetime, date, pd.Timestamp)):
        if pd.isna(value):
            return None
        return value.year, value.month
    if not isinstance(value, str):
        return None

    text = value.strip()
    iso = ISO_DATE_PATTERN.match(text)
    if iso:
        year, month = int(iso.group(1)), int(iso.group(2))
    else:
        parts = text.split(config.SALES_DATE_SEPARATOR)
        if len(parts) < 3:
            return None
        try:
            month = int(parts[1])
            year = int(parts[2].strip().split()[0])
        except (ValueError, IndexError):
            return None
    if not 1 <= month <= 12:
        return None
    return year, month


def build_volume_lookup(volumes: pd.DataFrame) -> Dict[str, float]:
    """SKU -> unit volume, keeping only positive volumes (last row wins)."""
    positive = volumes[(volumes["sku"] != "") & (volumes["unit_volume"] > 0)]
    return dict(zip(positive["sku"], positive["unit_volume"].astype(float)))


def monthly_sales_volume(sales: pd.DataFrame, lookup: Dict[str, float]) -> Tuple[Dict[str, float], int]:
    """
    Sum sold volume per calendar month.

    SKUs without a unit volume contribute zero volume but still open
    their month's bucket.

    Returns:
        ({"YYYY-MM": volume}, number of rows skipped for lack of a date)
    """
    buckets: Dict[str, float] = {}
    skipped = 0

    for row in sales.itertuples(index=False):
        ym = parse_sales_month(row.date)
        if ym is None:
            skipped += 1
            continue
        key = f"{ym[0]}-{ym[1]:02d}"
        buckets[key] = buckets.get(key, 0.0) + float(row.qty) * lookup.get(row.sku, 0.0)

    return dict(sorted(buckets.items())), skipped


def estimate_from_frames(
    sales: pd.DataFrame,
    movements: pd.DataFrame,
    volumes: pd.DataFrame,
) -> CalibrationReport:
    """
    Derive a CalibrationEstimate from harmonized history tables.

    - sell-through = average monthly sales volume / opening stock volume
    - SS / FW coefficient = average of the season's months / overall average
      (SS = April..September)
    - new-SKU share = inbound of SKUs with zero opening stock / all inbound

    Args:
        sales: date, sku, qty
        movements: sku, opening_qty, inbound_qty
        volumes: sku, unit_volume

    Returns:
        CalibrationReport

    Raises:
        CalibrationError: If no sales month could be formed
    """
    lookup = build_volume_lookup(volumes)
    warnings = []

    opening_volume = movements["opening_qty"] * movements["sku"].map(lookup).fillna(0.0)
    total_opening_volume = float(opening_volume.sum())

    monthly, skipped = monthly_sales_volume(sales, lookup)
    if not monthly:
        raise CalibrationError("No sales volume data found: the sales file has no rows with a readable date (dd.mm.yyyy)")

    values = np.array(list(monthly.values()), dtype=float)
    avg_monthly = float(values.mean())

    if total_opening_volume > 0:
        sell_thru = avg_monthly / total_opening_volume
    else:
        sell_thru = config.FALLBACK_SELL_THRU
        warnings.append(f"Opening stock volume is zero, sell-through set to {sell_thru:.0%}")

    ss = [vol for ym, vol in monthly.items() if int(ym.split("-")[1]) in config.SS_MONTHS]
    fw = [vol for ym, vol in monthly.items() if int(ym.split("-")[1]) not in config.SS_MONTHS]
    avg_ss = float(np.mean(ss)) if ss else avg_monthly
    avg_fw = float(np.mean(fw)) if fw else avg_monthly

    if avg_monthly > 0:
        coef_ss = avg_ss / avg_monthly
        coef_fw = avg_fw / avg_monthly
    else:
        coef_ss = coef_fw = config.FALLBACK_SEASON_COEF
        warnings.append("Sales volume is zero, seasonal coefficients set to 1.0")

    new_mask = (movements["opening_qty"] == 0) & (movements["inbound_qty"] > 0)
    new_inbound = float(movements.loc[new_mask, "inbound_qty"].sum())
    total_inbound = float(movements["inbound_qty"].sum())
    if total_inbound > 0:
        share_new = new_inbound / total_inbound
    else:
        share_new = config.FALLBACK_SHARE_NEW
        warnings.append(f"No inbound movements, new-SKU share set to {share_new:.0%}")

    known = set(lookup)
    seen = set(sales["sku"]) | set(movements["sku"])
    seen.discard("")
    skus_without_volume = len(seen - known)

    for warning in warnings:
        logger.warning(warning)
    if skus_without_volume:
        logger.warning("%d SKUs have no unit volume and count as zero volume", skus_without_volume)
    if skipped:
        logger.info("Skipped %d sales rows without a usable date", skipped)

    return CalibrationReport(
        estimate=CalibrationEstimate(
            sell_thru=sell_thru,
            coef_ss=coef_ss,
            coef_fw=coef_fw,
            share_new=share_new,
            growth_yoy=0.0,
        ),
        monthly_sales_volume=monthly,
        total_opening_volume=total_opening_volume,
        avg_monthly_sales_volume=avg_monthly,
        skus_without_volume=skus_without_volume,
        skipped_sales_rows=skipped,
        warnings=warnings,
    )


def run_calibration(previous: CalibrationEstimate, sales_src, movements_src, volume_src) -> CalibrationOutcome:
    """
    Load the three history files and derive a new estimate.

    The previous estimate is returned untouched on any failure, so a bad
    upload never leaves a half-updated calibration behind.

    Args:
        previous: Estimate currently in use
        sales_src: Sales file (path, upload or DataFrame)
        movements_src: Movements file
        volume_src: Volume reference (CSV or XLSX)

    Returns:
        CalibrationOutcome
    """
    if sales_src is None or movements_src is None or volume_src is None:
        return CalibrationOutcome(
            estimate=previous,
            ok=False,
            message="Select all three files (sales, movements, volume reference).",
        )

    try:
        sales = data_ingest.load_sales_file(sales_src)
        movements = data_ingest.load_movements_file(movements_src)
        volumes = data_ingest.load_volume_reference(volume_src)
        report = estimate_from_frames(sales, movements, volumes)
    except CalibrationError as exc:
        return CalibrationOutcome(estimate=previous, ok=False, message=str(exc))
    except ValueError as exc:
        logger.warning("Calibration input rejected: %s", exc)
        return CalibrationOutcome(estimate=previous, ok=False, message=f"Calibration failed: {exc}")
    except Exception:
        logger.exception("Calibration failed")
        return CalibrationOutcome(
            estimate=previous,
            ok=False,
            message="Calibration failed. Check the file formats.",
        )

    return CalibrationOutcome(
        estimate=report.estimate,
        ok=True,
        message="Volume calibration complete.",
        report=report,
    )
