"""
Monthly warehouse fill forecast.

Projects stock volume and occupied SKU cells month by month from a
starting snapshot:

1. Waves scheduled for the month arrive (base volume x compounded growth)
2. Seasonal sell-through removes a share of the stock on hand
3. New SKUs from the arrivals open cells
4. Cells close in proportion to the share of stock sold, less the SKUs
   onboarded exactly `protect_months` months earlier
5. Fill % by volume and by cells is recorded, together with the first
   months crossing 80% and 100%

A run is a single deterministic pass over the horizon. State is rebuilt
from the start conditions on every call, so callers can re-run as often
as inputs change.

Usage Example:
    from core.forecast import SimulationParameters, StartConditions, simulate
    from core.waves import default_schedule

    params = SimulationParameters(base_year=2025, base_month=0)
    start = StartConditions(capacity_volume=400, capacity_cells=1000, start_stock_volume=100)
    result = simulate(params, start, default_schedule(2025))
    print(result.markers.first80, result.markers.first100)
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional

from config import warehouse as config
from core.blending import BlendedRates, blend_rates
from core.calibration import CalibrationEstimate
from core.snapshot_store import CalcSnapshot
from core.waves import WaveSchedule

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    """Round to the nearest integer with halves rounded up (2.5 -> 3, -2.5 -> -2)."""
    return int(math.floor(value + 0.5))


@dataclass
class SimulationParameters:
    """
    Manually configured forecast inputs.

    Rates:
        growth_yoy: Annual growth of wave volumes (0.15 = +15%)
        sell_thru: Share of stock on hand sold per month, before seasonality
        coef_ss: Sales multiplier for April..September
        coef_fw: Sales multiplier for October..March

    SKU turnover:
        avg_new_sku_volume: Average volume of one new SKU (m3)
        cell_turnover_efficiency: Share of the sold fraction that frees cells
        protect_months: Months a new SKU batch waits before it offsets closures

    Run:
        horizon_months: Number of months simulated
        base_year, base_month: First simulated month (defaults to today)
        use_calibration, blend_weight: Mixing with historical estimates
        share_policy: How co-scheduled waves combine their new-SKU share
    """
    growth_yoy: float = config.DEFAULT_GROWTH_YOY
    sell_thru: float = config.DEFAULT_SELL_THRU
    coef_ss: float = config.DEFAULT_COEF_SS
    coef_fw: float = config.DEFAULT_COEF_FW
    avg_new_sku_volume: float = config.DEFAULT_AVG_NEW_SKU_M3
    cell_turnover_efficiency: float = config.DEFAULT_CELL_TURNOVER_EFFICIENCY
    protect_months: int = config.DEFAULT_PROTECT_MONTHS
    horizon_months: int = config.DEFAULT_HORIZON_MONTHS
    use_calibration: bool = config.DEFAULT_USE_CALIBRATION
    blend_weight: float = config.DEFAULT_BLEND_WEIGHT
    share_policy: str = config.DEFAULT_SHARE_POLICY
    base_year: Optional[int] = None
    base_month: Optional[int] = None

    def validate(self) -> list[str]:
        """
        Validate inputs and return list of warnings/errors.

        Returns:
            List of validation messages (empty if all valid)
        """
        issues = []

        if self.growth_yoy <= -1:
            issues.append(f"ERROR: growth_yoy must be greater than -100% (got {self.growth_yoy})")
        if self.horizon_months < 0:
            issues.append(f"ERROR: horizon_months cannot be negative (got {self.horizon_months})")
        if self.protect_months < 0:
            issues.append(f"ERROR: protect_months cannot be negative (got {self.protect_months})")
        if self.base_month is not None and not 0 <= self.base_month <= 11:
            issues.append(f"ERROR: base_month must be 0..11 (got {self.base_month})")

        if self.avg_new_sku_volume <= 0:
            issues.append(f"WARNING: avg_new_sku_volume {self.avg_new_sku_volume} is floored to {config.EPSILON}")
        if not 0 <= self.blend_weight <= 1:
            issues.append(f"WARNING: blend_weight {self.blend_weight} is clamped to 0..1")
        if self.sell_thru > 1:
            issues.append(f"WARNING: sell_thru {self.sell_thru:.0%} sells more than the stock on hand")
        if not self.horizon_months or not config.MIN_HORIZON_MONTHS <= self.horizon_months <= config.MAX_HORIZON_MONTHS:
            issues.append(
                f"WARNING: horizon_months {self.horizon_months} is outside "
                f"{config.MIN_HORIZON_MONTHS}..{config.MAX_HORIZON_MONTHS}"
            )

        return issues


@dataclass
class StartConditions:
    """Warehouse state the forecast starts from."""
    capacity_volume: float = config.DEFAULT_CAPACITY_M3
    capacity_cells: float = config.DEFAULT_CAPACITY_CELLS
    start_stock_volume: float = config.DEFAULT_START_STOCK_M3
    start_active_skus: Optional[float] = None  # manual override of the proportional estimate

    @classmethod
    def from_snapshot(
        cls,
        snapshot: Optional[CalcSnapshot],
        capacity_cells: Optional[float] = None,
        fallback: Optional["StartConditions"] = None,
    ) -> "StartConditions":
        """
        Take capacity and starting stock from the calculator's snapshot.

        Cells are not part of the snapshot; they come from the caller or
        the fallback.
        """
        base = fallback or cls()
        cells = base.capacity_cells if capacity_cells is None else capacity_cells
        if snapshot is None:
            return cls(base.capacity_volume, cells, base.start_stock_volume, base.start_active_skus)
        return cls(
            capacity_volume=snapshot.totals.total_capacity,
            capacity_cells=cells,
            start_stock_volume=snapshot.totals.total_fact,
            start_active_skus=base.start_active_skus,
        )


@dataclass(frozen=True)
class Month:
    ym: str
    year: int
    month_index: int

    @property
    def label(self) -> str:
        return config.MONTH_LABELS[self.month_index % 12]


def ym_key(year: int, month_index: int) -> str:
    return f"{year}-{month_index + 1:02d}"


def month_sequence(base_year: int, base_month: int, horizon: int) -> List[Month]:
    """Consecutive calendar months starting at (base_year, base_month)."""
    months = []
    year, month = base_year, base_month
    for _ in range(max(0, int(horizon))):
        months.append(Month(ym=ym_key(year, month), year=year, month_index=month))
        month += 1
        if month >= 12:
            month = 0
            year += 1
    return months


def is_ss_month(month_index: int) -> bool:
    return month_index in config.SS_MONTH_INDEXES


def initial_active_skus(start: StartConditions) -> float:
    """
    Occupied cells at the start of the forecast.

    Without a manual count, cells are assumed to be occupied in the same
    proportion as volume, capped at all cells once stock reaches capacity.
    """
    if start.start_active_skus is not None:
        return max(0.0, float(start.start_active_skus))
    if start.start_stock_volume >= start.capacity_volume:
        return float(start.capacity_cells)
    ratio = start.start_stock_volume / max(config.EPSILON, start.capacity_volume)
    return float(round_half_up(start.capacity_cells * ratio))


@dataclass(frozen=True)
class MonthlyResult:
    """One simulated month (volumes in m3, fill in %)."""
    index: int
    ym: str
    month_label: str
    labels: str
    arrivals: float
    sales: float
    stock_end: float
    new_skus: int
    closed_skus: int
    active_skus_end: float
    pct_m3: float
    pct_cells: float

    def to_record(self) -> dict:
        return {
            "ym": self.ym,
            "month": self.month_label,
            "labels": self.labels,
            "arrivals": self.arrivals,
            "sales": self.sales,
            "stockEnd": self.stock_end,
            "newSkus": self.new_skus,
            "closedSkus": self.closed_skus,
            "activeSkusEnd": self.active_skus_end,
            "pctM3": self.pct_m3,
            "pctCells": self.pct_cells,
        }


@dataclass
class ThresholdMarkers:
    first80: Optional[str] = None
    first100: Optional[str] = None


@dataclass
class ForecastResult:
    rows: List[MonthlyResult] = field(default_factory=list)
    markers: ThresholdMarkers = field(default_factory=ThresholdMarkers)
    rates: Optional[BlendedRates] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def records(self) -> List[dict]:
        return [row.to_record() for row in self.rows]


def _check_inputs(params: SimulationParameters, waves: WaveSchedule) -> None:
    errors = [msg for msg in params.validate() if msg.startswith("ERROR")]
    for i, wave in enumerate(waves):
        errors.extend(f"{msg} (wave {i + 1} '{wave.label}')" for msg in wave.validate() if msg.startswith("ERROR"))
    if errors:
        raise ValueError("Invalid forecast inputs:\n" + "\n".join(errors))


def _run(
    params: SimulationParameters,
    start: StartConditions,
    waves: WaveSchedule,
    hist: CalibrationEstimate,
) -> ForecastResult:
    _check_inputs(params, waves)

    today = date.today()
    base_year = today.year if params.base_year is None else int(params.base_year)
    base_month = today.month - 1 if params.base_month is None else int(params.base_month)

    rates = blend_rates(params, hist)
    monthly_growth = (1 + rates.growth_yoy) ** (1 / 12) - 1
    avg_new = max(config.EPSILON, params.avg_new_sku_volume)
    low_80, low_100 = config.FILL_THRESHOLDS

    stock = float(start.start_stock_volume)
    active = initial_active_skus(start)
    window = max(0, int(math.floor(params.protect_months)))
    protected_queue = deque([0] * window, maxlen=window)

    markers = ThresholdMarkers()
    rows: List[MonthlyResult] = []

    for i, month in enumerate(month_sequence(base_year, base_month, params.horizon_months)):
        growth_factor = (1 + monthly_growth) ** i
        arrivals = waves.aggregate(
            month.year, month.month_index, growth_factor,
            fallback_share=hist.share_new, policy=params.share_policy,
        )

        season_coef = rates.coef_ss if is_ss_month(month.month_index) else rates.coef_fw
        stock_before_sales = stock + arrivals.volume
        sales = stock_before_sales * rates.sell_thru * season_coef

        new_skus = round_half_up(arrivals.volume * arrivals.new_sku_share / avg_new)
        active += new_skus

        fraction_sold = sales / stock_before_sales if stock_before_sales > 0 else 0.0
        skus_to_clear = active * fraction_sold * params.cell_turnover_efficiency

        # Batch onboarded `window` months ago offsets this month's closures
        protected_now = protected_queue.popleft() if protected_queue else 0
        closed_skus = max(0, round_half_up(skus_to_clear - protected_now))
        active = max(0.0, active - closed_skus)
        if window:
            protected_queue.append(new_skus)

        stock = max(0.0, stock_before_sales - sales)

        pct_m3 = stock / max(config.EPSILON, start.capacity_volume) * 100
        pct_cells = active / max(config.EPSILON, start.capacity_cells) * 100

        if markers.first80 is None and (pct_m3 >= low_80 or pct_cells >= low_80):
            markers.first80 = month.ym
        if markers.first100 is None and (pct_m3 >= low_100 or pct_cells >= low_100):
            markers.first100 = month.ym

        rows.append(MonthlyResult(
            index=i,
            ym=month.ym,
            month_label=month.label,
            labels=arrivals.label_text,
            arrivals=arrivals.volume,
            sales=sales,
            stock_end=stock,
            new_skus=new_skus,
            closed_skus=closed_skus,
            active_skus_end=active,
            pct_m3=pct_m3,
            pct_cells=pct_cells,
        ))

    return ForecastResult(rows=rows, markers=markers, rates=rates)


def simulate(
    params: SimulationParameters,
    start: StartConditions,
    waves: WaveSchedule,
    calibration: Optional[CalibrationEstimate] = None,
) -> ForecastResult:
    """
    Run the monthly forecast.

    Args:
        params: Manual parameters
        start: Capacity and starting stock
        waves: Supply wave schedule
        calibration: Historical estimate (defaults when not calibrated yet)

    Returns:
        ForecastResult. On any failure the result has no rows, both
        markers set to config.ERROR_MARKER and `error` describing the cause.
    """
    hist = calibration or CalibrationEstimate()
    try:
        return _run(params, start, waves, hist)
    except Exception as exc:
        logger.exception("Simulation failed")
        return ForecastResult(
            rows=[],
            markers=ThresholdMarkers(first80=config.ERROR_MARKER, first100=config.ERROR_MARKER),
            error=str(exc),
        )


def print_forecast(result: ForecastResult) -> None:
    """Print a run as a plain-text table (used by the module demo)."""
    if not result.ok:
        print(f"Simulation failed: {result.error}")
        return
    print(f"{'month':<8} {'arrivals':>9} {'sales':>8} {'stock':>8} {'new':>5} {'closed':>6} {'% m3':>7} {'% cells':>8}  waves")
    for row in result.rows:
        print(
            f"{row.ym:<8} {row.arrivals:>9.2f} {row.sales:>8.2f} {row.stock_end:>8.2f} "
            f"{row.new_skus:>5d} {row.closed_skus:>6d} {row.pct_m3:>6.1f}% {row.pct_cells:>7.1f}%  {row.labels}"
        )
    print(f"\nFirst >= 80%: {result.markers.first80 or '-'}    First >= 100%: {result.markers.first100 or '-'}")


if __name__ == "__main__":
    from core.waves import default_schedule

    logging.basicConfig(level=logging.INFO)
    demo_params = SimulationParameters()
    today = date.today()
    print_forecast(simulate(demo_params, StartConditions(), default_schedule(today.year)))
