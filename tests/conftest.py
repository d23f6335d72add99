import pandas as pd
import pytest

from core.forecast import SimulationParameters, StartConditions
from core.waves import SupplyWave, WaveSchedule


@pytest.fixture
def flat_params() -> SimulationParameters:
    """January 2025 start, no growth, no seasonality, no calibration."""
    return SimulationParameters(
        growth_yoy=0.0,
        sell_thru=0.1,
        coef_ss=1.0,
        coef_fw=1.0,
        avg_new_sku_volume=0.5,
        cell_turnover_efficiency=0.0,
        protect_months=0,
        horizon_months=12,
        use_calibration=False,
        base_year=2025,
        base_month=0,
    )


@pytest.fixture
def start() -> StartConditions:
    return StartConditions(capacity_volume=400, capacity_cells=1000, start_stock_volume=100)


@pytest.fixture
def single_wave() -> WaveSchedule:
    return WaveSchedule([
        SupplyWave(label="W1", season="FW", year=2025, month_index=0, base_volume=100, new_sku_share=0.5),
    ])


@pytest.fixture
def inventory() -> pd.DataFrame:
    return pd.DataFrame({"sku": ["A", "B", "C"], "qty_pcs": [10.0, 5.0, 3.0]})


@pytest.fixture
def reference() -> pd.DataFrame:
    return pd.DataFrame({
        "sku": ["A", "B"],
        "pcs_per_mc": [10.0, 20.0],
        "pcs_cbm": [0.1, 0.2],
        "mc_cbm": [1.0, 4.0],
        "category": ["Куртка мужская", "Термоноски детские"],
    })


@pytest.fixture
def capacity_by_category() -> pd.DataFrame:
    return pd.DataFrame({"category": ["куртки", "Носки"], "capacity_cbm": [0.5, 2.0]})


@pytest.fixture
def capacity_by_category_role() -> pd.DataFrame:
    return pd.DataFrame({
        "category": ["Куртки", "Куртки", "Носки"],
        "role": ["pick", "overstock", "pick"],
        "capacity_cbm": [0.3, 0.1, 2.0],
    })


@pytest.fixture
def cell_map() -> pd.DataFrame:
    return pd.DataFrame({
        "role": ["pick", "pick", "attic"],
        "cell_id": ["A-01", "A-02", "Z-01"],
        "cell_volume_m3": [1.0, 1.0, 1.0],
        "category": ["Куртки", "Носки", ""],
    })
