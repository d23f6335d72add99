import pandas as pd

from core.forecast import ForecastResult, simulate
from visualization.forecast_chart import build_category_fill_figure, build_forecast_figure, fill_color


def test_forecast_figure_has_both_series(flat_params, start, single_wave):
    fig = build_forecast_figure(simulate(flat_params, start, single_wave))
    assert [trace.name for trace in fig.data] == ["% by m3", "% by cells"]
    assert len(fig.data[0].x) == 12
    assert len(fig.layout.shapes) == 2
    assert {shape.y0 for shape in fig.layout.shapes} == {80, 100}


def test_empty_result_figure():
    fig = build_forecast_figure(ForecastResult())
    assert len(fig.data) == 0


def test_category_figure_skips_missing_fill():
    categories = pd.DataFrame({
        "category": ["Куртки", "Носки", "Обувь"],
        "volume_cbm": [1.0, 1.0, 2.0],
        "capacity_cbm": [0.5, 2.0, 0.0],
        "fill_pct": [200.0, 50.0, None],
        "overflow_cbm": [0.5, 0.0, 2.0],
    })
    fig = build_category_fill_figure(categories)
    assert list(fig.data[0].y) == ["Куртки", "Носки"]


def test_fill_color_bands():
    assert fill_color(50) != fill_color(85) != fill_color(120)
    assert fill_color(None) == "#adb5bd"
