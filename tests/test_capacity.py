import pandas as pd
import pytest

from config import warehouse as config
from core import capacity


@pytest.fixture
def result(inventory, reference, capacity_by_category, capacity_by_category_role, cell_map):
    return capacity.calculate_capacity(
        inventory, reference, capacity_by_category, capacity_by_category_role, cell_map,
    )


def test_sku_volumes(inventory, reference):
    df = capacity.compute_sku_volumes(inventory, reference).set_index("sku")
    assert df.loc["A", "volume_cbm"] == pytest.approx(1.0)
    assert df.loc["B", "volume_cbm"] == pytest.approx(1.0)
    assert df.loc["A", "category"] == "Куртки"
    assert df.loc["B", "category"] == "Носки"
    assert df.loc["C", "volume_cbm"] == 0.0
    assert df.loc["C", "category"] == config.UNCATEGORIZED


class TestCategories:
    def test_fill_and_overflow(self, result):
        df = result.categories.set_index("category")
        assert list(result.categories["category"]) == ["Куртки", "Носки"]
        assert df.loc["Куртки", "fill_pct"] == pytest.approx(200.0)
        assert df.loc["Куртки", "overflow_cbm"] == pytest.approx(0.5)
        assert df.loc["Носки", "fill_pct"] == pytest.approx(50.0)
        assert df.loc["Носки", "overflow_cbm"] == 0.0

    def test_no_capacity_has_no_fill(self, inventory, reference):
        sku_volumes = capacity.compute_sku_volumes(inventory, reference)
        caps = pd.DataFrame({"category": ["Носки"], "capacity_cbm": [4.0]})
        df = capacity.summarize_categories(sku_volumes, caps).set_index("category")
        assert df.loc["Куртки", "fill_pct"] is None
        assert df.loc["Куртки", "overflow_cbm"] == pytest.approx(1.0)

    def test_sort_ascending_by_fill(self, inventory, reference, capacity_by_category):
        sku_volumes = capacity.compute_sku_volumes(inventory, reference)
        df = capacity.summarize_categories(sku_volumes, capacity_by_category, "fill_pct", descending=False)
        assert list(df["category"]) == ["Носки", "Куртки"]

    def test_sort_by_name(self, inventory, reference, capacity_by_category):
        sku_volumes = capacity.compute_sku_volumes(inventory, reference)
        df = capacity.summarize_categories(sku_volumes, capacity_by_category, "category", descending=False)
        assert list(df["category"]) == sorted(df["category"])

    def test_unknown_sort_key(self, inventory, reference, capacity_by_category):
        sku_volumes = capacity.compute_sku_volumes(inventory, reference)
        with pytest.raises(ValueError):
            capacity.summarize_categories(sku_volumes, capacity_by_category, "weight")


def test_role_allocation_fills_in_order(result):
    alloc = result.role_allocation
    jackets = alloc[alloc["category"] == "Куртки"]
    assert list(jackets["role"]) == ["pick", "overstock", config.OVERFLOW_ROLE]
    assert list(jackets["allocated_cbm"]) == pytest.approx([0.3, 0.1, 0.6])

    socks = alloc[alloc["category"] == "Носки"]
    assert list(socks["role"]) == ["pick"]
    assert socks["allocated_cbm"].iloc[0] == pytest.approx(1.0)


def test_role_summary(result):
    roles = result.roles.set_index("role")
    assert roles.loc["pick", "allocated_cbm"] == pytest.approx(1.3)
    assert roles.loc["pick", "pct_of_total_capacity"] == pytest.approx(1.3 / 3.0 * 100)


def test_totals(result):
    totals = result.totals
    assert totals.total_capacity == pytest.approx(3.0)
    assert totals.total_fact == pytest.approx(2.0)
    assert totals.fill_pct_total == pytest.approx(200 / 3)
    assert totals.total_overflow == 0.0
    assert result.total_cells == 3
    assert result.missing_volume == 1
    assert result.missing_category == 1


def test_totals_without_cells(inventory, reference):
    sku_volumes = capacity.compute_sku_volumes(inventory, reference)
    empty = pd.DataFrame({"cell_volume_m3": pd.Series([], dtype=float)})
    totals = capacity.compute_totals(sku_volumes, empty)
    assert totals.fill_pct_total == 0.0
    assert totals.total_overflow == pytest.approx(2.0)


def test_snapshot_carries_totals(result):
    snapshot = result.to_snapshot()
    assert snapshot.totals == result.totals
    assert snapshot.schema_version == config.SNAPSHOT_SCHEMA_VERSION
    assert snapshot.saved_at


class TestFilter:
    @pytest.fixture
    def table(self):
        return pd.DataFrame({
            "category": ["Куртки", "Носки", config.UNCATEGORIZED, "Пусто"],
            "volume_cbm": [1.0, 1.0, 0.5, 0.0],
            "capacity_cbm": [0.5, 2.0, 0.0, 0.0],
            "fill_pct": [200.0, 50.0, None, None],
            "overflow_cbm": [0.5, 0.0, 0.5, 0.0],
        })

    def test_defaults_hide_empty_and_uncategorized(self, table):
        assert list(capacity.filter_categories(table)["category"]) == ["Куртки", "Носки"]

    def test_show_everything(self, table):
        df = capacity.filter_categories(table, hide_zero=False, hide_uncategorized=False)
        assert len(df) == 4

    def test_query_is_case_insensitive(self, table):
        assert list(capacity.filter_categories(table, query="НОС")["category"]) == ["Носки"]
