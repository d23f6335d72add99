import io
import json

import pandas as pd
import pytest

from config import warehouse as config
from core import data_ingest


def test_normalize_column_name():
    assert data_ingest.normalize_column_name("  Кол-во ") == "кол во"
    assert data_ingest.normalize_column_name("cell_volume_m3") == "cell volume m3"
    assert data_ingest.normalize_column_name("PCS  volume, CBM") == "pcs volume, cbm"


def test_harmonize_maps_first_alias_only():
    df = pd.DataFrame(columns=["Код товара", "Артикул", "Остаток"])
    out = data_ingest.harmonize_columns(df, config.INVENTORY_COLUMN_ALIASES)
    assert list(out.columns) == ["sku", "Артикул", "qty_pcs"]


def test_coerce_number():
    series = pd.Series(["1 234,5", "0.25", "", None, "abc", 7])
    assert list(data_ingest.coerce_number(series)) == [1234.5, 0.25, 0.0, 0.0, 0.0, 7.0]


def test_column_status():
    df = pd.DataFrame(columns=["sku", "qty"])
    status = data_ingest.get_column_status(df, ["sku", "date"], ["qty", "note"])
    assert status["required_missing"] == ["date"]
    assert status["optional_present"] == ["qty"]


class TestInventory:
    def test_known_headers(self, tmp_path):
        path = tmp_path / "stock.csv"
        path.write_text("Код товара (SKU),Доступно\nA,10\nB,-3\nA,5\n,7\n", encoding="utf-8")
        df = data_ingest.load_inventory_file(str(path)).set_index("sku")

        assert list(df.index) == ["A", "B"]
        assert df.loc["A", "qty_pcs"] == 15.0
        assert df.loc["B", "qty_pcs"] == 0.0

    def test_positional_fallback(self):
        raw = pd.DataFrame({"first": ["X1", "X2"], "second": ["3", "4,5"]})
        df = data_ingest.load_inventory_file(raw)
        assert list(df["sku"]) == ["X1", "X2"]
        assert list(df["qty_pcs"]) == [3.0, 4.5]

    def test_single_column_is_rejected(self):
        with pytest.raises(ValueError):
            data_ingest.load_inventory_file(pd.DataFrame({"sku": ["A"]}))

    def test_excel_picks_data_sheet(self, tmp_path):
        path = tmp_path / "stock.xlsx"
        with pd.ExcelWriter(path, engine="openpyxl") as writer:
            pd.DataFrame({"notes": ["exported"]}).to_excel(writer, sheet_name="Info", index=False)
            pd.DataFrame({"SKU": ["A", "B"], "Qty": [2, 3]}).to_excel(writer, sheet_name="Stock", index=False)

        df = data_ingest.load_inventory_file(str(path))
        assert list(df["sku"]) == ["A", "B"]
        assert list(df["qty_pcs"]) == [2.0, 3.0]


@pytest.mark.parametrize("header, expected", [
    ("sku,pcs_cbm\n", ","),
    ("Дата;Код;Кол-во\n", ";"),
    ("SKU\tQty\n", "\t"),
    ("SKU;PCS Volume, CBM\n", ";"),
    ('SKU,"PCS Volume; CBM"\n', ","),
    ("sku\n", ","),
])
def test_sniff_delimiter(header, expected):
    assert data_ingest.sniff_delimiter(header) == expected


class TestReadTable:
    def test_semicolon_file(self, tmp_path):
        path = tmp_path / "moves.csv"
        path.write_text("Код;На открытие;Приход\nA;100;50,5\n", encoding="utf-8")
        df = data_ingest.read_table(str(path))
        assert list(df.columns) == ["Код", "На открытие", "Приход"]
        assert df.iloc[0].tolist() == ["A", "100", "50,5"]

    def test_semicolon_upload(self):
        upload = io.BytesIO("SKU;Qty\nA;2\nB;3\n".encode("utf-8"))
        upload.name = "stock.csv"
        df = data_ingest.load_inventory_file(upload)
        assert list(df["sku"]) == ["A", "B"]
        assert list(df["qty_pcs"]) == [2.0, 3.0]

    def test_single_column_file(self, tmp_path):
        path = tmp_path / "skus.csv"
        path.write_text("sku\nA\nB\n", encoding="utf-8")
        df = data_ingest.read_table(str(path))
        assert list(df.columns) == ["sku"]
        assert list(df["sku"]) == ["A", "B"]


class TestVolumeReference:
    def test_empty_or_zero_volume_falls_through(self):
        raw = pd.DataFrame({
            "SKU": ["A", "B", "C", "D"],
            "PCS Volume, CBM": ["0,5", "", "0", None],
            "PCS CBM": ["9", "0,2", "", ""],
            "PCS CBM, м3": ["", "", "0,3", ""],
        })
        df = data_ingest.load_volume_reference(raw)
        assert list(df["sku"]) == ["A", "B", "C", "D"]
        assert list(df["unit_volume"]) == pytest.approx([0.5, 0.2, 0.3, 0.0])

    def test_single_volume_column(self, tmp_path):
        path = tmp_path / "volumes.csv"
        path.write_text("SKU;PCS CBM\nA;0,1\n", encoding="utf-8")
        df = data_ingest.load_volume_reference(str(path))
        assert list(df["sku"]) == ["A"]
        assert list(df["unit_volume"]) == pytest.approx([0.1])


def test_empty_file_is_rejected(tmp_path):
    path = tmp_path / "empty.csv"
    path.write_text("", encoding="utf-8")
    with pytest.raises(ValueError):
        data_ingest.read_table(str(path))


def test_reference_from_json(tmp_path):
    path = tmp_path / "reference_min.json"
    path.write_text(json.dumps([
        {"sku": "A", "PCS volume, CBM": 0.1, "Категория": "Куртка"},
        {"sku": "A", "PCS volume, CBM": 0.9, "Категория": "Куртка"},
        {"sku": "B", "PCS volume, CBM": "0,2"},
    ]), encoding="utf-8")
    df = data_ingest.load_reference_table(str(path)).set_index("sku")

    assert list(df.index) == ["A", "B"]
    assert df.loc["A", "pcs_cbm"] == pytest.approx(0.1)
    assert df.loc["B", "pcs_cbm"] == pytest.approx(0.2)
    assert df.loc["A", "pcs_per_mc"] == 0.0
    assert df.loc["A", "category"] == "Куртка"


def test_capacity_by_role_lowercases_role():
    raw = pd.DataFrame({"Категория": ["Обувь"], "Роль": ["PICK"], "Вместимость": ["12,5"]})
    df = data_ingest.load_capacity_by_category_role(raw)
    assert df.iloc[0].to_dict() == {"category": "Обувь", "role": "pick", "capacity_cbm": 12.5}


def test_cell_map():
    raw = pd.DataFrame({"cellId": ["A-01"], "cellVolume_m3": [0.42], "role": ["Pick"]})
    df = data_ingest.load_cell_map(raw)
    assert df.iloc[0]["cell_volume_m3"] == pytest.approx(0.42)
    assert df.iloc[0]["role"] == "pick"
    assert df.iloc[0]["category"] == ""


def test_missing_columns_message():
    with pytest.raises(ValueError, match="Movements"):
        data_ingest.load_movements_file(pd.DataFrame({"sku": ["A"], "opening": [1]}))
