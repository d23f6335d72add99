"""
Data ingestion and harmonization for the warehouse planner.

Handles:
- CSV/Excel/JSON file upload with smart sheet detection and separator sniffing
- Column name harmonization (aliases per dataset)
- Number coercion for comma-decimal exports
- Required column validation
"""

import re
from typing import Dict, IO, List, Union

import pandas as pd

from config import warehouse as config

QUOTED_TEXT = re.compile(r'"[^"]*"')


def _source_name(file_like) -> str:
    if isinstance(file_like, str):
        return file_like
    return str(getattr(file_like, "name", ""))


def _rewind(file_like) -> None:
    if hasattr(file_like, "seek"):
        file_like.seek(0)


def _find_best_sheet(xl: pd.ExcelFile, keywords: List[str]) -> str:
    """
    Auto-detect best sheet by scoring keyword matches.

    Scans first 8 rows of each sheet, counts keyword occurrences.
    Returns sheet with highest score (first sheet on a tie).
    """
    best_sheet = xl.sheet_names[0]
    best_score = -1

    for name in xl.sheet_names:
        try:
            preview = xl.parse(name, nrows=8, header=None, dtype=str)
        except ValueError:
            continue

        score = 0
        for _, row in preview.iterrows():
            row_lower = [str(x).lower() for x in row.tolist()]
            score = max(score, sum(1 for cell in row_lower if any(k in cell for k in keywords)))

        if score > best_score:
            best_score = score
            best_sheet = name

    return best_sheet


def _header_line(file_like) -> str:
    if isinstance(file_like, str):
        with open(file_like, "rb") as fh:
            line = fh.readline()
    else:
        _rewind(file_like)
        line = file_like.readline()
        _rewind(file_like)
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    return line


def sniff_delimiter(header: str) -> str:
    """
    Pick the CSV separator from a header line.

    Quoted text is ignored. The most frequent of `config.CSV_DELIMITERS`
    wins, ties go to the earlier one, and a header without any of them
    (a single column) is read with a comma.
    """
    unquoted = QUOTED_TEXT.sub("", header)
    counts = {sep: unquoted.count(sep) for sep in config.CSV_DELIMITERS}
    best = max(config.CSV_DELIMITERS, key=lambda sep: counts[sep])
    return best if counts[best] else ","


def _read_delimited(file_like) -> pd.DataFrame:
    sep = sniff_delimiter(_header_line(file_like))
    _rewind(file_like)
    return pd.read_csv(file_like, sep=sep, dtype=str, skip_blank_lines=True)


def read_table(file_like: Union[str, IO]) -> pd.DataFrame:
    """
    Read a tabular file into a DataFrame of strings.

    JSON record files are recognised by extension. Everything else is
    tried as CSV first (comma, semicolon or tab, see `sniff_delimiter`),
    then as an Excel workbook.

    Args:
        file_like: File path or file-like object (e.g. Streamlit upload)

    Returns:
        DataFrame with cleaned column names

    Raises:
        ValueError: If the file cannot be read or has no rows
    """
    name = _source_name(file_like).lower()
    df = None

    if name.endswith(".json"):
        try:
            _rewind(file_like)
            df = pd.read_json(file_like, orient="records", dtype=False)
        except ValueError as exc:
            raise ValueError(f"Could not read JSON table: {exc}")
    elif not name.endswith((".xlsx", ".xls")):
        try:
            df = _read_delimited(file_like)
        except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError):
            df = None

    if df is None:
        try:
            _rewind(file_like)
            xl = pd.ExcelFile(file_like)
            sheet_name = _find_best_sheet(xl, config.SHEET_KEYWORDS)
            df = xl.parse(sheet_name, dtype=str)
        except Exception as exc:
            raise ValueError(f"Could not read file as CSV or Excel: {exc}")

    if df is None or df.empty:
        raise ValueError("File is empty or could not be parsed")

    df.columns = [str(c).replace("\n", " ").replace("\r", " ").strip() for c in df.columns]
    return df


def normalize_column_name(col: str) -> str:
    """
    Normalize column name for comparison.

    Args:
        col: Column name

    Returns:
        Lowercase, stripped version with underscores/hyphens treated as spaces.
    """
    collapsed = str(col).replace("_", " ").replace("-", " ").strip().lower()
    return " ".join(collapsed.split())


def harmonize_columns(df: pd.DataFrame, aliases: Dict[str, List[str]]) -> pd.DataFrame:
    """
    Harmonize column names using the given alias table.

    Only maps the FIRST matching source column of each standard column
    to avoid duplicates.

    Args:
        df: Input DataFrame with varied column names
        aliases: {standard_name: [alias, ...]} in priority order

    Returns:
        DataFrame with standardized column names
    """
    df = df.copy()
    rename_map = {}

    normalized_existing = {}
    for c in df.columns:
        normalized_existing.setdefault(normalize_column_name(c), c)
    used_source_cols = set()

    for std_col, names in aliases.items():
        for alias in names:
            norm_alias = normalize_column_name(alias)
            if norm_alias in normalized_existing:
                source_col = normalized_existing[norm_alias]
                if source_col not in used_source_cols:
                    rename_map[source_col] = std_col
                    used_source_cols.add(source_col)
                break

    return df.rename(columns=rename_map)


def validate_required_columns(df: pd.DataFrame, required: List[str]) -> tuple[bool, list[str]]:
    """
    Check if all required columns are present.

    Returns:
        Tuple of (is_valid, list_of_missing_columns)
    """
    missing = [col for col in required if col not in df.columns]
    return len(missing) == 0, missing


def coerce_number(series: pd.Series, default: float = 0.0) -> pd.Series:
    """
    Convert a column of exported numbers to float.

    Whitespace (thousands separators) is removed and a comma is accepted
    as decimal separator. Anything unparseable becomes `default`.
    """
    cleaned = (
        series.astype(str)
        .str.replace(r"\s+", "", regex=True)
        .str.replace(",", ".", regex=False)
    )
    return pd.to_numeric(cleaned, errors="coerce").fillna(default).astype(float)


def coerce_text(series: pd.Series) -> pd.Series:
    """Strip text values; missing values become empty strings."""
    return series.fillna("").astype(str).str.strip()


def _load_dataset(
    file_like: Union[str, IO, pd.DataFrame],
    aliases: Dict[str, List[str]],
    required: List[str],
    label: str,
) -> pd.DataFrame:
    df = file_like if isinstance(file_like, pd.DataFrame) else read_table(file_like)
    df = harmonize_columns(df, aliases)

    is_valid, missing = validate_required_columns(df, required)
    if not is_valid:
        expected = {col: aliases[col][:3] for col in missing}
        raise ValueError(f"{label}: missing required columns {missing} (expected e.g. {expected})")

    return df


def load_inventory_file(file_like: Union[str, IO, pd.DataFrame]) -> pd.DataFrame:
    """
    Load current stock (SKU + available pieces).

    When no header matches, the first column is taken as the SKU and the
    second as the quantity. Blank SKUs are dropped, negative quantities
    clipped to zero, duplicate SKUs summed.

    Returns:
        DataFrame with columns sku, qty_pcs
    """
    df = file_like if isinstance(file_like, pd.DataFrame) else read_table(file_like)
    df = harmonize_columns(df, config.INVENTORY_COLUMN_ALIASES)

    fallback = [c for c in df.columns if c not in ("sku", "qty_pcs")]
    if "sku" not in df.columns and fallback:
        df = df.rename(columns={fallback.pop(0): "sku"})
    if "qty_pcs" not in df.columns and fallback:
        df = df.rename(columns={fallback.pop(0): "qty_pcs"})

    is_valid, missing = validate_required_columns(df, ["sku", "qty_pcs"])
    if not is_valid:
        raise ValueError(f"Inventory: missing required columns {missing}")

    out = pd.DataFrame({
        "sku": coerce_text(df["sku"]),
        "qty_pcs": coerce_number(df["qty_pcs"]).clip(lower=0.0),
    })
    out = out[out["sku"] != ""]
    return out.groupby("sku", as_index=False, sort=False)["qty_pcs"].sum()


def load_reference_table(file_like: Union[str, IO, pd.DataFrame]) -> pd.DataFrame:
    """
    Load the SKU reference (unit volume and category).

    Returns:
        DataFrame with columns sku, pcs_per_mc, pcs_cbm, mc_cbm, category
    """
    df = _load_dataset(file_like, config.REFERENCE_COLUMN_ALIASES, ["sku"], "Reference")
    df = df.copy()

    df["sku"] = coerce_text(df["sku"])
    for col in ["pcs_per_mc", "pcs_cbm", "mc_cbm"]:
        df[col] = coerce_number(df[col]) if col in df.columns else 0.0
    df["category"] = coerce_text(df["category"]) if "category" in df.columns else ""

    df = df[df["sku"] != ""]
    return df[["sku", "pcs_per_mc", "pcs_cbm", "mc_cbm", "category"]].drop_duplicates("sku", keep="first")


def load_capacity_by_category(file_like: Union[str, IO, pd.DataFrame]) -> pd.DataFrame:
    """Load category capacity (category, capacity_cbm)."""
    df = _load_dataset(
        file_like, config.CAPACITY_COLUMN_ALIASES, ["category", "capacity_cbm"], "Capacity by category"
    )
    return pd.DataFrame({
        "category": coerce_text(df["category"]),
        "capacity_cbm": coerce_number(df["capacity_cbm"]),
    })


def load_capacity_by_category_role(file_like: Union[str, IO, pd.DataFrame]) -> pd.DataFrame:
    """Load category x role capacity (category, role, capacity_cbm)."""
    df = _load_dataset(
        file_like, config.CAPACITY_COLUMN_ALIASES, ["category", "role", "capacity_cbm"],
        "Capacity by category and role",
    )
    return pd.DataFrame({
        "category": coerce_text(df["category"]),
        "role": coerce_text(df["role"]).str.lower(),
        "capacity_cbm": coerce_number(df["capacity_cbm"]),
    })


def load_cell_map(file_like: Union[str, IO, pd.DataFrame]) -> pd.DataFrame:
    """Load the physical cell map (role, cell_id, cell_volume_m3, category)."""
    df = _load_dataset(
        file_like, config.CELL_MAP_COLUMN_ALIASES, ["cell_id", "cell_volume_m3"], "Cell map"
    )
    return pd.DataFrame({
        "role": coerce_text(df["role"]).str.lower() if "role" in df.columns else "",
        "cell_id": coerce_text(df["cell_id"]),
        "cell_volume_m3": coerce_number(df["cell_volume_m3"]),
        "category": coerce_text(df["category"]) if "category" in df.columns else "",
    })


def load_sales_file(file_like: Union[str, IO, pd.DataFrame]) -> pd.DataFrame:
    """
    Load sales transactions for calibration.

    The date column is kept as read (text `dd.mm.yyyy` or a spreadsheet
    date); parsing happens in the calibration step.

    Returns:
        DataFrame with columns date, sku, qty
    """
    df = _load_dataset(file_like, config.SALES_COLUMN_ALIASES, ["date", "sku", "qty"], "Sales")
    return pd.DataFrame({
        "date": df["date"],
        "sku": coerce_text(df["sku"]),
        "qty": coerce_number(df["qty"]),
    })


def load_movements_file(file_like: Union[str, IO, pd.DataFrame]) -> pd.DataFrame:
    """
    Load stock movements for calibration.

    Returns:
        DataFrame with columns sku, opening_qty, inbound_qty
    """
    df = _load_dataset(
        file_like, config.MOVEMENTS_COLUMN_ALIASES, ["sku", "opening_qty", "inbound_qty"], "Movements"
    )
    return pd.DataFrame({
        "sku": coerce_text(df["sku"]),
        "opening_qty": coerce_number(df["opening_qty"]),
        "inbound_qty": coerce_number(df["inbound_qty"]),
    })


def coalesce_numeric_aliases(df: pd.DataFrame, aliases: List[str]) -> pd.Series | None:
    """
    Combine every column matching one of `aliases` into one numeric column.

    Columns are taken in alias priority order; a row keeps the first
    positive value found. Returns None when no column matches.
    """
    wanted = [normalize_column_name(a) for a in aliases]
    matched = []
    for alias in wanted:
        matched.extend(c for c in df.columns if normalize_column_name(c) == alias and c not in matched)
    if not matched:
        return None

    result = pd.Series(0.0, index=df.index)
    for col in matched:
        values = coerce_number(df[col])
        result = result.where(result > 0, values)
    return result


def load_volume_reference(file_like: Union[str, IO, pd.DataFrame]) -> pd.DataFrame:
    """
    Load the SKU -> unit volume reference (CSV or XLSX).

    Exports may carry several volume columns; empty or zero cells fall
    through to the next recognised column.

    Returns:
        DataFrame with columns sku, unit_volume
    """
    raw = file_like if isinstance(file_like, pd.DataFrame) else read_table(file_like)
    volume = coalesce_numeric_aliases(raw, config.VOLUME_COLUMN_ALIASES["unit_volume"])
    df = _load_dataset(raw, config.VOLUME_COLUMN_ALIASES, ["sku", "unit_volume"], "Volume reference")
    return pd.DataFrame({
        "sku": coerce_text(df["sku"]),
        "unit_volume": volume if volume is not None else coerce_number(df["unit_volume"]),
    })


def get_column_status(df: pd.DataFrame, required: List[str], optional: List[str] | None = None) -> dict:
    """
    Get status of required and optional columns.

    Useful for UI feedback showing which columns are present/missing.
    """
    present_cols = set(df.columns)
    required_set = set(required)
    optional_set = set(optional or [])

    return {
        "required_present": sorted(required_set & present_cols),
        "required_missing": sorted(required_set - present_cols),
        "optional_present": sorted(optional_set & present_cols),
        "optional_missing": sorted(optional_set - present_cols),
    }
