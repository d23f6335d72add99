"""
Capacity / fill calculator.

Handles:
- SKU volume calculation (stock pieces x unit volume)
- Category fill versus category capacity
- Allocation of category volume into cell roles (pick -> overstock -> attic)
- Warehouse totals published to the forecast as a snapshot
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd

from config import warehouse as config
from core.categories import normalize_category
from core.snapshot_store import CalcSnapshot, CalcTotals

SORT_KEYS = ["overflow_cbm", "fill_pct", "volume_cbm", "capacity_cbm", "category"]


@dataclass
class CapacityResult:
    """
    Output of one calculator run.

    Tables:
        sku_volumes: sku, qty_pcs, pcs_cbm, volume_cbm, category
        categories: category, volume_cbm, capacity_cbm, fill_pct, overflow_cbm
        role_allocation: category, role, allocated_cbm
        roles: role, allocated_cbm, pct_of_total_capacity

    Diagnostics:
        missing_volume: SKUs without a positive unit volume
        missing_category: SKUs that ended up Uncategorized
    """
    totals: CalcTotals
    total_cells: int
    sku_volumes: pd.DataFrame
    categories: pd.DataFrame
    role_allocation: pd.DataFrame
    roles: pd.DataFrame
    missing_volume: int = 0
    missing_category: int = 0

    def to_snapshot(self) -> CalcSnapshot:
        return CalcSnapshot.create(self.totals)


def compute_sku_volumes(inventory: pd.DataFrame, reference: pd.DataFrame) -> pd.DataFrame:
    """
    Join stock to the reference and compute occupied volume per SKU.

    SKUs absent from the reference get zero unit volume and the
    Uncategorized category.

    Args:
        inventory: sku, qty_pcs
        reference: sku, pcs_cbm, category

    Returns:
        DataFrame with sku, qty_pcs, pcs_cbm, volume_cbm, category
    """
    ref = reference[["sku", "pcs_cbm", "category"]].drop_duplicates("sku", keep="first")
    df = inventory[["sku", "qty_pcs"]].merge(ref, on="sku", how="left")

    df["qty_pcs"] = pd.to_numeric(df["qty_pcs"], errors="coerce").fillna(0.0)
    df["pcs_cbm"] = pd.to_numeric(df["pcs_cbm"], errors="coerce").fillna(0.0)
    df["category"] = df["category"].apply(normalize_category)
    df["volume_cbm"] = df["qty_pcs"] * df["pcs_cbm"]

    return df[["sku", "qty_pcs", "pcs_cbm", "volume_cbm", "category"]]


def summarize_categories(
    sku_volumes: pd.DataFrame,
    capacity_by_category: pd.DataFrame,
    sort_key: str = "overflow_cbm",
    descending: bool = True,
) -> pd.DataFrame:
    """
    Compare occupied volume with capacity per canonical category.

    Categories with neither volume nor capacity are dropped. Fill % is
    None where a category has no capacity at all.

    Args:
        sku_volumes: Output of compute_sku_volumes
        capacity_by_category: category, capacity_cbm (raw category names)
        sort_key: One of SORT_KEYS
        descending: Sort direction; ties are broken by volume descending

    Returns:
        DataFrame with category, volume_cbm, capacity_cbm, fill_pct, overflow_cbm
    """
    if sort_key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key '{sort_key}', expected one of {SORT_KEYS}")

    vol = sku_volumes.groupby("category")["volume_cbm"].sum()

    cap_df = capacity_by_category.copy()
    cap_df["category"] = cap_df["category"].apply(normalize_category)
    cap = cap_df.groupby("category")["capacity_cbm"].sum()

    df = pd.concat([vol.rename("volume_cbm"), cap.rename("capacity_cbm")], axis=1).fillna(0.0)
    df = df.rename_axis("category").reset_index()

    tol = config.ALLOCATION_TOLERANCE
    df = df[(df["volume_cbm"] > tol) | (df["capacity_cbm"] > tol)].copy()

    df["fill_pct"] = np.where(
        df["capacity_cbm"] > 0,
        df["volume_cbm"] / df["capacity_cbm"].where(df["capacity_cbm"] > 0, 1.0) * 100,
        np.nan,
    )
    df["fill_pct"] = df["fill_pct"].astype(object).where(df["fill_pct"].notna(), None)
    df["overflow_cbm"] = (df["volume_cbm"] - df["capacity_cbm"]).clip(lower=0.0)

    if sort_key == "category":
        df = df.sort_values("category", ascending=not descending, kind="mergesort")
    else:
        key = pd.to_numeric(df[sort_key], errors="coerce").fillna(0.0)
        df = (
            df.assign(_key=key)
            .sort_values(["_key", "volume_cbm"], ascending=[not descending, False], kind="mergesort")
            .drop(columns="_key")
        )

    return df[["category", "volume_cbm", "capacity_cbm", "fill_pct", "overflow_cbm"]].reset_index(drop=True)


def allocate_by_role(sku_volumes: pd.DataFrame, capacity_by_category_role: pd.DataFrame) -> pd.DataFrame:
    """
    Spread each category's volume across cell roles.

    Roles are filled in config.ROLE_ORDER up to their capacity; what does
    not fit is reported under the overflow role.

    Returns:
        DataFrame with category, role, allocated_cbm
    """
    vol = sku_volumes.groupby("category")["volume_cbm"].sum()

    cap_df = capacity_by_category_role.copy()
    cap_df["category"] = cap_df["category"].apply(normalize_category)
    cap = cap_df.groupby(["category", "role"])["capacity_cbm"].sum().to_dict()

    tol = config.ALLOCATION_TOLERANCE
    records = []
    for category, volume in vol.items():
        remaining = float(volume)
        for role in config.ROLE_ORDER:
            take = min(remaining, float(cap.get((category, role), 0.0)))
            if take > 0:
                records.append({"category": category, "role": role, "allocated_cbm": take})
                remaining -= take
            if remaining <= tol:
                break
        if remaining > tol:
            records.append({"category": category, "role": config.OVERFLOW_ROLE, "allocated_cbm": remaining})

    return pd.DataFrame(records, columns=["category", "role", "allocated_cbm"])


def summarize_roles(role_allocation: pd.DataFrame, total_capacity: float) -> pd.DataFrame:
    """Total allocated volume per role and its share of total capacity."""
    if role_allocation.empty:
        return pd.DataFrame(columns=["role", "allocated_cbm", "pct_of_total_capacity"])

    df = role_allocation.groupby("role", sort=False)["allocated_cbm"].sum().reset_index()
    if total_capacity > 0:
        df["pct_of_total_capacity"] = df["allocated_cbm"] / total_capacity * 100
    else:
        df["pct_of_total_capacity"] = 0.0
    return df


def compute_totals(sku_volumes: pd.DataFrame, cell_map: pd.DataFrame) -> CalcTotals:
    """Warehouse totals: capacity is the summed volume of all mapped cells."""
    total_capacity = float(cell_map["cell_volume_m3"].fillna(0.0).sum())
    total_fact = float(sku_volumes["volume_cbm"].sum())
    return CalcTotals(
        total_capacity=total_capacity,
        total_fact=total_fact,
        fill_pct_total=(total_fact / total_capacity * 100) if total_capacity > 0 else 0.0,
        total_overflow=max(0.0, total_fact - total_capacity),
    )


def calculate_capacity(
    inventory: pd.DataFrame,
    reference: pd.DataFrame,
    capacity_by_category: pd.DataFrame,
    capacity_by_category_role: pd.DataFrame,
    cell_map: pd.DataFrame,
    sort_key: str = "overflow_cbm",
    descending: bool = True,
) -> CapacityResult:
    """
    Run the full calculator pipeline.

    Args:
        inventory: Output of data_ingest.load_inventory_file
        reference: Output of data_ingest.load_reference_table
        capacity_by_category: Output of data_ingest.load_capacity_by_category
        capacity_by_category_role: Output of data_ingest.load_capacity_by_category_role
        cell_map: Output of data_ingest.load_cell_map
        sort_key: Category table sort column
        descending: Category table sort direction

    Returns:
        CapacityResult
    """
    sku_volumes = compute_sku_volumes(inventory, reference)
    categories = summarize_categories(sku_volumes, capacity_by_category, sort_key, descending)
    role_allocation = allocate_by_role(sku_volumes, capacity_by_category_role)
    totals = compute_totals(sku_volumes, cell_map)
    roles = summarize_roles(role_allocation, totals.total_capacity)

    return CapacityResult(
        totals=totals,
        total_cells=int(len(cell_map)),
        sku_volumes=sku_volumes,
        categories=categories,
        role_allocation=role_allocation,
        roles=roles,
        missing_volume=int((sku_volumes["pcs_cbm"] <= 0).sum()),
        missing_category=int((sku_volumes["category"] == config.UNCATEGORIZED).sum()),
    )


def filter_categories(
    categories: pd.DataFrame,
    query: Optional[str] = None,
    hide_zero: bool = True,
    hide_uncategorized: bool = True,
) -> pd.DataFrame:
    """Filter the category table for display."""
    tol = config.ALLOCATION_TOLERANCE
    mask = pd.Series(True, index=categories.index)

    if hide_zero:
        mask &= ~((categories["volume_cbm"] <= tol) & (categories["capacity_cbm"] <= tol))
    if hide_uncategorized:
        mask &= categories["category"].str.lower() != config.UNCATEGORIZED.lower()
    if query:
        mask &= categories["category"].str.lower().str.contains(query.lower(), regex=False)

    return categories[mask]
