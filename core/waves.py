"""
Supply wave schedule.

A wave is a planned inbound shipment landing in one calendar month. The
schedule is an ordered, user-edited list; the forecast looks up every
wave scheduled for a given (year, month) and combines them.
"""

from dataclasses import asdict, dataclass, field, replace
from typing import List, Optional

import pandas as pd

from config import warehouse as config
from core.blending import clamp

WAVE_COLUMNS = ["label", "season", "year", "month_index", "base_volume", "new_sku_share"]


@dataclass
class SupplyWave:
    """
    One planned shipment.

    Attributes:
        label: Display label (e.g. FW25)
        season: SS, FW or ALL
        year: Calendar year
        month_index: 0 = January ... 11 = December
        base_volume: Volume at today's level, before growth (m3)
        new_sku_share: Fraction of the volume belonging to never-stocked SKUs
    """
    label: str
    season: str
    year: int
    month_index: int
    base_volume: float
    new_sku_share: float

    def validate(self) -> list[str]:
        issues = []
        if self.season not in config.SEASONS:
            issues.append(f"ERROR: season must be one of {config.SEASONS} (got {self.season!r})")
        if not 0 <= int(self.month_index) <= 11:
            issues.append(f"ERROR: month_index must be 0..11 (got {self.month_index})")
        if self.base_volume < 0:
            issues.append(f"ERROR: base_volume cannot be negative (got {self.base_volume})")
        if not 0.0 <= self.new_sku_share <= 1.0:
            issues.append(f"ERROR: new_sku_share must be within 0..1 (got {self.new_sku_share})")
        return issues


@dataclass
class WaveArrivals:
    """Combined arrivals of all waves landing in one month."""
    volume: float
    new_sku_share: float
    labels: List[str] = field(default_factory=list)
    matched: int = 0

    @property
    def label_text(self) -> str:
        return config.WAVE_LABEL_SEPARATOR.join(self.labels)


def combine_share(waves: List[SupplyWave], policy: str = config.DEFAULT_SHARE_POLICY) -> float:
    """
    New-SKU share of co-scheduled waves.

    volume_weighted: shares weighted by each wave's base volume (plain mean
    when the waves carry no volume at all). simple_mean: plain mean.
    """
    if not waves:
        raise ValueError("combine_share needs at least one wave")
    if policy not in (config.SHARE_POLICY_VOLUME_WEIGHTED, config.SHARE_POLICY_SIMPLE_MEAN):
        raise ValueError(f"Unknown share policy '{policy}'")

    mean = sum(w.new_sku_share for w in waves) / len(waves)
    if policy == config.SHARE_POLICY_SIMPLE_MEAN:
        return mean

    total = sum(w.base_volume for w in waves)
    if total <= 0:
        return mean
    return sum(w.new_sku_share * w.base_volume for w in waves) / total


class WaveSchedule:
    """Ordered, editable list of supply waves."""

    def __init__(self, waves: Optional[List[SupplyWave]] = None):
        self._waves: List[SupplyWave] = list(waves or [])

    def __len__(self) -> int:
        return len(self._waves)

    def __iter__(self):
        return iter(self._waves)

    def __getitem__(self, index: int) -> SupplyWave:
        return self._waves[index]

    @property
    def waves(self) -> List[SupplyWave]:
        return list(self._waves)

    def add(self, wave: Optional[SupplyWave] = None, year: Optional[int] = None,
            month_index: Optional[int] = None) -> SupplyWave:
        """
        Append a wave; without one, a default NEW wave is appended at
        the given year/month.
        """
        if wave is None:
            if year is None or month_index is None:
                raise ValueError("year and month_index are required for a default wave")
            wave = SupplyWave(year=int(year), month_index=int(month_index), **config.NEW_WAVE_DEFAULTS)
        self._waves.append(wave)
        return wave

    def update(self, index: int, **changes) -> SupplyWave:
        """
        Partially update the wave at `index`.

        The new-SKU share is clamped to [0, 1] and the volume to >= 0.

        Raises:
            IndexError: If no wave exists at index
            TypeError: For unknown field names
        """
        current = self._waves[index]
        if "new_sku_share" in changes:
            changes["new_sku_share"] = clamp(float(changes["new_sku_share"]), 0.0, 1.0)
        if "base_volume" in changes:
            changes["base_volume"] = max(0.0, float(changes["base_volume"]))
        updated = replace(current, **changes)
        self._waves[index] = updated
        return updated

    def remove(self, index: int) -> SupplyWave:
        return self._waves.pop(index)

    def waves_for(self, year: int, month_index: int) -> List[SupplyWave]:
        """All waves scheduled exactly at (year, month_index), in list order."""
        return [w for w in self._waves if w.year == year and w.month_index == month_index]

    def aggregate(
        self,
        year: int,
        month_index: int,
        growth_factor: float,
        fallback_share: float,
        policy: str = config.DEFAULT_SHARE_POLICY,
    ) -> WaveArrivals:
        """
        Combine the waves landing in one month.

        Each wave's base volume is scaled by the same growth factor and
        summed. With no matching wave the volume is 0 and the share falls
        back to `fallback_share`.
        """
        matched = self.waves_for(year, month_index)
        if not matched:
            return WaveArrivals(volume=0.0, new_sku_share=fallback_share)

        return WaveArrivals(
            volume=sum(w.base_volume * growth_factor for w in matched),
            new_sku_share=combine_share(matched, policy),
            labels=[w.label for w in matched],
            matched=len(matched),
        )

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(w) for w in self._waves], columns=WAVE_COLUMNS)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "WaveSchedule":
        waves = []
        for row in df.to_dict(orient="records"):
            waves.append(SupplyWave(
                label=str(row.get("label", "")),
                season=str(row.get("season", "ALL")),
                year=int(row["year"]),
                month_index=int(row["month_index"]),
                base_volume=max(0.0, float(row.get("base_volume", 0.0))),
                new_sku_share=clamp(float(row.get("new_sku_share", 0.0)), 0.0, 1.0),
            ))
        return cls(waves)


def default_schedule(base_year: int) -> WaveSchedule:
    """Seed schedule relative to the forecast's base year."""
    waves = []
    for seed in config.DEFAULT_WAVES:
        waves.append(SupplyWave(
            label=seed["label"],
            season=seed["season"],
            year=base_year + seed["year_offset"],
            month_index=seed["month_index"],
            base_volume=seed["base_volume"],
            new_sku_share=seed["new_sku_share"],
        ))
    return WaveSchedule(waves)
