"""
Snapshot bridge between the capacity calculator and the forecast.

The calculator publishes its totals as a `CalcSnapshot`; the forecast reads
the latest one as its starting point and subscribes to updates.

Stores:
- InMemorySnapshotStore: single process, used by tests
- SqliteSnapshotStore: durable key-value table shared between sessions
"""

import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

from config import warehouse as config

logger = logging.getLogger(__name__)


@dataclass
class CalcTotals:
    """Warehouse-wide totals (m3 and %)."""
    total_capacity: float
    total_fact: float
    fill_pct_total: float
    total_overflow: float

    def rounded(self, decimals: int = config.SNAPSHOT_DECIMALS) -> "CalcTotals":
        return CalcTotals(
            total_capacity=round(float(self.total_capacity), decimals),
            total_fact=round(float(self.total_fact), decimals),
            fill_pct_total=round(float(self.fill_pct_total), decimals),
            total_overflow=round(float(self.total_overflow), decimals),
        )


@dataclass
class CalcSnapshot:
    totals: CalcTotals
    saved_at: str
    schema_version: int = config.SNAPSHOT_SCHEMA_VERSION

    @classmethod
    def create(cls, totals: CalcTotals) -> "CalcSnapshot":
        """Stamp totals with the current UTC time."""
        return cls(totals=totals, saved_at=datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> dict:
        return {
            "totals": {
                "totalCapacity": self.totals.total_capacity,
                "totalFact": self.totals.total_fact,
                "fillPctTotal": self.totals.fill_pct_total,
                "totalOverflow": self.totals.total_overflow,
            },
            "savedAt": self.saved_at,
            "v": self.schema_version,
        }

    @classmethod
    def from_dict(cls, payload) -> Optional["CalcSnapshot"]:
        """Decode a stored payload; anything malformed yields None."""
        if not isinstance(payload, dict) or not isinstance(payload.get("totals"), dict):
            return None
        totals = payload["totals"]
        try:
            return cls(
                totals=CalcTotals(
                    total_capacity=float(totals.get("totalCapacity", 0.0)),
                    total_fact=float(totals.get("totalFact", 0.0)),
                    fill_pct_total=float(totals.get("fillPctTotal", 0.0)),
                    total_overflow=float(totals.get("totalOverflow", 0.0)),
                ),
                saved_at=str(payload.get("savedAt", "")),
                schema_version=int(payload.get("v", config.SNAPSHOT_SCHEMA_VERSION)),
            )
        except (TypeError, ValueError):
            return None


SnapshotCallback = Callable[[CalcSnapshot], None]


class SnapshotStore(ABC):
    """Port for publishing and reading calculator snapshots."""

    def __init__(self):
        self._subscribers: List[SnapshotCallback] = []

    @abstractmethod
    def _save(self, payload: str) -> None:
        ...

    @abstractmethod
    def _load(self) -> Optional[str]:
        ...

    def write(self, snapshot: CalcSnapshot) -> CalcSnapshot:
        """
        Persist a snapshot and notify subscribers.

        Totals are rounded to a fixed precision first so recomputations
        that only differ in float noise publish identical values.

        Returns:
            The snapshot as stored
        """
        stored = CalcSnapshot(
            totals=snapshot.totals.rounded(),
            saved_at=snapshot.saved_at,
            schema_version=config.SNAPSHOT_SCHEMA_VERSION,
        )
        self._save(json.dumps(stored.to_dict()))
        self._notify(stored)
        return stored

    def read(self) -> Optional[CalcSnapshot]:
        raw = self._load()
        if not raw:
            return None
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring unreadable snapshot under key %s", config.SNAPSHOT_KEY)
            return None
        return CalcSnapshot.from_dict(payload)

    def subscribe(self, callback: SnapshotCallback) -> Callable[[], None]:
        """
        Register a callback fired after every write.

        Returns:
            Function that removes the subscription
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self, snapshot: CalcSnapshot) -> None:
        for callback in list(self._subscribers):
            callback(snapshot)


class InMemorySnapshotStore(SnapshotStore):
    def __init__(self):
        super().__init__()
        self._payload: Optional[str] = None

    def _save(self, payload: str) -> None:
        self._payload = payload

    def _load(self) -> Optional[str]:
        return self._payload


class SqliteSnapshotStore(SnapshotStore):
    """
    Snapshot store backed by a SQLite key-value table.

    Several sessions may share one database file. `poll()` compares the
    stored payload with the last one this instance saw and notifies
    subscribers when another session has written in between.
    """

    def __init__(self, db_path: str = config.SNAPSHOT_DB_PATH, key: str = config.SNAPSHOT_KEY):
        super().__init__()
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.key = key
        self._init_db()
        self._last_seen = self._load()

    def _init_db(self):
        """Create the key-value table if it doesn't exist"""
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS snapshots (
                    key TEXT PRIMARY KEY,
                    payload TEXT NOT NULL,
                    updated_at TEXT
                )
            """)
            conn.commit()
        finally:
            conn.close()

    def _save(self, payload: str) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("""
                INSERT OR REPLACE INTO snapshots (key, payload, updated_at)
                VALUES (?, ?, datetime('now'))
            """, (self.key, payload))
            conn.commit()
        finally:
            conn.close()
        self._last_seen = payload

    def _load(self) -> Optional[str]:
        conn = sqlite3.connect(self.db_path)
        try:
            row = conn.execute(
                "SELECT payload FROM snapshots WHERE key = ?", (self.key,)
            ).fetchone()
        finally:
            conn.close()
        return row[0] if row else None

    def clear(self) -> None:
        conn = sqlite3.connect(self.db_path)
        try:
            conn.execute("DELETE FROM snapshots WHERE key = ?", (self.key,))
            conn.commit()
        finally:
            conn.close()
        self._last_seen = None

    def poll(self) -> bool:
        """
        Check for a write made through another store instance.

        Returns:
            True if subscribers were notified of a new snapshot
        """
        raw = self._load()
        if raw == self._last_seen:
            return False
        self._last_seen = raw
        snapshot = self.read()
        if snapshot is None:
            return False
        self._notify(snapshot)
        return True
