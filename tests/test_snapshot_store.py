import pytest

from config import warehouse as config
from core.snapshot_store import CalcSnapshot, CalcTotals, InMemorySnapshotStore, SqliteSnapshotStore


@pytest.fixture
def snapshot() -> CalcSnapshot:
    return CalcSnapshot.create(CalcTotals(
        total_capacity=422.7841234567,
        total_fact=127.6000004,
        fill_pct_total=30.18,
        total_overflow=0.0,
    ))


def test_dict_format(snapshot):
    payload = snapshot.to_dict()
    assert set(payload) == {"totals", "savedAt", "v"}
    assert set(payload["totals"]) == {"totalCapacity", "totalFact", "fillPctTotal", "totalOverflow"}
    assert CalcSnapshot.from_dict(payload) == snapshot


@pytest.mark.parametrize("payload", [None, [], {}, {"totals": 5}, {"totals": {"totalFact": "lots"}}])
def test_malformed_payload(payload):
    assert CalcSnapshot.from_dict(payload) is None


class TestInMemoryStore:
    def test_empty_read(self):
        assert InMemorySnapshotStore().read() is None

    def test_write_rounds_totals(self, snapshot):
        store = InMemorySnapshotStore()
        stored = store.write(snapshot)

        assert stored.totals.total_capacity == 422.784123
        assert stored.totals.total_fact == 127.6
        assert store.read() == stored

    def test_subscribe_and_unsubscribe(self, snapshot):
        store = InMemorySnapshotStore()
        seen = []
        unsubscribe = store.subscribe(seen.append)

        store.write(snapshot)
        unsubscribe()
        store.write(snapshot)

        assert len(seen) == 1
        assert seen[0].totals.total_capacity == 422.784123

    def test_unsubscribe_twice(self):
        store = InMemorySnapshotStore()
        unsubscribe = store.subscribe(lambda s: None)
        unsubscribe()
        unsubscribe()


class TestSqliteStore:
    def test_persists_across_instances(self, tmp_path, snapshot):
        db = tmp_path / "snap.db"
        SqliteSnapshotStore(str(db)).write(snapshot)

        restored = SqliteSnapshotStore(str(db)).read()
        assert restored is not None
        assert restored.totals.total_fact == 127.6
        assert restored.schema_version == config.SNAPSHOT_SCHEMA_VERSION
        assert restored.saved_at == snapshot.saved_at

    def test_keys_are_separate(self, tmp_path, snapshot):
        db = str(tmp_path / "snap.db")
        SqliteSnapshotStore(db, key="one").write(snapshot)
        assert SqliteSnapshotStore(db, key="two").read() is None

    def test_poll_notifies_on_foreign_write(self, tmp_path, snapshot):
        db = str(tmp_path / "snap.db")
        reader = SqliteSnapshotStore(db)
        writer = SqliteSnapshotStore(db)
        seen = []
        reader.subscribe(seen.append)

        assert reader.poll() is False
        writer.write(snapshot)
        assert reader.poll() is True
        assert reader.poll() is False
        assert len(seen) == 1
        assert seen[0].totals.total_fact == 127.6

    def test_own_write_is_not_polled_again(self, tmp_path, snapshot):
        store = SqliteSnapshotStore(str(tmp_path / "snap.db"))
        seen = []
        store.subscribe(seen.append)
        store.write(snapshot)
        assert store.poll() is False
        assert len(seen) == 1

    def test_clear(self, tmp_path, snapshot):
        store = SqliteSnapshotStore(str(tmp_path / "snap.db"))
        store.write(snapshot)
        store.clear()
        assert store.read() is None

    def test_unreadable_payload(self, tmp_path):
        store = SqliteSnapshotStore(str(tmp_path / "snap.db"))
        store._save("{not json")
        assert store.read() is None

    def test_creates_parent_directory(self, tmp_path):
        db = tmp_path / "nested" / "dir" / "snap.db"
        SqliteSnapshotStore(str(db))
        assert db.exists()
