import pytest

from config import warehouse as config
from core.waves import SupplyWave, WaveSchedule, combine_share, default_schedule


@pytest.fixture
def schedule() -> WaveSchedule:
    return WaveSchedule([
        SupplyWave("FW25", "FW", 2025, 8, 80.0, 0.3),
        SupplyWave("SS26", "SS", 2026, 2, 70.0, 0.25),
        SupplyWave("DROP", "ALL", 2025, 8, 20.0, 0.8),
    ])


class TestEditing:
    def test_add_default_wave(self, schedule):
        wave = schedule.add(year=2026, month_index=5)
        assert len(schedule) == 4
        assert schedule[3] is wave
        assert wave.label == config.NEW_WAVE_DEFAULTS["label"]
        assert (wave.year, wave.month_index) == (2026, 5)

    def test_add_requires_position(self, schedule):
        with pytest.raises(ValueError):
            schedule.add()

    def test_add_explicit_wave(self, schedule):
        wave = SupplyWave("X", "SS", 2027, 0, 1.0, 0.1)
        schedule.add(wave)
        assert schedule.waves[-1] == wave

    def test_partial_update(self, schedule):
        updated = schedule.update(1, base_volume=90.0, label="SS26b")
        assert updated.base_volume == 90.0
        assert updated.label == "SS26b"
        assert updated.season == "SS"
        assert schedule[1] == updated

    def test_update_clamps_share_and_volume(self, schedule):
        updated = schedule.update(0, new_sku_share=1.7, base_volume=-5)
        assert updated.new_sku_share == 1.0
        assert updated.base_volume == 0.0

    def test_update_unknown_field(self, schedule):
        with pytest.raises(TypeError):
            schedule.update(0, colour="red")

    def test_update_out_of_range(self, schedule):
        with pytest.raises(IndexError):
            schedule.update(10, label="nope")

    def test_remove_keeps_order(self, schedule):
        removed = schedule.remove(0)
        assert removed.label == "FW25"
        assert [w.label for w in schedule] == ["SS26", "DROP"]

    def test_waves_property_is_a_copy(self, schedule):
        schedule.waves.clear()
        assert len(schedule) == 3


class TestLookup:
    def test_exact_month_match_only(self, schedule):
        assert [w.label for w in schedule.waves_for(2025, 8)] == ["FW25", "DROP"]
        assert schedule.waves_for(2025, 9) == []
        assert schedule.waves_for(2026, 8) == []

    def test_aggregate_sums_growth_scaled_volume(self, schedule):
        arrivals = schedule.aggregate(2025, 8, growth_factor=1.5, fallback_share=0.25)
        assert arrivals.volume == pytest.approx(150.0)
        assert arrivals.matched == 2
        assert arrivals.label_text == "FW25 + DROP"
        assert arrivals.new_sku_share == pytest.approx((80 * 0.3 + 20 * 0.8) / 100)

    def test_aggregate_without_match_uses_fallback(self, schedule):
        arrivals = schedule.aggregate(2030, 0, growth_factor=2.0, fallback_share=0.25)
        assert arrivals.volume == 0.0
        assert arrivals.new_sku_share == 0.25
        assert arrivals.label_text == ""


class TestCombineShare:
    def test_volume_weighted(self, schedule):
        waves = schedule.waves_for(2025, 8)
        assert combine_share(waves) == pytest.approx(0.4)

    def test_simple_mean(self, schedule):
        waves = schedule.waves_for(2025, 8)
        assert combine_share(waves, config.SHARE_POLICY_SIMPLE_MEAN) == pytest.approx(0.55)

    def test_zero_volume_falls_back_to_mean(self):
        waves = [SupplyWave("A", "FW", 2025, 0, 0.0, 0.2), SupplyWave("B", "FW", 2025, 0, 0.0, 0.6)]
        assert combine_share(waves) == pytest.approx(0.4)

    def test_unknown_policy(self, schedule):
        with pytest.raises(ValueError):
            combine_share(schedule.waves, "median")

    def test_empty(self):
        with pytest.raises(ValueError):
            combine_share([])


def test_validate_reports_errors():
    issues = SupplyWave("BAD", "WINTER", 2025, 12, -1.0, 1.5).validate()
    assert len(issues) == 4
    assert all(i.startswith("ERROR") for i in issues)


def test_dataframe_round_trip(schedule):
    df = schedule.to_dataframe()
    assert list(df.columns) == ["label", "season", "year", "month_index", "base_volume", "new_sku_share"]
    assert WaveSchedule.from_dataframe(df).waves == schedule.waves


def test_default_schedule_is_relative_to_base_year():
    waves = default_schedule(2030).waves
    assert [(w.label, w.year, w.month_index) for w in waves] == [("FW25", 2030, 8), ("SS26", 2031, 2)]
