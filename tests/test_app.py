import pytest

from app import build_start_conditions
from core.forecast import initial_active_skus
from core.snapshot_store import CalcSnapshot, CalcTotals


@pytest.fixture
def state() -> dict:
    return {
        "capacity_volume": 400.0,
        "capacity_cells": 1000.0,
        "start_stock_volume": 100.0,
        "use_snapshot": True,
        "override_active_skus": False,
        "start_active_skus": 0.0,
    }


@pytest.fixture
def snapshot() -> CalcSnapshot:
    return CalcSnapshot.create(CalcTotals(500.0, 250.0, 50.0, 0.0))


class TestBuildStartConditions:
    def test_manual_inputs(self, state):
        start = build_start_conditions(state, None)
        assert (start.capacity_volume, start.capacity_cells, start.start_stock_volume) == (400.0, 1000.0, 100.0)
        assert start.start_active_skus is None
        assert initial_active_skus(start) == 250.0

    def test_active_skus_override(self, state):
        state.update(override_active_skus=True, start_active_skus=640.0)
        start = build_start_conditions(state, None)
        assert start.start_active_skus == 640.0
        assert initial_active_skus(start) == 640.0

    def test_override_survives_snapshot(self, state, snapshot):
        state.update(override_active_skus=True, start_active_skus=75.0)
        start = build_start_conditions(state, snapshot, calculator_cells=300)
        assert start.capacity_volume == 500.0
        assert start.start_stock_volume == 250.0
        assert start.capacity_cells == 300
        assert start.start_active_skus == 75.0

    def test_zero_override_is_kept(self, state, snapshot):
        state.update(override_active_skus=True, start_active_skus=0.0)
        start = build_start_conditions(state, snapshot)
        assert start.start_active_skus == 0.0
        assert initial_active_skus(start) == 0.0

    def test_unchecked_override_is_ignored(self, state, snapshot):
        state.update(start_active_skus=640.0)
        start = build_start_conditions(state, snapshot)
        assert start.start_active_skus is None
        assert start.capacity_cells == 1000.0

    def test_snapshot_not_selected(self, state, snapshot):
        state.update(use_snapshot=False)
        start = build_start_conditions(state, snapshot, calculator_cells=300)
        assert start.capacity_volume == 400.0
        assert start.capacity_cells == 1000.0
