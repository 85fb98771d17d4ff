"""Tests for the battery state engine and the SOC re-simulation."""

from datetime import date, timedelta

import pytest

from building_energy_sim.allocator import allocate
from building_energy_sim.battery import (
    CHAIN_WARMUP_DAYS,
    battery_share,
    chain_anchor,
    clamp_soc,
    day_start_soc,
    end_of_day_soc,
    make_battery_state,
    next_soc,
    simulate_battery_day,
    soc_at,
    soc_series,
    start_of_day_soc,
    step_battery,
    update_battery_state,
)
from building_energy_sim.config import BatteryPack, Building
from building_energy_sim.consumption import building_consumption
from building_energy_sim.production import pv_production
from building_energy_sim.strategies import DEFAULT_CONFIG, all_strategies

MID_MONTH_DAYS = [date(2025, month, 15) for month in range(1, 13)]


class TestSOCUpdate:
    """Test the one-hour SOC integration."""

    def test_charge_stores_less_than_drawn(self):
        assert next_soc(50, 10, 0, 50, 0.95) == pytest.approx(50 + 10 * 0.95 / 50 * 100)

    def test_discharge_removes_more_than_delivered(self):
        assert next_soc(50, 0, 5, 50, 0.95) == pytest.approx(50 - 5 / 0.95 / 50 * 100)

    def test_round_trip_loses_energy(self):
        up = next_soc(50, 5, 0, 50, 0.95)
        assert next_soc(up, 0, 5, 50, 0.95) < 50

    def test_clamped_to_bounds(self):
        assert next_soc(99, 100, 0, 10, 0.95) == 100.0
        assert next_soc(1, 0, 100, 10, 0.95) == 0.0
        assert clamp_soc(-3) == 0.0
        assert clamp_soc(130) == 100.0

    def test_zero_capacity_keeps_soc(self):
        assert next_soc(42, 10, 0, 0, 0.95) == 42
        state = make_battery_state(42, 0, DEFAULT_CONFIG)
        assert state.charge_headroom_kwh == 0
        assert state.discharge_headroom_kwh == 0

    def test_update_from_decision(self):
        state = make_battery_state(50, 50, DEFAULT_CONFIG, 0.95)
        decision = allocate(20.0, 5.0, state, 12, 7, DEFAULT_CONFIG)
        new_state = update_battery_state(state, decision, DEFAULT_CONFIG, 0.95)
        assert new_state.soc == pytest.approx(50 + 10 * 0.95 / 50 * 100)
        assert new_state.capacity_kwh == 50
        assert new_state.energy_kwh == pytest.approx(new_state.soc / 100 * 50)


class TestStartOfDaySOC:
    """Test the calendar-derived start SOC."""

    def test_summer_weekday(self):
        assert start_of_day_soc(7, 2) == 50

    def test_winter_weekday(self):
        assert start_of_day_soc(1, 2) == 65

    def test_winter_weekend(self):
        assert start_of_day_soc(1, 6) == 75

    def test_summer_saturday(self):
        assert start_of_day_soc(7, 5) == 60

    def test_sibling_offset(self):
        assert start_of_day_soc(7, 2, battery_index=1) == 45
        assert start_of_day_soc(7, 2, battery_index=20) == 0

    def test_invalid_month(self):
        with pytest.raises(ValueError):
            start_of_day_soc(13, 2)


class TestBatteryShare:
    """PV and load are split evenly across packs."""

    def test_two_packs_halve(self, building, tenants, summer_day):
        pv, load = battery_share(building, tenants, summer_day, 12)
        assert pv == pytest.approx(pv_production(66.88, 12, 7, 0.95) / 2)
        assert load == pytest.approx(building_consumption(tenants, 12, summer_day.weekday(), 7) / 2)

    def test_single_pack_sees_everything(self, single_pack_building, tenants, summer_day):
        pv, _ = battery_share(single_pack_building, tenants, summer_day, 12)
        assert pv == pytest.approx(pv_production(10.0, 12, 7, 0.95))


class TestSOCBounds:
    """SOC stays inside [min_soc, max_soc] when it starts there, and always inside [0, 100]."""

    @pytest.mark.parametrize("strategy", all_strategies(), ids=lambda s: s.key)
    @pytest.mark.parametrize("day", [date(2025, 1, 15), date(2025, 4, 12), date(2025, 7, 9), date(2025, 11, 30)])
    def test_trajectory_within_limits(self, strategy, day):
        cfg = strategy.config
        start = (cfg.min_soc + cfg.max_soc) / 2
        for decision, state in simulate_battery_day(day, start, 50.0, cfg):
            assert cfg.min_soc - 1e-6 <= state.soc <= cfg.max_soc + 1e-6
            assert decision.is_balanced()

    @pytest.mark.parametrize("start", [0, 100])
    def test_extreme_start_stays_in_range(self, start, single_pack_building, winter_day):
        for _, state in simulate_battery_day(winter_day, start, 10.0, DEFAULT_CONFIG, single_pack_building):
            assert 0 <= state.soc <= 100

    def test_huge_deficit(self, winter_day):
        """A tiny battery facing a large load never drops below min_soc."""
        small = Building('Small', 0.0, 0.95, (BatteryPack(1, 1, 1.0, 'apartments'),))
        for decision, state in simulate_battery_day(winter_day, 80, 1.0, DEFAULT_CONFIG, small):
            assert state.soc >= DEFAULT_CONFIG.min_soc - 1e-6
            assert decision.grid_import_kw >= 0

    def test_zero_capacity_pack(self, summer_day):
        empty = Building('Empty', 30.0, 0.95, (BatteryPack(1, 1, 0.0, 'shared'),))
        soc = soc_at(summer_day, 12, 0.0, 0, DEFAULT_CONFIG, empty)
        warmup = chain_anchor(summer_day) - timedelta(days=CHAIN_WARMUP_DAYS)
        assert soc == start_of_day_soc(warmup.month, warmup.weekday())


class TestSOCAt:
    """Test the memoised re-simulation."""

    def test_repeatable(self, summer_day):
        first = soc_at(summer_day, 14, 50.0, 0, DEFAULT_CONFIG)
        second = soc_at(summer_day, 14, 50.0, 0, DEFAULT_CONFIG)
        assert first == second

    def test_matches_explicit_day_run(self, summer_day):
        """soc_at(D, h + 1) is the state after hour h when D is started from soc_at(D, 0)."""
        start = soc_at(summer_day, 0, 50.0, 0, DEFAULT_CONFIG)
        hours = simulate_battery_day(summer_day, start, 50.0, DEFAULT_CONFIG)
        for hour in range(23):
            assert hours[hour][1].soc == pytest.approx(soc_at(summer_day, hour + 1, 50.0, 0, DEFAULT_CONFIG))
        assert hours[23][1].soc == pytest.approx(end_of_day_soc(summer_day, 50.0, 0, DEFAULT_CONFIG))

    def test_day_start_is_previous_day_end(self, winter_day):
        previous = winter_day - timedelta(days=1)
        for index in (0, 1):
            assert day_start_soc(winter_day, 50.0, index, DEFAULT_CONFIG) == end_of_day_soc(
                previous, 50.0, index, DEFAULT_CONFIG)

    def test_chain_restarts_on_first_of_january(self):
        """1 January starts from the calendar SOC after CHAIN_WARMUP_DAYS of December."""
        new_year = date(2025, 1, 1)
        warmup = new_year - timedelta(days=CHAIN_WARMUP_DAYS)
        assert chain_anchor(date(2025, 12, 31)) == new_year
        soc = start_of_day_soc(warmup.month, warmup.weekday())
        for offset in range(CHAIN_WARMUP_DAYS):
            soc = simulate_battery_day(warmup + timedelta(days=offset), soc, 50.0, DEFAULT_CONFIG)[-1][1].soc
        assert soc_at(new_year, 0, 50.0, 0, DEFAULT_CONFIG) == pytest.approx(soc, abs=1e-9)

    def test_no_night_discharge_joins_exactly(self, summer_day, no_night_discharge_config):
        """With no night discharge the last hour is idle, so 23:00 and next 00:00 agree."""
        for index in (0, 1):
            late = soc_at(summer_day, 23, 50.0, index, no_night_discharge_config)
            next_morning = soc_at(summer_day + timedelta(days=1), 0, 50.0, index, no_night_discharge_config)
            assert late == pytest.approx(next_morning, abs=1e-6)

    def test_invalid_hour(self, summer_day):
        with pytest.raises(ValueError):
            soc_at(summer_day, 24, 50.0, 0, DEFAULT_CONFIG)

    def test_disk_cache(self, tmp_path, summer_day):
        from building_energy_sim import config

        config.configure_cache(str(tmp_path))
        cached = soc_at(summer_day, 9, 50.0, 0, DEFAULT_CONFIG)
        config.configure_cache(None)
        assert cached == soc_at(summer_day, 9, 50.0, 0, DEFAULT_CONFIG)
        assert any(tmp_path.iterdir())

    def test_second_call_served_from_cache(self, tmp_path, summer_day, monkeypatch):
        """A repeated query is loaded from the cache directory without re-simulating."""
        from building_energy_sim import battery, config

        config.configure_cache(str(tmp_path))
        first = soc_at(summer_day, 12, 50.0, 0, DEFAULT_CONFIG)

        calls = []
        original = battery.day_start_soc

        def counting_day_start_soc(*args):
            calls.append(args)
            return original(*args)

        monkeypatch.setattr(battery, 'day_start_soc', counting_day_start_soc)
        assert soc_at(summer_day, 12, 50.0, 0, DEFAULT_CONFIG) == first
        assert calls == []

        # without a cache directory every call re-simulates
        config.configure_cache(None)
        assert soc_at(summer_day, 12, 50.0, 0, DEFAULT_CONFIG) == first
        assert len(calls) == 1


class TestSOCContinuity:
    """23:00 and the next 00:00 come from the same run, in every month."""

    @pytest.mark.parametrize("battery_index", [0, 1])
    @pytest.mark.parametrize("strategy", all_strategies(), ids=lambda s: s.key)
    @pytest.mark.parametrize("day", MID_MONTH_DAYS, ids=lambda d: d.strftime('%b'))
    def test_midnight(self, day, strategy, battery_index):
        cfg = strategy.config
        late = soc_at(day, 23, 50.0, battery_index, cfg)
        next_morning = soc_at(day + timedelta(days=1), 0, 50.0, battery_index, cfg)

        # the only change across midnight is hour 23's own flow
        decision, after = step_battery(make_battery_state(late, 50.0, cfg), day, 23, cfg)
        assert next_morning == pytest.approx(after.soc, abs=1e-9)
        assert next_morning == pytest.approx(end_of_day_soc(day, 50.0, battery_index, cfg), abs=1e-9)
        if decision.direction == 'idle':
            assert abs(next_morning - late) <= 0.5


class TestSOCSeries:
    """Test the 24-point series."""

    def test_series_matches_point_queries(self, summer_day):
        series = soc_series(summer_day, 50.0, 0, DEFAULT_CONFIG)
        assert len(series) == 24
        for hour, value in enumerate(series):
            assert value == soc_at(summer_day, hour, 50.0, 0, DEFAULT_CONFIG)

    def test_threaded_series_identical(self, winter_day):
        sequential = soc_series(winter_day, 50.0, 1, DEFAULT_CONFIG)
        threaded = soc_series(winter_day, 50.0, 1, DEFAULT_CONFIG, n_jobs=2, prefer='threads')
        assert sequential == threaded
