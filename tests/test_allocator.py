"""Tests for the energy flow allocator."""

import itertools

import numpy as np
import pytest

from building_energy_sim.allocator import EPSILON_KW, allocate
from building_energy_sim.battery import make_battery_state, next_soc
from building_energy_sim.strategies import DEFAULT_CONFIG, all_strategies


class TestNightDischargeExample:
    """20 kWh battery at 70 % with an 8 kW deficit at 22:00."""

    def test_discharge_capped_at_rate(self, example_config):
        state = make_battery_state(70, 20, example_config, 0.95)
        decision = allocate(0.0, 8.0, state, 22, 7, example_config)

        assert decision.mode == 'night'
        assert decision.battery_discharge_kw == pytest.approx(6.0)
        assert decision.grid_import_kw == pytest.approx(2.0)
        assert decision.direction == 'discharging'

    def test_resulting_soc_drop(self, example_config):
        state = make_battery_state(70, 20, example_config, 0.95)
        decision = allocate(0.0, 8.0, state, 22, 7, example_config)
        soc = next_soc(state.soc, decision.battery_charge_kw, decision.battery_discharge_kw, 20, 0.95)

        assert 70 - soc == pytest.approx(6 / 0.95 / 20 * 100)
        assert 70 - soc == pytest.approx(31.6, abs=0.05)

    def test_later_hours_stop_at_night_reserve(self, example_config):
        """38.4 % is below the 65 % night reserve: the next deficit comes from the grid."""
        state = make_battery_state(38.4, 20, example_config, 0.95)
        decision = allocate(0.0, 8.0, state, 23, 7, example_config)
        assert decision.battery_discharge_kw == 0
        assert decision.grid_import_kw == pytest.approx(8.0)


class TestSurplus:
    """Test charging from PV surplus."""

    def test_charge_limited_by_rate(self):
        state = make_battery_state(50, 50, DEFAULT_CONFIG)
        decision = allocate(20.0, 5.0, state, 12, 7, DEFAULT_CONFIG)

        assert decision.battery_charge_kw == pytest.approx(10.0)
        assert decision.grid_export_kw == pytest.approx(5.0)
        assert decision.grid_import_kw == 0
        assert decision.direction == 'charging'

    def test_charge_limited_by_headroom_lands_on_max(self):
        state = make_battery_state(94, 10, DEFAULT_CONFIG, 0.95)
        decision = allocate(8.0, 1.0, state, 12, 7, DEFAULT_CONFIG)

        assert decision.battery_charge_kw == pytest.approx(0.1 / 0.95)
        assert decision.grid_export_kw == pytest.approx(7.0 - 0.1 / 0.95)
        soc = next_soc(94, decision.battery_charge_kw, 0, 10, 0.95)
        assert soc == pytest.approx(DEFAULT_CONFIG.max_soc)

    def test_full_battery_exports(self):
        state = make_battery_state(95, 50, DEFAULT_CONFIG)
        decision = allocate(20.0, 5.0, state, 12, 7, DEFAULT_CONFIG)

        assert decision.battery_charge_kw == 0
        assert decision.grid_export_kw == pytest.approx(15.0)
        assert 'full' in decision.reason.lower()


class TestDeficit:
    """Test discharging under the day/night policy."""

    def test_day_discharge_above_min(self):
        state = make_battery_state(50, 50, DEFAULT_CONFIG)
        decision = allocate(1.0, 4.0, state, 12, 7, DEFAULT_CONFIG)

        assert decision.mode == 'day'
        assert decision.battery_discharge_kw == pytest.approx(3.0)
        assert decision.grid_import_kw == pytest.approx(0.0)

    def test_day_stops_at_min_soc(self):
        state = make_battery_state(DEFAULT_CONFIG.min_soc, 50, DEFAULT_CONFIG)
        decision = allocate(0.0, 4.0, state, 12, 7, DEFAULT_CONFIG)

        assert decision.battery_discharge_kw == 0
        assert decision.grid_import_kw == pytest.approx(4.0)

    def test_night_reserve_protected(self):
        state = make_battery_state(60, 50, DEFAULT_CONFIG)
        decision = allocate(0.0, 4.0, state, 2, 7, DEFAULT_CONFIG)

        assert decision.mode == 'night'
        assert decision.battery_discharge_kw == 0
        assert decision.grid_import_kw == pytest.approx(4.0)
        assert 'reserve' in decision.reason.lower()

    def test_discharge_limited_by_headroom(self):
        state = make_battery_state(16, 10, DEFAULT_CONFIG, 0.95)
        decision = allocate(0.0, 4.0, state, 12, 7, DEFAULT_CONFIG)

        assert decision.battery_discharge_kw == pytest.approx(0.1 * 0.95)
        soc = next_soc(16, 0, decision.battery_discharge_kw, 10, 0.95)
        assert soc == pytest.approx(DEFAULT_CONFIG.min_soc)


class TestBalancedBand:
    """Test the ±ε dead band."""

    def test_no_interaction_inside_band(self):
        state = make_battery_state(50, 50, DEFAULT_CONFIG)
        decision = allocate(5.03, 5.0, state, 12, 7, DEFAULT_CONFIG)

        assert decision.battery_charge_kw == 0
        assert decision.battery_discharge_kw == 0
        assert decision.grid_import_kw == 0
        assert decision.grid_export_kw == 0
        assert decision.direction == 'idle'
        assert decision.is_balanced()


class TestConservation:
    """Sources equal sinks for every allocation."""

    @pytest.mark.parametrize("strategy", all_strategies(), ids=lambda s: s.key)
    def test_all_strategies_conserve(self, strategy):
        cfg = strategy.config
        for soc, pv, load, hour, capacity in itertools.product(
            [0, 10, 30, 65, 80, 95, 100],
            [0.0, 2.0, 17.5, 40.0],
            [0.0, 0.04, 3.0, 12.0],
            [0, 6, 12, 21],
            [0.0, 10.0, 50.0],
        ):
            state = make_battery_state(soc, capacity, cfg, 0.95)
            decision = allocate(pv, load, state, hour, 7, cfg)
            assert abs(decision.balance_error_kw) <= EPSILON_KW + 1e-9
            assert min(decision.battery_charge_kw, decision.battery_discharge_kw,
                       decision.grid_import_kw, decision.grid_export_kw) >= 0
            assert not (decision.battery_charge_kw > 0 and decision.battery_discharge_kw > 0)

    def test_zero_capacity_uses_grid_only(self):
        state = make_battery_state(50, 0, DEFAULT_CONFIG)
        surplus = allocate(10.0, 2.0, state, 12, 7, DEFAULT_CONFIG)
        deficit = allocate(0.0, 5.0, state, 12, 7, DEFAULT_CONFIG)

        assert surplus.battery_charge_kw == 0 and surplus.grid_export_kw == pytest.approx(8.0)
        assert deficit.battery_discharge_kw == 0 and deficit.grid_import_kw == pytest.approx(5.0)

    def test_negative_inputs_clamped(self):
        state = make_battery_state(50, 50, DEFAULT_CONFIG)
        decision = allocate(-3.0, -1.0, state, 12, 7, DEFAULT_CONFIG)
        assert decision.pv_production_kw == 0
        assert decision.consumption_kw == 0
        assert decision.is_balanced()


class TestDecisionMetadata:
    """Test mode and peak classification."""

    def test_peak_solar_flag(self):
        state = make_battery_state(50, 50, DEFAULT_CONFIG)
        assert allocate(10, 2, state, 12, 7, DEFAULT_CONFIG).is_peak_solar
        assert not allocate(10, 2, state, 8, 7, DEFAULT_CONFIG).is_peak_solar

    def test_night_window_wraps(self):
        state = make_battery_state(50, 50, DEFAULT_CONFIG)
        assert allocate(0, 2, state, 20, 7, DEFAULT_CONFIG).mode == 'night'
        assert allocate(0, 2, state, 5, 7, DEFAULT_CONFIG).mode == 'night'
        assert allocate(0, 2, state, 6, 7, DEFAULT_CONFIG).mode == 'day'

    def test_invalid_calendar_input(self):
        state = make_battery_state(50, 50, DEFAULT_CONFIG)
        with pytest.raises(ValueError):
            allocate(1, 1, state, 24, 7, DEFAULT_CONFIG)
        with pytest.raises(ValueError):
            allocate(1, 1, state, 12, 0, DEFAULT_CONFIG)

    def test_repeatable(self):
        state = make_battery_state(72.5, 50, DEFAULT_CONFIG)
        assert allocate(3.3, 7.7, state, 21, 11, DEFAULT_CONFIG) == allocate(3.3, 7.7, state, 21, 11, DEFAULT_CONFIG)

    def test_net_flow(self):
        state = make_battery_state(50, 50, DEFAULT_CONFIG)
        assert np.isclose(allocate(7.0, 2.0, state, 12, 7, DEFAULT_CONFIG).net_flow_kw, 5.0)
