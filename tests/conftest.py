"""Shared test fixtures for the building energy simulator tests."""

import pytest
from datetime import date
from pathlib import Path
import sys

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from building_energy_sim import config
from building_energy_sim.config import DEFAULT_BUILDING, DEFAULT_TENANTS, BatteryPack, Building
from building_energy_sim.consumption import shared_facility_consumption
from building_energy_sim.strategies import StrategyConfig
from building_energy_sim.tree_builder import TenantConsumptionData, build_consumer_tree


@pytest.fixture(autouse=True)
def no_disk_cache():
    """Turn the on-disk SOC cache off so tests never write to .cache."""
    previous = config.memory
    config.configure_cache(None)
    yield
    config.memory = previous


@pytest.fixture
def summer_day():
    """Wednesday in July."""
    return date(2025, 7, 9)


@pytest.fixture
def winter_day():
    """Wednesday in January."""
    return date(2025, 1, 15)


@pytest.fixture
def example_config():
    """Strategy used in the 20 kWh night-discharge example."""
    return StrategyConfig(
        min_soc=15, max_soc=95, target_night_soc=65, target_day_soc=30,
        max_charge_rate_kw=10, max_discharge_rate_kw=6,
        night_start=20, night_end=6, peak_solar_start=10, peak_solar_end=16,
    )


@pytest.fixture
def no_night_discharge_config():
    """Night reserve equal to max SOC: the battery never discharges at night."""
    return StrategyConfig(
        min_soc=15, max_soc=95, target_night_soc=95, target_day_soc=30,
        max_charge_rate_kw=10, max_discharge_rate_kw=5,
        night_start=20, night_end=6, peak_solar_start=10, peak_solar_end=16,
    )


@pytest.fixture
def building():
    return DEFAULT_BUILDING


@pytest.fixture
def tenants():
    return DEFAULT_TENANTS


@pytest.fixture
def single_pack_building():
    return Building(
        name='Test house',
        pv_peak_kw=10.0,
        efficiency=0.95,
        batteries=(BatteryPack(battery_id=1, inverter_id=1, capacity_kwh=10.0, branch='apartments'),),
    )


def _evening_tenant_data():
    graf, wetli, buerzle = DEFAULT_TENANTS
    return [
        TenantConsumptionData(graf, 800.0, 11000.0),
        TenantConsumptionData(wetli, 500.0),
        TenantConsumptionData(buerzle, 300.0),
    ]


@pytest.fixture
def evening_tree():
    """Consumer tree for a July evening at 22:00 (Graf's EV is charging) with assumptions."""
    return build_consumer_tree(_evening_tenant_data(), shared_facility_consumption(22, 7), True)


@pytest.fixture
def evening_tree_plain():
    """Same instant without assumed breakdowns."""
    return build_consumer_tree(_evening_tenant_data(), shared_facility_consumption(22, 7), False)
