"""
Building, battery and tenant configuration.

Holds the static description of the simulated multi-unit building: PV plant,
inverter/battery pairs, tenant household profiles and the location of the
SOC memoisation cache. Configuration can be overridden from a YAML file:

    building:
      name: MFH Gängle 2+4
      pv_peak_kw: 66.88
      efficiency: 0.95
      batteries:
        - {battery_id: 1, inverter_id: 1, capacity_kwh: 50, branch: shared}
        - {battery_id: 2, inverter_id: 2, capacity_kwh: 50, branch: apartments}
    tenants:
      - {tenant_id: 1, name: Graf, category: family, floor_area_sqm: 160,
         household_size: 4, vehicle: {vehicle_type: Tesla, power_kw: 11,
         start_hour: 22, end_hour: 2}}
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import yaml
from joblib import Memory


class ConfigurationError(ValueError):
    """Raised for unknown presets, tariff plans or malformed building data."""


BRANCHES = ('shared', 'apartments')
TENANT_CATEGORIES = ('family', 'retired')

# Typical annual household consumption (kWh/year) by category
DEFAULT_ANNUAL_KWH = {
    'family': 5200.0,   # 160 m², 4 persons
    'retired': 4500.0,  # 200 m², 2 persons
}

CACHE_ENV_VAR = 'ENERGY_SIM_CACHE_DIR'
DEFAULT_CACHE_DIR = '.cache'


@dataclass(frozen=True)
class BatteryPack:
    """One inverter with its dedicated battery, feeding exactly one consumer branch."""
    battery_id: int
    inverter_id: int
    capacity_kwh: float
    branch: str

    def __post_init__(self):
        if self.capacity_kwh < 0:
            raise ConfigurationError(f"Battery {self.battery_id}: capacity must be >= 0, got {self.capacity_kwh}")
        if self.branch not in BRANCHES:
            raise ConfigurationError(f"Battery {self.battery_id}: unknown branch '{self.branch}' (expected one of {BRANCHES})")


@dataclass(frozen=True)
class Building:
    name: str
    pv_peak_kw: float
    efficiency: float
    batteries: Tuple[BatteryPack, ...]

    def __post_init__(self):
        if not self.batteries:
            raise ConfigurationError(f"Building '{self.name}' needs at least one battery pack")
        inverter_ids = [pack.inverter_id for pack in self.batteries]
        if len(set(inverter_ids)) != len(inverter_ids):
            raise ConfigurationError(f"Building '{self.name}': each battery needs its own inverter, got {inverter_ids}")
        if not 0 < self.efficiency <= 1:
            raise ConfigurationError(f"Building '{self.name}': efficiency must be in (0, 1], got {self.efficiency}")
        if self.pv_peak_kw < 0:
            raise ConfigurationError(f"Building '{self.name}': PV peak must be >= 0, got {self.pv_peak_kw}")

    @property
    def total_capacity_kwh(self) -> float:
        return sum(pack.capacity_kwh for pack in self.batteries)

    def battery_for_branch(self, branch: str) -> Optional[BatteryPack]:
        for pack in self.batteries:
            if pack.branch == branch:
                return pack
        return None


@dataclass(frozen=True)
class VehicleCharging:
    """EV charging window; end_hour may be smaller than start_hour (wraps past midnight)."""
    vehicle_type: str
    power_kw: float
    start_hour: int
    end_hour: int

    def is_charging(self, hour: int) -> bool:
        if self.start_hour == self.end_hour:
            return False
        if self.start_hour < self.end_hour:
            return self.start_hour <= hour < self.end_hour
        return hour >= self.start_hour or hour < self.end_hour


@dataclass(frozen=True)
class TenantProfile:
    tenant_id: int
    name: str
    category: str = 'family'
    floor_area_sqm: float = 160.0
    household_size: int = 4
    annual_kwh: Optional[float] = None
    vehicle: Optional[VehicleCharging] = None

    def __post_init__(self):
        if self.category not in TENANT_CATEGORIES:
            raise ConfigurationError(f"Tenant {self.tenant_id}: unknown category '{self.category}' (expected one of {TENANT_CATEGORIES})")

    @property
    def yearly_kwh(self) -> float:
        """Annual consumption, falling back to the category default."""
        if self.annual_kwh is not None:
            return self.annual_kwh
        return DEFAULT_ANNUAL_KWH[self.category]


DEFAULT_BUILDING = Building(
    name='MFH Gängle 2+4',
    pv_peak_kw=66.88,
    efficiency=0.95,
    batteries=(
        BatteryPack(battery_id=1, inverter_id=1, capacity_kwh=50.0, branch='shared'),
        BatteryPack(battery_id=2, inverter_id=2, capacity_kwh=50.0, branch='apartments'),
    ),
)

DEFAULT_TENANTS = (
    TenantProfile(1, 'Graf', 'family', 160.0, 4, 5200.0,
                  VehicleCharging('Tesla', 11.0, 22, 2)),
    TenantProfile(2, 'Wetli', 'retired', 200.0, 2, 4500.0,
                  VehicleCharging('VW', 7.4, 10, 13)),
    TenantProfile(3, 'Bürzle', 'family', 160.0, 4, 5200.0),
)


def _building_from_dict(data: Dict[str, Any]) -> Building:
    defaults = DEFAULT_BUILDING
    packs_data = data.get('batteries')
    if packs_data is None:
        packs = defaults.batteries
    else:
        try:
            packs = tuple(BatteryPack(**pack) for pack in packs_data)
        except TypeError as e:
            raise ConfigurationError(f"Invalid battery entry: {e}") from e
    return Building(
        name=data.get('name', defaults.name),
        pv_peak_kw=float(data.get('pv_peak_kw', defaults.pv_peak_kw)),
        efficiency=float(data.get('efficiency', defaults.efficiency)),
        batteries=packs,
    )


def _tenant_from_dict(data: Dict[str, Any]) -> TenantProfile:
    data = dict(data)
    vehicle = data.pop('vehicle', None)
    try:
        if vehicle is not None:
            vehicle = VehicleCharging(**vehicle)
        return TenantProfile(vehicle=vehicle, **data)
    except TypeError as e:
        raise ConfigurationError(f"Invalid tenant entry {data}: {e}") from e


def load_building_config(path: str) -> Tuple[Building, List[TenantProfile]]:
    """
    Load building and tenant configuration from a YAML file.

    Args:
        path (str): Path to the YAML file

    Returns:
        Tuple[Building, List[TenantProfile]]: Building and its tenants. Missing
        sections fall back to DEFAULT_BUILDING / DEFAULT_TENANTS.

    Raises:
        ConfigurationError: If the file content does not describe a valid building
    """
    with open(path, 'r') as f:
        config = yaml.safe_load(f) or {}

    if not isinstance(config, dict):
        raise ConfigurationError(f"{path}: expected a mapping at top level")

    building = _building_from_dict(config.get('building') or {})
    tenants_data = config.get('tenants')
    if tenants_data is None:
        tenants = list(DEFAULT_TENANTS)
    else:
        tenants = [_tenant_from_dict(t) for t in tenants_data]
    return building, tenants


# SOC re-simulation cache on disk
memory = Memory(location=os.environ.get(CACHE_ENV_VAR) or DEFAULT_CACHE_DIR, verbose=0)


def configure_cache(location: Optional[str]) -> Memory:
    """Point the SOC cache at a directory; None turns caching off."""
    global memory
    memory = Memory(location=location, verbose=0)
    return memory
