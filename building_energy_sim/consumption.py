"""
Household and shared-facility consumption model.

Tenant load = annual kWh / 8760 × hourly shape × seasonal multiplier × weekend
multiplier. Every multiplier table is normalised to a mean of 1.0 so that the
24 × 7 × 12 average reproduces the annual total.
"""

from dataclasses import asdict, dataclass
from typing import Dict, Iterable

import numpy as np

from .config import TenantProfile
from .production import validate_hour, validate_month

HOURS_PER_YEAR = 8760

# Raw hourly shapes (relative load per hour, index = hour of day)
_FAMILY_WEEKDAY_RAW = np.array(
    [0.15] * 6 +     # 00-06 night
    [1.8] * 2 +      # 06-08 morning routine
    [0.25] * 8 +     # 08-16 at work / school
    [1.9] * 6 +      # 16-22 cooking, TV, homework
    [0.15] * 2       # 22-24 night
)
_FAMILY_WEEKEND_RAW = np.array(
    [0.2] * 7 +      # 00-07 night
    [1.3] * 2 +      # 07-09 breakfast
    [1.0] * 3 +      # 09-12 morning
    [1.5] * 2 +      # 12-14 lunch
    [1.1] * 4 +      # 14-18 afternoon
    [1.7] * 4 +      # 18-22 dinner, TV
    [0.2] * 2        # 22-24 night
)
_RETIRED_RAW = np.array(
    [0.15] * 6 +     # 00-06 night
    [1.1] * 3 +      # 06-09 breakfast
    [0.8] * 3 +      # 09-12 morning
    [1.3] * 2 +      # 12-14 lunch
    [0.7] * 3 +      # 14-17 afternoon
    [1.2] * 3 +      # 17-20 dinner
    [0.9] * 3 +      # 20-23 evening TV
    [0.15]           # 23-24 night
)

# Winter (heating, less daylight) > transitional > summer
_SEASON_RAW = {
    1: 1.2, 2: 1.2, 3: 1.05, 4: 1.05, 5: 1.05, 6: 0.85,
    7: 0.85, 8: 0.85, 9: 1.05, 10: 1.05, 11: 1.05, 12: 1.2,
}
_WEEKEND_RAW = 1.10
_WEEKDAY_RAW = 1.0


def _normalise(values: np.ndarray) -> np.ndarray:
    return values / values.mean()


FAMILY_WEEKDAY_SHAPE = _normalise(_FAMILY_WEEKDAY_RAW)
FAMILY_WEEKEND_SHAPE = _normalise(_FAMILY_WEEKEND_RAW)
RETIRED_SHAPE = _normalise(_RETIRED_RAW)

_season_values = _normalise(np.array([_SEASON_RAW[m] for m in range(1, 13)]))
SEASON_MULTIPLIERS = {month: float(_season_values[month - 1]) for month in range(1, 13)}

_week_mean = (5 * _WEEKDAY_RAW + 2 * _WEEKEND_RAW) / 7
WEEKDAY_MULTIPLIER = _WEEKDAY_RAW / _week_mean
WEEKEND_MULTIPLIER = _WEEKEND_RAW / _week_mean


def validate_weekday(weekday: int) -> int:
    """Weekday follows date.weekday(): 0 = Monday ... 6 = Sunday."""
    if not isinstance(weekday, (int, np.integer)) or not 0 <= weekday <= 6:
        raise ValueError(f"weekday must be an integer in 0..6 (Monday=0), got {weekday!r}")
    return int(weekday)


def is_weekend(weekday: int) -> bool:
    return validate_weekday(weekday) >= 5


def season_multiplier(month: int) -> float:
    return SEASON_MULTIPLIERS[validate_month(month)]


def weekend_multiplier(weekday: int) -> float:
    return WEEKEND_MULTIPLIER if is_weekend(weekday) else WEEKDAY_MULTIPLIER


def hourly_shape(category: str, hour: int, weekday: int) -> float:
    """Hourly-shape multiplier for a tenant category ('family' or 'retired')."""
    hour = validate_hour(hour)
    if category == 'retired':
        return float(RETIRED_SHAPE[hour])
    if is_weekend(weekday):
        return float(FAMILY_WEEKEND_SHAPE[hour])
    return float(FAMILY_WEEKDAY_SHAPE[hour])


def tenant_consumption(profile: TenantProfile, hour: int, weekday: int, month: int) -> float:
    """
    Calculate a household's instantaneous load (without EV charging).

    Args:
        profile (TenantProfile): Tenant household profile
        hour (int): Hour of day (0-23)
        weekday (int): Day of week (0=Monday, 6=Sunday)
        month (int): Month (1-12)

    Returns:
        float: Load in kW
    """
    base_kw = profile.yearly_kwh / HOURS_PER_YEAR
    return (base_kw
            * hourly_shape(profile.category, hour, weekday)
            * season_multiplier(month)
            * weekend_multiplier(weekday))


def vehicle_charging_load(profile: TenantProfile, hour: int) -> float:
    """EV charging load in kW; tenants without vehicle data contribute nothing."""
    hour = validate_hour(hour)
    vehicle = profile.vehicle
    if vehicle is None or vehicle.power_kw <= 0:
        return 0.0
    return vehicle.power_kw if vehicle.is_charging(hour) else 0.0


def total_tenant_consumption(tenants: Iterable[TenantProfile], hour: int, weekday: int, month: int) -> float:
    """Sum of household and EV loads of all tenants in kW."""
    return sum(
        tenant_consumption(t, hour, weekday, month) + vehicle_charging_load(t, hour)
        for t in tenants
    )


@dataclass(frozen=True)
class SharedFacilityLoad:
    pool_kw: float
    heating_kw: float
    garage_kw: float
    boiler_kw: float

    @property
    def total_kw(self) -> float:
        return self.pool_kw + self.heating_kw + self.garage_kw + self.boiler_kw

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def shared_facility_consumption(hour: int, month: int) -> SharedFacilityLoad:
    """
    Shared-facility loads (pool, space heating, garage, domestic hot water).

    Args:
        hour (int): Hour of day (0-23)
        month (int): Month (1-12)

    Returns:
        SharedFacilityLoad: Per-facility load in kW
    """
    hour = validate_hour(hour)
    month = validate_month(month)

    # Pool pump runs 08-22, heated less in the cold season
    if 8 <= hour <= 22:
        if month in (12, 1, 2):
            pool = 0.3
        elif month in (3, 11):
            pool = 1.2
        else:
            pool = 2.5
    else:
        pool = 0.05

    garage = 0.3 if 6 <= hour <= 23 else 0.05

    daytime = 6 <= hour <= 22
    if month in (12, 1, 2):
        heating = 6.0 if daytime else 1.5
    elif month in (3, 11):
        heating = 2.5 if daytime else 0.5
    else:
        heating = 0.5 if daytime else 0.1

    if 6 <= hour <= 8 or 18 <= hour <= 21:
        boiler = 1.2
    elif 9 <= hour <= 17:
        boiler = 0.3
    else:
        boiler = 0.2

    return SharedFacilityLoad(pool_kw=pool, heating_kw=heating, garage_kw=garage, boiler_kw=boiler)


def building_consumption(tenants: Iterable[TenantProfile], hour: int, weekday: int, month: int) -> float:
    """Total building load in kW: all tenants plus shared facilities."""
    return (total_tenant_consumption(tenants, hour, weekday, month)
            + shared_facility_consumption(hour, month).total_kw)
