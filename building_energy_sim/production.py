"""
Solar production model.

Instantaneous PV generation from peak capacity, hour of day and month, using a
per-month sunrise/sunset table (Baizers, 46.5°N), a sinusoidal intraday curve,
a seasonal sun-elevation factor and a per-month cloud-cover discount.
"""

import math

import numpy as np

# Sunrise / sunset (decimal hours) per month
SUN_TIMES = {
    1: (8.0, 17.5),
    2: (7.5, 18.5),
    3: (6.5, 19.5),
    4: (5.5, 20.5),
    5: (5.0, 21.0),
    6: (4.75, 21.5),
    7: (5.0, 21.25),
    8: (5.75, 20.5),
    9: (6.75, 19.25),
    10: (7.75, 18.0),
    11: (8.5, 17.0),
    12: (8.75, 16.75),
}

# Average cloud cover per month (Switzerland)
CLOUD_COVER = {
    1: 0.65, 2: 0.62, 3: 0.58, 4: 0.55, 5: 0.50, 6: 0.48,
    7: 0.45, 8: 0.48, 9: 0.52, 10: 0.60, 11: 0.65, 12: 0.68,
}

WINTER_MONTHS = (12, 1, 2)
SPRING_MONTHS = (3, 4, 5)
SUMMER_MONTHS = (6, 7, 8)


def validate_month(month: int) -> int:
    if not isinstance(month, (int, np.integer)) or not 1 <= month <= 12:
        raise ValueError(f"month must be an integer in 1..12, got {month!r}")
    return int(month)


def validate_hour(hour: int) -> int:
    if not isinstance(hour, (int, np.integer)) or not 0 <= hour <= 23:
        raise ValueError(f"hour must be an integer in 0..23, got {hour!r}")
    return int(hour)


def validate_hour_of_day(hour: float) -> float:
    """Hour as a float in [0, 24); fractional hours are allowed."""
    if isinstance(hour, bool) or not isinstance(hour, (int, float, np.integer, np.floating)) or not 0 <= hour < 24:
        raise ValueError(f"hour must be a number in [0, 24), got {hour!r}")
    return float(hour)


def seasonal_elevation_factor(month: int) -> float:
    """Relative sun elevation: flat winter sun, full height in summer."""
    month = validate_month(month)
    if month in WINTER_MONTHS:
        return 0.55
    if month in SPRING_MONTHS:
        return 0.8
    if month in SUMMER_MONTHS:
        return 1.0
    return 0.75


def pv_production(peak_kw: float, hour: float, month: int, efficiency: float = 0.95) -> float:
    """
    Calculate instantaneous PV production.

    Args:
        peak_kw (float): Installed PV peak capacity in kW
        hour (float): Hour of day (0-23, fractional hours allowed)
        month (int): Month (1-12)
        efficiency (float): Conversion efficiency (0.0-1.0)

    Returns:
        float: Production in kW. Exactly 0 before sunrise and after sunset.

    Raises:
        ValueError: If month is outside 1-12 or hour is outside [0, 24)
    """
    hour = validate_hour_of_day(hour)
    month = validate_month(month)
    sunrise, sunset = SUN_TIMES[month]

    if hour < sunrise or hour > sunset:
        return 0.0

    day_progress = (hour - sunrise) / (sunset - sunrise)
    intensity = math.sin(day_progress * math.pi)
    clear_sky = 1.0 - CLOUD_COVER[month]

    production = peak_kw * intensity * seasonal_elevation_factor(month) * clear_sky * efficiency
    return max(0.0, production)


def daily_production_profile(peak_kw: float, month: int, efficiency: float = 0.95) -> np.ndarray:
    """Hourly production (kW) for hours 0-23 of a day in the given month."""
    return np.array([pv_production(peak_kw, hour, month, efficiency) for hour in range(24)])
