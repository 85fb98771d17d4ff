"""
Battery management strategies.

A strategy is a named preset of thresholds and rates. All presets share the same
transition rule in the allocator; they only differ in the numbers below.
"""

from dataclasses import dataclass
from typing import List

from .config import ConfigurationError


@dataclass(frozen=True)
class StrategyConfig:
    min_soc: float              # reserve (%)
    max_soc: float              # overcharge protection (%)
    target_night_soc: float     # night reserve: discharge at night only above this (%)
    target_day_soc: float       # (%)
    max_charge_rate_kw: float   # per battery
    max_discharge_rate_kw: float
    night_start: int            # hour
    night_end: int
    peak_solar_start: int
    peak_solar_end: int

    def is_night(self, hour: int) -> bool:
        return hour >= self.night_start or hour < self.night_end

    def is_peak_solar(self, hour: int) -> bool:
        return self.peak_solar_start <= hour <= self.peak_solar_end


@dataclass(frozen=True)
class StrategyPriority:
    battery_preservation: int   # 0-10
    grid_independence: int
    cost_saving: int
    flexibility: int


@dataclass(frozen=True)
class Strategy:
    key: str
    name: str
    description: str
    config: StrategyConfig
    priority: StrategyPriority


DEFAULT_CONFIG = StrategyConfig(
    min_soc=15, max_soc=95, target_night_soc=70, target_day_soc=30,
    max_charge_rate_kw=10, max_discharge_rate_kw=5,
    night_start=20, night_end=6, peak_solar_start=10, peak_solar_end=16,
)

COST_OPTIMIZATION = Strategy(
    key='cost',
    name='Cost optimisation',
    description='Minimises electricity cost: use the battery at night instead of expensive grid power',
    config=StrategyConfig(
        min_soc=10, max_soc=98, target_night_soc=15, target_day_soc=25,
        max_charge_rate_kw=11, max_discharge_rate_kw=7,
        night_start=22, night_end=5, peak_solar_start=10, peak_solar_end=16,
    ),
    priority=StrategyPriority(battery_preservation=3, grid_independence=8, cost_saving=10, flexibility=5),
)

SELF_CONSUMPTION_OPTIMIZATION = Strategy(
    key='self_consumption',
    name='Maximise self-consumption',
    description='Maximises use of the building\'s own PV energy',
    config=DEFAULT_CONFIG,
    priority=StrategyPriority(battery_preservation=5, grid_independence=9, cost_saving=7, flexibility=6),
)

FLEXIBILITY_OPTIMIZATION = Strategy(
    key='flexibility',
    name='Maximum flexibility',
    description='Keeps the battery mid-range, ready for unforeseen events',
    config=StrategyConfig(
        min_soc=30, max_soc=85, target_night_soc=60, target_day_soc=50,
        max_charge_rate_kw=12, max_discharge_rate_kw=8,
        night_start=21, night_end=6, peak_solar_start=9, peak_solar_end=17,
    ),
    priority=StrategyPriority(battery_preservation=6, grid_independence=6, cost_saving=5, flexibility=10),
)

GRID_STABILITY_OPTIMIZATION = Strategy(
    key='grid_stability',
    name='Grid stability',
    description='Relieves the grid at peak times by holding a larger reserve',
    config=StrategyConfig(
        min_soc=20, max_soc=90, target_night_soc=75, target_day_soc=40,
        max_charge_rate_kw=9, max_discharge_rate_kw=6,
        night_start=20, night_end=7, peak_solar_start=11, peak_solar_end=15,
    ),
    priority=StrategyPriority(battery_preservation=7, grid_independence=5, cost_saving=6, flexibility=7),
)

BALANCED_OPTIMIZATION = Strategy(
    key='balanced',
    name='Balanced',
    description='Everyday compromise between all goals',
    config=DEFAULT_CONFIG,
    priority=StrategyPriority(battery_preservation=6, grid_independence=7, cost_saving=7, flexibility=6),
)

ALL_STRATEGIES = {
    s.key: s for s in (
        COST_OPTIMIZATION,
        SELF_CONSUMPTION_OPTIMIZATION,
        FLEXIBILITY_OPTIMIZATION,
        GRID_STABILITY_OPTIMIZATION,
        BALANCED_OPTIMIZATION,
    )
}


def get_strategy(key: str) -> Strategy:
    """
    Look up a strategy preset by key.

    Raises:
        ConfigurationError: If the key is not a known preset
    """
    try:
        return ALL_STRATEGIES[key]
    except KeyError:
        raise ConfigurationError(
            f"Unknown strategy '{key}'. Available: {', '.join(sorted(ALL_STRATEGIES))}"
        ) from None


def all_strategies() -> List[Strategy]:
    return list(ALL_STRATEGIES.values())
