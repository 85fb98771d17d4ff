"""
Electricity tariff reference data (LKW Liechtenstein, 2025 price sheets).

All energy prices are in Rappen per kWh, fixed fees in CHF per month.
Weekdays follow date.weekday(): 0 = Monday ... 6 = Sunday.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .config import ConfigurationError
from .consumption import validate_weekday
from .production import validate_hour, validate_month

TARIFF_TYPES = ('classic', 'flex', 'free')

# classic high tariff: Mon-Fri 07-20, Sat 07-13
CLASSIC_WEEKDAY_HIGH_HOURS = tuple(range(7, 20))
CLASSIC_SATURDAY_HIGH_HOURS = tuple(range(7, 13))

FLEX_SAVER_HOURS = (2, 3, 4, 5, 11, 12, 13, 14, 15, 16)
FLEX_PEAK_HOURS = (17, 18, 19)


@dataclass(frozen=True)
class FeedInTariff:
    """Market-oriented feed-in remuneration with a guaranteed minimum."""
    average_market_rate: float = 7.5    # Rp/kWh
    minimum_rate: float = 6.0           # Rp/kWh

    def price(self, hour: int) -> float:
        hour = validate_hour(hour)
        if 17 <= hour < 20:
            variation = 1.3     # evening peak
        elif 11 <= hour < 14:
            variation = 1.2     # midday
        elif 2 <= hour < 6:
            variation = 0.8     # night
        else:
            variation = 1.0
        return max(self.average_market_rate * variation, self.minimum_rate)


@dataclass(frozen=True)
class NetworkUsageFees:
    meter_fee_chf: float = 7.00         # CHF/month
    basic_fee_chf: float = 3.50         # CHF/month
    summer: float = 7.90                # Rp/kWh, April-September
    winter: float = 9.70                # Rp/kWh, October-March
    swissgrid_usage: float = 0.55
    swissgrid_reserve: float = 0.23
    efficiency_surcharge: float = 1.50

    @property
    def monthly_fixed_chf(self) -> float:
        return self.meter_fee_chf + self.basic_fee_chf

    def price(self, month: int) -> float:
        """Network usage price (Rp/kWh) including the grid operator surcharges."""
        base = self.winter if is_winter_month(month) else self.summer
        return base + self.swissgrid_usage + self.swissgrid_reserve + self.efficiency_surcharge


@dataclass(frozen=True)
class TariffPlan:
    key: str
    name: str
    description: str
    energy_prices: Dict[str, float] = field(default_factory=dict)
    processing_fee: float = 0.0
    eco_surcharge: float = 0.0          # optional green-energy surcharge
    feed_in: Optional[FeedInTariff] = None


FEED_IN_TARIFF = FeedInTariff()
NETWORK_USAGE_FEES = NetworkUsageFees()

LKW_CLASSIC = TariffPlan(
    key='classic',
    name='LKWclassic',
    description='Fixed price with high and low tariff',
    energy_prices={'high': 12.80, 'low': 10.90},
    processing_fee=0.0,
    eco_surcharge=5.00,
    feed_in=FEED_IN_TARIFF,
)

LKW_FLEX = TariffPlan(
    key='flex',
    name='LKWflex',
    description='Monthly dynamic tariff with saver, normal and peak levels',
    energy_prices={'saver': 11.84, 'normal': 13.02, 'peak': 15.39, 'dynamic': 1.00},
    processing_fee=3.00,
    eco_surcharge=5.00,
    feed_in=FEED_IN_TARIFF,
)

LKW_FREE = TariffPlan(
    key='free',
    name='LKWfree',
    description='Fully flexible, follows EPEX Spot CH exchange prices',
    energy_prices={'base_market': 10.00, 'dynamic': 1.00},
    processing_fee=2.60,
    eco_surcharge=5.00,
    feed_in=FEED_IN_TARIFF,
)

ALL_TARIFF_PLANS = {plan.key: plan for plan in (LKW_CLASSIC, LKW_FLEX, LKW_FREE)}


def get_tariff_plan(key: str) -> TariffPlan:
    """
    Look up a tariff plan by type.

    Raises:
        ConfigurationError: If the plan type is unknown
    """
    try:
        return ALL_TARIFF_PLANS[key]
    except KeyError:
        raise ConfigurationError(
            f"Unknown tariff plan '{key}'. Available: {', '.join(TARIFF_TYPES)}"
        ) from None


def is_winter_month(month: int) -> bool:
    month = validate_month(month)
    return month >= 10 or month <= 3


def is_high_tariff_hour(hour: int, weekday: int) -> bool:
    """classic plan: Mon-Fri 07-20 and Sat 07-13 are high tariff."""
    hour, weekday = validate_hour(hour), validate_weekday(weekday)
    if 0 <= weekday <= 4:
        return hour in CLASSIC_WEEKDAY_HIGH_HOURS
    if weekday == 5:
        return hour in CLASSIC_SATURDAY_HIGH_HOURS
    return False


def flex_tariff_level(hour: int) -> str:
    if hour in FLEX_SAVER_HOURS:
        return 'saver'
    if hour in FLEX_PEAK_HOURS:
        return 'peak'
    return 'normal'


def _base_energy_price(plan: TariffPlan, hour: int, weekday: int) -> Tuple[float, str]:
    prices = plan.energy_prices
    if plan.key == 'classic':
        level = 'high' if is_high_tariff_hour(hour, weekday) else 'low'
        return prices[level], level
    if plan.key == 'flex':
        level = flex_tariff_level(hour)
        return prices[level] + prices.get('dynamic', 0.0), level
    if plan.key == 'free':
        return prices.get('base_market', 10.0) + prices.get('dynamic', 0.0), 'market'
    raise ConfigurationError(f"Unknown tariff plan type '{plan.key}'")


def energy_price(plan: TariffPlan, hour: int, weekday: int, use_green_surcharge: bool = False) -> float:
    """
    Energy unit price (Rp/kWh) for one hour.

    Args:
        plan (TariffPlan): Active tariff plan
        hour (int): Hour of day (0-23)
        weekday (int): Day of week (0=Monday)
        use_green_surcharge (bool): Add the plan's green-energy surcharge

    Returns:
        float: Price including the processing fee

    Raises:
        ValueError: If hour or weekday is out of range
    """
    price, _ = _base_energy_price(plan, validate_hour(hour), validate_weekday(weekday))
    if use_green_surcharge:
        price += plan.eco_surcharge
    return price + plan.processing_fee


def tariff_level(plan: TariffPlan, hour: int, weekday: int) -> str:
    """Name of the time-of-use window ('high', 'low', 'saver', 'normal', 'peak', 'market')."""
    return _base_energy_price(plan, validate_hour(hour), validate_weekday(weekday))[1]


def network_price(month: int, fees: NetworkUsageFees = NETWORK_USAGE_FEES) -> float:
    return fees.price(month)


def feed_in_price(plan: TariffPlan, hour: int) -> float:
    """Feed-in remuneration (Rp/kWh); 0 for plans without a feed-in tariff."""
    if plan.feed_in is None:
        validate_hour(hour)
        return 0.0
    return plan.feed_in.price(hour)
