"""
Cost aggregation for grid import and export.

Hourly cost = import × (energy price + network price); exports earn the plan's
feed-in price. Daily totals add a pro-rated share of the monthly fixed fees.
Monthly figures are converted to CHF and include 8.1 % VAT.
"""

import calendar
from dataclasses import asdict, dataclass
from datetime import date
from typing import Optional, Sequence, Tuple, Union

import pandas as pd

from .tariffs import (
    NETWORK_USAGE_FEES,
    NetworkUsageFees,
    TariffPlan,
    energy_price,
    feed_in_price,
    get_tariff_plan,
    network_price,
)

VAT_RATE = 0.081


@dataclass(frozen=True)
class HourlyCost:
    hour: int
    import_kwh: float
    export_kwh: float
    energy_price_rp: float
    network_price_rp: float
    feed_in_price_rp: float
    energy_cost_rp: float
    network_cost_rp: float
    total_cost_rp: float
    feed_in_revenue_rp: float


@dataclass(frozen=True)
class DailyCostSummary:
    date: date
    tariff: str
    total_import_kwh: float
    total_export_kwh: float
    energy_cost_rp: float
    network_cost_rp: float
    fixed_cost_rp: float
    feed_in_revenue_rp: float
    hourly: Tuple[HourlyCost, ...]

    @property
    def net_import_kwh(self) -> float:
        return self.total_import_kwh - self.total_export_kwh

    @property
    def total_cost_rp(self) -> float:
        """Energy + network + pro-rated fixed fee."""
        return self.energy_cost_rp + self.network_cost_rp + self.fixed_cost_rp

    @property
    def net_cost_rp(self) -> float:
        return self.total_cost_rp - self.feed_in_revenue_rp

    def to_frame(self) -> pd.DataFrame:
        """Hourly breakdown as a DataFrame indexed by hour."""
        return pd.DataFrame([asdict(h) for h in self.hourly]).set_index('hour')


@dataclass(frozen=True)
class MonthlyCostSummary:
    month: int
    year: int
    days: int
    total_import_kwh: float
    total_export_kwh: float
    energy_cost_chf: float          # incl. VAT
    network_cost_chf: float         # incl. VAT
    fixed_cost_chf: float
    total_cost_excl_vat_chf: float
    total_cost_chf: float
    feed_in_revenue_chf: float      # incl. VAT

    @property
    def net_import_kwh(self) -> float:
        return self.total_import_kwh - self.total_export_kwh

    @property
    def net_cost_chf(self) -> float:
        return self.total_cost_chf - self.feed_in_revenue_chf

    @property
    def avg_cost_per_kwh_chf(self) -> float:
        return self.total_cost_chf / self.total_import_kwh if self.total_import_kwh > 0 else 0.0


def _resolve_plan(tariff_plan: Union[str, TariffPlan]) -> TariffPlan:
    if isinstance(tariff_plan, TariffPlan):
        return tariff_plan
    return get_tariff_plan(tariff_plan)


def _hourly_series(values: Sequence[float], name: str) -> list:
    values = list(values)
    if len(values) > 24:
        raise ValueError(f"{name}: expected at most 24 hourly values, got {len(values)}")
    values += [0.0] * (24 - len(values))
    return [max(0.0, float(v)) for v in values]


def hourly_cost(hour: int, weekday: int, month: int, import_kwh: float, export_kwh: float,
                tariff_plan: Union[str, TariffPlan], use_green_surcharge: bool = False,
                network_fees: NetworkUsageFees = NETWORK_USAGE_FEES) -> HourlyCost:
    """
    Cost and feed-in revenue for one hour.

    Raises:
        ConfigurationError: If the tariff plan is unknown
    """
    plan = _resolve_plan(tariff_plan)
    energy_rp = energy_price(plan, hour, weekday, use_green_surcharge)
    network_rp = network_price(month, network_fees)
    feed_in_rp = feed_in_price(plan, hour)

    energy_cost = import_kwh * energy_rp
    network_cost = import_kwh * network_rp
    return HourlyCost(
        hour=hour,
        import_kwh=import_kwh,
        export_kwh=export_kwh,
        energy_price_rp=energy_rp,
        network_price_rp=network_rp,
        feed_in_price_rp=feed_in_rp,
        energy_cost_rp=energy_cost,
        network_cost_rp=network_cost,
        total_cost_rp=energy_cost + network_cost,
        feed_in_revenue_rp=export_kwh * feed_in_rp,
    )


def daily_fixed_cost_rp(day: date, network_fees: NetworkUsageFees = NETWORK_USAGE_FEES) -> float:
    """Monthly meter and basic fee pro-rated over the days of the month (Rappen)."""
    days_in_month = calendar.monthrange(day.year, day.month)[1]
    return network_fees.monthly_fixed_chf * 100 / days_in_month


def daily_cost(day: date, hourly_imports: Sequence[float], hourly_exports: Sequence[float],
               tariff_plan: Union[str, TariffPlan], use_green_surcharge: bool = False,
               network_fees: NetworkUsageFees = NETWORK_USAGE_FEES) -> DailyCostSummary:
    """
    Aggregate one day of grid exchange into a cost summary.

    Args:
        day (date): Calendar day (selects weekday and season)
        hourly_imports (Sequence[float]): Grid import per hour in kWh (up to 24 values)
        hourly_exports (Sequence[float]): Grid export per hour in kWh (up to 24 values)
        tariff_plan (Union[str, TariffPlan]): Plan or plan type ('classic', 'flex', 'free')
        use_green_surcharge (bool): Add the green-energy surcharge to the energy price
        network_fees (NetworkUsageFees): Network usage fees

    Returns:
        DailyCostSummary: Totals in Rappen plus the hourly breakdown

    Raises:
        ConfigurationError: If the tariff plan is unknown
        ValueError: If more than 24 hourly values are given
    """
    plan = _resolve_plan(tariff_plan)
    imports = _hourly_series(hourly_imports, 'hourly_imports')
    exports = _hourly_series(hourly_exports, 'hourly_exports')

    hourly = tuple(
        hourly_cost(hour, day.weekday(), day.month, imports[hour], exports[hour],
                    plan, use_green_surcharge, network_fees)
        for hour in range(24)
    )
    return DailyCostSummary(
        date=day,
        tariff=plan.key,
        total_import_kwh=sum(imports),
        total_export_kwh=sum(exports),
        energy_cost_rp=sum(h.energy_cost_rp for h in hourly),
        network_cost_rp=sum(h.network_cost_rp for h in hourly),
        fixed_cost_rp=daily_fixed_cost_rp(day, network_fees),
        feed_in_revenue_rp=sum(h.feed_in_revenue_rp for h in hourly),
        hourly=hourly,
    )


def _monthly_summary(month: int, year: int, days: int, import_kwh: float, export_kwh: float,
                     energy_rp: float, network_rp: float, feed_in_rp: float,
                     network_fees: NetworkUsageFees) -> MonthlyCostSummary:
    energy_chf = energy_rp / 100
    network_chf = network_rp / 100
    fixed_chf = network_fees.monthly_fixed_chf
    excl_vat = energy_chf + network_chf + fixed_chf
    return MonthlyCostSummary(
        month=month,
        year=year,
        days=days,
        total_import_kwh=import_kwh,
        total_export_kwh=export_kwh,
        energy_cost_chf=energy_chf * (1 + VAT_RATE),
        network_cost_chf=network_chf * (1 + VAT_RATE),
        fixed_cost_chf=fixed_chf,
        total_cost_excl_vat_chf=excl_vat,
        total_cost_chf=excl_vat * (1 + VAT_RATE),
        feed_in_revenue_chf=feed_in_rp / 100 * (1 + VAT_RATE),
    )


def monthly_cost(month: int, year: int, daily_costs: Sequence[DailyCostSummary],
                 network_fees: NetworkUsageFees = NETWORK_USAGE_FEES) -> MonthlyCostSummary:
    """Sum real daily summaries into a month; the full monthly fixed fee is charged once."""
    return _monthly_summary(
        month, year, len(daily_costs),
        import_kwh=sum(d.total_import_kwh for d in daily_costs),
        export_kwh=sum(d.total_export_kwh for d in daily_costs),
        energy_rp=sum(d.energy_cost_rp for d in daily_costs),
        network_rp=sum(d.network_cost_rp for d in daily_costs),
        feed_in_rp=sum(d.feed_in_revenue_rp for d in daily_costs),
        network_fees=network_fees,
    )


def estimate_monthly_cost_from_day(daily: DailyCostSummary, days_in_month: Optional[int] = None,
                                   network_fees: NetworkUsageFees = NETWORK_USAGE_FEES) -> MonthlyCostSummary:
    """
    Approximate a month by scaling one simulated day.

    days_in_month defaults to the calendar length of the day's month.
    """
    if days_in_month is None:
        days_in_month = calendar.monthrange(daily.date.year, daily.date.month)[1]
    return _monthly_summary(
        daily.date.month, daily.date.year, days_in_month,
        import_kwh=daily.total_import_kwh * days_in_month,
        export_kwh=daily.total_export_kwh * days_in_month,
        energy_rp=daily.energy_cost_rp * days_in_month,
        network_rp=daily.network_cost_rp * days_in_month,
        feed_in_rp=daily.feed_in_revenue_rp * days_in_month,
        network_fees=network_fees,
    )
