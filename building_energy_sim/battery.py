"""
Battery state engine.

Advances a battery's state of charge by one simulated hour from an allocator
decision and derives a plausible start-of-day SOC from calendar context.
States are immutable: every update returns a new BatteryState.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from functools import lru_cache
from typing import List, Optional, Sequence, Tuple

from joblib import Parallel, delayed

from . import config
from .allocator import FlowDecision, allocate
from .config import DEFAULT_BUILDING, DEFAULT_TENANTS, Building, TenantProfile
from .consumption import building_consumption
from .production import WINTER_MONTHS, pv_production, validate_hour, validate_month
from .strategies import StrategyConfig

logger = logging.getLogger(__name__)

# Headroom below this (kWh) is treated as none
NEGLIGIBLE_KWH = 1e-9

# Days the yearly SOC chain runs before 1 January
CHAIN_WARMUP_DAYS = 14


def clamp_soc(soc: float) -> float:
    return max(0.0, min(100.0, soc))


@dataclass(frozen=True)
class BatteryState:
    """
    Battery state at the start of a simulated hour.

    Headrooms are AC-side energies for one hour: charging exactly
    charge_headroom_kwh brings the battery to max_soc, discharging exactly
    discharge_headroom_kwh brings it to min_soc (round-trip losses included).
    """
    soc: float
    capacity_kwh: float
    energy_kwh: float
    charge_headroom_kwh: float
    discharge_headroom_kwh: float


def make_battery_state(soc: float, capacity_kwh: float, strategy_config: StrategyConfig,
                       efficiency: float = 0.95) -> BatteryState:
    """Build a BatteryState for the given SOC, capacity and strategy limits."""
    soc = clamp_soc(soc)
    capacity_kwh = max(0.0, capacity_kwh)

    if capacity_kwh <= 0 or efficiency <= 0:
        return BatteryState(soc=soc, capacity_kwh=capacity_kwh, energy_kwh=0.0,
                            charge_headroom_kwh=0.0, discharge_headroom_kwh=0.0)

    stored_to_max = max(0.0, (strategy_config.max_soc - soc) / 100 * capacity_kwh)
    stored_above_min = max(0.0, (soc - strategy_config.min_soc) / 100 * capacity_kwh)
    charge_headroom = stored_to_max / efficiency
    discharge_headroom = stored_above_min * efficiency

    return BatteryState(
        soc=soc,
        capacity_kwh=capacity_kwh,
        energy_kwh=soc / 100 * capacity_kwh,
        charge_headroom_kwh=charge_headroom if charge_headroom > NEGLIGIBLE_KWH else 0.0,
        discharge_headroom_kwh=discharge_headroom if discharge_headroom > NEGLIGIBLE_KWH else 0.0,
    )


def next_soc(soc: float, charge_kw: float, discharge_kw: float, capacity_kwh: float,
             efficiency: float = 0.95) -> float:
    """
    SOC after one hour of charging/discharging.

    Charging stores charge × efficiency; discharging removes discharge / efficiency.
    The result is always clamped to [0, 100].
    """
    if capacity_kwh <= 0 or efficiency <= 0:
        return clamp_soc(soc)

    new_soc = soc
    if charge_kw > 0:
        new_soc += (charge_kw * efficiency) / capacity_kwh * 100
    if discharge_kw > 0:
        new_soc -= (discharge_kw / efficiency) / capacity_kwh * 100
    return clamp_soc(new_soc)


def update_battery_state(state: BatteryState, decision, strategy_config: StrategyConfig,
                         efficiency: float = 0.95) -> BatteryState:
    """
    Integrate one hour of an allocator decision into a new battery state.

    Args:
        state (BatteryState): State at the start of the hour
        decision (FlowDecision): Allocator output for this hour
        strategy_config (StrategyConfig): Active strategy (for the headroom limits)
        efficiency (float): Battery round-trip efficiency

    Returns:
        BatteryState: State at the start of the next hour
    """
    soc = next_soc(state.soc, decision.battery_charge_kw, decision.battery_discharge_kw,
                   state.capacity_kwh, efficiency)
    return make_battery_state(soc, state.capacity_kwh, strategy_config, efficiency)


def start_of_day_soc(month: int, weekday: int, battery_index: int = 0) -> float:
    """
    Deterministic start SOC for a simulated day.

    Base 50 %, +15 in winter (long nights), +10 on weekends (higher daytime use),
    capped at 85 %, then 5 points lower for every sibling battery index.
    """
    month = validate_month(month)
    soc = 50.0
    if month in WINTER_MONTHS:
        soc += 15
    if weekday in (5, 6):
        soc += 10
    soc = min(85.0, soc)
    return clamp_soc(soc - 5.0 * battery_index)


def battery_share(building: Building, tenants: Sequence[TenantProfile], day: date, hour: int) -> Tuple[float, float]:
    """PV and consumption (kW) seen by one battery pack: the building totals split evenly across packs."""
    packs = len(building.batteries)
    pv = pv_production(building.pv_peak_kw, hour, day.month, building.efficiency)
    load = building_consumption(tenants, hour, day.weekday(), day.month)
    return pv / packs, load / packs


def step_battery(state: BatteryState, day: date, hour: int, strategy_config: StrategyConfig,
                 building: Building = DEFAULT_BUILDING,
                 tenants: Sequence[TenantProfile] = DEFAULT_TENANTS) -> Tuple[FlowDecision, BatteryState]:
    """Allocate one hour for one pack and return the decision with the resulting state."""
    pv_kw, load_kw = battery_share(building, tenants, day, hour)
    decision = allocate(pv_kw, load_kw, state, hour, day.month, strategy_config)
    return decision, update_battery_state(state, decision, strategy_config, building.efficiency)


def _run_day(day: date, start_soc: float, hours: int, battery_capacity_kwh: float,
             strategy_config: StrategyConfig, building: Building,
             tenants: Tuple[TenantProfile, ...]) -> float:
    state = make_battery_state(start_soc, battery_capacity_kwh, strategy_config, building.efficiency)
    for hour in range(hours):
        _, state = step_battery(state, day, hour, strategy_config, building, tenants)
    return state.soc


def chain_anchor(day: date) -> date:
    """First day of the SOC chain that `day` belongs to (1 January of its year)."""
    return date(day.year, 1, 1)


@lru_cache(maxsize=8192)
def _chained_start_soc(day: date, battery_capacity_kwh: float, battery_index: int,
                       strategy_config: StrategyConfig, building: Building,
                       tenants: Tuple[TenantProfile, ...]) -> float:
    anchor = chain_anchor(day)
    if day == anchor:
        current = anchor - timedelta(days=CHAIN_WARMUP_DAYS)
        soc = start_of_day_soc(current.month, current.weekday(), battery_index)
        while current < anchor:
            soc = _run_day(current, soc, 24, battery_capacity_kwh, strategy_config, building, tenants)
            current += timedelta(days=1)
        return soc

    previous = day - timedelta(days=1)
    start = _chained_start_soc(previous, battery_capacity_kwh, battery_index, strategy_config, building, tenants)
    return _run_day(previous, start, 24, battery_capacity_kwh, strategy_config, building, tenants)


def day_start_soc(day: date, battery_capacity_kwh: float, battery_index: int,
                  strategy_config: StrategyConfig, building: Building = DEFAULT_BUILDING,
                  tenants: Sequence[TenantProfile] = DEFAULT_TENANTS) -> float:
    """
    SOC at 00:00 of `day` on the continuous chain of its year.

    The chain starts CHAIN_WARMUP_DAYS before 1 January from the calendar
    start SOC and carries the SOC across every midnight after that. Days are
    filled in order so each one only steps through its predecessor.
    """
    tenants = tuple(tenants)
    anchor = chain_anchor(day)
    soc = None
    for offset in range((day - anchor).days + 1):
        soc = _chained_start_soc(anchor + timedelta(days=offset), battery_capacity_kwh, battery_index,
                                 strategy_config, building, tenants)
    return soc


def _resimulate_soc(day: date, hours_into_day: int, battery_capacity_kwh: float, battery_index: int,
                    strategy_config: StrategyConfig, building: Building,
                    tenants: Tuple[TenantProfile, ...]) -> float:
    logger.debug("Re-simulating battery %d from %s 00:00 to %s +%dh",
                 battery_index, chain_anchor(day).isoformat(), day.isoformat(), hours_into_day)
    start = day_start_soc(day, battery_capacity_kwh, battery_index, strategy_config, building, tenants)
    return _run_day(day, start, hours_into_day, battery_capacity_kwh, strategy_config, building, tenants)


def soc_at(day: date, hour: int, battery_capacity_kwh: float, battery_index: int,
           strategy_config: StrategyConfig, building: Building = DEFAULT_BUILDING,
           tenants: Sequence[TenantProfile] = DEFAULT_TENANTS) -> float:
    """
    SOC at the start of hour `hour` on `day`.

    Every query reads the same trajectory: one continuous run per calendar
    year (see day_start_soc) stepped through hours 0 .. hour - 1 of `day`.
    soc_at(D + 1, 0) is therefore exactly end_of_day_soc(D), i.e. soc_at(D, 23)
    advanced by the hour-23 decision. The only restart is at 00:00 on
    1 January, where the new chain has already run CHAIN_WARMUP_DAYS of
    December. Results are memoised in config.memory.

    Args:
        day (date): Simulated calendar day
        hour (int): Hour of day (0-23)
        battery_capacity_kwh (float): Capacity of this pack
        battery_index (int): Position of the pack (offsets the start SOC)
        strategy_config (StrategyConfig): Active strategy
        building (Building): Building whose PV and loads are shared across packs
        tenants (Sequence[TenantProfile]): Tenant households

    Returns:
        float: SOC in percent (0-100)
    """
    hour = validate_hour(hour)
    cached = config.memory.cache(_resimulate_soc)
    return cached(day, hour, battery_capacity_kwh, battery_index, strategy_config, building, tuple(tenants))


def end_of_day_soc(day: date, battery_capacity_kwh: float, battery_index: int,
                   strategy_config: StrategyConfig, building: Building = DEFAULT_BUILDING,
                   tenants: Sequence[TenantProfile] = DEFAULT_TENANTS) -> float:
    """SOC after hour 23 of `day` on the same run as soc_at."""
    cached = config.memory.cache(_resimulate_soc)
    return cached(day, 24, battery_capacity_kwh, battery_index, strategy_config, building, tuple(tenants))


def soc_series(day: date, battery_capacity_kwh: float, battery_index: int,
               strategy_config: StrategyConfig, building: Building = DEFAULT_BUILDING,
               tenants: Sequence[TenantProfile] = DEFAULT_TENANTS,
               n_jobs: int = 1, prefer: Optional[str] = None) -> List[float]:
    """
    SOC at the start of every hour of `day` (24 sparkline points).

    Each point is an independent soc_at query, fanned out with joblib.
    """
    return Parallel(n_jobs=n_jobs, prefer=prefer)(
        delayed(soc_at)(day, hour, battery_capacity_kwh, battery_index, strategy_config, building, tuple(tenants))
        for hour in range(24)
    )


def simulate_battery_day(day: date, start_soc: float, battery_capacity_kwh: float,
                         strategy_config: StrategyConfig, building: Building = DEFAULT_BUILDING,
                         tenants: Sequence[TenantProfile] = DEFAULT_TENANTS) -> List[Tuple[FlowDecision, BatteryState]]:
    """
    Run one pack through the 24 hours of `day`.

    Returns:
        List[Tuple[FlowDecision, BatteryState]]: Per hour, the decision and the state after it
    """
    state = make_battery_state(start_soc, battery_capacity_kwh, strategy_config, building.efficiency)
    hours = []
    for hour in range(24):
        decision, state = step_battery(state, day, hour, strategy_config, building, tenants)
        hours.append((decision, state))
    return hours
