"""
Whole-building simulation.

Ties the models together for one building: PV and loads are computed per hour,
every battery pack runs through the allocator with its share, and the results
are collected into pandas DataFrames (one row per hour). hourly_snapshot()
gives the complete picture for a single instant, including the consumer tree
and flow graph; live_replay() yields such snapshots on a timer.
"""

import logging
import threading
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple, Union

import pandas as pd
from tqdm import tqdm

from .allocator import EPSILON_KW, FlowDecision, allocate
from .battery import make_battery_state, soc_at, step_battery
from .config import DEFAULT_BUILDING, DEFAULT_TENANTS, Building, TenantProfile
from .consumption import shared_facility_consumption, tenant_consumption, vehicle_charging_load, SharedFacilityLoad
from .flow_graph import BatterySource, FlowGraph, SourceState, build_flow_graph
from .hierarchy import ConsumerNode, TreeValidation, validate_tree
from .production import pv_production, validate_hour
from .strategies import Strategy, StrategyConfig, get_strategy
from .tree_builder import TenantConsumptionData, build_consumer_tree

logger = logging.getLogger(__name__)

LIVE_SPEEDS = (1, 2, 5, 10)

# Plausibility limits
NIGHT_CHECK_START, NIGHT_CHECK_END = 22, 5
NOON_CHECK_START, NOON_CHECK_END = 10, 14
NIGHT_PV_LIMIT_KW = 0.1
LOW_NOON_PV_KW = 5.0
LOW_SOC_PERCENT = 15.0
HIGH_SOC_PERCENT = 95.0
MIN_PLAUSIBLE_LOAD_KW = 0.1
MAX_PLAUSIBLE_LOAD_KW = 50.0
PEAK_TOLERANCE = 1.05


def _strategy_config(strategy: Union[str, Strategy, StrategyConfig]) -> StrategyConfig:
    if isinstance(strategy, StrategyConfig):
        return strategy
    if isinstance(strategy, Strategy):
        return strategy.config
    return get_strategy(strategy).config


def _start_socs(day: date, strategy_config: StrategyConfig, building: Building,
                tenants: Sequence[TenantProfile]) -> List[float]:
    return [
        soc_at(day, 0, pack.capacity_kwh, index, strategy_config, building, tenants)
        for index, pack in enumerate(building.batteries)
    ]


def simulate_day(day: date, strategy: Union[str, Strategy, StrategyConfig] = 'balanced',
                 building: Building = DEFAULT_BUILDING,
                 tenants: Sequence[TenantProfile] = DEFAULT_TENANTS,
                 start_socs: Optional[Sequence[float]] = None) -> pd.DataFrame:
    """
    Simulate the 24 hours of one day for the whole building.

    Args:
        day (date): Day to simulate
        strategy: Strategy key, preset or config
        building (Building): Building with its battery packs
        tenants (Sequence[TenantProfile]): Tenant households
        start_socs (Optional[Sequence[float]]): SOC per pack at 00:00; by default
            derived with soc_at() so the day continues the previous one

    Returns:
        pd.DataFrame: One row per hour. Power columns are kW (= kWh per hour);
        battery_soc_percent is the mean SOC after the hour, per-pack SOC is in
        battery_<id>_soc_percent.
    """
    strategy_config = _strategy_config(strategy)
    tenants = tuple(tenants)
    if start_socs is None:
        start_socs = _start_socs(day, strategy_config, building, tenants)
    if len(start_socs) != len(building.batteries):
        raise ValueError(f"Expected {len(building.batteries)} start SOC values, got {len(start_socs)}")

    states = [
        make_battery_state(soc, pack.capacity_kwh, strategy_config, building.efficiency)
        for soc, pack in zip(start_socs, building.batteries)
    ]

    results = []
    for hour in range(24):
        shared = shared_facility_consumption(hour, day.month)
        tenant_kw = sum(
            tenant_consumption(t, hour, day.weekday(), day.month) + vehicle_charging_load(t, hour)
            for t in tenants
        )
        row = {
            'datetime': datetime(day.year, day.month, day.day, hour),
            'hour': hour,
            'pv_production_kw': pv_production(building.pv_peak_kw, hour, day.month, building.efficiency),
            'tenant_consumption_kw': tenant_kw,
            'shared_consumption_kw': shared.total_kw,
            'consumption_kw': tenant_kw + shared.total_kw,
            'battery_charge_kw': 0.0,
            'battery_discharge_kw': 0.0,
            'grid_import_kw': 0.0,
            'grid_export_kw': 0.0,
            'mode': 'night' if strategy_config.is_night(hour) else 'day',
        }

        socs = []
        for i, pack in enumerate(building.batteries):
            decision, states[i] = step_battery(states[i], day, hour, strategy_config, building, tenants)
            row['battery_charge_kw'] += decision.battery_charge_kw
            row['battery_discharge_kw'] += decision.battery_discharge_kw
            row['grid_import_kw'] += decision.grid_import_kw
            row['grid_export_kw'] += decision.grid_export_kw
            row[f"battery_{pack.battery_id}_soc_percent"] = states[i].soc
            row[f"battery_{pack.battery_id}_direction"] = decision.direction
            socs.append(states[i].soc)

        # Packs idle inside their dead band; the building meter still sees their sum
        residual = (row['pv_production_kw'] + row['battery_discharge_kw'] + row['grid_import_kw']
                    - row['consumption_kw'] - row['battery_charge_kw'] - row['grid_export_kw'])
        if residual > EPSILON_KW:
            row['grid_export_kw'] += residual
        elif residual < -EPSILON_KW:
            row['grid_import_kw'] -= residual

        row['battery_soc_percent'] = sum(socs) / len(socs)
        results.append(row)

    logger.debug("Simulated %s with %d battery pack(s)", day.isoformat(), len(building.batteries))
    return pd.DataFrame(results)


def simulate_period(start: date, days: int, strategy: Union[str, Strategy, StrategyConfig] = 'balanced',
                    building: Building = DEFAULT_BUILDING,
                    tenants: Sequence[TenantProfile] = DEFAULT_TENANTS,
                    progress: bool = True) -> pd.DataFrame:
    """
    Simulate consecutive days, carrying every pack's SOC from one day into the next.

    The first day starts from soc_at(start, 0, ...).
    """
    if days < 1:
        raise ValueError(f"days must be >= 1, got {days}")

    strategy_config = _strategy_config(strategy)
    tenants = tuple(tenants)
    start_socs = None
    frames = []

    for offset in tqdm(range(days), desc="Simulating days", unit="day", disable=not progress):
        day = start + timedelta(days=offset)
        frame = simulate_day(day, strategy_config, building, tenants, start_socs)
        start_socs = [frame[f"battery_{pack.battery_id}_soc_percent"].iloc[-1] for pack in building.batteries]
        frames.append(frame)

    return pd.concat(frames, ignore_index=True)


def summarize(results: pd.DataFrame) -> Dict[str, float]:
    """Energy totals (kWh) and self-sufficiency of a simulation result."""
    consumption = results['consumption_kw'].sum()
    grid_import = results['grid_import_kw'].sum()
    return {
        'pv_production_kwh': results['pv_production_kw'].sum(),
        'consumption_kwh': consumption,
        'battery_charge_kwh': results['battery_charge_kw'].sum(),
        'battery_discharge_kwh': results['battery_discharge_kw'].sum(),
        'grid_import_kwh': grid_import,
        'grid_export_kwh': results['grid_export_kw'].sum(),
        'self_sufficiency_percent': (1 - grid_import / consumption) * 100 if consumption > 0 else 0.0,
        'avg_soc_percent': results['battery_soc_percent'].mean(),
    }


@dataclass(frozen=True)
class BatterySnapshot:
    battery_id: int
    branch: str
    capacity_kwh: float
    soc_percent: float
    decision: FlowDecision


@dataclass
class HourlySnapshot:
    timestamp: datetime
    strategy: StrategyConfig
    pv_production_kw: float
    pv_peak_kw: float
    tenant_data: Tuple[TenantConsumptionData, ...]
    facility_load: SharedFacilityLoad
    batteries: Tuple[BatterySnapshot, ...]
    tree: ConsumerNode
    flow_graph: FlowGraph
    validation: TreeValidation

    @property
    def consumption_kw(self) -> float:
        return sum(t.total_power_w for t in self.tenant_data) / 1000 + self.facility_load.total_kw

    @property
    def battery_charge_kw(self) -> float:
        return sum(b.decision.battery_charge_kw for b in self.batteries)

    @property
    def battery_discharge_kw(self) -> float:
        return sum(b.decision.battery_discharge_kw for b in self.batteries)

    @property
    def _residual_kw(self) -> float:
        residual = (self.pv_production_kw + self.battery_discharge_kw
                    + sum(b.decision.grid_import_kw for b in self.batteries)
                    - self.consumption_kw - self.battery_charge_kw
                    - sum(b.decision.grid_export_kw for b in self.batteries))
        return residual if abs(residual) > EPSILON_KW else 0.0

    @property
    def grid_import_kw(self) -> float:
        return sum(b.decision.grid_import_kw for b in self.batteries) + max(0.0, -self._residual_kw)

    @property
    def grid_export_kw(self) -> float:
        return sum(b.decision.grid_export_kw for b in self.batteries) + max(0.0, self._residual_kw)

    @property
    def plausibility(self) -> 'PlausibilityReport':
        return plausibility_warnings(self)


class PlausibilityReport(NamedTuple):
    warnings: Tuple[str, ...]
    info: Tuple[str, ...]


def plausibility_warnings(snapshot: HourlySnapshot) -> PlausibilityReport:
    """
    Sanity checks on the instantaneous values of a snapshot.

    Warnings flag values that point at a modelling or data error (PV at night,
    SOC outside 0-100 %, implausible load or PV above the installed peak).
    Info entries describe unusual but legitimate situations such as a dull
    winter noon or a battery running low.
    """
    warnings = []
    info = []
    hour = snapshot.timestamp.hour
    pv_kw = snapshot.pv_production_kw
    load_kw = snapshot.consumption_kw

    if (hour >= NIGHT_CHECK_START or hour < NIGHT_CHECK_END) and pv_kw > NIGHT_PV_LIMIT_KW:
        warnings.append(f"PV production at night ({pv_kw:.1f} kW) is unusual; expected ~0 kW")
    if NOON_CHECK_START <= hour <= NOON_CHECK_END and pv_kw < LOW_NOON_PV_KW:
        info.append(f"PV production around noon is low ({pv_kw:.1f} kW); winter or overcast sky")

    for battery in snapshot.batteries:
        if not 0 <= battery.soc_percent <= 100:
            warnings.append(f"Battery {battery.battery_id} SOC ({battery.soc_percent:.1f}%) is outside 0-100%")
        elif battery.soc_percent < LOW_SOC_PERCENT:
            info.append(f"Battery {battery.battery_id} is low ({battery.soc_percent:.1f}%); grid supply is used")

    if load_kw < MIN_PLAUSIBLE_LOAD_KW:
        warnings.append(f"Total consumption is very low ({load_kw:.1f} kW)")
    if load_kw > MAX_PLAUSIBLE_LOAD_KW:
        warnings.append(f"Total consumption is very high ({load_kw:.1f} kW)")

    if pv_kw > snapshot.pv_peak_kw * PEAK_TOLERANCE:
        warnings.append(f"PV production ({pv_kw:.1f} kW) exceeds the installed {snapshot.pv_peak_kw:.2f} kWp")

    net_kw = pv_kw - load_kw
    if abs(net_kw) > max(snapshot.pv_peak_kw, MAX_PLAUSIBLE_LOAD_KW) * PEAK_TOLERANCE:
        warnings.append(f"Net flow ({net_kw:.1f} kW) is unrealistically large; check PV and consumption")

    socs = [b.soc_percent for b in snapshot.batteries]
    if (len(socs) > 1 and max(socs) - min(socs) < 0.1
            and all(LOW_SOC_PERCENT < soc < HIGH_SOC_PERCENT for soc in socs)):
        info.append(f"All batteries are at nearly the same SOC ({socs[0]:.1f}%), as with a symmetric load split")

    capacities = {b.capacity_kwh for b in snapshot.batteries}
    if len(capacities) > 1:
        listed = ', '.join(f"battery {b.battery_id} {b.capacity_kwh:g} kWh" for b in snapshot.batteries)
        info.append(f"Batteries have different capacities ({listed})")

    return PlausibilityReport(tuple(warnings), tuple(info))


def tenant_consumption_data(tenants: Sequence[TenantProfile], hour: int, weekday: int,
                            month: int) -> Tuple[TenantConsumptionData, ...]:
    return tuple(
        TenantConsumptionData(
            tenant=t,
            household_power_w=tenant_consumption(t, hour, weekday, month) * 1000,
            ev_charging_power_w=vehicle_charging_load(t, hour) * 1000,
        )
        for t in tenants
    )


def hourly_snapshot(when: datetime, strategy: Union[str, Strategy, StrategyConfig] = 'balanced',
                    building: Building = DEFAULT_BUILDING,
                    tenants: Sequence[TenantProfile] = DEFAULT_TENANTS,
                    show_assumptions: bool = True,
                    focus_node_id: Optional[str] = None) -> HourlySnapshot:
    """
    Recompute everything for the hour containing `when`.

    Battery SOCs come from soc_at(), so a snapshot never depends on earlier
    snapshots and can be taken for any instant in any order.
    """
    strategy_config = _strategy_config(strategy)
    tenants = tuple(tenants)
    day, hour = when.date(), validate_hour(when.hour)

    pv_kw = pv_production(building.pv_peak_kw, hour, day.month, building.efficiency)
    tenant_data = tenant_consumption_data(tenants, hour, day.weekday(), day.month)
    facility_load = shared_facility_consumption(hour, day.month)
    consumption_kw = sum(t.total_power_w for t in tenant_data) / 1000 + facility_load.total_kw

    packs = len(building.batteries)
    batteries = []
    for index, pack in enumerate(building.batteries):
        soc = soc_at(day, hour, pack.capacity_kwh, index, strategy_config, building, tenants)
        state = make_battery_state(soc, pack.capacity_kwh, strategy_config, building.efficiency)
        decision = allocate(pv_kw / packs, consumption_kw / packs, state, hour, day.month, strategy_config)
        batteries.append(BatterySnapshot(pack.battery_id, pack.branch, pack.capacity_kwh, soc, decision))

    tree = build_consumer_tree(tenant_data, facility_load, show_assumptions)
    source_state = SourceState(
        pv_production_w=pv_kw * 1000,
        batteries=tuple(BatterySource(b.battery_id, b.branch, b.soc_percent, b.decision.direction)
                        for b in batteries),
    )
    graph = build_flow_graph(tree, focus_node_id, source_state, show_assumptions)

    return HourlySnapshot(
        timestamp=datetime(day.year, day.month, day.day, hour),
        strategy=strategy_config,
        pv_production_kw=pv_kw,
        pv_peak_kw=building.pv_peak_kw,
        tenant_data=tenant_data,
        facility_load=facility_load,
        batteries=tuple(batteries),
        tree=tree,
        flow_graph=graph,
        validation=validate_tree(tree),
    )


def advance_time(when: datetime, hours: int = 1) -> datetime:
    return when + timedelta(hours=hours)


def elapsed_hours(start: datetime, end: datetime) -> float:
    """Hours between two instants (negative if end is before start)."""
    return (end - start).total_seconds() / 3600


def live_replay(start: datetime, speed: int = 1, strategy: Union[str, Strategy, StrategyConfig] = 'balanced',
                building: Building = DEFAULT_BUILDING,
                tenants: Sequence[TenantProfile] = DEFAULT_TENANTS,
                show_assumptions: bool = True,
                stop_event: Optional[threading.Event] = None,
                max_ticks: Optional[int] = None,
                sleep: Callable[[float], None] = time.sleep) -> Iterator[HourlySnapshot]:
    """
    Replay simulated hours on a timer, one freshly computed snapshot per tick.

    One simulated hour passes every 1 / speed seconds. Setting stop_event ends
    the replay at the next tick boundary; nothing is carried between ticks.

    Args:
        start (datetime): First simulated instant
        speed (int): Replay speed, one of 1, 2, 5, 10
        stop_event (Optional[threading.Event]): Cancels the replay when set
        max_ticks (Optional[int]): Stop after this many snapshots
        sleep (Callable[[float], None]): Wait function between ticks

    Yields:
        HourlySnapshot: Snapshot of the current simulated hour
    """
    if speed not in LIVE_SPEEDS:
        raise ValueError(f"speed must be one of {LIVE_SPEEDS}, got {speed}")

    interval = 1.0 / speed
    strategy_config = _strategy_config(strategy)
    tenants = tuple(tenants)
    when = start
    ticks = 0

    while stop_event is None or not stop_event.is_set():
        yield hourly_snapshot(when, strategy_config, building, tenants, show_assumptions)
        ticks += 1
        if max_ticks is not None and ticks >= max_ticks:
            return
        sleep(interval)
        when = advance_time(when)
