"""
Hour-by-hour energy flow simulation for a multi-unit building with PV,
several inverter/battery pairs, tenant and shared-facility loads and grid
exchange.
"""

from .allocator import EPSILON_KW, FlowDecision, allocate
from .battery import (
    BatteryState,
    end_of_day_soc,
    make_battery_state,
    soc_at,
    soc_series,
    start_of_day_soc,
    update_battery_state,
)
from .config import (
    DEFAULT_BUILDING,
    DEFAULT_TENANTS,
    BatteryPack,
    Building,
    ConfigurationError,
    TenantProfile,
    VehicleCharging,
    configure_cache,
    load_building_config,
)
from .consumption import building_consumption, shared_facility_consumption, tenant_consumption
from .costs import DailyCostSummary, MonthlyCostSummary, daily_cost, estimate_monthly_cost_from_day, monthly_cost
from .flow_graph import BatterySource, FlowGraph, SourceState, build_flow_graph
from .hierarchy import ConsumerNode, TreeValidation, validate_tree
from .production import pv_production
from .simulation import advance_time, elapsed_hours, hourly_snapshot, live_replay, simulate_day, simulate_period
from .strategies import StrategyConfig, all_strategies, get_strategy
from .tariffs import get_tariff_plan
from .tree_builder import TenantConsumptionData, build_consumer_tree

__version__ = '0.1.0'
