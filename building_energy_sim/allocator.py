"""
Energy flow allocator.

Decides for one simulated hour how much power a battery charges or discharges
and how much is imported from / exported to the grid. The transition rule is
the same for every strategy; presets only change thresholds and rates.

Conservation: pv + discharge + import == consumption + charge + export. The
residual after battery action always goes to the grid in full, so the balance
is exact except inside the ±EPSILON_KW dead band.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .production import validate_hour, validate_month
from .strategies import StrategyConfig

if TYPE_CHECKING:
    from .battery import BatteryState

logger = logging.getLogger(__name__)

EPSILON_KW = 0.05

# Flows below this (kW) do not count as charging/discharging
_IDLE_KW = 1e-9


@dataclass(frozen=True)
class FlowDecision:
    pv_production_kw: float
    consumption_kw: float
    battery_charge_kw: float
    battery_discharge_kw: float
    grid_import_kw: float
    grid_export_kw: float
    mode: str               # 'day' or 'night'
    is_peak_solar: bool
    reason: str

    @property
    def net_flow_kw(self) -> float:
        return self.pv_production_kw - self.consumption_kw

    @property
    def direction(self) -> str:
        if self.battery_charge_kw > _IDLE_KW:
            return 'charging'
        if self.battery_discharge_kw > _IDLE_KW:
            return 'discharging'
        return 'idle'

    @property
    def balance_error_kw(self) -> float:
        """Sources minus sinks; zero for a conserving decision."""
        sources = self.pv_production_kw + self.battery_discharge_kw + self.grid_import_kw
        sinks = self.consumption_kw + self.battery_charge_kw + self.grid_export_kw
        return sources - sinks

    def is_balanced(self, tolerance: float = EPSILON_KW) -> bool:
        return abs(self.balance_error_kw) <= tolerance + 1e-9


def allocate(pv_kw: float, consumption_kw: float, state: 'BatteryState', hour: int, month: int,
             config: StrategyConfig) -> FlowDecision:
    """
    Decide battery and grid flows for one hour.

    Args:
        pv_kw (float): PV production available to this battery (kW)
        consumption_kw (float): Load served by this battery's share (kW)
        state (BatteryState): Battery state at the start of the hour
        hour (int): Hour of day (0-23)
        month (int): Month (1-12)
        config (StrategyConfig): Active strategy thresholds

    Returns:
        FlowDecision: Charge/discharge and grid exchange for the hour
    """
    hour = validate_hour(hour)
    validate_month(month)

    pv_kw = max(0.0, pv_kw)
    consumption_kw = max(0.0, consumption_kw)
    net = pv_kw - consumption_kw

    night = config.is_night(hour)
    mode = 'night' if night else 'day'
    peak = config.is_peak_solar(hour)

    charge = discharge = grid_import = grid_export = 0.0

    if net > EPSILON_KW:
        if state.soc < config.max_soc and state.charge_headroom_kwh > 0:
            charge = min(net, config.max_charge_rate_kw, state.charge_headroom_kwh)
            grid_export = net - charge
            if grid_export > 0:
                reason = f"Solar surplus: charging {charge:.1f} kW, exporting {grid_export:.1f} kW"
            else:
                reason = f"Solar surplus: charging {charge:.1f} kW"
        else:
            grid_export = net
            reason = f"Battery full ({state.soc:.0f}%): exporting {grid_export:.1f} kW"
    elif net < -EPSILON_KW:
        deficit = -net
        floor = config.target_night_soc if night else config.min_soc
        if state.soc > floor and state.discharge_headroom_kwh > 0:
            discharge = min(deficit, config.max_discharge_rate_kw, state.discharge_headroom_kwh)
            grid_import = deficit - discharge
            reason = f"{mode.capitalize()} deficit: discharging {discharge:.1f} kW"
            if grid_import > 0:
                reason += f", importing {grid_import:.1f} kW"
        else:
            grid_import = deficit
            if night:
                reason = f"Night reserve protected ({state.soc:.0f}% <= {floor:.0f}%): importing {grid_import:.1f} kW"
            else:
                reason = f"Minimum SOC reached ({state.soc:.0f}%): importing {grid_import:.1f} kW"
    else:
        reason = "Balanced: no battery or grid exchange"

    decision = FlowDecision(
        pv_production_kw=pv_kw,
        consumption_kw=consumption_kw,
        battery_charge_kw=charge,
        battery_discharge_kw=discharge,
        grid_import_kw=grid_import,
        grid_export_kw=grid_export,
        mode=mode,
        is_peak_solar=peak,
        reason=reason,
    )
    logger.debug("hour %02d month %d soc %.1f%%: %s", hour, month, state.soc, reason)
    return decision
