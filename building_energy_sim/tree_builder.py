"""
Builds the building's consumer tree for one instant.

building
├── apartments
│   └── apartment_<tenant_id>  (simulated total)
│       ├── apartment_<id>_ev  (simulated, only while the EV charges)
│       └── assumed breakdown (kitchen, washing, ...) when assumptions are shown
└── shared
    └── shared_pool / shared_heating / shared_garage / shared_boiler
        └── assumed equipment breakdown when assumptions are shown
"""

from dataclasses import dataclass
from typing import Iterable, List

from .config import TenantProfile
from .consumption import SharedFacilityLoad
from .hierarchy import (
    BOILER_BREAKDOWN,
    DEFAULT_APARTMENT_WEIGHTS,
    DEFAULT_KITCHEN_WEIGHTS,
    GARAGE_BREAKDOWN,
    HEATING_BREAKDOWN,
    POOL_BREAKDOWN,
    ApartmentWeights,
    ConsumerNode,
    KitchenWeights,
    apply_template,
    update_power_from_children,
)

ROOT_ID = 'building'
APARTMENTS_ID = 'apartments'
SHARED_ID = 'shared'

# (key, display name, tags, breakdown)
SHARED_FACILITIES = (
    ('pool', 'Pool', ['Pool', 'Shared'], POOL_BREAKDOWN),
    ('heating', 'Heating', ['Heating', 'HVAC', 'Shared'], HEATING_BREAKDOWN),
    ('garage', 'Garage/Technical', ['Garage', 'Shared'], GARAGE_BREAKDOWN),
    ('boiler', 'Boiler/Hot water', ['Boiler', 'HotWater', 'Shared'], BOILER_BREAKDOWN),
)


@dataclass(frozen=True)
class TenantConsumptionData:
    tenant: TenantProfile
    household_power_w: float
    ev_charging_power_w: float = 0.0

    @property
    def total_power_w(self) -> float:
        return max(0.0, self.household_power_w) + max(0.0, self.ev_charging_power_w)


def _apartment_node(data: TenantConsumptionData, show_assumptions: bool,
                    apartment_weights: ApartmentWeights, kitchen_weights: KitchenWeights) -> ConsumerNode:
    tenant = data.tenant
    household_w = max(0.0, data.household_power_w)
    ev_w = max(0.0, data.ev_charging_power_w)

    apartment = ConsumerNode(
        id=f"apartment_{tenant.tenant_id}",
        name=tenant.name,
        type='group',
        parent_id=APARTMENTS_ID,
        power_w=household_w + ev_w,
        source='simulated',
        tags=['Apartment'],
    )

    if ev_w > 0:
        vehicle = tenant.vehicle.vehicle_type if tenant.vehicle else 'vehicle'
        apartment.children.append(ConsumerNode(
            id=f"{apartment.id}_ev",
            name=f"EV charging ({vehicle})",
            type='device',
            parent_id=apartment.id,
            power_w=ev_w,
            source='simulated',
            tags=['EV', 'Mobility'],
        ))

    breakdown = []
    if show_assumptions:
        breakdown = apply_template(apartment.id, household_w, apartment_weights.template(kitchen_weights))

    if breakdown:
        apartment.children.extend(breakdown)
    elif apartment.children and household_w > 0:
        # EV shown separately: the undivided household load needs its own node
        apartment.children.append(ConsumerNode(
            id=f"{apartment.id}_household",
            name='Household',
            type='device',
            parent_id=apartment.id,
            power_w=household_w,
            source='simulated',
            tags=['Household'],
        ))
    return apartment


def _facility_nodes(facility_data: SharedFacilityLoad, show_assumptions: bool) -> List[ConsumerNode]:
    loads_kw = facility_data.as_dict()
    nodes = []
    for key, name, tags, breakdown in SHARED_FACILITIES:
        power_w = max(0.0, loads_kw[f"{key}_kw"]) * 1000
        if power_w <= 0:
            continue
        node = ConsumerNode(
            id=f"shared_{key}",
            name=name,
            type='group',
            parent_id=SHARED_ID,
            power_w=power_w,
            source='simulated',
            tags=list(tags),
        )
        if show_assumptions:
            node.children = apply_template(node.id, power_w, breakdown)
        nodes.append(node)
    return nodes


def build_consumer_tree(tenant_data: Iterable[TenantConsumptionData], facility_data: SharedFacilityLoad,
                        show_assumptions: bool = True,
                        apartment_weights: ApartmentWeights = DEFAULT_APARTMENT_WEIGHTS,
                        kitchen_weights: KitchenWeights = DEFAULT_KITCHEN_WEIGHTS) -> ConsumerNode:
    """
    Assemble the consumer tree and aggregate it bottom-up.

    Args:
        tenant_data (Iterable[TenantConsumptionData]): Simulated load per apartment (W)
        facility_data (SharedFacilityLoad): Shared facility loads (kW)
        show_assumptions (bool): Add assumed template breakdowns
        apartment_weights (ApartmentWeights): Household breakdown shares
        kitchen_weights (KitchenWeights): Kitchen device breakdown shares

    Returns:
        ConsumerNode: Root node; every non-leaf power equals the sum of its children
    """
    root = ConsumerNode(id=ROOT_ID, name='Building', type='root', parent_id=None,
                        power_w=0.0, source='simulated', tags=['root'])
    apartments = ConsumerNode(id=APARTMENTS_ID, name='Apartments', type='group', parent_id=ROOT_ID,
                              power_w=0.0, source='simulated', tags=['Apartments'])
    shared = ConsumerNode(id=SHARED_ID, name='Shared', type='group', parent_id=ROOT_ID,
                          power_w=0.0, source='simulated', tags=['Shared', 'Common'])

    apartments.children = [
        _apartment_node(data, show_assumptions, apartment_weights, kitchen_weights)
        for data in tenant_data
    ]
    shared.children = _facility_nodes(facility_data, show_assumptions)
    root.children = [apartments, shared]

    return update_power_from_children(root)
