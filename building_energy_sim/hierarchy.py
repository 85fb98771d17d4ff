"""
Consumer hierarchy: node type, percentage templates and tree utilities.

A consumer tree is root -> groups -> devices. Simulated totals can be broken
down further with percentage templates; every node produced that way is tagged
'assumed' and carries the rule name and a confidence score. After a tree is
assembled, update_power_from_children() makes every non-leaf power the exact
sum of its children, which is what prevents double counting.
"""

import copy
import logging
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Tuple

from .config import ConfigurationError

logger = logging.getLogger(__name__)

NODE_TYPES = ('root', 'group', 'device')
DATA_SOURCES = ('measured', 'simulated', 'assumed', 'mixed')

MAX_ASSUMPTION_DEPTH = 3
MIN_POWER_THRESHOLD_W = 50       # only subdivide loads above this
SUBDIVIDE_THRESHOLD_W = 200      # second-level breakdown (e.g. kitchen devices)
TREE_TOLERANCE_W = 0.1

UNATTRIBUTED_SUFFIX = '__unattributed'


@dataclass(frozen=True)
class Assumption:
    rule: str
    confidence: float   # 0-1
    reason: str = ''


@dataclass
class ConsumerNode:
    id: str
    name: str
    type: str
    parent_id: Optional[str]
    power_w: float
    source: str
    tags: List[str] = field(default_factory=list)
    children: List['ConsumerNode'] = field(default_factory=list)
    assumption: Optional[Assumption] = None

    def __post_init__(self):
        if self.type not in NODE_TYPES:
            raise ValueError(f"Unknown node type '{self.type}'")
        if self.source not in DATA_SOURCES:
            raise ValueError(f"Unknown data source '{self.source}'")
        self.power_w = max(0.0, self.power_w)

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def walk(self) -> Iterator['ConsumerNode']:
        """Pre-order traversal."""
        yield self
        for child in self.children:
            yield from child.walk()


@dataclass(frozen=True)
class TemplatePart:
    key: str
    name: str
    share: float
    tags: Tuple[str, ...] = ()
    subtemplate: Optional['BreakdownTemplate'] = None


@dataclass(frozen=True)
class BreakdownTemplate:
    """
    Percentage breakdown of a parent's power into assumed children.

    Only parents above min_power_w are broken down; parts smaller than part_min_w are
    folded into a single "minor loads" node so the children still add up.
    """
    rule: str
    confidence: float
    parts: Tuple[TemplatePart, ...]
    min_power_w: float = MIN_POWER_THRESHOLD_W
    part_min_w: float = MIN_POWER_THRESHOLD_W
    reason: str = ''

    def __post_init__(self):
        total = sum(part.share for part in self.parts)
        if abs(total - 1.0) > 1e-6:
            raise ConfigurationError(f"Template '{self.rule}': shares must add up to 1.0, got {total:.4f}")
        if not 0 <= self.confidence <= 1:
            raise ConfigurationError(f"Template '{self.rule}': confidence must be within 0..1")


@dataclass(frozen=True)
class KitchenWeights:
    oven: float = 0.30
    stove: float = 0.35
    fridge: float = 0.20
    dishwasher: float = 0.10
    other: float = 0.05

    def template(self) -> BreakdownTemplate:
        return BreakdownTemplate(
            rule='KitchenTemplate',
            confidence=0.6,
            reason='Typical kitchen appliance distribution',
            parts=(
                TemplatePart('oven', 'Oven', self.oven, ('Kitchen', 'Cooking')),
                TemplatePart('stove', 'Stove', self.stove, ('Kitchen', 'Cooking')),
                TemplatePart('fridge', 'Fridge', self.fridge, ('Kitchen', 'Cooling')),
                TemplatePart('dishwasher', 'Dishwasher', self.dishwasher, ('Kitchen',)),
                TemplatePart('other', 'Other', self.other, ('Kitchen', 'Other')),
            ),
        )


@dataclass(frozen=True)
class ApartmentWeights:
    kitchen: float = 0.25
    washing: float = 0.15
    it_standby: float = 0.20
    lighting: float = 0.15
    other: float = 0.20
    unknown: float = 0.05

    def template(self, kitchen: KitchenWeights = KitchenWeights()) -> BreakdownTemplate:
        return BreakdownTemplate(
            rule='ApartmentTemplate',
            confidence=0.7,
            reason='No detailed measurement data available',
            parts=(
                TemplatePart('kitchen', 'Kitchen', self.kitchen, ('Kitchen',), kitchen.template()),
                TemplatePart('washing', 'Washing', self.washing, ('Washing',)),
                TemplatePart('it', 'IT/Standby', self.it_standby, ('IT', 'Standby')),
                TemplatePart('lighting', 'Lighting', self.lighting, ('Lighting',)),
                TemplatePart('other', 'Other', self.other, ('Other',)),
                TemplatePart('unknown', 'Unknown', self.unknown, ('Unknown',)),
            ),
        )


DEFAULT_APARTMENT_WEIGHTS = ApartmentWeights()
DEFAULT_KITCHEN_WEIGHTS = KitchenWeights()

POOL_BREAKDOWN = BreakdownTemplate(
    rule='PoolBreakdown', confidence=0.7, min_power_w=200, part_min_w=0,
    reason='Typical pool equipment distribution',
    parts=(
        TemplatePart('pump', 'Pump', 0.60, ('Pool', 'Pump')),
        TemplatePart('heating', 'Pool heating', 0.35, ('Pool', 'Heating')),
        TemplatePart('control', 'Control', 0.05, ('Pool', 'Control')),
    ),
)

HEATING_BREAKDOWN = BreakdownTemplate(
    rule='HeatingBreakdown', confidence=0.75, min_power_w=200, part_min_w=0,
    reason='Heat pump typically dominates heating consumption',
    parts=(
        TemplatePart('heatpump', 'Heat pump', 0.80, ('Heating', 'HeatPump')),
        TemplatePart('circulation', 'Circulation pumps', 0.15, ('Heating', 'Pump')),
        TemplatePart('control', 'Control', 0.05, ('Heating', 'Control')),
    ),
)

GARAGE_BREAKDOWN = BreakdownTemplate(
    rule='GarageBreakdown', confidence=0.6, min_power_w=100, part_min_w=0,
    reason='Garage lighting and equipment',
    parts=(
        TemplatePart('lighting', 'Lighting', 0.40, ('Garage', 'Lighting')),
        TemplatePart('door', 'Door', 0.30, ('Garage', 'Door')),
        TemplatePart('other', 'Other', 0.30, ('Garage', 'Other')),
    ),
)

BOILER_BREAKDOWN = BreakdownTemplate(
    rule='BoilerBreakdown', confidence=0.7, min_power_w=100, part_min_w=0,
    reason='Hot water heating element dominates',
    parts=(
        TemplatePart('main', 'Heating element', 0.85, ('Boiler', 'HotWater')),
        TemplatePart('circulation', 'Circulation', 0.10, ('Boiler', 'Pump')),
        TemplatePart('control', 'Control', 0.05, ('Boiler', 'Control')),
    ),
)


def apply_template(parent_id: str, power_w: float, template: BreakdownTemplate,
                   depth: int = 0) -> List[ConsumerNode]:
    """
    Break `power_w` of node `parent_id` down into assumed children.

    Args:
        parent_id (str): Id of the node being decomposed
        power_w (float): Power to distribute (W)
        template (BreakdownTemplate): Percentage template
        depth (int): Assumption depth of the parent (0 = first breakdown)

    Returns:
        List[ConsumerNode]: Children whose power adds up to power_w, or an
        empty list when the power is too small or the depth limit is reached
    """
    if depth >= MAX_ASSUMPTION_DEPTH or power_w <= max(template.min_power_w, MIN_POWER_THRESHOLD_W):
        return []

    assumption = Assumption(rule=template.rule, confidence=template.confidence, reason=template.reason)
    children = []
    minor_w = 0.0

    for part in template.parts:
        part_w = power_w * part.share
        if part_w <= 0:
            continue
        if part_w < template.part_min_w:
            minor_w += part_w
            continue

        node = ConsumerNode(
            id=f"{parent_id}_{part.key}",
            name=part.name,
            type='device',
            parent_id=parent_id,
            power_w=part_w,
            source='assumed',
            tags=list(part.tags),
            assumption=assumption,
        )
        if (part.subtemplate is not None and part_w >= SUBDIVIDE_THRESHOLD_W
                and depth < MAX_ASSUMPTION_DEPTH - 1):
            node.children = apply_template(node.id, part_w, part.subtemplate, depth + 1)
            if node.children:
                node.type = 'group'
        children.append(node)

    if not children:
        return []

    if minor_w > 0:
        children.append(ConsumerNode(
            id=f"{parent_id}_minor",
            name='Minor loads',
            type='device',
            parent_id=parent_id,
            power_w=minor_w,
            source='assumed',
            tags=['Other'],
            assumption=assumption,
        ))
    return children


def aggregate_power(node: ConsumerNode) -> float:
    """Total power of a node computed from its leaves (does not modify the tree)."""
    if node.is_leaf:
        return node.power_w
    return sum(aggregate_power(child) for child in node.children)


def update_power_from_children(node: ConsumerNode) -> ConsumerNode:
    """
    Bottom-up aggregation: every non-leaf power becomes the sum of its children.

    A node whose children have different sources becomes 'mixed'.
    """
    if node.is_leaf:
        return node
    for child in node.children:
        update_power_from_children(child)
    node.power_w = sum(child.power_w for child in node.children)
    if len({child.source for child in node.children}) > 1:
        node.source = 'mixed'
    return node


@dataclass(frozen=True)
class TreeValidation:
    valid: bool
    errors: Tuple[str, ...] = ()


def validate_tree(root: ConsumerNode, tolerance: float = TREE_TOLERANCE_W) -> TreeValidation:
    """
    Check that every non-leaf power equals the sum of its children.

    Mismatches are reported, not raised, so callers can flag the data while
    the simulation keeps running.
    """
    errors = []
    seen = set()
    for node in root.walk():
        if node.id in seen:
            errors.append(f"Duplicate node id '{node.id}'")
        seen.add(node.id)
        if node.power_w < 0:
            errors.append(f"Node '{node.id}' has negative power {node.power_w:.3f} W")
        if node.is_leaf:
            continue
        children_w = sum(child.power_w for child in node.children)
        if abs(node.power_w - children_w) > tolerance:
            errors.append(
                f"Node '{node.id}': {node.power_w:.3f} W != sum of children {children_w:.3f} W"
            )
        for child in node.children:
            if child.parent_id != node.id:
                errors.append(f"Node '{child.id}' lists parent '{child.parent_id}', expected '{node.id}'")

    if errors:
        logger.warning("Consumer tree validation failed: %d issue(s)", len(errors))
    return TreeValidation(valid=not errors, errors=tuple(errors))


def find_node(root: ConsumerNode, node_id: str) -> Optional[ConsumerNode]:
    for node in root.walk():
        if node.id == node_id:
            return node
    return None


def breadcrumb_path(root: ConsumerNode, node_id: str) -> List[ConsumerNode]:
    """Nodes from the root down to `node_id`; empty if the id is not in the tree."""
    if root.id == node_id:
        return [root]
    for child in root.children:
        path = breadcrumb_path(child, node_id)
        if path:
            return [root] + path
    return []


def flatten_tree(root: ConsumerNode) -> List[ConsumerNode]:
    return list(root.walk())


def filter_assumed_nodes(node: ConsumerNode, show_assumptions: bool) -> ConsumerNode:
    """
    Copy of the tree without assumed nodes.

    When only part of a node's children are assumed, the hidden share is kept
    as one '<id>__unattributed' child so the remaining children still add up
    to the node's power. With show_assumptions the tree is returned unchanged.
    """
    if show_assumptions:
        return node

    filtered = copy.copy(node)
    filtered.tags = list(node.tags)
    filtered.children = [
        filter_assumed_nodes(child, False)
        for child in node.children
        if child.source != 'assumed'
    ]

    if filtered.children:
        hidden_w = node.power_w - sum(child.power_w for child in filtered.children)
        if hidden_w > TREE_TOLERANCE_W / 2:
            filtered.children.append(ConsumerNode(
                id=f"{node.id}{UNATTRIBUTED_SUFFIX}",
                name='Not attributed',
                type='device',
                parent_id=node.id,
                power_w=hidden_w,
                source='simulated',
                tags=['Unattributed'],
            ))
    return filtered
