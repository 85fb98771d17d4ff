"""
Energy flow graph (Sankey data) for a consumer tree.

Root view: PV, batteries and grid feed the top-level branches. PV is shared
among the branches in proportion to their load; a PV surplus goes to the
charging batteries (split evenly) or otherwise to the grid. The remaining
demand of a branch is drawn from the battery dedicated to that branch while it
discharges (capped at MAX_BATTERY_DISCHARGE_W), then from the grid.

Drill-down view: the source mix arriving at the focus node is found by walking
down from the root and splitting every node's inflow across its children in
proportion to their power. Inflow and outflow are equal at every node.
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .hierarchy import ConsumerNode, breadcrumb_path, filter_assumed_nodes

logger = logging.getLogger(__name__)

MAX_BATTERY_DISCHARGE_W = 10000

PV_ID = 'pv'
GRID_ID = 'grid'
GRID_EXPORT_ID = 'grid_export'

# Edges at or below this (W) are left out
_MIN_EDGE_W = 1e-9


@dataclass(frozen=True)
class BatterySource:
    battery_id: int
    branch: str
    soc_percent: float
    direction: str      # 'charging', 'discharging' or 'idle'

    @property
    def node_id(self) -> str:
        return f"battery_{self.battery_id}"


@dataclass(frozen=True)
class SourceState:
    pv_production_w: float
    batteries: Tuple[BatterySource, ...] = ()


@dataclass(frozen=True)
class FlowNode:
    id: str
    name: str
    kind: str           # 'production', 'storage', 'grid' or 'consumer'
    power_w: float = 0.0
    source: str = ''
    tags: Tuple[str, ...] = ()


@dataclass(frozen=True)
class FlowEdge:
    source: int
    target: int
    value: float        # W


@dataclass
class FlowGraph:
    focus_id: str
    nodes: List[FlowNode] = field(default_factory=list)
    edges: List[FlowEdge] = field(default_factory=list)

    def index_of(self, node_id: str) -> int:
        for i, node in enumerate(self.nodes):
            if node.id == node_id:
                return i
        raise KeyError(node_id)

    def edge_value(self, source_id: str, target_id: str) -> float:
        source, target = self.index_of(source_id), self.index_of(target_id)
        return sum(e.value for e in self.edges if e.source == source and e.target == target)

    def inflow_w(self, node_id: str) -> float:
        index = self.index_of(node_id)
        return sum(e.value for e in self.edges if e.target == index)

    def outflow_w(self, node_id: str) -> float:
        index = self.index_of(node_id)
        return sum(e.value for e in self.edges if e.source == index)

    def to_dict(self) -> Dict[str, list]:
        return {
            'nodes': [
                {'id': n.id, 'name': n.name, 'kind': n.kind, 'power_w': n.power_w,
                 'source': n.source, 'tags': list(n.tags)}
                for n in self.nodes
            ],
            'edges': [{'source': e.source, 'target': e.target, 'value': e.value} for e in self.edges],
        }


def _source_nodes(source_state: SourceState) -> List[FlowNode]:
    nodes = [FlowNode(PV_ID, f"PV {source_state.pv_production_w / 1000:.1f} kW", 'production',
                      power_w=source_state.pv_production_w, source='production')]
    for battery in source_state.batteries:
        nodes.append(FlowNode(battery.node_id, f"Battery {battery.battery_id} {battery.soc_percent:.0f}%",
                              'storage', source='storage', tags=(battery.direction, battery.branch)))
    nodes.append(FlowNode(GRID_ID, 'Grid', 'grid', source='grid'))
    return nodes


def _consumer_node(node: ConsumerNode) -> FlowNode:
    tags = tuple(node.tags) + (('has-children',) if node.children else ())
    return FlowNode(node.id, f"{node.name} {node.power_w / 1000:.1f} kW", 'consumer',
                    power_w=node.power_w, source=node.source, tags=tags)


def _root_allocation(root: ConsumerNode, source_state: SourceState):
    """
    Split the sources across the root's children.

    Returns:
        Tuple[Dict[str, Dict[str, float]], Dict[str, float]]: per child id the
        inbound mix {source id: W}, and the PV surplus per sink id
    """
    total_w = sum(child.power_w for child in root.children)
    pv_w = max(0.0, source_state.pv_production_w)
    pv_used_w = min(pv_w, total_w)

    mixes = OrderedDict()
    for child in root.children:
        mix = OrderedDict()
        pv_share = child.power_w / total_w * pv_used_w if total_w > 0 else 0.0
        if pv_share > 0:
            mix[PV_ID] = pv_share

        remaining = max(0.0, child.power_w - pv_share)
        for battery in source_state.batteries:
            if remaining <= 0:
                break
            if battery.branch == child.id and battery.direction == 'discharging':
                from_battery = min(remaining, MAX_BATTERY_DISCHARGE_W)
                mix[battery.node_id] = mix.get(battery.node_id, 0.0) + from_battery
                remaining -= from_battery
        if remaining > 0:
            mix[GRID_ID] = remaining
        mixes[child.id] = mix

    surplus = OrderedDict()
    surplus_w = max(0.0, pv_w - total_w)
    if surplus_w > 0:
        charging = [b for b in source_state.batteries if b.direction == 'charging']
        if charging:
            for battery in charging:
                surplus[battery.node_id] = surplus_w / len(charging)
        else:
            surplus[GRID_EXPORT_ID] = surplus_w
    return mixes, surplus


def _add_edge(graph: FlowGraph, source_id: str, target_id: str, value: float) -> None:
    if value > _MIN_EDGE_W:
        graph.edges.append(FlowEdge(graph.index_of(source_id), graph.index_of(target_id), value))


def _root_graph(root: ConsumerNode, source_state: SourceState) -> FlowGraph:
    graph = FlowGraph(focus_id=root.id, nodes=_source_nodes(source_state))
    graph.nodes.extend(_consumer_node(child) for child in root.children)

    mixes, surplus = _root_allocation(root, source_state)
    if GRID_EXPORT_ID in surplus:
        graph.nodes.append(FlowNode(GRID_EXPORT_ID, 'Grid feed-in', 'grid', source='grid'))

    for child_id, mix in mixes.items():
        for source_id, value in mix.items():
            _add_edge(graph, source_id, child_id, value)
    for sink_id, value in surplus.items():
        _add_edge(graph, PV_ID, sink_id, value)
    return graph


def _inbound_mix(root: ConsumerNode, path: List[ConsumerNode], source_state: SourceState) -> Dict[str, float]:
    mixes, _ = _root_allocation(root, source_state)
    mix = mixes[path[1].id]
    for parent, child in zip(path[1:], path[2:]):
        share = child.power_w / parent.power_w if parent.power_w > 0 else 0.0
        mix = OrderedDict((source_id, value * share) for source_id, value in mix.items())
    return mix


def _drill_down_graph(root: ConsumerNode, focus: ConsumerNode, path: List[ConsumerNode],
                      source_state: SourceState) -> FlowGraph:
    mix = _inbound_mix(root, path, source_state)

    graph = FlowGraph(focus_id=focus.id)
    graph.nodes.extend(n for n in _source_nodes(source_state) if mix.get(n.id, 0.0) > _MIN_EDGE_W)
    graph.nodes.append(_consumer_node(focus))
    graph.nodes.extend(_consumer_node(child) for child in focus.children)

    for source_id, value in mix.items():
        _add_edge(graph, source_id, focus.id, value)
    for child in focus.children:
        _add_edge(graph, focus.id, child.id, child.power_w)
    return graph


def build_flow_graph(tree: ConsumerNode, focus_node_id: Optional[str], source_state: SourceState,
                     show_assumptions: bool = True) -> FlowGraph:
    """
    Build the node/edge flow graph for a drill-down focus.

    Args:
        tree (ConsumerNode): Aggregated consumer tree (root node)
        focus_node_id (Optional[str]): Node to focus on; None for the root view
        source_state (SourceState): PV output and battery SOC/direction
        show_assumptions (bool): When False, assumed nodes are hidden and their
            share is shown as one '<id>__unattributed' node

    Returns:
        FlowGraph: Nodes plus (source index, target index, W) edges
    """
    view = filter_assumed_nodes(tree, show_assumptions)

    if focus_node_id is None or focus_node_id == view.id:
        return _root_graph(view, source_state)

    path = breadcrumb_path(view, focus_node_id)
    if not path:
        logger.warning("Focus node '%s' not in tree, showing building view", focus_node_id)
        return _root_graph(view, source_state)

    return _drill_down_graph(view, path[-1], path, source_state)
