"""Tests for the Sankey flow graph."""

import logging

import pytest

from building_energy_sim.flow_graph import (
    MAX_BATTERY_DISCHARGE_W,
    BatterySource,
    SourceState,
    build_flow_graph,
)
from building_energy_sim.hierarchy import find_node

NIGHT_DISCHARGING = SourceState(
    pv_production_w=0.0,
    batteries=(
        BatterySource(1, 'shared', 40.0, 'idle'),
        BatterySource(2, 'apartments', 80.0, 'discharging'),
    ),
)


def _assert_node_balance(graph, node_id, power_w):
    assert graph.inflow_w(node_id) == pytest.approx(power_w)


class TestRootView:
    """Sources feed the top-level branches."""

    def test_branch_inflows_equal_power(self, evening_tree):
        graph = build_flow_graph(evening_tree, None, NIGHT_DISCHARGING)
        assert graph.focus_id == 'building'
        for branch in ('apartments', 'shared'):
            _assert_node_balance(graph, branch, find_node(evening_tree, branch).power_w)

    def test_battery_feeds_only_its_branch(self, evening_tree):
        graph = build_flow_graph(evening_tree, None, NIGHT_DISCHARGING)
        assert graph.edge_value('battery_2', 'shared') == 0
        assert graph.edge_value('battery_1', 'shared') == 0
        assert graph.edge_value('grid', 'shared') == pytest.approx(find_node(evening_tree, 'shared').power_w)

    def test_discharge_capped(self, evening_tree):
        """The EV alone pushes the apartments above 10 kW: the rest comes from the grid."""
        apartments_w = find_node(evening_tree, 'apartments').power_w
        assert apartments_w > MAX_BATTERY_DISCHARGE_W

        graph = build_flow_graph(evening_tree, None, NIGHT_DISCHARGING)
        assert graph.edge_value('battery_2', 'apartments') == pytest.approx(MAX_BATTERY_DISCHARGE_W)
        assert graph.edge_value('grid', 'apartments') == pytest.approx(apartments_w - MAX_BATTERY_DISCHARGE_W)

    def test_pv_shared_by_load(self, evening_tree):
        state = SourceState(pv_production_w=1000.0)
        graph = build_flow_graph(evening_tree, None, state)
        total = evening_tree.power_w
        for branch in ('apartments', 'shared'):
            expected = find_node(evening_tree, branch).power_w / total * 1000.0
            assert graph.edge_value('pv', branch) == pytest.approx(expected)
        assert graph.outflow_w('pv') == pytest.approx(1000.0)

    def test_surplus_to_charging_batteries(self, evening_tree):
        state = SourceState(
            pv_production_w=100000.0,
            batteries=(BatterySource(1, 'shared', 50.0, 'charging'),
                       BatterySource(2, 'apartments', 50.0, 'charging')),
        )
        graph = build_flow_graph(evening_tree, None, state)
        surplus = 100000.0 - evening_tree.power_w
        assert graph.edge_value('pv', 'battery_1') == pytest.approx(surplus / 2)
        assert graph.edge_value('pv', 'battery_2') == pytest.approx(surplus / 2)
        assert 'grid_export' not in [n.id for n in graph.nodes]
        assert graph.outflow_w('pv') == pytest.approx(100000.0)

    def test_surplus_exported_without_charging_battery(self, evening_tree):
        state = SourceState(pv_production_w=100000.0,
                            batteries=(BatterySource(1, 'shared', 95.0, 'idle'),))
        graph = build_flow_graph(evening_tree, None, state)
        assert graph.edge_value('pv', 'grid_export') == pytest.approx(100000.0 - evening_tree.power_w)
        assert graph.inflow_w('grid') == 0

    def test_no_zero_edges(self, evening_tree):
        graph = build_flow_graph(evening_tree, None, NIGHT_DISCHARGING)
        assert all(edge.value > 0 for edge in graph.edges)

    def test_to_dict(self, evening_tree):
        data = build_flow_graph(evening_tree, None, NIGHT_DISCHARGING).to_dict()
        assert set(data) == {'nodes', 'edges'}
        assert data['nodes'][0]['id'] == 'pv'
        for edge in data['edges']:
            assert 0 <= edge['source'] < len(data['nodes'])
            assert 0 <= edge['target'] < len(data['nodes'])


class TestDrillDown:
    """Inflow equals outflow at the focused node."""

    @pytest.mark.parametrize("focus", ['apartments', 'apartment_1', 'shared', 'shared_pool', 'apartment_1_kitchen'])
    def test_focus_conserves(self, evening_tree, focus):
        node = find_node(evening_tree, focus)
        graph = build_flow_graph(evening_tree, focus, NIGHT_DISCHARGING)
        assert graph.focus_id == focus
        _assert_node_balance(graph, focus, node.power_w)
        if node.children:
            assert graph.outflow_w(focus) == pytest.approx(node.power_w)
            for child in node.children:
                assert graph.edge_value(focus, child.id) == pytest.approx(child.power_w)

    def test_mix_split_proportionally(self, evening_tree):
        apartments = find_node(evening_tree, 'apartments')
        apartment = find_node(evening_tree, 'apartment_1')
        graph = build_flow_graph(evening_tree, 'apartment_1', NIGHT_DISCHARGING)
        share = apartment.power_w / apartments.power_w
        assert graph.edge_value('battery_2', 'apartment_1') == pytest.approx(MAX_BATTERY_DISCHARGE_W * share)

    def test_only_present_sources(self, evening_tree):
        graph = build_flow_graph(evening_tree, 'shared', NIGHT_DISCHARGING)
        ids = [n.id for n in graph.nodes]
        assert 'grid' in ids
        assert 'pv' not in ids
        assert 'battery_2' not in ids

    def test_leaf_focus(self, evening_tree):
        graph = build_flow_graph(evening_tree, 'apartment_1_ev', NIGHT_DISCHARGING)
        _assert_node_balance(graph, 'apartment_1_ev', 11000.0)
        assert graph.outflow_w('apartment_1_ev') == 0


class TestFocusHandling:
    """Unknown or hidden focus ids fall back to the building view."""

    def test_unknown_focus(self, evening_tree, caplog):
        with caplog.at_level(logging.WARNING):
            graph = build_flow_graph(evening_tree, 'does_not_exist', NIGHT_DISCHARGING)
        assert graph.focus_id == 'building'
        assert 'does_not_exist' in caplog.text

    def test_hidden_assumed_focus(self, evening_tree):
        graph = build_flow_graph(evening_tree, 'apartment_1_kitchen', NIGHT_DISCHARGING, show_assumptions=False)
        assert graph.focus_id == 'building'

    def test_unattributed_node_shown(self, evening_tree):
        graph = build_flow_graph(evening_tree, 'apartment_1', NIGHT_DISCHARGING, show_assumptions=False)
        ids = [n.id for n in graph.nodes]
        assert 'apartment_1__unattributed' in ids
        assert not any(n.source == 'assumed' for n in graph.nodes)
        assert graph.outflow_w('apartment_1') == pytest.approx(find_node(evening_tree, 'apartment_1').power_w)
