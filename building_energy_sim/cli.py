"""Command line entry point: simulate a day (or period) and print a summary."""

import argparse
import logging
import sys
from datetime import date, datetime, timedelta

from .config import DEFAULT_BUILDING, DEFAULT_TENANTS, ConfigurationError, configure_cache, load_building_config
from .costs import daily_cost, estimate_monthly_cost_from_day
from .hierarchy import ConsumerNode
from .simulation import hourly_snapshot, simulate_period, summarize
from .strategies import ALL_STRATEGIES, get_strategy
from .tariffs import TARIFF_TYPES, get_tariff_plan


def _print_tree(node: ConsumerNode, indent: int = 0) -> None:
    marker = f" [{node.assumption.rule} {node.assumption.confidence:.0%}]" if node.assumption else ''
    print(f"{'  ' * indent}{node.name:<28} {node.power_w:>9.0f} W  {node.source}{marker}")
    for child in node.children:
        _print_tree(child, indent + 1)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Energy flow simulator for a multi-unit building with PV and batteries")

    parser.add_argument('--date', type=date.fromisoformat, default=date.today(),
                        help='Day to simulate, YYYY-MM-DD (default: today)')
    parser.add_argument('--hour', type=int, default=12,
                        help='Hour for the snapshot, 0-23 (default: 12)')
    parser.add_argument('--days', type=int, default=1,
                        help='Number of consecutive days to simulate (default: 1)')
    parser.add_argument('--strategy', default='balanced', choices=sorted(ALL_STRATEGIES),
                        help='Battery strategy preset (default: balanced)')
    parser.add_argument('--tariff', default='classic', choices=TARIFF_TYPES,
                        help='Tariff plan for the cost summary (default: classic)')
    parser.add_argument('--eco', action='store_true',
                        help='Add the green-energy surcharge to the energy price')
    parser.add_argument('--config', type=str, default=None,
                        help='YAML file with building and tenant configuration')
    parser.add_argument('--focus', type=str, default=None,
                        help='Consumer node to drill into for the flow graph (default: building)')
    parser.add_argument('--hide-assumptions', action='store_true',
                        help='Hide template-based (assumed) consumer breakdowns')
    parser.add_argument('--export-csv', type=str, default=None,
                        help='Write the hourly results to this CSV file')
    parser.add_argument('--cache-dir', type=str, default=None,
                        help='Directory for the SOC re-simulation cache (default: $ENERGY_SIM_CACHE_DIR or .cache)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable debug logging')
    return parser


def main(argv=None) -> int:
    """Main execution function"""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not 0 <= args.hour <= 23:
        parser.error("--hour must be between 0 and 23")
    if args.days < 1:
        parser.error("--days must be at least 1")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    )

    if args.cache_dir:
        configure_cache(args.cache_dir)

    try:
        if args.config:
            building, tenants = load_building_config(args.config)
        else:
            building, tenants = DEFAULT_BUILDING, list(DEFAULT_TENANTS)
        strategy = get_strategy(args.strategy)
        plan = get_tariff_plan(args.tariff)
    except (ConfigurationError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    print("Building Energy Flow Simulator")
    print("=" * 60)
    print(f"Building: {building.name} ({building.pv_peak_kw:.2f} kWp, "
          f"{len(building.batteries)} batteries, {building.total_capacity_kwh:.0f} kWh)")
    print(f"Tenants: {', '.join(t.name for t in tenants)}")
    print(f"Strategy: {strategy.name} - {strategy.description}")
    print(f"Tariff: {plan.name}{' + eco surcharge' if args.eco else ''}")

    results = simulate_period(args.date, args.days, strategy, building, tenants, progress=args.days > 1)
    totals = summarize(results)

    print(f"\nEnergy summary {args.date.isoformat()} (+{args.days - 1} days):")
    print(f"  PV production: {totals['pv_production_kwh']:.1f} kWh")
    print(f"  Consumption: {totals['consumption_kwh']:.1f} kWh")
    print(f"  Battery charge / discharge: {totals['battery_charge_kwh']:.1f} / {totals['battery_discharge_kwh']:.1f} kWh")
    print(f"  Grid import / export: {totals['grid_import_kwh']:.1f} / {totals['grid_export_kwh']:.1f} kWh")
    print(f"  Self-sufficiency: {totals['self_sufficiency_percent']:.1f}%")
    print(f"  Average SOC: {totals['avg_soc_percent']:.1f}%")

    print("\nCosts:")
    for offset in range(args.days):
        day = args.date + timedelta(days=offset)
        day_rows = results.iloc[offset * 24:(offset + 1) * 24]
        summary = daily_cost(day, day_rows['grid_import_kw'].tolist(), day_rows['grid_export_kw'].tolist(),
                             plan, args.eco)
        print(f"  {day.isoformat()}: cost {summary.total_cost_rp / 100:.2f} CHF, "
              f"feed-in {summary.feed_in_revenue_rp / 100:.2f} CHF, net {summary.net_cost_rp / 100:.2f} CHF")
    monthly = estimate_monthly_cost_from_day(summary)
    print(f"  Monthly estimate ({monthly.days} days, incl. VAT): {monthly.total_cost_chf:.2f} CHF, "
          f"net {monthly.net_cost_chf:.2f} CHF")

    when = datetime(args.date.year, args.date.month, args.date.day, args.hour)
    snapshot = hourly_snapshot(when, strategy, building, tenants,
                               show_assumptions=not args.hide_assumptions, focus_node_id=args.focus)

    print(f"\nSnapshot {when:%Y-%m-%d %H:00}:")
    print(f"  PV {snapshot.pv_production_kw:.1f} kW, consumption {snapshot.consumption_kw:.1f} kW")
    for battery in snapshot.batteries:
        print(f"  Battery {battery.battery_id} ({battery.branch}): {battery.soc_percent:.1f}% "
              f"{battery.decision.direction} - {battery.decision.reason}")

    print("\nConsumers:")
    _print_tree(snapshot.tree, 1)

    graph = snapshot.flow_graph
    print(f"\nFlows ({graph.focus_id}):")
    for edge in graph.edges:
        print(f"  {graph.nodes[edge.source].id} -> {graph.nodes[edge.target].id}: {edge.value:.0f} W")

    if snapshot.validation.valid:
        print("\nTree validation: OK")
    else:
        print("\nTree validation: FAILED")
        for error in snapshot.validation.errors:
            print(f"  {error}")

    report = snapshot.plausibility
    print("Plausibility:" if report.warnings or report.info else "Plausibility: OK")
    for warning in report.warnings:
        print(f"  Warning: {warning}")
    for note in report.info:
        print(f"  Info: {note}")

    if args.export_csv:
        results.to_csv(args.export_csv, index=False)
        print(f"\nHourly results written to {args.export_csv}")

    return 0
