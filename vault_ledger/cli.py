"""CLI and main logic."""

import argparse
import logging
import os
import sys
from pathlib import Path

from vault_ledger.console import print_ledger_snapshot, print_outcomes, print_rate, print_vault_snapshot
from vault_ledger.constants import DEFAULT_TIMEOUT
from vault_ledger.contracts import RATE_SOURCE_KINDS, build_rate_source
from vault_ledger.fixed_point import normalize_rate
from vault_ledger.parsing import parse_scenario, parse_scenario_json
from vault_ledger.reports import ledger_snapshot, vault_snapshot
from vault_ledger.simulation import Simulation


def _block_identifier(value: str) -> int | str:
    """Block number (decimal or 0x-hex) or a tag such as 'latest'."""
    v = value.strip()
    if v.isdigit():
        return int(v)
    if v.lower().startswith("0x"):
        return int(v, 16)
    return v


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse command-line arguments."""
    p = argparse.ArgumentParser(description="Multi-strategy vault accounting: scenario replay and rate reads.")
    p.add_argument("-v", "--verbose", action="store_true", help="Log engine events (debt updates, reports).")
    sub = p.add_subparsers(dest="command", required=True)

    sim = sub.add_parser("simulate", help="Replay a JSON scenario against an in-memory vault and ledger.")
    sim.add_argument("scenario", type=Path, help="Path to the scenario JSON file.")
    sim.add_argument("--no-progress", action="store_true", help="Do not render a progress bar.")

    rate = sub.add_parser("rate", help="Read and normalize the exchange rate of a yield-bearing asset.")
    rate.add_argument(
        "--rpc-url",
        default=None,
        help="Execution-layer RPC URL. Required if ETH_RPC_URL environment variable is not set.",
    )
    rate.add_argument("--kind", choices=RATE_SOURCE_KINDS, default="lido", help="Rate source kind. Default: lido.")
    rate.add_argument("--address", required=True, help="Contract address of the rate source.")
    rate.add_argument(
        "--block",
        type=_block_identifier,
        default="latest",
        help="Block number or tag. Reads pinned to a block number are cached.",
    )
    rate.add_argument(
        "--no-cache",
        action="store_true",
        help="Disable caching for this run (fetch all data fresh from network).",
    )
    return p.parse_args(argv)


def run_simulation(args: argparse.Namespace) -> int:
    try:
        scenario = parse_scenario(parse_scenario_json(args.scenario.read_bytes()))
    except (OSError, ValueError) as ex:
        print(f"Error: cannot load scenario {args.scenario}: {ex}", file=sys.stderr)
        return 2

    sim = Simulation(scenario)
    outcomes = sim.run(progress=not args.no_progress)

    print_outcomes(scenario, outcomes)
    print_vault_snapshot(vault_snapshot(sim.vault), decimals=scenario.asset_decimals, symbol=scenario.asset_symbol)
    print_ledger_snapshot(ledger_snapshot(sim.ledger), decimals=scenario.asset_decimals, symbol=scenario.asset_symbol)
    print("")

    failed = [o for o in outcomes if not o.ok]
    if failed:
        print(f"❌ {len(failed)} of {len(outcomes)} step(s) did not behave as expected.", file=sys.stderr)
        return 1
    if any(o.issues for o in outcomes):
        print("⚠️  All steps behaved as expected, but invariant warnings were raised.", file=sys.stderr)
        return 1
    print(f"✅ All {len(outcomes)} step(s) behaved as expected.", file=sys.stderr)
    return 0


def run_rate(args: argparse.Namespace) -> int:
    try:
        from web3 import Web3
    except ImportError as ex:  # pragma: no cover
        print("Missing dependency. Run: pip install web3", file=sys.stderr)
        raise SystemExit(2) from ex

    # Require RPC URL to be provided either via --rpc-url or ETH_RPC_URL environment variable
    rpc_url = args.rpc_url or os.getenv("ETH_RPC_URL")
    if not rpc_url:
        print(
            "Error: RPC URL is required. Provide --rpc-url or set ETH_RPC_URL environment variable.",
            file=sys.stderr,
        )
        return 2

    w3 = Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": DEFAULT_TIMEOUT}))
    if not w3.is_connected():
        print(f"Error: failed to connect to RPC at {rpc_url}", file=sys.stderr)
        return 2

    try:
        source = build_rate_source(
            w3, args.kind, args.address, block_identifier=args.block, use_cache=not args.no_cache
        )
        raw_rate = source.get_current_exchange_rate()
        decimals = source.decimals_of_exchange_rate()
    except Exception as ex:  # pylint: disable=broad-exception-caught
        print(f"Error: failed to read {args.kind} rate from {args.address}: {ex}", file=sys.stderr)
        return 2

    if raw_rate == 0:
        print("⚠️  Rate is zero; skimming conversions would fall back to proportional.", file=sys.stderr)
    print_rate(args.kind, source.address, args.block, raw_rate, decimals, normalize_rate(raw_rate, decimals))
    return 0


def main(argv: list[str]) -> int:
    """Main entry point."""
    args = parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)

    if args.command == "simulate":
        return run_simulation(args)
    return run_rate(args)


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
