#!/usr/bin/env python3
"""
Chassis Configurator - Command line entry point

Loads a JSON catalog into the in-memory store, configures one chassis and
prints the derived part number and price.
"""

import sys
import json
import asyncio
import argparse
import logging
from typing import List, Optional, Tuple

from PyQt6.QtCore import QCoreApplication

from .communication.memory_store import InMemoryStore
from .communication.store_base import StoreError
from .controllers.configurator import ChassisConfigurator
from .utils.logger import setup_logger
from .utils.settings import ConfiguratorSettings, load_settings

logger = logging.getLogger(__name__)


def _slot_value(text: str) -> Tuple[int, str]:
    """Parse ``SLOT=VALUE``"""
    slot, sep, value = text.partition("=")
    if not sep or not value:
        raise argparse.ArgumentTypeError(f"expected SLOT=VALUE, got '{text}'")
    try:
        return int(slot), value
    except ValueError:
        raise argparse.ArgumentTypeError(f"slot must be a number, got '{slot}'")


def _slot_count(text: str) -> Tuple[int, int]:
    slot, value = _slot_value(text)
    try:
        return slot, int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"count must be a number, got '{value}'")


def parse_args(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="chassis-configurator",
        description="Chassis Configurator - slot assignment and part number derivation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s catalog.json mtx --place 3=relay-8 --remote
  %(prog)s catalog.json ltx --place 8=display --place 6=bushing --bushings 6=3
  %(prog)s catalog.json ltx --place 3=digital-16 --sub-config 3=digital.json --save
  %(prog)s catalog.json ltx --accessory remote-panel --save --json
"""
    )

    parser.add_argument("catalog", metavar="CATALOG", help="JSON catalog file")
    parser.add_argument("chassis", metavar="CHASSIS", help="Chassis id to configure")

    parser.add_argument(
        "-p", "--place",
        action="append",
        type=_slot_value,
        default=[],
        metavar="SLOT=CARD_ID",
        help="Place a card (repeatable, applied in order)"
    )

    parser.add_argument(
        "-b", "--bushings",
        action="append",
        type=_slot_count,
        default=[],
        metavar="SLOT=COUNT",
        help="Bushing channel count for the bushing at SLOT"
    )

    parser.add_argument(
        "-c", "--sub-config",
        action="append",
        type=_slot_value,
        default=[],
        metavar="SLOT=FILE",
        help="JSON sub-configuration for the card at SLOT (repeatable)"
    )

    parser.add_argument(
        "-a", "--accessory",
        action="append",
        default=[],
        metavar="CARD_ID",
        help="Select an outside-chassis accessory (repeatable)"
    )

    parser.add_argument("-r", "--remote", action="store_true", help="Enable remote display")
    parser.add_argument("--replace", action="store_true", help="Replace occupants when placing")
    parser.add_argument("--save", action="store_true", help="Commit into a new draft quote and save it")
    parser.add_argument("--json", action="store_true", help="Print the resulting quote as JSON")
    parser.add_argument("-s", "--settings", metavar="FILE", help="Settings JSON file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    return parser.parse_args(argv)


async def run(args, store: InMemoryStore, settings: ConfiguratorSettings) -> int:
    """Configure the chassis described by ``args``; returns the exit code."""
    configurator = ChassisConfigurator(store, settings=settings)

    success, error_msg = await configurator.select_chassis(args.chassis)
    if not success:
        print(f"Error: {error_msg}", file=sys.stderr)
        return 1

    rejected = 0
    for slot, card_id in args.place:
        result = configurator.place_card(slot, card_id, replace=args.replace)
        if not result:
            rejected += 1
            print(f"Rejected {card_id} at slot {slot}: {result.error.value} - {result.message}")

    # Sub-configurations are opened in the background on placement
    await configurator.drain()
    for slot, path in args.sub_config:
        try:
            with open(path, "r", encoding="utf-8") as f:
                payload = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            print(f"Error: cannot read sub-configuration {path}: {e}", file=sys.stderr)
            return 1
        success, error_msg = await configurator.save_sub_config(slot, payload)
        if not success:
            print(f"Error: {error_msg}", file=sys.stderr)
            return 1
    for slot in list(configurator.session.pending_config_links):
        await configurator.cancel_sub_config(slot)
        print(f"Slot {slot}: no sub-configuration given, left unconfigured")

    for slot, count in args.bushings:
        configurator.set_bushing_count(slot, count)

    for card_id in args.accessory:
        configurator.toggle_accessory(card_id)

    if args.remote:
        configurator.set_remote_display(True)

    price, cost = configurator.totals()
    print(f"Part number: {configurator.part_number}")
    print(f"Price: {price:.2f}  Cost: {cost:.2f}")
    for slot, card in configurator.session.slot_assignments.items():
        print(f"  slot {slot:>2}: {card.name}")
    for card_id in configurator.session.accessory_selection:
        print(f"  accessory: {card_id}")

    if args.save:
        configurator.quotes.new_quote()
        store.add_quote(configurator.quotes.quote.id)
        configurator.commit()
        success, error_msg = await configurator.quotes.save_draft()
        if not success:
            print(f"Error: {error_msg}", file=sys.stderr)
            return 1
        print(f"Saved draft quote {configurator.quotes.quote.id}")

    await configurator.drain()

    if args.json:
        if configurator.quotes.quote is not None:
            print(json.dumps(configurator.quotes.quote.to_dict(), indent=2))
        else:
            print(json.dumps(configurator.session.slot_assignments.to_list(), indent=2))

    return 2 if rejected else 0


def main(argv: Optional[List[str]] = None):
    """Main application entry point."""
    args = parse_args(argv)

    settings = load_settings(args.settings)
    setup_logger(settings.log_level_value, log_dir=settings.log_dir)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    app.setApplicationName("Chassis Configurator")

    logger.info(f"Loading catalog: {args.catalog}")
    try:
        store = InMemoryStore.from_json_file(args.catalog)
    except StoreError as e:
        logger.error(f"Failed to load catalog: {e}")
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    sys.exit(asyncio.run(run(args, store, settings)))


if __name__ == "__main__":
    main()
