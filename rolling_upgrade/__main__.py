"""Entry point for the rolling-upgrade command line."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from rolling_upgrade.core.errors import RollingUpgradeError

logger = logging.getLogger(__name__)


def run_plan(args: argparse.Namespace) -> int:
    """Print the upgrade plan between two versions.

    Args:
        args: Parsed command line arguments.

    Returns:
        Exit code (0 for success, 1 for error).
    """
    from pathlib import Path

    from rolling_upgrade.config import get_settings
    from rolling_upgrade.core.logging import configure_logging
    from rolling_upgrade.core.version import Version
    from rolling_upgrade.factory import ServiceFactory
    from rolling_upgrade.services.applier import format_plan

    settings = get_settings()
    if args.definitions:
        settings = settings.model_copy(update={"definitions_path": Path(args.definitions)})
    if args.registry:
        settings = settings.model_copy(update={"oob_registry_path": Path(args.registry)})

    configure_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        json_format=settings.log_json,
    )

    try:
        from_version = Version.parse(args.from_version)
        to_version = Version.parse(args.to_version)

        services = ServiceFactory(settings).create_all()
        steps = services.planner.plan(from_version, to_version)
    except RollingUpgradeError as e:
        logger.error(f"Planning failed: {e}", exc_info=args.verbose)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps([step.to_dict() for step in steps], indent=2))
    else:
        print(format_plan(steps))
    return 0


def run_range(args: argparse.Namespace) -> int:
    """Print every release visited between two versions."""
    from rolling_upgrade.config import get_settings
    from rolling_upgrade.core.version import Version
    from rolling_upgrade.factory import ServiceFactory

    settings = get_settings()
    try:
        table = ServiceFactory(settings).create_version_table()
        versions = table.make_range(Version.parse(args.from_version), Version.parse(args.to_version))
    except RollingUpgradeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for version in versions:
        print(version.git_tag if args.tags else str(version))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rolling-upgrade",
        description="Plan multi-version upgrades across schema and out-of-band migrations",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    plan_parser = subparsers.add_parser("plan", help="Print the upgrade plan")
    plan_parser.add_argument("--from", dest="from_version", required=True, help="Installed version")
    plan_parser.add_argument("--to", dest="to_version", required=True, help="Target version")
    plan_parser.add_argument(
        "--definitions",
        help="Directory of per-tag migration definitions (overrides settings)",
    )
    plan_parser.add_argument(
        "--registry",
        help="JSON file of out-of-band migrations (overrides settings)",
    )
    plan_parser.add_argument("--json", action="store_true", help="Print the plan as JSON")
    plan_parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    plan_parser.set_defaults(func=run_plan)

    range_parser = subparsers.add_parser("range", help="Print the releases an upgrade visits")
    range_parser.add_argument("--from", dest="from_version", required=True, help="Installed version")
    range_parser.add_argument("--to", dest="to_version", required=True, help="Target version")
    range_parser.add_argument("--tags", action="store_true", help="Print release tags")
    range_parser.set_defaults(func=run_range)

    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    result: int = args.func(args)
    return result


if __name__ == "__main__":
    sys.exit(main())
