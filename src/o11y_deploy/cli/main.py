"""o11y-deploy command line entry point."""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

from o11y_deploy import __version__
from o11y_deploy.cli.config import check_config_command, dump_config_command, list_modules_command
from o11y_deploy.cli.deploy import deploy_command
from o11y_deploy.config import get_settings
from o11y_deploy.logging import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="o11y-deploy", description="o11y-deploy CLI")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command")

    deploy_parser = subparsers.add_parser("deploy", help="Deploy every target group")
    deploy_parser.add_argument("-c", "--config", required=True, help="Deployment document")
    deploy_parser.add_argument(
        "--debug", action="store_true", help="Keep the runner's generated files"
    )

    check_parser = subparsers.add_parser("check-config", help="Validate a deployment document")
    check_parser.add_argument("-c", "--config", required=True, help="Deployment document")

    dump_parser = subparsers.add_parser(
        "dump-config", help="Print a deployment document with all defaults filled in"
    )
    dump_parser.add_argument("-c", "--config", required=True, help="Deployment document")

    subparsers.add_parser("list-modules", help="List registered modules")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    level = logging.DEBUG if args.verbose else settings.log_level.upper()
    configure_logging(level, json_output=settings.log_json)

    if args.command == "deploy":
        sys.exit(deploy_command(args.config, debug=args.debug))
    if args.command == "check-config":
        sys.exit(check_config_command(args.config))
    if args.command == "dump-config":
        sys.exit(dump_config_command(args.config))
    if args.command == "list-modules":
        sys.exit(list_modules_command())

    parser.print_help()
    sys.exit(2)


if __name__ == "__main__":
    main()
