"""Command-line interface for datasheet configuration management."""

from __future__ import annotations

import argparse
import os
import sys

from pathlib import Path
from typing import TYPE_CHECKING


if TYPE_CHECKING:
    from collections.abc import Sequence


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the ``datasheet`` command."""
    parser = argparse.ArgumentParser(
        prog="datasheet",
        description="datasheet configuration tools",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # config command
    config_parser = subparsers.add_parser(
        "config",
        help="Show or export configuration",
    )
    config_group = config_parser.add_mutually_exclusive_group()
    config_group.add_argument(
        "--show",
        action="store_true",
        help="Show current configuration",
    )
    config_group.add_argument(
        "--toml",
        action="store_true",
        help="Export configuration as TOML",
    )
    config_group.add_argument(
        "--env",
        action="store_true",
        help="Export configuration as environment variables",
    )
    config_group.add_argument(
        "--sources",
        action="store_true",
        help="Show configuration file sources",
    )
    config_parser.add_argument(
        "--output",
        "-o",
        type=str,
        help="Output file path (default: stdout)",
    )

    # init command
    init_parser = subparsers.add_parser(
        "init",
        help="Initialize a datasheet.toml configuration file",
    )
    init_parser.add_argument(
        "--force",
        "-f",
        action="store_true",
        help="Overwrite existing configuration file",
    )
    init_parser.add_argument(
        "--path",
        "-p",
        type=str,
        default="datasheet.toml",
        help="Path for configuration file (default: datasheet.toml)",
    )
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the main CLI entry point.

    Returns
    -------
    int
        Exit code.
    """
    from .config import get_settings
    from .log import apply_log_settings

    parser = build_parser()
    args = parser.parse_args(argv)

    log_settings = get_settings().log
    apply_log_settings(log_settings.level, log_settings.format)

    if args.command == "config":
        return handle_config(args)
    if args.command == "init":
        return handle_init(args)
    parser.print_help()
    return 0


def handle_config(args: argparse.Namespace) -> int:
    """Handle the config command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .config import DatasheetSettings

    if args.sources:
        return show_config_sources()

    settings = DatasheetSettings()
    if args.toml:
        output = settings.to_toml()
    elif args.env:
        output = settings.to_env()
    else:
        output = settings.show()

    if args.output:
        Path(args.output).write_text(output, encoding="utf-8")
        print(f"Configuration written to {args.output}")
    else:
        print(output)

    return 0


def handle_init(args: argparse.Namespace) -> int:
    """Handle the init command.

    Parameters
    ----------
    args : argparse.Namespace
        Parsed command line arguments.

    Returns
    -------
    int
        Exit code.
    """
    from .config import DatasheetSettings

    path = Path(args.path)

    if path.exists() and not args.force:
        print(f"Error: {path} already exists. Use --force to overwrite.", file=sys.stderr)
        return 1

    header = """# datasheet configuration file
#
# Environment variables can override any setting:
#   DATASHEET_FORMAT__THOUSANDS_SEPARATOR="."
#   DATASHEET_FORMAT__DECIMAL_SEPARATOR=","
#   DATASHEET_DETECTION__SAMPLE_ROWS=50
#   DATASHEET_LOG__LEVEL="DEBUG"
#
# Use nested keys with __ (double underscore) delimiter.

"""
    path.write_text(header + DatasheetSettings().to_toml(), encoding="utf-8")
    print(f"Created {path}")

    return 0


def show_config_sources() -> int:
    """Print which configuration sources exist, lowest precedence first."""
    from .config import _user_config_path

    sources = [
        ("Built-in defaults", None),
        ("pyproject.toml [tool.datasheet]", Path("pyproject.toml")),
        ("./datasheet.toml", Path("datasheet.toml")),
        ("User config", _user_config_path().expanduser()),
    ]
    env_file = os.environ.get("DATASHEET_CONFIG_FILE")
    if env_file:
        sources.append(("$DATASHEET_CONFIG_FILE", Path(env_file)))

    print("Configuration Sources (in order of precedence):\n")
    print(f"{'Source':<40} {'Status':<15} {'Path'}")
    print("-" * 80)

    for name, path in sources:
        if path is None:
            print(f"{name:<40} {'active':<15}")
            continue
        status = "found" if path.exists() else "not found"
        print(f"{name:<40} {status:<15} {path}")

    env_vars = sorted(k for k in os.environ if k.startswith("DATASHEET_"))
    if env_vars:
        shown = ", ".join(env_vars[:3]) + ("..." if len(env_vars) > 3 else "")
        print(f"{'Environment variables':<40} {f'{len(env_vars)} vars':<15} {shown}")
    else:
        print(f"{'Environment variables':<40} {'no vars':<15}")

    print("\nNote: Later sources override earlier ones.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
