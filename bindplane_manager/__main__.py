"""
BindPlane manager CLI entry point.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from bindplane_manager.config import BindPlaneConfig, config_key, flag_name, load_config
from bindplane_manager.config.settings import COMMAND_KEYS, COMMON_KEYS, SERVER_KEYS, default_home_path
from bindplane_manager.logging_config import level_for_env
from bindplane_manager.logging_config import setup_logging as setup_full_logging
from bindplane_manager.manager import BindPlaneManager

DEFAULT_CONFIG_NAME = "config.yaml"

BOOLEAN_KEYS = ("tlsSkipVerify", "offline", "disableDownloadsCache")


def setup_logging(config: BindPlaneConfig, verbose: bool = False) -> None:
    """Setup logging from the loaded configuration."""
    console_level = "DEBUG" if verbose else level_for_env(config.server.env)
    log_file = config.log_file()

    try:
        setup_full_logging(
            log_dir=str(log_file.parent),
            console_level=console_level,
            file_level="DEBUG",
            use_json=False,
            output=config.server.log_output,
            log_file_name=log_file.name,
        )
    except PermissionError:
        logging.basicConfig(
            level=getattr(logging, console_level),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=[logging.StreamHandler(sys.stdout)],
        )


def _add_knob_flags(parser: argparse.ArgumentParser) -> None:
    for key in dict.fromkeys(COMMON_KEYS + SERVER_KEYS + COMMAND_KEYS):
        flag = flag_name(key)
        dest = flag[2:].replace("-", "_")
        if key in BOOLEAN_KEYS:
            parser.add_argument(
                flag, dest=dest, action="store_const", const=True, default=None,
                help=f"Set {key}",
            )
        else:
            parser.add_argument(flag, dest=dest, default=None, help=f"Set {key}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="BindPlane manager - OpenTelemetry collector control plane"
    )

    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default=str(default_home_path() / DEFAULT_CONFIG_NAME),
        help="Path to configuration file",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    parser.add_argument(
        "--generate-config",
        action="store_true",
        help="Generate configuration file from defaults and flags, then exit",
    )
    parser.add_argument(
        "--validate-config", action="store_true", help="Validate configuration file and exit"
    )

    knobs = parser.add_argument_group("configuration", "Override configuration file values")
    _add_knob_flags(knobs)  # type: ignore[arg-type]
    return parser


def knob_args(args: argparse.Namespace) -> Dict[str, Any]:
    """The configuration knobs given on the command line, keyed by config key."""
    known = set(COMMON_KEYS + SERVER_KEYS + COMMAND_KEYS)
    values = {}
    for dest, value in vars(args).items():
        key = config_key(dest.replace("_", "-"))
        if key in known and value is not None:
            values[dest] = value
    return values


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    if args.validate_config:
        try:
            BindPlaneConfig.from_file(args.config)
            print(f"Configuration valid: {args.config}")
            return 0
        except Exception as e:
            print(f"Configuration invalid: {e}")
            return 1

    try:
        config = load_config(args.config, knob_args(args), home=Path(args.config).parent)
    except Exception as e:
        print(f"Configuration invalid: {e}", file=sys.stderr)
        return 1

    if args.generate_config:
        config.save(args.config)
        print(f"Generated configuration at: {args.config}")
        return 0

    setup_logging(config, args.verbose)
    logger = logging.getLogger(__name__)

    try:
        logger.info(f"Loaded configuration from {args.config}")
        manager = BindPlaneManager(config)
        asyncio.run(manager.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 0
    except PermissionError as e:
        logger.error(f"Permission error: {e}")
        logger.error(f"File/Directory: {getattr(e, 'filename', 'unknown')}")
        print(f"Error running BindPlane manager: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        print(f"Error running BindPlane manager: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
