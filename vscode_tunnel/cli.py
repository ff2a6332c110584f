#!/usr/bin/env python3
"""
Command-line entry point for the VS Code tunnel action.

Inputs come from INPUT_* environment variables when run as a CI action;
flags given here take precedence over them.
"""

import argparse
import sys
from typing import List, Optional

from .action import run_tunnel
from .config import load_config
from .errors import ConfigurationError
from .logging_config import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vscode-tunnel",
        description="Open a VS Code tunnel into the running CI job",
    )
    parser.add_argument("--config", help="YAML file with action inputs")
    parser.add_argument("--tunnel-name", help="Tunnel name (20 characters or fewer)")
    parser.add_argument("--connection-timeout", help="Minutes to wait for a client to connect")
    parser.add_argument("--session-timeout", help="Minutes a connected session may last")
    parser.add_argument("--keep-alive-duration", help="Keep-alive duration in seconds")
    parser.add_argument("--cache-identity", help="Identity used to key the CLI data cache")
    parser.add_argument("--data-dir", help="CLI data directory")
    parser.add_argument("--log-level", help="Log level (DEBUG, INFO, WARNING, ERROR)")
    parser.add_argument("--log-format", choices=["text", "json"], help="Log line format")
    parser.add_argument("--verbose", "-v", action="store_const", const="true",
                        help="Enable verbose output from this tool and the CLI")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point; returns the process exit code."""
    args = build_parser().parse_args(argv)

    cli_inputs = {
        "tunnel-name": args.tunnel_name,
        "connection-timeout": args.connection_timeout,
        "session-timeout": args.session_timeout,
        "keep-alive-duration": args.keep_alive_duration,
        "cache-identity": args.cache_identity,
        "data-dir": args.data_dir,
        "log-level": args.log_level,
        "log-format": args.log_format,
        "verbose": args.verbose,
    }

    try:
        config = load_config(cli_inputs, config_path=args.config)
    except ConfigurationError as e:
        print(f"ERROR: Action failed with error: {e}", file=sys.stderr)
        return 1

    level = "DEBUG" if config.verbose else config.log_level
    setup_logging(level, config.log_format)

    outcome = run_tunnel(config)
    if not outcome.success:
        print(f"ERROR: {outcome.message}", file=sys.stderr)
    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())
