#!/usr/bin/env python3
"""
nodekeeper - Main Entrypoint

USAGE:
    python main.py --config config/node.yaml
    python main.py -f config/node.yaml --no-logging
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Optional

from nodekeeper.runtime.app import RunOptions, run_app


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="nodekeeper",
        description="Node startup and lifecycle supervisor",
    )
    parser.add_argument(
        "-f",
        "--config",
        type=Path,
        required=True,
        help="Path to node config YAML",
    )
    parser.add_argument(
        "-d",
        "--no-logging",
        action="store_true",
        help="Disable all logging and structured logging",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> int:
    """Main CLI entrypoint."""
    args = _parse_args(argv)
    opts = RunOptions(config_path=args.config, no_logging=args.no_logging)
    return run_app(opts)


if __name__ == '__main__':
    sys.exit(main())
