"""Standalone entry point: ``python -m reactive_messaging package.module:factory``."""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
from typing import Any

from .runtime import EXIT_STARTUP_FAILURE, run_standalone

logger = logging.getLogger("reactive_messaging")


def load_factory(target: str) -> Any:
    """Resolve ``module:attribute`` to the object it names."""
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ValueError(f"Expected 'module:factory', got {target!r}")
    module = importlib.import_module(module_name)
    obj: Any = module
    for part in attribute.split("."):
        obj = getattr(obj, part)
    return obj


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m reactive_messaging",
        description="Run a reactive messaging application until interrupted.",
    )
    parser.add_argument(
        "factory",
        help="callable returning a configured ReactiveMessaging, as module:name",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="root log level (default: %(default)s)",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        factory = load_factory(args.factory)
    except (ImportError, AttributeError, ValueError) as e:
        logger.error("Cannot load factory %s: %s", args.factory, e)
        return EXIT_STARTUP_FAILURE
    return run_standalone(factory)


if __name__ == "__main__":
    sys.exit(main())
