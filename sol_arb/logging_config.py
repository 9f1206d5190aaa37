"""
Logging configuration for console output.

Usage:
    from sol_arb import logging_config
    logging_config.setup(logging_config.level_from_name("info"))
"""

import logging
import sys

LEVEL_NAMES = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def level_from_name(name: str) -> int:
    """Map a LOG_LEVEL value to a logging level."""
    try:
        return LEVEL_NAMES[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown log level '{name}' (expected one of: debug, info, warn, error)"
        ) from None


def setup(level=logging.INFO):
    """
    Configure the root logger.

    - Uses shorter timestamp format (HH:MM:SS instead of full datetime)
    - Suppresses per-request logs from the RPC HTTP client
    """
    root = logging.getLogger()
    root.setLevel(level)

    # Clear existing handlers
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(message)s", datefmt="%H:%M:%S"
    )
    console.setFormatter(formatter)
    root.addHandler(console)

    # httpx logs every RPC POST at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.getLogger("sol_arb").setLevel(level)
