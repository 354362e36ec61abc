"""Structured logging utilities."""

import json
import logging
from typing import Any


def setup_logging(level: str = "INFO", verbose: bool = False) -> None:
    """Setup logging for the CLI.

    Args:
        level: Logging level
        verbose: Force DEBUG level
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper()),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # aiortc/aioice are chatty at DEBUG
    if not verbose:
        logging.getLogger("aioice").setLevel(logging.WARNING)
        logging.getLogger("aiortc").setLevel(logging.WARNING)


def log_event(event_type: str, data: dict[str, Any]) -> None:
    """Log structured event.

    Args:
        event_type: Event type identifier
        data: Event data dictionary
    """
    logging.getLogger("peercall.events").info(json.dumps({"event": event_type, **data}, default=str))
