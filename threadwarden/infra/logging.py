"""Standardized logging utilities for Threadwarden."""
from __future__ import annotations

import logging
from typing import Any

# Root logger name for all Threadwarden components
ROOT_LOGGER_NAME = "threadwarden"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a hierarchical logger under the threadwarden namespace.

    Args:
        name: Module or component name. If None, returns the root logger.
              The name is prefixed with "threadwarden." unless it already
              carries that prefix.

    Example::

        from threadwarden.infra.logging import get_logger
        log = get_logger(__name__)  # -> "threadwarden.reconcile.remover"
    """
    if name is None:
        return logging.getLogger(ROOT_LOGGER_NAME)

    clean_name = name
    if clean_name.startswith(f"{ROOT_LOGGER_NAME}."):
        clean_name = clean_name[len(ROOT_LOGGER_NAME) + 1 :]

    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{clean_name}")


def get_cog_logger(cog_name: str) -> logging.Logger:
    """Return a logger under "threadwarden.cogs.<cog_name>"."""
    return get_logger(f"cogs.{cog_name}")


def structured_log(
    logger: logging.Logger,
    level: int,
    message: str,
    **fields: Any,
) -> None:
    """Log a message with structured key=value fields appended.

    Fields whose value is ``None`` are left out, so callers can always pass
    ``candidate_id=`` even when there is no candidate.

    Example::

        structured_log(log, logging.WARNING, "Removal denied",
                       group_id=42, candidate_id=7, reason="insufficient authority")
        # Logs: "Removal denied group_id=42 candidate_id=7 reason=insufficient authority"
    """
    parts = [f"{k}={v}" for k, v in fields.items() if v is not None]
    if parts:
        message = f"{message} {' '.join(parts)}"
    logger.log(level, message)
