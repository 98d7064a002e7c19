"""Shared logging helpers.

USAGE:
    from cardcatalog.infrastructure.observability.logger_template import (
        log_operation,
        log_summary,
    )

    async with log_operation(logger, "catalog_scan", roots=2):
        report = await pipeline.run(roots)

    log_summary(logger, "Scan complete", report.to_dict())
"""

import logging
import time
from collections.abc import AsyncIterator, Mapping
from contextlib import asynccontextmanager
from typing import Any


# Yo, this context manager logs start/end of a run with automatic duration tracking.
# On exception it logs the failure with the traceback and re-raises so the caller can
# still map it to an exit code / HTTP status.
@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    **context: Any,
) -> AsyncIterator[None]:
    """Context manager for logging operation start/end with automatic timing.

    Logs:
    - {operation}.started with context fields
    - {operation}.completed with context + duration_ms
    - {operation}.failed with context + duration_ms + error details (if exception)

    Args:
        logger: Module logger
        operation: Operation name (e.g., "catalog_scan", "catalog_prune")
        **context: Additional fields to include in logs
    """
    start = time.monotonic()
    logger.info(f"{operation}.started", extra=context)

    try:
        yield
    except Exception as e:
        duration_ms = int((time.monotonic() - start) * 1000)
        logger.error(
            f"{operation}.failed",
            extra={
                **context,
                "duration_ms": duration_ms,
                "error": str(e),
                "error_type": type(e).__name__,
            },
            exc_info=True,
        )
        raise

    duration_ms = int((time.monotonic() - start) * 1000)
    logger.info(
        f"{operation}.completed",
        extra={**context, "duration_ms": duration_ms},
    )


# Hey future me - renders a stats dict as a little tree so the end-of-run summary is
# readable in a terminal:
#   Scan complete
#   ├─ processed: 120
#   ├─ skipped: 4
#   └─ failed: 1
# Nested dicts (reason counters) are flattened to "key=value" lists, empty ones dropped.
def log_summary(
    logger: logging.Logger,
    title: str,
    stats: Mapping[str, Any],
    level: int = logging.INFO,
) -> None:
    """Log a stats mapping as a tree."""
    rows: list[str] = []
    for key, value in stats.items():
        if value is None or value == {}:
            continue
        if isinstance(value, Mapping):
            value = ", ".join(f"{k}={v}" for k, v in value.items())
        rows.append(f"{key}: {value}")

    lines = [title]
    for i, row in enumerate(rows):
        branch = "└─" if i == len(rows) - 1 else "├─"
        lines.append(f"{branch} {row}")
    logger.log(level, "\n".join(lines), extra={"stats": dict(stats)})
