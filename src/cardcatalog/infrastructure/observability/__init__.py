"""Observability infrastructure for structured logging."""

from cardcatalog.infrastructure.observability.error_formatting import (
    format_oserror_message,
)
from cardcatalog.infrastructure.observability.logger_template import (
    log_operation,
    log_summary,
)
from cardcatalog.infrastructure.observability.logging import (
    configure_logging,
    get_correlation_id,
    set_correlation_id,
)

__all__ = [
    "configure_logging",
    "format_oserror_message",
    "get_correlation_id",
    "log_operation",
    "log_summary",
    "set_correlation_id",
]
