"""
Structured logging for Backend TrustRisk.

JSON logs with timestamp, user_id, transaction_id, event_type.
Use get_logger() in all modules for aggregation-friendly output.
"""

from backend_trustrisk.trustrisk_logging.logger import (
    bind_user,
    configure_structlog,
    get_logger,
    level_from_name,
)

__all__ = ["bind_user", "configure_structlog", "get_logger", "level_from_name"]
