"""
Thread-safe rate-limited logging for repetitive status messages.
"""
import logging
import threading
from typing import Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

# Keys expire on their own; the lock guards check-and-set
_seen_messages: TTLCache = TTLCache(maxsize=256, ttl=60)
_seen_lock = threading.RLock()


def rate_limited_log(
    message: str,
    level: str = "warning",
    logger_instance: Optional[logging.Logger] = None,
) -> bool:
    """
    Log a message unless the same message was logged within the last minute.

    Args:
        message: Message to log
        level: Log level name (debug, info, warning, error, critical)
        logger_instance: Logger to use (defaults to this module's logger)

    Returns:
        True if the message was emitted
    """
    log_instance = logger_instance or logger
    key = f"{level}:{message}"
    with _seen_lock:
        if key in _seen_messages:
            return False
        _seen_messages[key] = True
    getattr(log_instance, level.lower(), log_instance.warning)(message)
    return True


def reset() -> None:
    """Forget previously logged messages (used by tests)."""
    with _seen_lock:
        _seen_messages.clear()
