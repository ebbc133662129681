"""Last-good results of upstream-backed computations.

A ``ResultBoard`` keeps, per key, the most recent successful value and the
most recent error. Each refresh takes a token from ``issue``; results and
errors carrying a token older than the latest issued one are dropped, so a
slow, superseded fetch can never overwrite a newer result.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

logger = logging.getLogger("orders")


@dataclass(frozen=True)
class BoardEntry:
    """State of one key.

    Attributes:
        value: Last successfully published value, or None.
        error: Code of the error from the latest refresh, or None when the
            latest refresh succeeded.
        token: Token of the published value (0 when nothing was published).
    """

    value: Any = None
    error: Optional[str] = None
    token: int = 0


class ResultBoard:
    def __init__(self):
        self._lock = threading.Lock()
        self._issued: Dict[str, int] = {}
        self._entries: Dict[str, BoardEntry] = {}

    def issue(self, key: str) -> int:
        """Return a new token for ``key``, greater than any issued before."""
        with self._lock:
            token = self._issued.get(key, 0) + 1
            self._issued[key] = token
            return token

    def is_latest(self, key: str, token: int) -> bool:
        with self._lock:
            return self._issued.get(key, 0) == token

    def publish(self, key: str, token: int, value: Any) -> bool:
        """Store ``value`` if ``token`` is still the latest issued for ``key``.

        Returns:
            bool: False when the result was superseded and dropped.
        """
        with self._lock:
            if self._issued.get(key, 0) != token:
                logger.info("dropping superseded result", extra={"key": key, "token": token})
                return False
            self._entries[key] = BoardEntry(value=value, error=None, token=token)
            return True

    def fail(self, key: str, token: int, error: str) -> bool:
        """Record ``error`` for ``key`` keeping the last good value."""
        with self._lock:
            if self._issued.get(key, 0) != token:
                return False
            previous = self._entries.get(key, BoardEntry())
            self._entries[key] = BoardEntry(value=previous.value, error=error, token=previous.token)
            return True

    def read(self, key: str) -> BoardEntry:
        with self._lock:
            return self._entries.get(key, BoardEntry())

    def clear(self) -> None:
        with self._lock:
            self._issued.clear()
            self._entries.clear()
