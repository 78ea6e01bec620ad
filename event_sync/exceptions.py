"""
Event Sync Exceptions.

A SyncError inside a cycle aborts that cycle only: the cursor stays
where it was and the same range is retried on the next tick.
"""

from typing import Any, Optional


class SyncError(Exception):
    """Base exception for the event sync engine."""

    def __init__(
        self,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class EventDecodeError(SyncError):
    """A log matched an event signature but its payload is malformed."""

    def __init__(
        self,
        message: str,
        event_name: Optional[str] = None,
        tx_hash: Optional[str] = None,
        log_index: Optional[int] = None,
    ) -> None:
        super().__init__(
            message,
            context={"event": event_name, "tx_hash": tx_hash, "log_index": log_index},
        )
        self.event_name = event_name
        self.tx_hash = tx_hash
        self.log_index = log_index


class CursorError(SyncError):
    """The persisted cursor cannot be read or would move backwards."""
    pass
