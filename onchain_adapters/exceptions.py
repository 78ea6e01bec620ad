"""
Log Source Exceptions.

Every provider failure surfaces as an OnchainAdapterError so the
sync engine can abort a cycle without knowing the transport.
Subclasses only add the fields that identify their failure mode;
to_dict() merges them in through _extra().
"""

from datetime import datetime, timezone
from typing import Any, Optional


class OnchainAdapterError(Exception):
    """Base exception for all log source errors."""

    def __init__(
        self,
        message: str,
        adapter_name: Optional[str] = None,
        method: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.adapter_name = adapter_name
        self.method = method
        self.original_error = original_error
        self.raised_at = datetime.now(timezone.utc)

    def _extra(self) -> dict[str, Any]:
        return {}

    def to_dict(self) -> dict[str, Any]:
        data = {
            "error_type": type(self).__name__,
            "message": self.message,
            "adapter_name": self.adapter_name,
            "method": self.method,
            "original_error": repr(self.original_error) if self.original_error else None,
            "raised_at": self.raised_at.isoformat(),
        }
        data.update(self._extra())
        return data

    def __str__(self) -> str:
        text = self.message
        if self.adapter_name or self.method:
            where = "/".join(p for p in (self.adapter_name, self.method) if p)
            text = f"{where}: {text}"
        if self.original_error is not None:
            text += f" <- {self.original_error!r}"
        return text


class FetchError(OnchainAdapterError):
    """The provider could not be reached or answered with a bad HTTP status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None,
                 response_body: Optional[str] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code
        self.response_body = response_body

    @property
    def is_client_error(self) -> bool:
        """4xx responses are not worth retrying."""
        return self.status_code is not None and 400 <= self.status_code < 500

    def _extra(self) -> dict[str, Any]:
        return {"status_code": self.status_code, "response_body": self.response_body}


class RateLimitError(OnchainAdapterError):
    """HTTP 429, or a node-side "limit exceeded" answer."""

    def __init__(self, message: str, *, retry_after_seconds: Optional[int] = None,
                 **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after_seconds = retry_after_seconds

    def _extra(self) -> dict[str, Any]:
        return {"retry_after_seconds": self.retry_after_seconds}


class RpcResponseError(OnchainAdapterError):
    """
    The node answered with a JSON-RPC error object.

    Hosted providers report an over-wide eth_getLogs range this way,
    e.g. "query exceeds max block range".
    """

    def __init__(self, message: str, *, rpc_code: Optional[int] = None,
                 rpc_data: Any = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.rpc_code = rpc_code
        self.rpc_data = rpc_data

    def _extra(self) -> dict[str, Any]:
        data = None if self.rpc_data is None else str(self.rpc_data)[:500]
        return {"rpc_code": self.rpc_code, "rpc_data": data}


class ConfigurationError(OnchainAdapterError):
    """A log source was built with an unusable setting."""

    def __init__(self, message: str, *, config_key: Optional[str] = None,
                 **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.config_key = config_key

    def _extra(self) -> dict[str, Any]:
        return {"config_key": self.config_key}
