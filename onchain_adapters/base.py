"""
Base Log Source - Abstract interface for all chain-data providers.

The sync engine needs exactly two capabilities from a provider:
- current chain height
- logs matching {address?, topic0} inside an inclusive block range

Unlike metric adapters, log sources MUST raise on failure. A missing
log window can never be replaced by stale data, so the caller aborts
the cycle instead.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from onchain_adapters.exceptions import (
    FetchError,
    OnchainAdapterError,
    RateLimitError,
)
from onchain_adapters.models import (
    AdapterHealth,
    AdapterIncident,
    AdapterStatus,
    LogEntry,
    LogFilter,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


class BaseLogSource(ABC):
    """
    Abstract base class for all log sources.

    Each source must:
    1. Implement current_height() - Latest block number
    2. Implement logs_in_range() - Logs for one filter and block range

    Provided here:
    - Limited retry with backoff for transient failures
    - Health tracking by consecutive failures
    - Incident log
    """

    MAX_RETRIES = 2
    RETRY_BACKOFF_BASE = 1.5
    DEGRADED_THRESHOLD = 3
    UNAVAILABLE_THRESHOLD = 5

    def __init__(self, max_retries: int = MAX_RETRIES) -> None:
        self._max_retries = max(1, max_retries)

        self._health = AdapterHealth(
            status=AdapterStatus.UNKNOWN,
            last_check=datetime.now(timezone.utc),
        )
        self._last_successful_request: Optional[datetime] = None

        self._incidents: list[AdapterIncident] = []
        self._max_incidents = 100

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique identifier for this source."""
        pass

    @abstractmethod
    async def current_height(self) -> int:
        """
        Return the latest block number known to the provider.

        Raises:
            OnchainAdapterError: If the provider cannot be reached
        """
        pass

    @abstractmethod
    async def logs_in_range(
        self,
        log_filter: LogFilter,
        from_block: int,
        to_block: int,
    ) -> list[LogEntry]:
        """
        Fetch logs for one filter in the inclusive range [from_block, to_block].

        Results are in chain order (block number, then log index).

        Raises:
            OnchainAdapterError: If the window cannot be fetched
        """
        pass

    async def health_check(self) -> AdapterHealth:
        """Probe the provider by reading the chain height."""
        try:
            height = await self.current_height()
            self._health.last_height = height
        except OnchainAdapterError as e:
            logger.warning(f"[{self.name}] Health check failed: {e}")
        self._health.last_check = datetime.now(timezone.utc)
        return self._health

    # ─────────────────────────────────────────────────────────────
    # Retry
    # ─────────────────────────────────────────────────────────────

    async def _with_retry(
        self,
        method: str,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        """Run a provider call with limited retries."""
        last_error: Optional[Exception] = None

        for attempt in range(self._max_retries):
            try:
                self._health.requests_total += 1
                result = await call()
                self._on_success()
                return result

            except RateLimitError as e:
                # Don't retry on rate limit - the next tick will
                self._on_error(e, method)
                raise

            except FetchError as e:
                self._on_error(e, method)
                if e.is_client_error:
                    raise
                last_error = e

            except OnchainAdapterError as e:
                self._on_error(e, method)
                raise

            if attempt + 1 < self._max_retries:
                wait_time = self.RETRY_BACKOFF_BASE ** attempt
                logger.warning(
                    f"[{self.name}] {method} retry {attempt + 1}/{self._max_retries} "
                    f"in {wait_time:.1f}s: {last_error}"
                )
                await asyncio.sleep(wait_time)

        raise FetchError(
            message=f"Failed after {self._max_retries} attempts",
            adapter_name=self.name,
            method=method,
            original_error=last_error,
        )

    # ─────────────────────────────────────────────────────────────
    # Health & Error Tracking
    # ─────────────────────────────────────────────────────────────

    def _on_success(self) -> None:
        """Handle successful request."""
        self._last_successful_request = datetime.now(timezone.utc)
        self._health.consecutive_failures = 0

        if self._health.status != AdapterStatus.HEALTHY:
            if self._health.status != AdapterStatus.UNKNOWN:
                logger.info(f"[{self.name}] Recovered to HEALTHY status")
            self._health.status = AdapterStatus.HEALTHY

    def _on_error(self, error: OnchainAdapterError, method: Optional[str] = None) -> None:
        """Handle request error."""
        self._health.error_count += 1
        self._health.consecutive_failures += 1
        self._health.last_error = str(error)
        self._health.last_error_time = datetime.now(timezone.utc)

        if isinstance(error, RateLimitError):
            self._health.status = AdapterStatus.RATE_LIMITED
        elif self._health.consecutive_failures >= self.UNAVAILABLE_THRESHOLD:
            if self._health.status != AdapterStatus.UNAVAILABLE:
                self._health.status = AdapterStatus.UNAVAILABLE
                logger.error(f"[{self.name}] Marked UNAVAILABLE")
        elif self._health.consecutive_failures >= self.DEGRADED_THRESHOLD:
            if self._health.status != AdapterStatus.DEGRADED:
                self._health.status = AdapterStatus.DEGRADED
                logger.warning(f"[{self.name}] Marked DEGRADED")

        self._log_incident(error, method)

    def _log_incident(self, error: OnchainAdapterError, method: Optional[str] = None) -> None:
        """Log an incident."""
        incident = AdapterIncident(
            adapter_name=self.name,
            incident_type=error.__class__.__name__,
            error_message=str(error),
            method=method,
        )

        self._incidents.append(incident)

        if len(self._incidents) > self._max_incidents:
            self._incidents = self._incidents[-self._max_incidents:]

        logger.warning(f"[{self.name}] Incident: {error}")

    def get_health(self) -> AdapterHealth:
        """Get current health status."""
        return self._health

    def get_incidents(self, limit: int = 10) -> list[AdapterIncident]:
        """Get recent incidents."""
        return self._incidents[-limit:]

    def is_usable(self) -> bool:
        """Check if source can be used."""
        return self._health.status in (
            AdapterStatus.HEALTHY,
            AdapterStatus.DEGRADED,
            AdapterStatus.UNKNOWN,
        )

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close resources."""
        pass

    async def __aenter__(self) -> "BaseLogSource":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}(name={self.name}, status={self._health.status.value})>"

    def status(self) -> dict[str, Any]:
        """Health and recent incidents for status endpoints."""
        return {
            "name": self.name,
            "usable": self.is_usable(),
            "health": self._health.to_dict(),
            "incidents": [i.to_dict() for i in self.get_incidents(5)],
        }
