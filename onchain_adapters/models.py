"""
On-chain Data Models - Raw log entries, filters and adapter health.

Log entries are kept undecoded here. Decoding into bounty events is the
job of the sync engine, so every log source returns the same shape.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional


class AdapterStatus(Enum):
    """Health status of a log source."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class LogFilter:
    """
    Log query filter: event signature plus optional emitting contract.

    A filter without an address matches logs from every contract,
    which is how events from cloned bounty contracts are collected.
    """
    topic0: str
    address: Optional[str] = None

    def __post_init__(self) -> None:
        # Frozen dataclass: normalize through object.__setattr__
        object.__setattr__(self, "topic0", self.topic0.lower())
        if self.address is not None:
            object.__setattr__(self, "address", self.address.lower())

    def matches(self, address: str, topics: tuple[str, ...]) -> bool:
        """Check whether a raw log would be returned for this filter."""
        if not topics or topics[0].lower() != self.topic0:
            return False
        if self.address is not None and address.lower() != self.address:
            return False
        return True

    def to_rpc_params(self, from_block: int, to_block: int) -> dict[str, Any]:
        """Build the eth_getLogs filter object."""
        params: dict[str, Any] = {
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
            "topics": [self.topic0],
        }
        if self.address is not None:
            params["address"] = self.address
        return params


@dataclass(frozen=True)
class LogEntry:
    """A single raw log as returned by a log source."""
    address: str
    topics: tuple[str, ...]
    data: str
    block_number: int
    tx_hash: str
    log_index: int

    @property
    def sort_key(self) -> tuple[int, int]:
        """Chain order: block first, then position inside the block."""
        return (self.block_number, self.log_index)

    @classmethod
    def from_rpc(cls, raw: dict[str, Any]) -> "LogEntry":
        """Create from an eth_getLogs result object (hex quantities)."""
        return cls(
            address=raw["address"].lower(),
            topics=tuple(t.lower() for t in raw.get("topics", [])),
            data=raw.get("data") or "0x",
            block_number=int(raw["blockNumber"], 16),
            tx_hash=raw["transactionHash"].lower(),
            log_index=int(raw["logIndex"], 16),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "address": self.address,
            "topics": list(self.topics),
            "data": self.data,
            "block_number": self.block_number,
            "tx_hash": self.tx_hash,
            "log_index": self.log_index,
        }


@dataclass
class AdapterHealth:
    """Health status of a log source."""
    status: AdapterStatus
    last_check: datetime
    latency_ms: Optional[float] = None
    error_count: int = 0
    last_error: Optional[str] = None
    last_error_time: Optional[datetime] = None
    consecutive_failures: int = 0
    requests_total: int = 0
    last_height: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "status": self.status.value,
            "last_check": self.last_check.isoformat(),
            "latency_ms": self.latency_ms,
            "error_count": self.error_count,
            "last_error": self.last_error,
            "last_error_time": self.last_error_time.isoformat() if self.last_error_time else None,
            "consecutive_failures": self.consecutive_failures,
            "requests_total": self.requests_total,
            "last_height": self.last_height,
        }


@dataclass
class AdapterIncident:
    """Record of a failed request against a log source."""
    adapter_name: str
    incident_type: str
    error_message: str
    method: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "adapter_name": self.adapter_name,
            "incident_type": self.incident_type,
            "error_message": self.error_message,
            "method": self.method,
            "timestamp": self.timestamp.isoformat(),
        }
