"""
On-chain Adapters Package - Pluggable chain-data layer.

Provides the two capabilities the event sync engine needs from a
chain-data provider: current chain height and logs in a block range.

Features:
- Isolated, replaceable log sources
- Raw, undecoded log entries in chain order
- Limited retry for transient failures
- Health and incident tracking

Quick Start:
    from onchain_adapters import JsonRpcLogSource, LogFilter

    async def latest_logs(topic0):
        async with JsonRpcLogSource("https://sepolia.base.org") as source:
            height = await source.current_height()
            return await source.logs_in_range(
                LogFilter(topic0=topic0),
                height - 9,
                height,
            )

Adding New Sources:
    class NewSource(BaseLogSource):
        @property
        def name(self) -> str:
            return "new_source"

        async def current_height(self): ...
        async def logs_in_range(self, log_filter, from_block, to_block): ...
"""

from onchain_adapters.base import BaseLogSource
from onchain_adapters.exceptions import (
    ConfigurationError,
    FetchError,
    OnchainAdapterError,
    RateLimitError,
    RpcResponseError,
)
from onchain_adapters.models import (
    AdapterHealth,
    AdapterIncident,
    AdapterStatus,
    LogEntry,
    LogFilter,
)
from onchain_adapters.providers import (
    JsonRpcLogSource,
    MockConfig,
    MockLogSource,
)


__version__ = "1.0.0"

__all__ = [
    # Base
    "BaseLogSource",

    # Models
    "LogEntry",
    "LogFilter",
    "AdapterHealth",
    "AdapterIncident",
    "AdapterStatus",

    # Exceptions
    "OnchainAdapterError",
    "FetchError",
    "RateLimitError",
    "RpcResponseError",
    "ConfigurationError",

    # Providers
    "JsonRpcLogSource",
    "MockLogSource",
    "MockConfig",
]
