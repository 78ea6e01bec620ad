"""
Log source providers.
"""

from onchain_adapters.providers.json_rpc import JsonRpcLogSource
from onchain_adapters.providers.mock import MockConfig, MockLogSource, RecordedCall

__all__ = [
    "JsonRpcLogSource",
    "MockConfig",
    "MockLogSource",
    "RecordedCall",
]
