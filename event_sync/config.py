"""
Event Sync - Configuration.

All settings come from the environment (a local .env file is loaded
first). The factory address is optional: without it the sync engine
stays off and only the query API runs.
"""

import os
import re
from dataclasses import dataclass
from typing import List, Optional, Union

from dotenv import find_dotenv, load_dotenv


LATEST = "latest"

_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")

StartBlockSetting = Union[int, str]


def parse_start_block(raw: Optional[str]) -> StartBlockSetting:
    """
    Parse START_BLOCK.

    Empty or "latest" means start at the chain height seen on the
    first poll. Anything else must be a non-negative block number.
    """
    value = (raw or "").strip().lower()
    if value in ("", LATEST):
        return LATEST
    block = int(value, 0)
    if block < 0:
        raise ValueError(f"START_BLOCK must be >= 0, got {block}")
    return block


@dataclass
class SyncConfig:
    """Configuration for the event sync engine."""

    rpc_url: str = ""
    """Chain RPC endpoint (JSON-RPC over HTTP)."""

    factory_address: str = ""
    """Factory contract; scope filter for BountyCreated only."""

    start_block: StartBlockSetting = LATEST
    """Explicit first block, or "latest"."""

    poll_interval_seconds: float = 5.0
    """Fixed tick interval of the polling loop."""

    max_block_range: int = 10
    """Widest eth_getLogs window the provider accepts."""

    rpc_timeout_seconds: float = 30.0
    """Total timeout per RPC request."""

    rpc_max_retries: int = 2
    """Attempts per RPC request before the cycle is aborted."""

    api_port: int = 4000
    """Port for the query API."""

    log_level: str = "INFO"
    """Logging level."""

    @property
    def sync_enabled(self) -> bool:
        """Sync runs only once the factory is deployed and configured."""
        return bool(self.factory_address)

    @classmethod
    def from_env(cls) -> "SyncConfig":
        """Load configuration from environment variables."""
        load_dotenv(find_dotenv(usecwd=True))
        return cls(
            rpc_url=os.getenv("RPC_URL", "").strip(),
            factory_address=os.getenv("FACTORY_ADDRESS", "").strip().lower(),
            start_block=parse_start_block(os.getenv("START_BLOCK")),
            poll_interval_seconds=float(os.getenv("POLL_INTERVAL_SECONDS", "5")),
            max_block_range=int(os.getenv("MAX_BLOCK_RANGE", "10")),
            rpc_timeout_seconds=float(os.getenv("RPC_TIMEOUT_SECONDS", "30")),
            rpc_max_retries=int(os.getenv("RPC_MAX_RETRIES", "2")),
            api_port=int(os.getenv("PORT", "4000")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )

    def validate(self, require_sync: bool = False) -> List[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if (require_sync or self.sync_enabled) and not self.rpc_url:
            errors.append("RPC_URL is required (e.g. https://base-sepolia.g.alchemy.com/v2/YOUR_KEY)")

        if require_sync and not self.factory_address:
            errors.append("FACTORY_ADDRESS is required to run the sync engine")

        if self.factory_address and not _ADDRESS_RE.match(self.factory_address):
            errors.append(f"FACTORY_ADDRESS is not a valid address: {self.factory_address}")

        if self.poll_interval_seconds <= 0:
            errors.append("poll_interval_seconds must be positive")

        if self.max_block_range < 1:
            errors.append("max_block_range must be at least 1")

        if self.rpc_max_retries < 1:
            errors.append("rpc_max_retries must be at least 1")

        if not 0 < self.api_port < 65536:
            errors.append(f"PORT out of range: {self.api_port}")

        return errors
