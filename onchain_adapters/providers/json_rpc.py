"""
JSON-RPC Log Source - Ethereum-compatible node endpoint.

Talks to any eth_* JSON-RPC endpoint (Alchemy, public Base RPC,
a local node) over HTTP.

Methods used:
- eth_blockNumber
- eth_getLogs

Hosted providers cap eth_getLogs to a small block window. The cap is
enforced by the chunked fetcher, not here; a refused window surfaces
as RpcResponseError and aborts the cycle.
"""

import asyncio
import itertools
import logging
import time
from typing import Any, Optional

import aiohttp

from onchain_adapters.base import BaseLogSource
from onchain_adapters.exceptions import (
    ConfigurationError,
    FetchError,
    RateLimitError,
    RpcResponseError,
)
from onchain_adapters.models import LogEntry, LogFilter


logger = logging.getLogger(__name__)


class JsonRpcLogSource(BaseLogSource):
    """
    Log source backed by a JSON-RPC HTTP endpoint.

    One aiohttp session is reused for the life of the source and
    closed by close() / the async context manager.
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        rpc_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = BaseLogSource.MAX_RETRIES,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        super().__init__(max_retries=max_retries)
        if not rpc_url:
            raise ConfigurationError(
                message="rpc_url is required",
                adapter_name="json_rpc",
                config_key="RPC_URL",
            )
        self._rpc_url = rpc_url
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._request_ids = itertools.count(1)

    @property
    def name(self) -> str:
        """Unique identifier."""
        return "json_rpc"

    async def current_height(self) -> int:
        """Latest block number via eth_blockNumber."""
        result = await self._with_retry(
            "eth_blockNumber",
            lambda: self._rpc_call("eth_blockNumber", []),
        )
        height = int(result, 16)
        self._health.last_height = height
        return height

    async def logs_in_range(
        self,
        log_filter: LogFilter,
        from_block: int,
        to_block: int,
    ) -> list[LogEntry]:
        """Logs for one filter via eth_getLogs."""
        params = log_filter.to_rpc_params(from_block, to_block)
        result = await self._with_retry(
            "eth_getLogs",
            lambda: self._rpc_call("eth_getLogs", [params]),
        )
        entries = [LogEntry.from_rpc(raw) for raw in result or []]
        # Nodes return chain order already; sort so every window is ordered regardless
        entries.sort(key=lambda e: e.sort_key)
        logger.debug(
            f"[{self.name}] eth_getLogs {from_block}-{to_block} "
            f"topic={log_filter.topic0[:10]} -> {len(entries)} logs"
        )
        return entries

    # ─────────────────────────────────────────────────────────────
    # HTTP Helpers
    # ─────────────────────────────────────────────────────────────

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                },
            )
            self._owns_session = True
        return self._session

    async def _rpc_call(self, method: str, params: list[Any]) -> Any:
        """Make a single JSON-RPC request and return its result."""
        session = await self._get_session()
        payload = {
            "jsonrpc": "2.0",
            "id": next(self._request_ids),
            "method": method,
            "params": params,
        }

        start_time = time.time()
        try:
            async with session.post(self._rpc_url, json=payload) as response:
                self._health.latency_ms = (time.time() - start_time) * 1000

                if response.status == 429:
                    retry_after = response.headers.get("Retry-After")
                    raise RateLimitError(
                        message="Rate limit exceeded",
                        adapter_name=self.name,
                        method=method,
                        retry_after_seconds=int(retry_after) if retry_after and retry_after.isdigit() else None,
                    )

                if response.status >= 400:
                    body = await response.text()
                    raise FetchError(
                        message=f"HTTP {response.status}",
                        adapter_name=self.name,
                        method=method,
                        status_code=response.status,
                        response_body=body[:500],
                    )

                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise FetchError(
                        message="Response is not valid JSON",
                        adapter_name=self.name,
                        method=method,
                        status_code=response.status,
                        original_error=e,
                    ) from e

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise FetchError(
                message=f"Connection error: {e}",
                adapter_name=self.name,
                method=method,
                original_error=e,
            ) from e

        if not isinstance(body, dict):
            raise FetchError(
                message="Malformed JSON-RPC response",
                adapter_name=self.name,
                method=method,
                response_body=str(body)[:500],
            )

        error = body.get("error")
        if error:
            code = error.get("code") if isinstance(error, dict) else None
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            # -32005 is the de-facto "limit exceeded" code
            if code == -32005 or "rate limit" in message.lower():
                raise RateLimitError(
                    message=message,
                    adapter_name=self.name,
                    method=method,
                )
            raise RpcResponseError(
                message=message,
                adapter_name=self.name,
                method=method,
                rpc_code=code,
                rpc_data=error.get("data") if isinstance(error, dict) else None,
            )

        return body.get("result")

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    async def close(self) -> None:
        """Close the HTTP session if we created it."""
        if self._owns_session and self._session and not self._session.closed:
            await self._session.close()
