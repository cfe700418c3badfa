"""Single-endpoint Solana JSON-RPC transport for account lookups.

Issues exactly one request per call and classifies the outcome. Retries,
pacing and failover belong to the caller.
"""

import base64
import binascii
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from src.parsers.solana_rpc.exceptions import (
    AccountNotFoundError,
    RpcRateLimitedError,
    RpcTransportError,
    looks_rate_limited,
)


@dataclass(frozen=True)
class AccountState:
    data: bytes
    slot: int | None = None


class SolanaRpcClient:
    """Async JSON-RPC client bound to one endpoint."""

    def __init__(self, rpc_url: str, *, name: str = "primary", timeout: float = 30.0) -> None:
        self._rpc_url = rpc_url
        self.name = name
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self._request_id = 0

    @property
    def url(self) -> str:
        return self._rpc_url

    async def _call(self, method: str, params: list[Any]) -> Any:
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        try:
            resp = await self._client.post(self._rpc_url, json=payload)
        except (httpx.TimeoutException, httpx.NetworkError) as e:
            raise RpcTransportError(f"{self.name}: {type(e).__name__}: {e}") from e
        except httpx.HTTPError as e:
            raise RpcTransportError(f"{self.name}: {e}") from e

        if resp.status_code == 429:
            raise RpcRateLimitedError(f"{self.name}: HTTP 429 Too Many Requests")
        if resp.status_code >= 400:
            raise RpcTransportError(f"{self.name}: HTTP {resp.status_code}")

        try:
            body = resp.json()
        except ValueError as e:
            raise RpcTransportError(f"{self.name}: invalid JSON response") from e

        error = body.get("error") if isinstance(body, dict) else None
        if error:
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            if looks_rate_limited(message) or (isinstance(error, dict) and error.get("code") == 429):
                raise RpcRateLimitedError(f"{self.name}: {message}")
            raise RpcTransportError(f"{self.name}: RPC error: {message}")
        if not isinstance(body, dict) or "result" not in body:
            raise RpcTransportError(f"{self.name}: response without result")
        return body["result"]

    async def get_account_state(self, address: str) -> AccountState:
        """Fetch raw account bytes via getAccountInfo (base64)."""
        result = await self._call("getAccountInfo", [address, {"encoding": "base64"}])
        value = result.get("value") if isinstance(result, dict) else None
        if not value:
            raise AccountNotFoundError(f"{self.name}: account {address[:12]} not found")

        account_data = value.get("data")
        b64_data = account_data[0] if isinstance(account_data, list) else account_data
        if not isinstance(b64_data, str):
            raise RpcTransportError(f"{self.name}: unexpected data encoding for {address[:12]}")
        try:
            data = base64.b64decode(b64_data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise RpcTransportError(f"{self.name}: bad base64 for {address[:12]}") from e

        slot = result.get("context", {}).get("slot")
        logger.debug(f"[RPC] {self.name}: {address[:12]} {len(data)} bytes @ slot {slot}")
        return AccountState(data=data, slot=slot)

    async def get_slot(self) -> int:
        result = await self._call("getSlot", [])
        if not isinstance(result, int):
            raise RpcTransportError(f"{self.name}: unexpected getSlot result {result!r}")
        return result

    async def close(self) -> None:
        await self._client.aclose()
