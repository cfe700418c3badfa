"""Tests for the single-endpoint Solana RPC client."""

import base64
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from src.parsers.solana_rpc.client import SolanaRpcClient
from src.parsers.solana_rpc.exceptions import (
    AccountNotFoundError,
    RpcRateLimitedError,
    RpcTransportError,
    looks_rate_limited,
)


def _client_with(resp: MagicMock | None = None, side_effect: Exception | None = None):
    client = SolanaRpcClient("https://rpc.example", name="primary")
    client._client = AsyncMock()
    if side_effect is not None:
        client._client.post = AsyncMock(side_effect=side_effect)
    else:
        client._client.post = AsyncMock(return_value=resp)
    return client


def _response(status_code: int = 200, body: object = None) -> MagicMock:
    mock_resp = MagicMock()
    mock_resp.status_code = status_code
    mock_resp.json.return_value = body
    return mock_resp


def _account_body(data: bytes, slot: int = 321, as_list: bool = True) -> dict:
    encoded = base64.b64encode(data).decode()
    return {
        "jsonrpc": "2.0",
        "id": 1,
        "result": {
            "context": {"slot": slot},
            "value": {
                "data": [encoded, "base64"] if as_list else encoded,
                "executable": False,
                "lamports": 1,
                "owner": "whirLbMiicVdio4qvUfM5KAg6Ct8VwpYzGff3uctyCc",
            },
        },
    }


class TestGetAccountState:
    @pytest.mark.asyncio
    async def test_decodes_base64_and_slot(self) -> None:
        client = _client_with(_response(body=_account_body(b"\x01\x02\x03")))
        state = await client.get_account_state("Pool111")

        assert state.data == b"\x01\x02\x03"
        assert state.slot == 321
        payload = client._client.post.call_args.kwargs["json"]
        assert payload["method"] == "getAccountInfo"
        assert payload["params"] == ["Pool111", {"encoding": "base64"}]

    @pytest.mark.asyncio
    async def test_plain_string_data(self) -> None:
        client = _client_with(_response(body=_account_body(b"abc", as_list=False)))
        assert (await client.get_account_state("Pool111")).data == b"abc"

    @pytest.mark.asyncio
    async def test_missing_account(self) -> None:
        body = {"jsonrpc": "2.0", "id": 1, "result": {"context": {"slot": 1}, "value": None}}
        client = _client_with(_response(body=body))
        with pytest.raises(AccountNotFoundError):
            await client.get_account_state("Gone111")

    @pytest.mark.asyncio
    async def test_bad_base64(self) -> None:
        body = _account_body(b"")
        body["result"]["value"]["data"] = ["not-valid-base64!!!", "base64"]
        client = _client_with(_response(body=body))
        with pytest.raises(RpcTransportError):
            await client.get_account_state("Pool111")


class TestErrorClassification:
    @pytest.mark.asyncio
    async def test_http_429(self) -> None:
        client = _client_with(_response(status_code=429))
        with pytest.raises(RpcRateLimitedError):
            await client.get_account_state("Pool111")

    @pytest.mark.asyncio
    async def test_rate_limit_in_rpc_error(self) -> None:
        body = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32005, "message": "Too many requests"}}
        client = _client_with(_response(body=body))
        with pytest.raises(RpcRateLimitedError):
            await client.get_account_state("Pool111")

    @pytest.mark.asyncio
    async def test_other_rpc_error(self) -> None:
        body = {"jsonrpc": "2.0", "id": 1, "error": {"code": -32602, "message": "Invalid param"}}
        client = _client_with(_response(body=body))
        with pytest.raises(RpcTransportError, match="Invalid param"):
            await client.get_account_state("Pool111")

    @pytest.mark.asyncio
    async def test_http_500(self) -> None:
        client = _client_with(_response(status_code=503))
        with pytest.raises(RpcTransportError, match="503"):
            await client.get_account_state("Pool111")

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        client = _client_with(side_effect=httpx.TimeoutException("timeout"))
        with pytest.raises(RpcTransportError):
            await client.get_account_state("Pool111")

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        resp = _response()
        resp.json.side_effect = ValueError("not json")
        client = _client_with(resp)
        with pytest.raises(RpcTransportError):
            await client.get_account_state("Pool111")

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("429 Too Many Requests", True),
            ("rate limit exceeded", True),
            ("Invalid param: WrongSize", False),
        ],
    )
    def test_looks_rate_limited(self, message: str, expected: bool) -> None:
        assert looks_rate_limited(message) is expected


class TestGetSlot:
    @pytest.mark.asyncio
    async def test_slot(self) -> None:
        client = _client_with(_response(body={"jsonrpc": "2.0", "id": 1, "result": 287_000_000}))
        assert await client.get_slot() == 287_000_000

    @pytest.mark.asyncio
    async def test_unexpected_result(self) -> None:
        client = _client_with(_response(body={"jsonrpc": "2.0", "id": 1, "result": "x"}))
        with pytest.raises(RpcTransportError):
            await client.get_slot()
