"""
============================================================================
Unit Tests - HTTP Ledger Client
============================================================================

Reliability Level: SOVEREIGN TIER

Tests response classification of HttpLedgerClient against an
httpx.MockTransport:
- 2xx -> Ok with parsed domain objects
- 404 with a ledger error body -> NotFound
- Any other 404 (route or proxy) -> TransientError
- 5xx / 429 / timeouts / connection errors / bad JSON -> TransientError
============================================================================
"""

import json
import os
import sys

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from app.ledger.client import HttpLedgerClient
from app.ledger.results import NotFound, Ok, TransientError
from app.ledger.models import LedgerWithdrawalRequest, LiquidityPoolSnapshot


BASE_URL = "http://ledger.test"


def client_for(handler) -> HttpLedgerClient:
    return HttpLedgerClient(BASE_URL, timeout=5.0, transport=httpx.MockTransport(handler))


# =============================================================================
# get_withdrawal_request
# =============================================================================

class TestGetWithdrawalRequest:

    @pytest.mark.asyncio
    async def test_ok_parses_ledger_request(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/withdrawal-requests/42"
            return httpx.Response(200, json={
                "request_id": 42,
                "provider": "provider-a",
                "settlement_key": "wq-42",
                "destination_account_ref": "acct-42",
            })

        client = client_for(handler)
        result = await client.get_withdrawal_request(42)
        await client.aclose()

        assert result == Ok(LedgerWithdrawalRequest(42, "provider-a", "wq-42", "acct-42"))

    @pytest.mark.asyncio
    async def test_404_is_not_found(self) -> None:
        client = client_for(lambda request: httpx.Response(404, json={"error": "missing"}))
        result = await client.get_withdrawal_request(7)
        await client.aclose()

        assert isinstance(result, NotFound)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"text": "404 page not found"},
        {},
        {"json": {"detail": "Not Found"}},
        {"json": {"error": ""}},
        {"json": ["error"]},
    ], ids=["plain-text", "empty", "other-json", "blank-error", "json-list"])
    async def test_404_without_ledger_error_is_transient(self, body) -> None:
        client = client_for(lambda request: httpx.Response(404, **body))
        result = await client.get_withdrawal_request(7)
        await client.aclose()

        assert isinstance(result, TransientError)
        assert result.status_code == 404

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status_code", [429, 500, 502, 503])
    async def test_error_status_is_transient(self, status_code: int) -> None:
        client = client_for(lambda request: httpx.Response(status_code, text="busy"))
        result = await client.get_withdrawal_request(7)
        await client.aclose()

        assert isinstance(result, TransientError)
        assert result.status_code == status_code

    @pytest.mark.asyncio
    async def test_timeout_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("slow", request=request)

        client = client_for(handler)
        result = await client.get_withdrawal_request(7)
        await client.aclose()

        assert result == TransientError(reason="request timeout")

    @pytest.mark.asyncio
    async def test_connection_error_is_transient(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = client_for(handler)
        result = await client.get_withdrawal_request(7)
        await client.aclose()

        assert isinstance(result, TransientError)
        assert "refused" in result.reason

    @pytest.mark.asyncio
    async def test_invalid_json_is_transient(self) -> None:
        client = client_for(lambda request: httpx.Response(200, text="<html>"))
        result = await client.get_withdrawal_request(7)
        await client.aclose()

        assert isinstance(result, TransientError)

    @pytest.mark.asyncio
    async def test_malformed_body_is_transient(self) -> None:
        client = client_for(lambda request: httpx.Response(200, json={"provider": "p"}))
        result = await client.get_withdrawal_request(7)
        await client.aclose()

        assert isinstance(result, TransientError)
        assert "malformed" in result.reason


# =============================================================================
# submit_withdrawal_settlement
# =============================================================================

class TestSubmitSettlement:

    @pytest.mark.asyncio
    async def test_posts_instruction_and_returns_signature(self) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"signature": "5xSig"})

        client = client_for(handler)
        result = await client.submit_withdrawal_settlement("provider-a", "wq-1", "acct-1")
        await client.aclose()

        assert result == Ok("5xSig")
        assert seen == {
            "method": "POST",
            "path": "/withdrawal-queue/process",
            "body": {
                "provider": "provider-a",
                "settlement_key": "wq-1",
                "destination_account_ref": "acct-1",
            },
        }

    @pytest.mark.asyncio
    async def test_rejection_is_transient(self) -> None:
        client = client_for(lambda request: httpx.Response(409, json={"error": "queue locked"}))
        result = await client.submit_withdrawal_settlement("provider-a", "wq-1", "acct-1")
        await client.aclose()

        assert isinstance(result, TransientError)
        assert result.status_code == 409


# =============================================================================
# get_liquidity_pool
# =============================================================================

class TestGetLiquidityPool:

    @pytest.mark.asyncio
    async def test_ok_parses_snapshot(self) -> None:
        client = client_for(lambda request: httpx.Response(200, json={
            "pool_address": "pool-main",
            "total_liquidity": "1000000",
            "total_shares": 950000,
            "pending_lp_tokens": 0,
            "withdraw_queue_head": 12,
            "withdraw_queue_tail": 12,
            "deposit_fee_bps": 5,
            "withdrawal_fee_bps": 10,
            "last_update_timestamp": 1717243200,
        }))
        result = await client.get_liquidity_pool()
        await client.aclose()

        assert isinstance(result, Ok)
        assert isinstance(result.value, LiquidityPoolSnapshot)
        assert result.value.total_liquidity == 1000000
        assert result.value.withdraw_queue_head == 12

    @pytest.mark.asyncio
    async def test_missing_pool_is_not_found(self) -> None:
        client = client_for(lambda request: httpx.Response(404, json={"error": "pool not found"}))
        result = await client.get_liquidity_pool()
        await client.aclose()

        assert isinstance(result, NotFound)

    @pytest.mark.asyncio
    async def test_aclose_is_idempotent(self) -> None:
        client = client_for(lambda request: httpx.Response(404))
        await client.aclose()
        await client.aclose()
