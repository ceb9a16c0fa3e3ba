# ============================================================================
# Ledger Client - Withdrawal Settlement RPC Facade
# ============================================================================
#
# Reliability Level: SOVEREIGN TIER (Mission-Critical)
# Purpose: Async facade to the external ledger program via its gateway
#
# Operations:
#   - get_withdrawal_request(request_id)   GET  /withdrawal-requests/{id}
#   - submit_withdrawal_settlement(...)    POST /withdrawal-queue/process
#   - get_liquidity_pool()                 GET  /liquidity-pool
#
# Every operation returns a tagged LedgerResult and never raises for
# HTTP or transport failures:
#   - 2xx               -> Ok(value)
#   - 404 + JSON error  -> NotFound
#   - 404 otherwise     -> TransientError (route or proxy 404)
#   - 429 / 5xx / other -> TransientError
#   - timeout / connect -> TransientError
#
# Error Codes:
#   - LEDGER-CLI-001: Request failed
#   - LEDGER-CLI-002: Invalid response format
#   - LEDGER-CLI-003: Connection timeout
#
# ============================================================================

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from app.ledger.results import LedgerResult, NotFound, Ok, TransientError
from app.ledger.models import LedgerWithdrawalRequest, LiquidityPoolSnapshot

logger = logging.getLogger(__name__)


DEFAULT_TIMEOUT_SECONDS = 30.0


class LedgerErrorCode:
    """Ledger client error codes for audit logging."""
    REQUEST_FAILED = "LEDGER-CLI-001"
    INVALID_RESPONSE = "LEDGER-CLI-002"
    TIMEOUT = "LEDGER-CLI-003"


def _not_found_error(response: httpx.Response) -> Optional[str]:
    """
    Return the gateway's error message if a 404 is a ledger not-found answer.

    The gateway reports a missing account as a JSON object with a non-empty
    "error" field. Any other 404 body came from something in front of it.
    """
    try:
        body = response.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if not isinstance(error, str) or not error.strip():
        return None
    return error


# ============================================================================
# Ledger Client Interface
# ============================================================================

class LedgerClient(ABC):
    """
    Abstract ledger client.

    Implementations must return LedgerResult values rather than raising
    for expected failure modes. The settlement executor still guards
    against unexpected exceptions and treats them as transient.
    """

    @abstractmethod
    async def get_withdrawal_request(self, request_id: int) -> LedgerResult:
        """Fetch a queued withdrawal request; Ok(LedgerWithdrawalRequest) | NotFound."""

    @abstractmethod
    async def submit_withdrawal_settlement(
        self,
        provider: str,
        settlement_key: str,
        destination_account_ref: str,
    ) -> LedgerResult:
        """Submit a settlement instruction; Ok(signature) on acceptance."""

    @abstractmethod
    async def get_liquidity_pool(self) -> LedgerResult:
        """Fetch aggregate pool state; Ok(LiquidityPoolSnapshot)."""

    async def aclose(self) -> None:
        """Release any held connections."""
        return None


# ============================================================================
# HTTP Ledger Client
# ============================================================================

class HttpLedgerClient(LedgerClient):
    """
    Ledger gateway client over JSON/HTTP.

    Reliability Level: SOVEREIGN TIER
    Timeouts: Bounded by httpx timeout (default 30s)

    Example Usage:
        client = HttpLedgerClient("http://ledger_gateway:8090")
        result = await client.get_withdrawal_request(42)
        if isinstance(result, Ok):
            print(result.value.settlement_key)
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        """
        Initialize the ledger gateway client.

        Args:
            base_url: Ledger gateway base URL
            timeout: HTTP request timeout in seconds
            transport: Optional httpx transport (mock transports in tests)
            correlation_id: Audit trail identifier for client-level logs
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.correlation_id = correlation_id

        logger.info(
            f"[LEDGER-CLI] Client initialized | "
            f"base_url={self._base_url} | timeout={timeout}s | "
            f"correlation_id={correlation_id}"
        )

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> LedgerResult:
        """
        Perform one HTTP request and classify the outcome.

        Returns:
            Ok(parsed JSON body) | NotFound | TransientError
        """
        start_time = time.monotonic()

        try:
            response = await self._get_client().request(method, path, json=json_body)
        except httpx.TimeoutException:
            logger.warning(
                f"[{LedgerErrorCode.TIMEOUT}] {method} {path} timed out | "
                f"timeout={self._timeout}s | correlation_id={self.correlation_id}"
            )
            return TransientError(reason="request timeout")
        except httpx.RequestError as e:
            logger.warning(
                f"[{LedgerErrorCode.REQUEST_FAILED}] {method} {path} failed | "
                f"error={str(e)[:200]} | correlation_id={self.correlation_id}"
            )
            return TransientError(reason=f"request error: {str(e)[:200]}")

        latency_ms = (time.monotonic() - start_time) * 1000

        if response.status_code == 404:
            error = _not_found_error(response)
            if error is not None:
                logger.info(
                    f"[LEDGER-CLI] {method} {path} not found | error={error[:200]} | "
                    f"latency={latency_ms:.1f}ms | correlation_id={self.correlation_id}"
                )
                return NotFound(reason=f"{path} not found: {error[:200]}")

            # Route-level 404 (wrong base URL, proxy): the gateway never answered
            logger.warning(
                f"[{LedgerErrorCode.REQUEST_FAILED}] {method} {path} | status=404 without "
                f"ledger error body | latency={latency_ms:.1f}ms | "
                f"body={response.text[:200]} | correlation_id={self.correlation_id}"
            )
            return TransientError(
                reason=f"unroutable {path}: {response.text[:200] or 'HTTP 404'}",
                status_code=404,
            )

        if not response.is_success:
            logger.warning(
                f"[{LedgerErrorCode.REQUEST_FAILED}] {method} {path} | "
                f"status={response.status_code} | latency={latency_ms:.1f}ms | "
                f"body={response.text[:200]} | correlation_id={self.correlation_id}"
            )
            return TransientError(
                reason=response.text[:200] or f"HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError:
            logger.error(
                f"[{LedgerErrorCode.INVALID_RESPONSE}] {method} {path} returned non-JSON | "
                f"correlation_id={self.correlation_id}"
            )
            return TransientError(reason="invalid JSON response", status_code=response.status_code)

        logger.debug(
            f"[LEDGER-CLI] {method} {path} | status={response.status_code} | "
            f"latency={latency_ms:.1f}ms | correlation_id={self.correlation_id}"
        )
        return Ok(payload)

    # ========================================================================
    # Operations
    # ========================================================================

    async def get_withdrawal_request(self, request_id: int) -> LedgerResult:
        result = await self._request("GET", f"/withdrawal-requests/{request_id}")
        if not isinstance(result, Ok):
            return result

        data = result.value
        try:
            return Ok(LedgerWithdrawalRequest(
                request_id=int(data.get("request_id", request_id)),
                provider=str(data["provider"]),
                settlement_key=str(data["settlement_key"]),
                destination_account_ref=str(data["destination_account_ref"]),
            ))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(
                f"[{LedgerErrorCode.INVALID_RESPONSE}] Malformed withdrawal request | "
                f"request_id={request_id} | error={e!r}"
            )
            return TransientError(reason=f"malformed withdrawal request: {e!r}")

    async def submit_withdrawal_settlement(
        self,
        provider: str,
        settlement_key: str,
        destination_account_ref: str,
    ) -> LedgerResult:
        result = await self._request(
            "POST",
            "/withdrawal-queue/process",
            json_body={
                "provider": provider,
                "settlement_key": settlement_key,
                "destination_account_ref": destination_account_ref,
            },
        )
        if not isinstance(result, Ok):
            return result

        data = result.value
        signature = data.get("signature") if isinstance(data, dict) else None
        return Ok(signature)

    async def get_liquidity_pool(self) -> LedgerResult:
        result = await self._request("GET", "/liquidity-pool")
        if not isinstance(result, Ok):
            return result

        try:
            return Ok(LiquidityPoolSnapshot.from_dict(result.value))
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            logger.error(
                f"[{LedgerErrorCode.INVALID_RESPONSE}] Malformed liquidity pool | error={e!r}"
            )
            return TransientError(reason=f"malformed liquidity pool: {e!r}")


__all__ = [
    "LedgerClient",
    "HttpLedgerClient",
    "LedgerErrorCode",
    "DEFAULT_TIMEOUT_SECONDS",
]
