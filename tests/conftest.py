"""
============================================================================
Shared Test Fixtures - Withdrawal Settlement Pipeline
============================================================================

Fakes for the ledger facade and the pacing sleep, plus factories for
queue records and a SQLite-backed SQLAlchemy session.

Factories are session scoped so Hypothesis tests can use them.
============================================================================
"""

import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# Add project root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from app.database.schema import create_schema
from app.ledger.client import LedgerClient
from app.ledger.models import LedgerWithdrawalRequest, LiquidityPoolSnapshot
from app.ledger.results import LedgerResult, NotFound, Ok
from services.withdrawal_models import WithdrawalRequest, WithdrawalStatus


BASE_TIME = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)

DEFAULT_POOL = LiquidityPoolSnapshot(
    pool_address="pool-main",
    total_liquidity=1_000_000,
    total_shares=950_000,
    pending_lp_tokens=0,
    withdraw_queue_head=10,
    withdraw_queue_tail=10,
    deposit_fee_bps=5,
    withdrawal_fee_bps=10,
    last_update_timestamp=1717243200,
)


def settlement_key_for(request_id: int) -> str:
    return f"wq-{request_id}"


class FakeLedgerClient(LedgerClient):
    """
    In-memory ledger.

    Requests registered with add() are found; anything else is NotFound.
    Overrides may hold a LedgerResult or an exception to raise.
    """

    def __init__(self, pool: Optional[LedgerResult] = None) -> None:
        self.requests: Dict[int, LedgerWithdrawalRequest] = {}
        self.fetch_overrides: Dict[int, Any] = {}
        self.submit_overrides: Dict[int, Any] = {}
        self.pool_result: Any = pool if pool is not None else Ok(DEFAULT_POOL)
        self.calls: List[Tuple[str, Optional[int]]] = []
        self.closed = False

    def add(self, *request_ids: int, provider: str = "provider-a") -> "FakeLedgerClient":
        for request_id in request_ids:
            self.requests[request_id] = LedgerWithdrawalRequest(
                request_id=request_id,
                provider=provider,
                settlement_key=settlement_key_for(request_id),
                destination_account_ref=f"acct-{request_id}",
            )
        return self

    @staticmethod
    def _resolve(value: Any) -> LedgerResult:
        if isinstance(value, BaseException):
            raise value
        return value

    async def get_withdrawal_request(self, request_id: int) -> LedgerResult:
        self.calls.append(("get", request_id))
        if request_id in self.fetch_overrides:
            return self._resolve(self.fetch_overrides[request_id])
        if request_id in self.requests:
            return Ok(self.requests[request_id])
        return NotFound(reason=f"request {request_id} not on ledger")

    async def submit_withdrawal_settlement(
        self,
        provider: str,
        settlement_key: str,
        destination_account_ref: str,
    ) -> LedgerResult:
        request_id = int(settlement_key.split("-", 1)[1])
        self.calls.append(("submit", request_id))
        if request_id in self.submit_overrides:
            return self._resolve(self.submit_overrides[request_id])
        return Ok(f"sig-{request_id}")

    async def get_liquidity_pool(self) -> LedgerResult:
        self.calls.append(("pool", None))
        return self._resolve(self.pool_result)

    async def aclose(self) -> None:
        self.closed = True

    def ids(self, kind: str) -> List[int]:
        return [request_id for call, request_id in self.calls if call == kind]


class RecordingSleep:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def build_request(
    request_id: int,
    requested_at: datetime = BASE_TIME,
    status: str = WithdrawalStatus.QUEUED.value,
    provider: str = "provider-a",
    lp_amount: int = 1000,
    **overrides: Any,
) -> WithdrawalRequest:
    return WithdrawalRequest(
        request_id=request_id,
        provider=provider,
        lp_amount=lp_amount,
        status=status,
        requested_at=requested_at,
        provider_account_ref=f"acct-{request_id}",
        **overrides,
    )


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def ledger_factory():
    """FakeLedgerClient class."""
    return FakeLedgerClient


@pytest.fixture(scope="session")
def request_factory():
    """Builds WithdrawalRequest records (QUEUED, requested at BASE_TIME)."""
    return build_request


@pytest.fixture(scope="session")
def sleep_factory():
    return RecordingSleep


@pytest.fixture(scope="session")
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture(scope="session")
def default_pool() -> LiquidityPoolSnapshot:
    return DEFAULT_POOL


@pytest.fixture
def fake_ledger() -> FakeLedgerClient:
    return FakeLedgerClient()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def sqlite_engine():
    """In-memory SQLite engine with the pipeline schema."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_schema(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(sqlite_engine):
    factory = sessionmaker(autocommit=False, autoflush=False, bind=sqlite_engine)
    session = factory()
    yield session
    session.close()
