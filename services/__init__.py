"""
============================================================================
Withdrawal Settlement Pipeline - Services Layer
============================================================================

Withdrawal queue records, eligibility selection, ledger settlement and
liquidity pool resynchronization.

Reliability Level: L6 Critical
============================================================================
"""

from services.withdrawal_models import (
    WithdrawalRequest,
    WithdrawalStatus,
    WithdrawalErrorCode,
    FailureReason,
    LedgerWithdrawalRequest,
    LiquidityPoolSnapshot,
    WithdrawalQueueError,
    EligibilityQueryError,
    InvalidStatusTransitionError,
    UnknownWithdrawalRequestError,
)

from services.withdrawal_config import (
    WithdrawalPipelineConfig,
    WithdrawalConfigurationError,
)

from services.withdrawal_queue_store import (
    WithdrawalQueueStore,
    SqlWithdrawalQueueStore,
    InMemoryWithdrawalQueueStore,
)

from services.pool_snapshot_store import (
    PoolSnapshotStore,
    SqlPoolSnapshotStore,
    InMemoryPoolSnapshotStore,
)

from services.withdrawal_eligibility import EligibilitySelector

from services.withdrawal_settlement import (
    SettlementExecutor,
    SettlementOutcome,
    SettlementBatchResult,
    ItemResult,
)

from services.pool_resync import PoolResynchronizer

__all__ = [
    # Models
    "WithdrawalRequest",
    "WithdrawalStatus",
    "WithdrawalErrorCode",
    "FailureReason",
    "LedgerWithdrawalRequest",
    "LiquidityPoolSnapshot",
    "WithdrawalQueueError",
    "EligibilityQueryError",
    "InvalidStatusTransitionError",
    "UnknownWithdrawalRequestError",
    # Configuration
    "WithdrawalPipelineConfig",
    "WithdrawalConfigurationError",
    # Stores
    "WithdrawalQueueStore",
    "SqlWithdrawalQueueStore",
    "InMemoryWithdrawalQueueStore",
    "PoolSnapshotStore",
    "SqlPoolSnapshotStore",
    "InMemoryPoolSnapshotStore",
    # Pipeline stages
    "EligibilitySelector",
    "SettlementExecutor",
    "SettlementOutcome",
    "SettlementBatchResult",
    "ItemResult",
    "PoolResynchronizer",
]
