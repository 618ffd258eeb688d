# PATH: core/constants.py
"""
Constants for the Salad operator.

Contains enums, defaults, and gas/unit constants shared by the
deal orchestration engine.
"""

from decimal import Decimal
from enum import Enum
from typing import Final

# =============================================================================
# COMPUTE NETWORK GAS
# =============================================================================

# 1 ENG = 10^8 grains
GRAINS_PER_ENG: Final[int] = 10 ** 8

GET_ENCRYPTION_PUB_KEY_GAS_PRICE: Final[Decimal] = Decimal("0.001")
GET_ENCRYPTION_PUB_KEY_GAS_LIMIT: Final[int] = 4_712_388

EXECUTE_DEAL_GAS_PRICE: Final[Decimal] = Decimal("0.001")
EXECUTE_DEAL_BASE_GAS_UNIT: Final[int] = 3_000_000
EXECUTE_DEAL_PARTICIPANT_GAS_UNIT: Final[int] = 24_000_000

# Deposit amounts are uint256 on the mixer contract
MAX_UINT256: Final[int] = 2 ** 256 - 1

# =============================================================================
# LEDGER DEFAULTS
# =============================================================================

DEFAULT_TX_GAS_LIMIT: Final[int] = 100_712_388
DEFAULT_RECEIPT_POLL_SECONDS: Final[float] = 1.0
DEFAULT_RECEIPT_MAX_POLLS: Final[int] = 120

# =============================================================================
# TIMING DEFAULTS
# =============================================================================

DEFAULT_POLL_INTERVAL_SECONDS: Final[float] = 10.0
DEFAULT_DEAL_INTERVAL_BLOCKS: Final[int] = 5

DEFAULT_KEY_FETCH_MAX_ATTEMPTS: Final[int] = 10
DEFAULT_KEY_FETCH_INITIAL_BACKOFF_SECONDS: Final[float] = 0.3
DEFAULT_KEY_FETCH_MAX_BACKOFF_SECONDS: Final[float] = 10.0
DEFAULT_KEY_FETCH_BACKOFF_MULTIPLIER: Final[float] = 2.0

# =============================================================================
# STORE COLLECTIONS
# =============================================================================

DEPOSITS_COLLECTION: Final[str] = "deposits"
DEALS_COLLECTION: Final[str] = "deals"
CACHE_COLLECTION: Final[str] = "cache"

PUB_KEY_CACHE_KEY: Final[str] = "encryption_pub_key"


class DepositStatus(str, Enum):
    """Deposit status."""
    PENDING = "PENDING"
    FILLABLE = "FILLABLE"
    CONSUMED = "CONSUMED"


class DealStatus(str, Enum):
    """Deal status. EXECUTED and FAILED are terminal."""
    CREATED = "CREATED"
    EXECUTED = "EXECUTED"
    FAILED = "FAILED"


class KeyState(str, Enum):
    """Encryption key bootstrap states."""
    UNCACHED = "UNCACHED"
    FETCHING = "FETCHING"
    CACHED = "CACHED"
    UNAVAILABLE = "UNAVAILABLE"


class ServiceState(str, Enum):
    """Countdown scheduler lifecycle."""
    STOPPED = "STOPPED"
    RUNNING = "RUNNING"


class Topic(str, Enum):
    """Broadcast topics."""
    PUB_KEY_READY = "PubKeyReady"
    DEAL_CREATED = "DealCreated"
    DEAL_EXECUTED = "DealExecuted"
    QUORUM_CHANGED = "QuorumChanged"
    QUORUM_NOT_REACHED = "QuorumNotReached"
    COUNTDOWN_TICK = "CountdownTick"
    THRESHOLD_INFO = "ThresholdInfo"


class ActionType(str, Enum):
    """
    Action names carried by OperatorAction payloads.

    Broadcast actions share their value with the matching Topic.
    """
    PUB_KEY_UPDATE = Topic.PUB_KEY_READY.value
    DEAL_CREATED_UPDATE = Topic.DEAL_CREATED.value
    DEAL_EXECUTED_UPDATE = Topic.DEAL_EXECUTED.value
    QUORUM_UPDATE = Topic.QUORUM_CHANGED.value
    QUORUM_NOT_REACHED_UPDATE = Topic.QUORUM_NOT_REACHED.value
    BLOCK_UPDATE = Topic.COUNTDOWN_TICK.value
    THRESHOLD_UPDATE = Topic.THRESHOLD_INFO.value
    SUBMIT_DEPOSIT_METADATA_RESULT = "SubmitDepositMetadataResult"
    FETCH_FILLABLE_SUCCESS = "FetchFillableSuccess"
    FETCH_CONFIG_SUCCESS = "FetchConfigSuccess"
    DEAL_EXECUTION_RESULT = "DealExecutionResult"


class ErrorCode(str, Enum):
    """Error codes carried by SaladError and structured error payloads."""
    # Client input
    INVALID_SIGNATURE = "INVALID_SIGNATURE"
    DUPLICATE_DEPOSIT = "DUPLICATE_DEPOSIT"
    VALIDATION_ERROR = "VALIDATION_ERROR"

    # Invariants
    DEPOSIT_ALREADY_CONSUMED = "DEPOSIT_ALREADY_CONSUMED"
    INVALID_TRANSITION = "INVALID_TRANSITION"

    # Infrastructure
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"
    INFRA_TIMEOUT = "INFRA_TIMEOUT"
    TX_REVERTED = "TX_REVERTED"
    KEY_UNAVAILABLE = "KEY_UNAVAILABLE"
    STORE_ERROR = "STORE_ERROR"

    # Setup
    CONFIG_ERROR = "CONFIG_ERROR"

    UNKNOWN = "UNKNOWN"


class HealthStatus(str, Enum):
    """Operator health."""
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    UNHEALTHY = "UNHEALTHY"
