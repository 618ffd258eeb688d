"""
core - Core utilities and models for the Salad operator.

This package contains:
- models.py: Data models (Deposit, Deal, PubKeyData, TaskRecordOpts)
- constants.py: Enums, defaults and gas constants
- exceptions.py: Typed exceptions with error codes
- math.py: Grain conversion and task gas arithmetic
- signing.py: Deposit signature construction and recovery
- time.py: UTC timestamps
- logging.py: Structured JSON logging
"""

from core.constants import (
    ActionType,
    DealStatus,
    DepositStatus,
    ErrorCode,
    KeyState,
    ServiceState,
    Topic,
)
from core.exceptions import (
    ConfigError,
    DepositAlreadyConsumedError,
    DuplicateDepositError,
    InfraError,
    InvalidSignatureError,
    InvalidTransitionError,
    KeyUnavailableError,
    SaladError,
    StoreError,
    TransactionRevertedError,
    TransientNetworkError,
    ValidationError,
)
from core.logging import get_logger, setup_logging
from core.models import (
    Deal,
    Deposit,
    ExecutionReceipt,
    OperatorAction,
    PubKeyData,
    TaskRecordOpts,
    TxReceipt,
)

__all__ = [
    # Constants
    "ActionType",
    "DealStatus",
    "DepositStatus",
    "ErrorCode",
    "KeyState",
    "ServiceState",
    "Topic",
    # Exceptions
    "ConfigError",
    "DepositAlreadyConsumedError",
    "DuplicateDepositError",
    "InfraError",
    "InvalidSignatureError",
    "InvalidTransitionError",
    "KeyUnavailableError",
    "SaladError",
    "StoreError",
    "TransactionRevertedError",
    "TransientNetworkError",
    "ValidationError",
    # Models
    "Deal",
    "Deposit",
    "ExecutionReceipt",
    "OperatorAction",
    "PubKeyData",
    "TaskRecordOpts",
    "TxReceipt",
    # Logging
    "get_logger",
    "setup_logging",
]
