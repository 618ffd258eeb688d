# PATH: core/exceptions.py
"""
Typed exceptions for the Salad operator.

Client input errors (bad signature, duplicate deposit) are surfaced to the
caller. Infrastructure errors are caught and logged by the scheduler.
"""

from typing import Optional

from core.constants import ErrorCode


class SaladError(Exception):
    """Base exception for the operator."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"

    def to_dict(self) -> dict:
        """Structured error payload for API responses."""
        return {
            "err": self.message,
            "code": self.code.value,
            "details": self.details,
        }


class InvalidSignatureError(SaladError):
    """Deposit signature does not authenticate the sender."""

    def __init__(self, message: str = "Invalid signature", details: Optional[dict] = None):
        super().__init__(message, ErrorCode.INVALID_SIGNATURE, details)


class DuplicateDepositError(SaladError):
    """Sender already holds a fillable deposit of the same amount."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.DUPLICATE_DEPOSIT, details)


class ValidationError(SaladError):
    """Malformed client input."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, details)


class DepositAlreadyConsumedError(SaladError):
    """Deposit is already part of another deal."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.DEPOSIT_ALREADY_CONSUMED, details)


class InvalidTransitionError(SaladError):
    """Raised when an invalid lifecycle transition is attempted."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.INVALID_TRANSITION, details)


class InfraError(SaladError):
    """Infrastructure-related errors (RPC, timeouts, store)."""
    pass


class TransientNetworkError(InfraError):
    """Ledger or compute network call failed."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INFRA_RPC_ERROR,
        details: Optional[dict] = None,
    ):
        super().__init__(message, code, details)


class TransactionRevertedError(InfraError):
    """Ledger transaction was mined with a failed status."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.TX_REVERTED, details)


class KeyUnavailableError(InfraError):
    """Encryption key could not be fetched within the attempt budget."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.KEY_UNAVAILABLE, details)


class StoreError(InfraError):
    """Persistent store failure."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.STORE_ERROR, details)


class ConfigError(SaladError):
    """Invalid operator configuration."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.CONFIG_ERROR, details)
