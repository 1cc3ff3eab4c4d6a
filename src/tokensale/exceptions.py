"""
Exception hierarchy for the token sale core.

Every precondition violation aborts the whole call. None of these errors is
retried inside the core; callers decide what to do after observing them.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TokenSaleError(Exception):
    """Base exception for all token sale errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
        recoverable: Whether the operation can be retried as-is
    """

    recoverable = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ==================== Fixed Point Errors ====================


class FixedPointError(TokenSaleError):
    """Raised when a fixed-point result cannot be represented."""
    pass


class ArithmeticOverflow(FixedPointError):
    """Raised when a result exceeds the unsigned 256-bit range."""
    pass


class DivisionByZero(ArithmeticOverflow):
    """Raised on a zero divisor."""
    pass


class ArithmeticUnderflow(FixedPointError):
    """Raised when a result would be negative."""
    pass


# ==================== Policy Errors ====================


class PolicyError(TokenSaleError):
    """Raised when an input falls outside the sale's policy ranges."""
    pass


class InvalidAmount(PolicyError):
    """Raised for zero, negative or below-minimum amounts."""
    pass


class InvalidDiscount(PolicyError):
    """Raised when a discount base is outside [70, 100]."""
    pass


class InvalidSchedule(PolicyError):
    """Raised when a vesting schedule ends before it starts."""
    pass


class HardCapExceeded(PolicyError):
    """Raised when a purchase would bring sold tokens to the hard cap."""
    pass


class SaleNotActive(PolicyError):
    """Raised when purchasing outside the sale window or while stopped."""
    pass


# ==================== Escrow Errors ====================


class EscrowError(TokenSaleError):
    """Raised when an escrow state-machine guard fails."""
    pass


class AlreadyExists(EscrowError):
    """Raised when creating a lock over a non-empty key."""
    pass


class Mismatch(EscrowError):
    """Raised when supplied parties or amounts differ from the stored lock."""
    pass


class CannotReclaim(EscrowError):
    """Raised when the sender may not take a lock back."""
    pass


class NotExpired(CannotReclaim):
    """Raised when reclaiming before the lock's expiration."""
    pass


class NotPaid(CannotReclaim):
    """Raised when the lock has not been funded."""
    pass


class ZeroExpiration(CannotReclaim):
    """Raised when the lock can never be reclaimed (mediated or untimed)."""
    pass


# ==================== Access & Ledger Errors ====================


class Unauthorized(TokenSaleError):
    """Raised when the calling principal is not allowed to act."""
    pass


class LedgerError(TokenSaleError):
    """Raised when the token ledger collaborator rejects an operation."""
    pass


class TransferFailed(LedgerError):
    """Raised when a token transfer or burn does not go through."""
    pass


class InsufficientHoldings(LedgerError):
    """Raised when a ledger does not hold enough tokens for its obligations."""
    pass


# ==================== Configuration Errors ====================


class ConfigurationError(TokenSaleError):
    """Raised when configuration is missing or invalid."""
    pass


# ==================== Utility Functions ====================


def get_error_context(exc: Exception) -> Dict[str, Any]:
    """Extract error context from an exception for logging.

    Args:
        exc: The exception to extract context from

    Returns:
        Dictionary containing error type, message, and any additional details
    """
    context: Dict[str, Any] = {
        "error_type": type(exc).__name__,
        "error_message": str(exc),
    }

    if isinstance(exc, TokenSaleError):
        context["recoverable"] = exc.recoverable
        if exc.details:
            context["details"] = exc.details

    return context
