"""Error taxonomy for the arbitrage coordinator."""

from typing import Optional

from .types import ErrorKind


class ArbitrageError(Exception):
    """Base class for coordinator errors."""

    kind: ErrorKind = ErrorKind.UNEXPECTED

    def __init__(self, message: str = "", opportunity_id: Optional[int] = None, tx_hash: Optional[str] = None):
        super().__init__(message or self.kind.value)
        self.opportunity_id = opportunity_id
        self.tx_hash = tx_hash


class SourceUnavailable(ArbitrageError):
    """One quote source failed (timeout, missing liquidity, RPC error)."""
    kind = ErrorKind.SOURCE_UNAVAILABLE


class NoOpportunity(ArbitrageError):
    """Nothing usable is available right now."""
    kind = ErrorKind.NO_OPPORTUNITY


class LockContention(ArbitrageError):
    """Another execution already holds the opportunity."""
    kind = ErrorKind.LOCK_CONTENTION


class ValidationFailed(ArbitrageError):
    """Opportunity went stale or unprofitable before execution."""
    kind = ErrorKind.VALIDATION_FAILED


class InsufficientFunds(ArbitrageError):
    """Wallet cannot cover gas for the attempt."""
    kind = ErrorKind.INSUFFICIENT_FUNDS


class ExecutionReverted(ArbitrageError):
    """Transaction was mined but reverted."""
    kind = ErrorKind.EXECUTION_REVERTED


class ConfirmationTimeout(ArbitrageError):
    """Transaction was not confirmed within the timeout."""
    kind = ErrorKind.CONFIRMATION_TIMEOUT


class RiskLimitHalted(ArbitrageError):
    """Actor circuit breaker tripped."""
    kind = ErrorKind.RISK_LIMIT_HALTED


class SigningKeyMissing(ArbitrageError):
    """Actor has no signing key configured."""
    kind = ErrorKind.SIGNING_KEY_MISSING
