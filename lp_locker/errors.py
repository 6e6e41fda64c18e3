"""
Exception hierarchy for the locker.

Every rejection raised while processing an operation derives from
ValidationError, so the transaction boundary can discard the pending state
and re-raise a single exception type with one specific reason.
"""


class ValidationError(Exception):
    """Raised when validation fails."""
    pass


# Input validation

class AmountTooLow(ValidationError):
    pass


class SlippageParameterTooHigh(ValidationError):
    pass


class AmountMismatch(ValidationError):
    pass


class InvalidParameter(ValidationError):
    pass


# Authorization

class PermissionDenied(ValidationError):
    pass


class InvalidAddress(ValidationError):
    pass


# Lifecycle

class AlreadyInitialized(ValidationError):
    pass


class NotInitialized(ValidationError):
    pass


class RateLimitError(ValidationError):
    pass


# External calls

class ExternalCallError(ValidationError):
    pass


class SlippageExceeded(ExternalCallError):
    """AMM output landed below the protocol's own slippage floor."""
    pass


class InsufficientVaultError(ValidationError):
    pass


class TokenError(ValidationError):
    """Insufficient balance or allowance on a token ledger."""
    pass


class InvalidCall(ValidationError):
    """Malformed or badly signed call request."""
    pass
