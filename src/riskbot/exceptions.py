"""Custom exceptions for the portfolio risk engine.

Insufficient data is never an exception: calculators return None for it.
These exceptions cover contract violations and collaborator failures.
"""


class RiskEngineError(Exception):
    """Base exception for all risk engine errors."""


class InvalidInputError(RiskEngineError, ValueError):
    """Raised when a caller passes arguments that violate a function contract."""


class PortfolioNotFoundError(RiskEngineError):
    """Raised when a portfolio id has no stored record."""


class NotificationError(RiskEngineError):
    """Raised by a notifier when an alert could not be delivered."""
