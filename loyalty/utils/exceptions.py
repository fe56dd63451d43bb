"""
Custom exceptions for loyalty business logic.

Every failure is scoped to a single account operation; none of these is
fatal to the host process.
"""


class LoyaltyError(Exception):
    """Base exception for all loyalty business logic errors."""

    def __init__(self, message: str, code: str = "LOYALTY_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class NotFoundError(LoyaltyError):
    """Resource not found."""

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} not found"
        if identifier:
            message = f"{resource} with ID {identifier} not found"
        code = resource.upper().replace(' ', '_')
        super().__init__(message, f"{code}_NOT_FOUND")


class AccountNotFoundError(NotFoundError):
    """Loyalty account not found."""

    def __init__(self, identifier=None):
        super().__init__("Loyalty account", identifier)


class ProgramNotFoundError(NotFoundError):
    """Loyalty program not found."""

    def __init__(self, identifier=None):
        super().__init__("Loyalty program", identifier)


class TierNotFoundError(NotFoundError):
    """Tier not found."""

    def __init__(self, identifier=None):
        super().__init__("Tier", identifier)


class ValidationError(LoyaltyError):
    """Invalid input data."""

    def __init__(self, message: str, field: str = None):
        self.field = field
        code = f"INVALID_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(message, code)


class InsufficientPointsError(LoyaltyError):
    """Not enough available points for a redemption."""

    def __init__(self, current, required):
        self.current = current
        self.required = required
        message = f"Insufficient points. Available: {current}, Required: {required}"
        super().__init__(message, "INSUFFICIENT_POINTS")


class ConflictError(LoyaltyError):
    """Concurrent update detected on an account; the caller may retry."""

    def __init__(self, message: str = "Concurrent update detected, please retry"):
        super().__init__(message, "STATE_CONFLICT")


class DuplicateError(LoyaltyError):
    """Resource already exists."""

    def __init__(self, resource: str, identifier=None):
        message = f"{resource} already exists"
        if identifier:
            message = f"{resource} with {identifier} already exists"
        super().__init__(message, "DUPLICATE_ENTRY")
