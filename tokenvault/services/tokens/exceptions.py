"""
Domain exceptions raised by the token vault service layer
"""


class TokenVaultError(Exception):
    """Base exception for token vault errors"""
    pass


class ValidationError(TokenVaultError):
    """Raised when caller input is missing or inconsistent"""
    pass


class NotFoundError(TokenVaultError):
    """Raised when a single target record does not exist"""
    pass


class PersistenceError(TokenVaultError):
    """Raised when the token store rejects or fails an operation"""
    pass


class VerificationError(TokenVaultError):
    """Raised when a secret does not match the stored verification hash"""
    pass


class PartialFailureError(TokenVaultError):
    """
    Raised when a batch revoke deleted fewer records than requested.

    The records that could be deleted are gone; ``count`` tells how many.
    """

    def __init__(self, count: int, requested: int):
        self.count = count
        self.requested = requested
        super().__init__(
            f"Deleted {count} of {requested} requested tokens"
        )


class ConstraintViolationError(PersistenceError):
    """Raised when a record clashes with an existing one"""
    pass
