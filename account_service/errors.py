"""Excepciones del Account Service.

Cada excepción lleva el mensaje que puede mostrarse al cliente y el código
HTTP con el que se responde.
"""


class AccountServiceError(Exception):
    """Base exception for all account errors."""

    status_code = 500
    default_message = "Something went wrong"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(AccountServiceError):
    """Missing or malformed input that the user can correct."""

    status_code = 400
    default_message = "Fill in the missing details"


class ConflictError(AccountServiceError):
    """Raised when the username is already registered."""

    status_code = 409
    default_message = "Username already exists"

    def __init__(self, username: str, message: str = None):
        """Initialize the exception.

        Args:
            username: The username that is already taken.
            message: Optional client-facing message.
        """
        self.username = username
        super().__init__(message)


class NotFoundError(AccountServiceError):
    """Raised when no account exists for a username."""

    status_code = 404
    default_message = "You are not found"

    def __init__(self, username: str, message: str = None):
        self.username = username
        super().__init__(message)


class AuthenticationError(AccountServiceError):
    status_code = 401
    default_message = "Invalid details"


class StorageError(AccountServiceError):
    """Persistence or connectivity failure. The cause is logged, never returned."""

    status_code = 500
    default_message = "The request could not be completed. Please try again later."
