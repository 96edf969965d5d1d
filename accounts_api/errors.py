"""Domain exceptions raised by the account and authentication services."""
from __future__ import annotations

from typing import Optional


class AccountServiceError(RuntimeError):
    """Base class for errors that map onto an HTTP status code."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class AccountNotFoundError(AccountServiceError):
    """Raised when an account id or email does not resolve to a row."""

    status_code = 404

    def __init__(self, account_id: Optional[int] = None, *, email: Optional[str] = None) -> None:
        if account_id is not None:
            message = f"Account not found: {account_id}"
        else:
            message = "Account not found"
        super().__init__(message)
        self.account_id = account_id
        self.email = email


class DuplicateEmailError(AccountServiceError):
    status_code = 409

    def __init__(self, email: str) -> None:
        super().__init__(f"Email is already in use: {email}")
        self.email = email


class InvalidArgumentError(AccountServiceError):
    """Raised when a field fails validation before reaching the database."""

    status_code = 400

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(f"{field}: {message}" if field else message)
        self.field = field
        self.reason = message


class InvalidCredentialsError(AccountServiceError):
    status_code = 401

    def __init__(self) -> None:
        super().__init__("Invalid email or password")


class AccessDeniedError(AccountServiceError):
    status_code = 403

    def __init__(self) -> None:
        super().__init__("Access denied")


__all__ = [
    "AccountServiceError",
    "AccountNotFoundError",
    "DuplicateEmailError",
    "InvalidArgumentError",
    "InvalidCredentialsError",
    "AccessDeniedError",
]
