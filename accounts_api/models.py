"""Domain models shared by the repository, services and HTTP layer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")

ADULT_AGE = 19


class Role(str, Enum):
    USER = "USER"
    ADMIN = "ADMIN"


@dataclass(frozen=True)
class Account:
    """Represents an account row stored in the accounts table."""

    id: int
    name: str
    email: str
    age: int
    role: Role
    created_at: datetime
    updated_at: datetime
    password_hash: Optional[str] = field(default=None, repr=False, compare=False)

    @property
    def is_adult(self) -> bool:
        return self.age >= ADULT_AGE


@dataclass(frozen=True)
class NewAccount:
    """Values for an account that has not been persisted yet."""

    name: str
    email: str
    age: int
    role: Role = Role.USER
    password_hash: Optional[str] = field(default=None, repr=False)


@dataclass(frozen=True)
class PagedResult(Generic[T]):
    items: List[T]
    total_elements: int
    total_pages: int
    number: int
    size: int

    @property
    def first(self) -> bool:
        return self.number == 0

    @property
    def last(self) -> bool:
        return self.number + 1 >= self.total_pages


@dataclass(frozen=True)
class AccountStatistics:
    total_count: int
    adult_count: int
    average_age: float
    min_age: int
    max_age: int


@dataclass(frozen=True)
class AuthResult:
    """Outcome of a successful registration or login."""

    token: str
    account_id: int
    email: str
    name: str
    role: Role


@dataclass(frozen=True)
class Principal:
    """Identity attached to a request once its bearer token checks out."""

    account_id: int
    email: str
    role: Role


__all__ = [
    "ADULT_AGE",
    "Account",
    "AccountStatistics",
    "AuthResult",
    "NewAccount",
    "PagedResult",
    "Principal",
    "Role",
]
