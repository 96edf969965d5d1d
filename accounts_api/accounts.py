"""Business rules for creating, reading, updating and deleting accounts."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import List, Optional

from email_validator import EmailNotValidError, validate_email

from .database import Database
from .errors import AccountNotFoundError, DuplicateEmailError, InvalidArgumentError
from .models import Account, AccountStatistics, NewAccount, PagedResult
from .repository import AccountRepository

logger = logging.getLogger("accounts.service")

NAME_MAX_LENGTH = 100
EMAIL_MAX_LENGTH = 255
MIN_AGE = 0
MAX_AGE = 150
MAX_PAGE_SIZE = 100


def validate_name(name: Optional[str]) -> str:
    if name is None or not name.strip():
        raise InvalidArgumentError("must not be blank", field="name")
    if len(name) > NAME_MAX_LENGTH:
        raise InvalidArgumentError(f"must be at most {NAME_MAX_LENGTH} characters", field="name")
    return name


def validate_email_address(email: Optional[str]) -> str:
    if email is None or not email.strip():
        raise InvalidArgumentError("must not be blank", field="email")
    if len(email) > EMAIL_MAX_LENGTH:
        raise InvalidArgumentError(f"must be at most {EMAIL_MAX_LENGTH} characters", field="email")
    try:
        validate_email(email, check_deliverability=False)
    except EmailNotValidError as exc:
        raise InvalidArgumentError("must be a well-formed email address", field="email") from exc
    return email


def validate_age(age: Optional[int]) -> int:
    if age is None or isinstance(age, bool) or not isinstance(age, int):
        raise InvalidArgumentError("must be an integer", field="age")
    if not MIN_AGE <= age <= MAX_AGE:
        raise InvalidArgumentError(f"must be between {MIN_AGE} and {MAX_AGE}", field="age")
    return age


def validate_account_fields(name: Optional[str], email: Optional[str], age: Optional[int]) -> None:
    validate_name(name)
    validate_email_address(email)
    validate_age(age)


class AccountService:
    """Account operations expressed in domain values only.

    Every write runs inside a single database transaction; the unique
    constraint on ``email`` remains the final guard when two requests race
    past the duplicate check.
    """

    def __init__(self, database: Database, repository: AccountRepository) -> None:
        self._database = database
        self._repository = repository

    def ensure_email_available(self, email: str, *, exclude_id: Optional[int] = None) -> None:
        existing = self._repository.find_by_email(email)
        if existing is not None and existing.id != exclude_id:
            raise DuplicateEmailError(email)

    def create_account(self, name: str, email: str, age: int) -> Account:
        with self._database.transaction():
            self.ensure_email_available(email)
            validate_account_fields(name, email, age)
            account = self._repository.insert(NewAccount(name=name, email=email, age=age))
        logger.info("Created account %s", account.id)
        return account

    def get_account(self, account_id: int) -> Account:
        account = self._repository.find_by_id(account_id)
        if account is None:
            raise AccountNotFoundError(account_id)
        return account

    def get_account_by_email(self, email: str) -> Optional[Account]:
        return self._repository.find_by_email(email)

    def list_accounts(
        self,
        page: int,
        size: int,
        sort_field: Optional[str] = None,
        sort_direction: str = "asc",
    ) -> PagedResult[Account]:
        if page < 0:
            raise InvalidArgumentError("must not be negative", field="page")
        if not 1 <= size <= MAX_PAGE_SIZE:
            raise InvalidArgumentError(f"must be between 1 and {MAX_PAGE_SIZE}", field="size")
        return self._repository.find_all(page, size, sort_field, sort_direction)

    def search_by_name(self, keyword: Optional[str]) -> List[Account]:
        if keyword is None or not keyword.strip():
            raise InvalidArgumentError("Search keyword must not be blank", field="keyword")
        return self._repository.find_by_name_containing(keyword)

    def update_account(self, account_id: int, name: str, email: str, age: int) -> Account:
        """Replace name, email and age of an existing account."""

        with self._database.transaction():
            existing = self.get_account(account_id)
            if existing.email != email:
                self.ensure_email_available(email, exclude_id=account_id)
            validate_account_fields(name, email, age)
            updated = self._repository.update(replace(existing, name=name, email=email, age=age))
        logger.info("Updated account %s", account_id)
        return updated

    def patch_account(
        self,
        account_id: int,
        name: Optional[str] = None,
        email: Optional[str] = None,
        age: Optional[int] = None,
    ) -> Account:
        """Overwrite only the fields that are not ``None``."""

        with self._database.transaction():
            existing = self.get_account(account_id)
            if email is not None and existing.email != email:
                self.ensure_email_available(email, exclude_id=account_id)
            if name is not None:
                validate_name(name)
            if email is not None:
                validate_email_address(email)
            if age is not None:
                validate_age(age)
            patched = replace(
                existing,
                name=name if name is not None else existing.name,
                email=email if email is not None else existing.email,
                age=age if age is not None else existing.age,
            )
            updated = self._repository.update(patched)
        logger.info("Patched account %s", account_id)
        return updated

    def delete_account(self, account_id: int) -> None:
        with self._database.transaction():
            if not self._repository.exists_by_id(account_id):
                raise AccountNotFoundError(account_id)
            self._repository.delete_by_id(account_id)
        logger.info("Deleted account %s", account_id)

    def count_accounts(self) -> int:
        return self._repository.count()

    # Adults and statistics are computed over the full table in memory.
    def get_adult_accounts(self) -> List[Account]:
        return [account for account in self._repository.list_all() if account.is_adult]

    def get_statistics(self) -> AccountStatistics:
        accounts = self._repository.list_all()
        if not accounts:
            return AccountStatistics(total_count=0, adult_count=0, average_age=0.0, min_age=0, max_age=0)

        ages = [account.age for account in accounts]
        return AccountStatistics(
            total_count=len(accounts),
            adult_count=sum(1 for account in accounts if account.is_adult),
            average_age=sum(ages) / len(ages),
            min_age=min(ages),
            max_age=max(ages),
        )


__all__ = [
    "AccountService",
    "MAX_PAGE_SIZE",
    "validate_account_fields",
    "validate_age",
    "validate_email_address",
    "validate_name",
]
