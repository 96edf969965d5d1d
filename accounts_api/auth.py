"""Registration, login and credential management on top of the account service."""

from __future__ import annotations

import logging
from dataclasses import replace

from .accounts import AccountService, validate_account_fields
from .database import Database
from .errors import AccountNotFoundError, InvalidArgumentError, InvalidCredentialsError
from .models import Account, AuthResult, NewAccount, Role
from .passwords import PasswordHasher
from .repository import AccountRepository
from .tokens import TokenManager

logger = logging.getLogger("accounts.auth")


class AuthService:
    """Issue bearer tokens for registered accounts."""

    def __init__(
        self,
        database: Database,
        repository: AccountRepository,
        accounts: AccountService,
        hasher: PasswordHasher,
        tokens: TokenManager,
    ) -> None:
        self._database = database
        self._repository = repository
        self._accounts = accounts
        self._hasher = hasher
        self._tokens = tokens


    def register(
        self,
        name: str,
        email: str,
        age: int,
        password: str,
        *,
        role: Role = Role.USER,
    ) -> AuthResult:
        """Create an account with a hashed password and return a fresh token.

        The password is hashed before the write lock is taken. The duplicate
        check, insert and token issuance share one transaction, so a failure
        after the insert leaves no row behind.
        """

        validate_account_fields(name, email, age)
        password_hash = self._hash_new_password(password)
        with self._database.transaction():
            self._accounts.ensure_email_available(email)
            account = self._repository.insert(
                NewAccount(name=name, email=email, age=age, role=role, password_hash=password_hash)
            )
            result = self._issue(account)
        logger.info("Registered account %s", account.id)
        return result

    def login(self, email: str, password: str) -> AuthResult:
        account = self._repository.find_by_email(email)
        # Unknown email and wrong password are reported identically and take
        # the same bcrypt time.
        if account is None:
            self._hasher.dummy_verify()
            logger.warning("Failed login attempt")
            raise InvalidCredentialsError()
        if not self._hasher.verify(password, account.password_hash):
            logger.warning("Failed login attempt")
            raise InvalidCredentialsError()
        if self._hasher.needs_rehash(account.password_hash):
            account = self._upgrade_hash(account, password)
        logger.info("Account %s logged in", account.id)
        return self._issue(account)

    def load_by_subject(self, email: str) -> Account:
        account = self._repository.find_by_email(email)
        if account is None:
            raise AccountNotFoundError(email=email)
        return account

    def change_password(self, account_id: int, current_password: str, new_password: str) -> None:
        account = self._accounts.get_account(account_id)
        if not self._hasher.verify(current_password, account.password_hash):
            raise InvalidCredentialsError()
        password_hash = self._hash_new_password(new_password)
        with self._database.transaction():
            current = self._accounts.get_account(account_id)
            # Another change landed between the check and the write.
            if current.password_hash != account.password_hash:
                raise InvalidCredentialsError()
            self._repository.update(replace(current, password_hash=password_hash))
        logger.info("Password changed for account %s", account_id)

    def set_password(self, account_id: int, new_password: str) -> None:
        """Administrative password reset that skips the current-password check."""

        self._accounts.get_account(account_id)
        password_hash = self._hash_new_password(new_password)
        with self._database.transaction():
            account = self._accounts.get_account(account_id)
            self._repository.update(replace(account, password_hash=password_hash))
        logger.info("Password reset for account %s", account_id)

    def set_role(self, account_id: int, role: Role) -> Account:
        with self._database.transaction():
            account = self._accounts.get_account(account_id)
            updated = self._repository.update(replace(account, role=role))
        logger.info("Account %s role set to %s", account_id, role.value)
        return updated

    def _hash_new_password(self, password: str) -> str:
        if not password:
            raise InvalidArgumentError("must not be blank", field="password")
        return self._hasher.hash(password)

    def _upgrade_hash(self, account: Account, password: str) -> Account:
        password_hash = self._hasher.hash(password)
        with self._database.transaction():
            current = self._repository.find_by_id(account.id)
            if current is None or current.password_hash != account.password_hash:
                return account
            upgraded = self._repository.update(replace(current, password_hash=password_hash))
        logger.info("Upgraded password hash for account %s", account.id)
        return upgraded

    def _issue(self, account: Account) -> AuthResult:
        token = self._tokens.issue(
            account.email,
            {"uid": account.id, "role": account.role.value},
        )
        return AuthResult(
            token=token,
            account_id=account.id,
            email=account.email,
            name=account.name,
            role=account.role,
        )


__all__ = ["AuthService"]
