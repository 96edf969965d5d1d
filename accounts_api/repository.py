"""Typed query operations over the accounts table."""
from __future__ import annotations

import math
import sqlite3
from typing import Dict, List, Optional

from .database import (
    SQLITE_MAX_INTEGER,
    Database,
    current_timestamp,
    parse_datetime,
    serialize_datetime,
)
from .errors import AccountNotFoundError, DuplicateEmailError, InvalidArgumentError
from .models import Account, NewAccount, PagedResult, Role

# Public sort keys mapped onto real columns. Anything else is rejected so the
# ORDER BY clause never carries caller-controlled text.
SORTABLE_COLUMNS: Dict[str, str] = {
    "id": "id",
    "name": "name",
    "email": "email",
    "age": "age",
    "role": "role",
    "createdAt": "created_at",
    "created_at": "created_at",
    "updatedAt": "updated_at",
    "updated_at": "updated_at",
}


def _translate_integrity_error(exc: sqlite3.IntegrityError, email: str) -> Exception:
    if "UNIQUE" in str(exc).upper():
        return DuplicateEmailError(email)
    return InvalidArgumentError("Row violates a storage constraint")


def _storable_id(account_id: int) -> bool:
    return -SQLITE_MAX_INTEGER - 1 <= account_id <= SQLITE_MAX_INTEGER


class AccountRepository:
    """Persistence operations for :class:`~accounts_api.models.Account` rows."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def insert(self, account: NewAccount) -> Account:
        now = current_timestamp()
        serialized = serialize_datetime(now)
        with self._database.transaction() as conn:
            try:
                cursor = conn.execute(
                    """
                    INSERT INTO accounts (name, email, age, password_hash, role, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        account.name,
                        account.email,
                        account.age,
                        account.password_hash,
                        account.role.value,
                        serialized,
                        serialized,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise _translate_integrity_error(exc, account.email) from exc
            account_id = int(cursor.lastrowid)

        return Account(
            id=account_id,
            name=account.name,
            email=account.email,
            age=account.age,
            role=account.role,
            created_at=now,
            updated_at=now,
            password_hash=account.password_hash,
        )

    def find_by_id(self, account_id: int) -> Optional[Account]:
        if not _storable_id(account_id):
            return None
        with self._database.transaction(read_only=True) as conn:
            row = conn.execute("SELECT * FROM accounts WHERE id = ?", (account_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def find_by_email(self, email: str) -> Optional[Account]:
        with self._database.transaction(read_only=True) as conn:
            row = conn.execute("SELECT * FROM accounts WHERE email = ?", (email,)).fetchone()
        if row is None:
            return None
        return self._row_to_account(row)

    def find_by_name_containing(self, substring: str) -> List[Account]:
        # instr() is case-sensitive and treats % and _ literally, unlike LIKE.
        with self._database.transaction(read_only=True) as conn:
            rows = conn.execute(
                "SELECT * FROM accounts WHERE instr(name, ?) > 0 ORDER BY id",
                (substring,),
            ).fetchall()
        return [self._row_to_account(row) for row in rows]

    def find_all(
        self,
        page: int,
        size: int,
        sort_field: Optional[str] = None,
        sort_direction: str = "asc",
    ) -> PagedResult[Account]:
        if page * size > SQLITE_MAX_INTEGER:
            raise InvalidArgumentError("is beyond the last addressable page", field="page")
        order_by = "id"
        if sort_field:
            column = SORTABLE_COLUMNS.get(sort_field)
            if column is None:
                raise InvalidArgumentError(f"Unknown sort property '{sort_field}'", field="sort")
            direction = "DESC" if sort_direction.strip().lower() == "desc" else "ASC"
            order_by = f"{column} {direction}, id {direction}"

        with self._database.transaction(read_only=True) as conn:
            total = int(conn.execute("SELECT COUNT(*) FROM accounts").fetchone()[0])
            rows = conn.execute(
                f"SELECT * FROM accounts ORDER BY {order_by} LIMIT ? OFFSET ?",
                (size, page * size),
            ).fetchall()

        return PagedResult(
            items=[self._row_to_account(row) for row in rows],
            total_elements=total,
            total_pages=math.ceil(total / size) if size else 0,
            number=page,
            size=size,
        )

    def list_all(self) -> List[Account]:
        with self._database.transaction(read_only=True) as conn:
            rows = conn.execute("SELECT * FROM accounts ORDER BY id").fetchall()
        return [self._row_to_account(row) for row in rows]

    def update(self, account: Account) -> Account:
        """Rewrite every mutable column and refresh ``updated_at``."""

        updated_at = max(current_timestamp(), account.created_at)
        with self._database.transaction() as conn:
            try:
                cursor = conn.execute(
                    """
                    UPDATE accounts
                       SET name = ?, email = ?, age = ?, password_hash = ?, role = ?, updated_at = ?
                     WHERE id = ?
                    """,
                    (
                        account.name,
                        account.email,
                        account.age,
                        account.password_hash,
                        account.role.value,
                        serialize_datetime(updated_at),
                        account.id,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise _translate_integrity_error(exc, account.email) from exc
            if cursor.rowcount == 0:
                raise AccountNotFoundError(account.id)

        return Account(
            id=account.id,
            name=account.name,
            email=account.email,
            age=account.age,
            role=account.role,
            created_at=account.created_at,
            updated_at=updated_at,
            password_hash=account.password_hash,
        )

    def delete_by_id(self, account_id: int) -> bool:
        if not _storable_id(account_id):
            return False
        with self._database.transaction() as conn:
            cursor = conn.execute("DELETE FROM accounts WHERE id = ?", (account_id,))
            return cursor.rowcount > 0

    def exists_by_id(self, account_id: int) -> bool:
        if not _storable_id(account_id):
            return False
        with self._database.transaction(read_only=True) as conn:
            row = conn.execute("SELECT 1 FROM accounts WHERE id = ?", (account_id,)).fetchone()
        return row is not None

    def count(self) -> int:
        with self._database.transaction(read_only=True) as conn:
            return int(conn.execute("SELECT COUNT(*) FROM accounts").fetchone()[0])

    def _row_to_account(self, row: sqlite3.Row) -> Account:
        return Account(
            id=int(row["id"]),
            name=str(row["name"]),
            email=str(row["email"]),
            age=int(row["age"]),
            role=Role(str(row["role"])),
            created_at=parse_datetime(str(row["created_at"])),
            updated_at=parse_datetime(str(row["updated_at"])),
            password_hash=row["password_hash"],
        )


__all__ = ["AccountRepository", "SORTABLE_COLUMNS"]
