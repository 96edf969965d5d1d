"""bcrypt password hashing for stored account credentials."""
from __future__ import annotations

from typing import Optional

from passlib.context import CryptContext

DEFAULT_ROUNDS = 12


class PasswordHasher:
    """Salted, deliberately slow one-way hashing backed by passlib's bcrypt scheme."""

    def __init__(self, *, rounds: int = DEFAULT_ROUNDS) -> None:
        if not 4 <= rounds <= 31:
            raise ValueError("bcrypt rounds must be between 4 and 31")
        self._rounds = rounds
        self._context = CryptContext(
            schemes=["bcrypt"],
            deprecated="auto",
            bcrypt__default_rounds=rounds,
            bcrypt__min_rounds=rounds,
        )

    @property
    def rounds(self) -> int:
        return self._rounds

    def hash(self, password: str) -> str:
        if not password:
            raise ValueError("Password must not be empty")
        return self._context.hash(password)

    def verify(self, password: str, hashed: Optional[str]) -> bool:
        if not password or not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except ValueError:
            # Unrecognised or corrupted hash string.
            return False

    def dummy_verify(self) -> bool:
        """Spend the time of one verification when there is no hash to check."""

        self._context.dummy_verify()
        return False

    def needs_rehash(self, hashed: str) -> bool:
        return self._context.needs_update(hashed)


__all__ = ["DEFAULT_ROUNDS", "PasswordHasher"]
