"""Signed, time-limited bearer tokens (JWT) for authenticated requests."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from jose import JWTError, jwt
from jose.exceptions import JWTClaimsError

DEFAULT_ALGORITHM = "HS256"
DEFAULT_TTL = timedelta(hours=24)

_RESERVED_CLAIMS = frozenset({"sub", "iat", "exp"})


class TokenError(RuntimeError):
    """Raised when a bearer token cannot be accepted."""

    reason = "invalid"


class EmptyTokenError(TokenError):
    reason = "empty"


class MalformedTokenError(TokenError):
    reason = "malformed"


class ExpiredTokenError(TokenError):
    reason = "expired"


class SignatureMismatchError(TokenError):
    reason = "signature"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TokenManager:
    """Issue and verify HMAC-signed JWTs carrying an account subject.

    The signing secret is process configuration and never changes after the
    manager is built. ``clock`` exists so tests can issue tokens in the past.
    """

    def __init__(
        self,
        secret: str,
        *,
        ttl: timedelta = DEFAULT_TTL,
        algorithm: str = DEFAULT_ALGORITHM,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        if not secret:
            raise ValueError("A token signing secret must be configured")
        if ttl <= timedelta(0):
            raise ValueError("Token lifetime must be positive")
        self._secret = secret
        self._ttl = ttl
        self._algorithm = algorithm
        self._clock = clock

    @property
    def ttl(self) -> timedelta:
        return self._ttl

    def issue(self, subject: str, extra_claims: Optional[Mapping[str, Any]] = None) -> str:
        if not subject:
            raise ValueError("Token subject must not be empty")
        now = self._clock()
        claims: Dict[str, Any] = {
            key: value for key, value in (extra_claims or {}).items() if key not in _RESERVED_CLAIMS
        }
        claims.update(
            {
                "sub": subject,
                "iat": int(now.timestamp()),
                "exp": int((now + self._ttl).timestamp()),
            }
        )
        return jwt.encode(claims, self._secret, algorithm=self._algorithm)

    def decode(self, token: Optional[str]) -> Dict[str, Any]:
        """Return the verified claims of ``token`` or raise a :class:`TokenError`."""

        if token is None or not token.strip():
            raise EmptyTokenError("Token is empty")

        try:
            jwt.get_unverified_header(token)
            jwt.get_unverified_claims(token)
        except JWTError as exc:
            raise MalformedTokenError("Token is not a well-formed JWT") from exc

        try:
            # Expiry is checked below against the manager's own clock.
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"verify_exp": False},
            )
        except JWTClaimsError as exc:
            raise MalformedTokenError("Token claims are invalid") from exc
        except JWTError as exc:
            raise SignatureMismatchError("Token signature does not match") from exc

        subject = claims.get("sub")
        expires = claims.get("exp")
        if not isinstance(subject, str) or not subject or not isinstance(expires, (int, float)):
            raise MalformedTokenError("Token is missing required claims")
        if self._clock().timestamp() >= expires:
            raise ExpiredTokenError("Token has expired")
        return claims

    def verify(self, token: Optional[str]) -> str:
        """Return the subject of a valid token."""

        return str(self.decode(token)["sub"])

    @staticmethod
    def extract_subject(token: str) -> Optional[str]:
        """Read the subject without checking the signature. For log correlation only."""

        try:
            subject = jwt.get_unverified_claims(token).get("sub")
        except JWTError:
            return None
        return subject if isinstance(subject, str) else None


__all__ = [
    "DEFAULT_ALGORITHM",
    "DEFAULT_TTL",
    "EmptyTokenError",
    "ExpiredTokenError",
    "MalformedTokenError",
    "SignatureMismatchError",
    "TokenError",
    "TokenManager",
]
