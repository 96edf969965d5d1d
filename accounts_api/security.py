"""Bearer token authentication and authorization for the HTTP API."""
from __future__ import annotations

import logging
from typing import Iterable, Optional

import anyio
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp

from .auth import AuthService
from .errors import AccessDeniedError, AccountNotFoundError
from .models import Principal
from .tokens import TokenError, TokenManager

logger = logging.getLogger("accounts.security")

AUTHORIZATION_HEADER = "Authorization"
BEARER_PREFIX = "Bearer "


def extract_bearer_token(header: Optional[str]) -> Optional[str]:
    """Return the token part of ``Bearer <token>``; the prefix is case-sensitive."""

    if header is None or not header.startswith(BEARER_PREFIX):
        return None
    return header[len(BEARER_PREFIX):]


class BearerAuthenticationMiddleware(BaseHTTPMiddleware):
    """Resolve the bearer token of each request into a :class:`Principal`.

    A rejected token never fails the request here. The principal is simply
    left unset and the authorization dependency answers with a generic 403,
    so clients cannot learn why their token was refused.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        tokens: TokenManager,
        auth_service: AuthService,
        public_paths: Iterable[str] = (),
    ) -> None:
        super().__init__(app)
        self._tokens = tokens
        self._auth_service = auth_service
        self._public_paths = frozenset(public_paths)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.principal = None
        if request.url.path not in self._public_paths:
            token = extract_bearer_token(request.headers.get(AUTHORIZATION_HEADER))
            if token is not None:
                request.state.principal = await anyio.to_thread.run_sync(self._authenticate, token)
        return await call_next(request)

    def _authenticate(self, token: str) -> Optional[Principal]:
        try:
            subject = self._tokens.verify(token)
            account = self._auth_service.load_by_subject(subject)
        except TokenError as exc:
            logger.warning("Rejected bearer token (%s)", exc.reason)
            return None
        except AccountNotFoundError:
            logger.warning("Rejected bearer token (subject no longer exists)")
            return None
        return Principal(account_id=account.id, email=account.email, role=account.role)


def current_principal(request: Request) -> Optional[Principal]:
    return getattr(request.state, "principal", None)


def require_principal(request: Request) -> Principal:
    """Dependency guarding every non-public route."""

    principal = current_principal(request)
    if principal is None:
        raise AccessDeniedError()
    return principal


__all__ = [
    "BearerAuthenticationMiddleware",
    "current_principal",
    "extract_bearer_token",
    "require_principal",
]
