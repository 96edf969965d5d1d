"""FastAPI application exposing account management and authentication endpoints."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Annotated, Dict, List, Optional, Tuple

from email_validator import EmailNotValidError, validate_email
from fastapi import APIRouter, Depends, FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .accounts import AccountService
from .application import Services, build_services
from .auth import AuthService
from .config import Settings, load_settings
from .database import Database
from .errors import AccountServiceError, InvalidArgumentError
from .models import Account, AccountStatistics, AuthResult, PagedResult, Role
from .security import BearerAuthenticationMiddleware, require_principal

logger = logging.getLogger("accounts.api")


class ApiModel(BaseModel):
    """Base for transport models; JSON keys are camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _check_name(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


def _check_email(value: str) -> str:
    try:
        validate_email(value, check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValueError("must be a well-formed email address") from exc
    return value


NameField = Annotated[str, Field(min_length=1, max_length=100), AfterValidator(_check_name)]
EmailField = Annotated[str, Field(min_length=3, max_length=255), AfterValidator(_check_email)]
AgeField = Annotated[int, Field(ge=0, le=150)]


class RegisterRequest(ApiModel):
    name: NameField
    email: EmailField
    age: AgeField
    password: str = Field(..., min_length=8, max_length=72)


class LoginRequest(ApiModel):
    email: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1, max_length=72)


class AuthResponse(ApiModel):
    token: str
    token_type: str = "Bearer"
    user_id: int
    email: str
    name: str
    role: Role


class CreateAccountRequest(ApiModel):
    name: NameField
    email: EmailField
    age: AgeField


class UpdateAccountRequest(CreateAccountRequest):
    pass


class PatchAccountRequest(ApiModel):
    name: Optional[NameField] = None
    email: Optional[EmailField] = None
    age: Optional[AgeField] = None

    def has_changes(self) -> bool:
        return any(value is not None for value in (self.name, self.email, self.age))


class AccountResponse(ApiModel):
    id: int
    name: str
    email: str
    age: int
    role: Role
    created_at: datetime
    updated_at: datetime


class PagedAccountResponse(ApiModel):
    content: List[AccountResponse]
    total_elements: int
    total_pages: int
    number: int
    size: int
    first: bool
    last: bool


class StatisticsResponse(ApiModel):
    total_count: int
    adult_count: int
    average_age: float
    min_age: int
    max_age: int


def account_to_response(account: Account) -> AccountResponse:
    return AccountResponse(
        id=account.id,
        name=account.name,
        email=account.email,
        age=account.age,
        role=account.role,
        created_at=account.created_at,
        updated_at=account.updated_at,
    )


def auth_result_to_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        token=result.token,
        user_id=result.account_id,
        email=result.email,
        name=result.name,
        role=result.role,
    )


def page_to_response(page: PagedResult[Account]) -> PagedAccountResponse:
    return PagedAccountResponse(
        content=[account_to_response(account) for account in page.items],
        total_elements=page.total_elements,
        total_pages=page.total_pages,
        number=page.number,
        size=page.size,
        first=page.first,
        last=page.last,
    )


def statistics_to_response(stats: AccountStatistics) -> StatisticsResponse:
    return StatisticsResponse(
        total_count=stats.total_count,
        adult_count=stats.adult_count,
        average_age=stats.average_age,
        min_age=stats.min_age,
        max_age=stats.max_age,
    )


def parse_sort(sort: Optional[str]) -> Tuple[Optional[str], str]:
    """Split ``"field,direction"`` into its parts; direction defaults to ascending."""

    if sort is None or not sort.strip():
        return None, "asc"
    parts = [part.strip() for part in sort.split(",")]
    direction = parts[1] if len(parts) > 1 and parts[1] else "asc"
    return parts[0], direction


# ----------------------------------------------------------------------
# Error translation
# ----------------------------------------------------------------------
def error_response(request: Request, status_code: int, message: str) -> JSONResponse:
    """Build the uniform error body returned by every failing request."""

    return JSONResponse(
        status_code=status_code,
        content={
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": status_code,
            "error": HTTPStatus(status_code).phrase,
            "message": message,
            "path": request.url.path,
        },
    )


def _format_validation_errors(exc: RequestValidationError) -> str:
    messages: List[str] = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        field = ".".join(location) or "body"
        message = str(error.get("msg", "is invalid"))
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{field}: {message}")
    return ", ".join(messages) or "Request is invalid"


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(AccountServiceError)
    async def handle_service_error(request: Request, exc: AccountServiceError) -> JSONResponse:
        return error_response(request, exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        return error_response(request, status.HTTP_400_BAD_REQUEST, _format_validation_errors(exc))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        detail = exc.detail if isinstance(exc.detail, str) else HTTPStatus(exc.status_code).phrase
        return error_response(request, exc.status_code, detail)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving %s %s", request.method, request.url.path)
        return error_response(
            request,
            status.HTTP_500_INTERNAL_SERVER_ERROR,
            "An unexpected error occurred",
        )


def create_app(
    *,
    settings: Settings | None = None,
    database: Database | None = None,
    services: Services | None = None,
    initialize_database: bool = False,
) -> FastAPI:
    if services is None:
        if settings is None:
            settings = load_settings()
        if database is None:
            database = Database(settings.database_path)
            database.initialize()
        elif initialize_database:
            database.initialize()
        services = build_services(settings, database)
    elif initialize_database:
        services.database.initialize()

    app = FastAPI(
        title="Account Service",
        description="Layered account management API with bearer token authentication",
        version="1.0.0",
    )
    app.state.services = services
    app.add_middleware(
        BearerAuthenticationMiddleware,
        tokens=services.tokens,
        auth_service=services.auth,
        public_paths=services.settings.public_paths,
    )
    register_error_handlers(app)

    def get_accounts() -> AccountService:
        return services.accounts

    def get_auth() -> AuthService:
        return services.auth

    @app.get("/health")
    async def healthcheck() -> Dict[str, str]:
        return {"status": "ok"}

    auth_router = APIRouter(prefix="/auth", tags=["auth"])

    @auth_router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
    def register(payload: RegisterRequest, auth: AuthService = Depends(get_auth)) -> AuthResponse:
        result = auth.register(payload.name, payload.email, payload.age, payload.password)
        return auth_result_to_response(result)

    @auth_router.post("/login", response_model=AuthResponse)
    def login(payload: LoginRequest, auth: AuthService = Depends(get_auth)) -> AuthResponse:
        return auth_result_to_response(auth.login(payload.email, payload.password))

    accounts_router = APIRouter(
        prefix="/accounts",
        tags=["accounts"],
        dependencies=[Depends(require_principal)],
    )

    @accounts_router.post("", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
    def create_account(
        payload: CreateAccountRequest,
        response: Response,
        accounts: AccountService = Depends(get_accounts),
    ) -> AccountResponse:
        account = accounts.create_account(payload.name, payload.email, payload.age)
        response.headers["Location"] = f"/accounts/{account.id}"
        return account_to_response(account)

    @accounts_router.get("", response_model=PagedAccountResponse)
    def list_accounts(
        page: int = 0,
        size: int = 20,
        sort: Optional[str] = None,
        accounts: AccountService = Depends(get_accounts),
    ) -> PagedAccountResponse:
        sort_field, sort_direction = parse_sort(sort)
        return page_to_response(accounts.list_accounts(page, size, sort_field, sort_direction))

    # Fixed paths are registered before /{account_id} so they are matched first.
    @accounts_router.get("/search", response_model=List[AccountResponse])
    def search_accounts(
        keyword: Optional[str] = None,
        accounts: AccountService = Depends(get_accounts),
    ) -> List[AccountResponse]:
        return [account_to_response(account) for account in accounts.search_by_name(keyword)]

    @accounts_router.get("/adults", response_model=List[AccountResponse])
    def list_adult_accounts(accounts: AccountService = Depends(get_accounts)) -> List[AccountResponse]:
        return [account_to_response(account) for account in accounts.get_adult_accounts()]

    @accounts_router.get("/statistics", response_model=StatisticsResponse)
    def read_statistics(accounts: AccountService = Depends(get_accounts)) -> StatisticsResponse:
        return statistics_to_response(accounts.get_statistics())

    @accounts_router.get("/{account_id}", response_model=AccountResponse)
    def read_account(account_id: int, accounts: AccountService = Depends(get_accounts)) -> AccountResponse:
        return account_to_response(accounts.get_account(account_id))

    @accounts_router.put("/{account_id}", response_model=AccountResponse)
    def update_account(
        account_id: int,
        payload: UpdateAccountRequest,
        accounts: AccountService = Depends(get_accounts),
    ) -> AccountResponse:
        account = accounts.update_account(account_id, payload.name, payload.email, payload.age)
        return account_to_response(account)

    @accounts_router.patch("/{account_id}", response_model=AccountResponse)
    def patch_account(
        account_id: int,
        payload: PatchAccountRequest,
        accounts: AccountService = Depends(get_accounts),
    ) -> AccountResponse:
        if not payload.has_changes():
            raise InvalidArgumentError("At least one of name, email or age must be provided")
        account = accounts.patch_account(account_id, payload.name, payload.email, payload.age)
        return account_to_response(account)

    @accounts_router.delete(
        "/{account_id}",
        status_code=status.HTTP_204_NO_CONTENT,
        response_class=Response,
    )
    def delete_account(account_id: int, accounts: AccountService = Depends(get_accounts)) -> Response:
        accounts.delete_account(account_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    app.include_router(auth_router)
    app.include_router(accounts_router)
    return app


__all__ = ["create_app", "error_response", "parse_sort"]
