"""HTTP API exposing the users table, health and Prometheus metrics."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from fastapi import FastAPI, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, load_settings
from .database import Database
from .errors import (
    ConflictError,
    NotFoundError,
    StoreError,
    UserNotFoundError,
    UsersAPIError,
    ValidationError,
)
from .metrics import MetricsRecorder
from .middleware import install_middleware
from .models import User

logger = logging.getLogger("users_api.service")

API_VERSION = "1.0.0"

_PROCESS_STARTED = time.monotonic()

# Signed 64-bit ceiling shared by MySQL BIGINT and SQLite INTEGER.
_MAX_USER_ID = 2**63 - 1


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    created_at: datetime


class UserCreateRequest(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None


class UserCreateResponse(BaseModel):
    id: int
    name: str
    email: str
    message: str


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    uptime: float


def _user_to_response(user: User) -> UserResponse:
    return UserResponse(id=user.id, name=user.name, email=user.email, created_at=user.created_at)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _parse_user_id(raw: str) -> int:
    """Path ids that are not ASCII integers within BIGINT range cannot match any row."""

    cleaned = raw.strip()
    if not (cleaned.isascii() and cleaned.isdigit()):
        raise UserNotFoundError(raw)
    user_id = int(cleaned)
    if user_id > _MAX_USER_ID:
        raise UserNotFoundError(raw)
    return user_id


class _OperationFailed(Exception):
    """Carries the client-facing message for a store failure in one operation."""

    def __init__(self, message: str, cause: UsersAPIError) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause


def register_exception_handlers(app: FastAPI) -> None:
    """Map the error taxonomy onto ``{"error": ...}`` JSON responses."""

    @app.exception_handler(_OperationFailed)
    async def handle_operation_failed(request: Request, exc: _OperationFailed) -> JSONResponse:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.cause, exc_info=exc.cause)
        return _error(exc.cause.status_code, exc.message)

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, "User not found")

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, "Email already exists")

    @app.exception_handler(StoreError)
    async def handle_store_error(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("Store error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request body")

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        if exc.status_code in (status.HTTP_404_NOT_FOUND, status.HTTP_405_METHOD_NOT_ALLOWED):
            return _error(status.HTTP_404_NOT_FOUND, "Route not found")
        return _error(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def register_api_routes(app: FastAPI, database: Database, metrics: MetricsRecorder) -> None:
    """Expose the health, metrics and users endpoints on ``app``."""

    @app.get("/health", response_model=HealthResponse)
    async def healthcheck() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            uptime=time.monotonic() - _PROCESS_STARTED,
        )

    @app.get("/metrics")
    async def scrape_metrics() -> Response:
        try:
            payload = metrics.render()
        except Exception:
            logger.exception("Error getting metrics")
            return PlainTextResponse("Error getting metrics", status_code=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response(content=payload, media_type=metrics.content_type)

    @app.get("/api")
    @app.get("/api/")
    async def api_info() -> Dict[str, Any]:
        return {
            "message": "Users API is running!",
            "version": API_VERSION,
            "endpoints": {
                "users": "/api/users",
                "health": "/health",
                "metrics": "/metrics",
            },
        }

    @app.get("/api/users", response_model=List[UserResponse])
    def list_users() -> List[UserResponse]:
        try:
            users = database.list_users()
        except StoreError as exc:
            raise _OperationFailed("Failed to fetch users", exc) from exc
        return [_user_to_response(user) for user in users]

    @app.get("/api/users/{user_id}", response_model=UserResponse)
    def get_user(user_id: str) -> UserResponse:
        numeric_id = _parse_user_id(user_id)
        try:
            user = database.get_user(numeric_id)
        except StoreError as exc:
            raise _OperationFailed("Failed to fetch user", exc) from exc
        if user is None:
            raise UserNotFoundError(numeric_id)
        return _user_to_response(user)

    @app.post(
        "/api/users",
        status_code=status.HTTP_201_CREATED,
        response_model=UserCreateResponse,
    )
    def create_user(payload: Optional[UserCreateRequest] = None) -> UserCreateResponse:
        if payload is None or not payload.name or not payload.email:
            raise ValidationError("Name and email are required")

        try:
            user = database.create_user(payload.name, payload.email)
        except StoreError as exc:
            raise _OperationFailed("Failed to create user", exc) from exc

        logger.info("Created user %s", user.id)
        return UserCreateResponse(
            id=user.id,
            name=user.name,
            email=user.email,
            message="User created successfully",
        )

    @app.delete("/api/users/{user_id}", response_model=MessageResponse)
    def delete_user(user_id: str) -> MessageResponse:
        numeric_id = _parse_user_id(user_id)
        try:
            deleted = database.delete_user(numeric_id)
        except StoreError as exc:
            raise _OperationFailed("Failed to delete user", exc) from exc
        if not deleted:
            raise UserNotFoundError(numeric_id)

        logger.info("Deleted user %s", numeric_id)
        return MessageResponse(message="User deleted successfully")


def create_app(
    *,
    database: Database | None = None,
    settings: Settings | None = None,
    metrics: MetricsRecorder | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application.

    When no ``database`` is supplied one is built from ``settings`` and
    connected immediately; a connection failure raises :class:`StoreError`.
    The application closes the database when its lifespan ends.
    """

    app_settings = settings or load_settings()
    db = database or Database.from_settings(app_settings)
    if not db.is_connected:
        db.connect()
    db.initialize()

    recorder = metrics or MetricsRecorder()

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        logger.info("Shutting down, closing database connection")
        db.close()

    app = FastAPI(
        title="Users API",
        version=API_VERSION,
        description="REST API over a single table of users.",
        lifespan=lifespan,
    )
    app.state.database = db
    app.state.metrics = recorder
    app.state.settings = app_settings

    register_exception_handlers(app)
    install_middleware(app, metrics=recorder, max_body_bytes=app_settings.max_body_bytes)
    register_api_routes(app, db, recorder)

    return app


__all__ = ["create_app", "register_api_routes", "register_exception_handlers"]
