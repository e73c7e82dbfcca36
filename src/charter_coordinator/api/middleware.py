"""Request tracing, domain error mapping and CORS for the REST API.

Outermost to innermost: RequestIDMiddleware binds X-Request-ID into the
structlog context, ErrorHandlerMiddleware turns CharterError subclasses into
the {"error", "message"} envelope, CORSMiddleware serves the dashboard.
Webhook deliveries for escrows that are not visible yet get a Retry-After
header so the payment provider redelivers. SharedSecretGuard puts a bearer
secret in front of mounted sub-applications such as /mcp.
"""

from __future__ import annotations

import hmac
import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from charter_coordinator.domain.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CharterError,
    CollaboratorUnavailableError,
    ConflictError,
    EarlyReleaseError,
    EscrowNotYetVisibleError,
    NotFoundError,
    RoleMismatchError,
    SignatureVerificationError,
    StateError,
    ValidationError,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from fastapi import FastAPI, Request, Response
    from starlette.types import ASGIApp, Receive, Scope, Send

logger = structlog.get_logger(__name__)

RETRY_AFTER_SECONDS = "30"

# Most specific first: StateError also covers InvalidStateTransitionError.
STATUS_BY_EXCEPTION: tuple[tuple[type[CharterError], int], ...] = (
    (ValidationError, 400),
    (RoleMismatchError, 400),
    (EarlyReleaseError, 400),
    (SignatureVerificationError, 401),
    (AuthenticationError, 401),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (StateError, 409),
    (ConflictError, 409),
    (EscrowNotYetVisibleError, 503),
    (CollaboratorUnavailableError, 503),
)


def status_for(exc: CharterError) -> int:
    for exc_type, status_code in STATUS_BY_EXCEPTION:
        if isinstance(exc, exc_type):
            return status_code
    return 400


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id, method=request.method, path=request.url.path
        )

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except CharterError as exc:
            status_code = status_for(exc)
            log = logger.error if status_code >= 500 else logger.warning
            log(
                "domain.error",
                error=exc.message,
                code=exc.code,
                status=status_code,
                path=request.url.path,
            )
            headers = (
                {"Retry-After": RETRY_AFTER_SECONDS}
                if isinstance(exc, EscrowNotYetVisibleError)
                else None
            )
            return JSONResponse(
                status_code=status_code,
                content={"error": exc.code, "message": exc.message},
                headers=headers,
            )
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Malformed request bodies are a 400 like any other ValidationError."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    logger.warning("request.invalid", path=request.url.path, errors=len(errors))
    return JSONResponse(
        status_code=400,
        content={
            "error": "VALIDATION_ERROR",
            "message": f"{location}: {message}" if location else message,
        },
    )


def setup_middleware(app: FastAPI) -> None:
    """Register the exception handler and middleware stack; last added runs outermost."""
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(ErrorHandlerMiddleware)

    app.add_middleware(RequestIDMiddleware)


def bearer_matches(authorization: str | None, expected: str) -> bool:
    """Constant-time check of ``Authorization: Bearer <expected>``. An empty secret never matches."""
    scheme, _, token = (authorization or "").partition(" ")
    return (
        bool(expected)
        and scheme.lower() == "bearer"
        and hmac.compare_digest(token.encode(), expected.encode())
    )


class SharedSecretGuard:
    """Plain ASGI wrapper that rejects HTTP requests without the shared bearer secret.

    Used around mounted sub-applications (the MCP SSE app) where FastAPI
    dependencies do not run. Not a BaseHTTPMiddleware, so streamed
    responses pass through untouched.
    """

    def __init__(self, app: ASGIApp, secret: Callable[[], str], name: str) -> None:
        self._app = app
        self._secret = secret
        self._name = name

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            headers = {
                key.decode("latin-1").lower(): value.decode("latin-1")
                for key, value in scope.get("headers", [])
            }
            if not bearer_matches(headers.get("authorization"), self._secret()):
                logger.warning("auth.shared_secret_rejected", mount=self._name)
                response = JSONResponse(
                    status_code=401,
                    content={
                        "error": "NOT_AUTHENTICATED",
                        "message": f"Missing or invalid {self._name} credentials",
                    },
                )
                await response(scope, receive, send)
                return
        await self._app(scope, receive, send)
