"""Cross-cutting HTTP middleware applied to every request."""
from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, Dict

from fastapi import FastAPI, HTTPException, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .metrics import UNMATCHED_ROUTE, MetricsRecorder

logger = logging.getLogger("users_api.middleware")
access_logger = logging.getLogger("users_api.access")

BODY_TOO_LARGE = "Request body too large"

CallNext = Callable[[Request], Awaitable[Response]]

SECURITY_HEADERS: Dict[str, str] = {
    "Content-Security-Policy": (
        "default-src 'self';base-uri 'self';font-src 'self' https: data:;"
        "form-action 'self';frame-ancestors 'self';img-src 'self' data:;"
        "object-src 'none';script-src 'self';script-src-attr 'none';"
        "style-src 'self' https: 'unsafe-inline';upgrade-insecure-requests"
    ),
    "Cross-Origin-Opener-Policy": "same-origin",
    "Cross-Origin-Resource-Policy": "same-origin",
    "Origin-Agent-Cluster": "?1",
    "Referrer-Policy": "no-referrer",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "X-Content-Type-Options": "nosniff",
    "X-DNS-Prefetch-Control": "off",
    "X-Download-Options": "noopen",
    "X-Frame-Options": "SAMEORIGIN",
    "X-Permitted-Cross-Domain-Policies": "none",
    "X-XSS-Protection": "0",
}


def route_template(request: Request) -> str:
    """Return the matched route's path template, or ``unmatched``."""

    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or UNMATCHED_ROUTE


def _content_length(scope: Scope) -> int | None:
    for name, value in scope.get("headers", ()):
        if name == b"content-length":
            try:
                return int(value)
            except ValueError:
                return None
    return None


class BodySizeLimitMiddleware:
    """Reject request bodies larger than ``max_body_bytes`` with a 413.

    A declared ``Content-Length`` is checked up front. Bodies without one
    (chunked uploads) are counted as they are received, and reading past the
    limit raises an ``HTTPException`` before the handler runs.
    """

    def __init__(self, app: ASGIApp, *, max_body_bytes: int) -> None:
        self.app = app
        self.max_body_bytes = max_body_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        length = _content_length(scope)
        if length is not None and length > self.max_body_bytes:
            response = JSONResponse(
                status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                content={"error": BODY_TOO_LARGE},
            )
            await response(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_body_bytes:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=BODY_TOO_LARGE,
                    )
            return message

        await self.app(scope, limited_receive, send)


def install_middleware(app: FastAPI, *, metrics: MetricsRecorder, max_body_bytes: int) -> None:
    """Register the middleware stack on ``app``.

    Starlette runs the most recently added middleware first, so the stack is
    registered innermost first: metrics, access log, body limit, CORS, and
    finally the security headers.
    """

    @app.middleware("http")
    async def record_metrics(request: Request, call_next: CallNext) -> Response:
        started = time.perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception:
            logger.exception("Unhandled error on %s %s", request.method, request.url.path)
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content={"error": "Internal server error"},
            )
        finally:
            metrics.observe(
                request.method,
                route_template(request),
                status_code,
                time.perf_counter() - started,
            )

    @app.middleware("http")
    async def log_access(request: Request, call_next: CallNext) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        client = request.client.host if request.client else "-"
        target = request.url.path
        if request.url.query:
            target = f"{target}?{request.url.query}"
        access_logger.info(
            '%s - "%s %s HTTP/%s" %d %s "%s" "%s" %.3f ms',
            client,
            request.method,
            target,
            request.scope.get("http_version", "1.1"),
            response.status_code,
            response.headers.get("content-length", "-"),
            request.headers.get("referer", "-"),
            request.headers.get("user-agent", "-"),
            elapsed_ms,
        )
        return response

    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=max_body_bytes)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next: CallNext) -> Response:
        response = await call_next(request)
        for name, value in SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)
        return response


__all__ = [
    "BodySizeLimitMiddleware",
    "install_middleware",
    "route_template",
    "SECURITY_HEADERS",
]
