from __future__ import annotations

import json
from typing import Any
from urllib.parse import parse_qsl

import jwt
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from error_boundary.core.errors import AppError
from error_boundary.core.responder import ErrorResponder
from error_boundary.services.snapshot import UNPARSED_BODY, RequestContext
from error_boundary.utils.request_ip import get_client_ip


RAW_BODY_STATE_KEY = "raw_body"
BODY_TRUNCATED_STATE_KEY = "raw_body_truncated"


class BodyCaptureMiddleware:
    """Keep a copy of the request body in ``request.state`` for error reports.

    Only bytes the application actually read are recorded; the stream is
    passed through untouched. Bodies longer than ``max_bytes`` are flagged
    as truncated and never reported.
    """

    def __init__(self, app: ASGIApp, *, max_bytes: int = 64 * 1024) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        state = scope.setdefault("state", {})
        chunks: list[bytes] = []
        size = 0

        async def _receive() -> Message:
            nonlocal size
            message = await receive()
            if message["type"] != "http.request":
                return message
            body = message.get("body", b"")
            if size + len(body) > self.max_bytes:
                state[BODY_TRUNCATED_STATE_KEY] = True
            if size < self.max_bytes:
                chunk = body[: self.max_bytes - size]
                chunks.append(chunk)
                size += len(chunk)
                state[RAW_BODY_STATE_KEY] = b"".join(chunks)
            return message

        await self.app(scope, _receive, send)


def _multi_dict(items: list[tuple[str, str]]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in items:
        if key in out:
            prev = out[key]
            out[key] = [*prev, value] if isinstance(prev, list) else [prev, value]
        else:
            out[key] = value
    return out


def _decode_body(raw: bytes | None, content_type: str, *, truncated: bool = False) -> Any:
    """Parse the captured body into a structure that can be redacted.

    Anything that does not parse (truncated, multipart, plain text) is
    replaced by a placeholder so raw secrets never reach a report.
    """

    if truncated:
        return UNPARSED_BODY
    if not raw:
        return {}
    text = raw.decode("utf-8", errors="replace")
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type == "application/x-www-form-urlencoded":
        return _multi_dict(parse_qsl(text, keep_blank_values=True))
    try:
        parsed = json.loads(text)
    except ValueError:
        return UNPARSED_BODY
    if isinstance(parsed, (dict, list)):
        return parsed
    return UNPARSED_BODY


def request_context(request: Request) -> RequestContext:
    headers = dict(request.headers)
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    peer = request.client.host if request.client else None
    return RequestContext(
        method=request.method,
        url=url,
        headers=headers,
        params=dict(request.path_params),
        query=_multi_dict(request.query_params.multi_items()),
        body=_decode_body(
            getattr(request.state, RAW_BODY_STATE_KEY, None),
            request.headers.get("content-type", ""),
            truncated=getattr(request.state, BODY_TRUNCATED_STATE_KEY, False),
        ),
        client_ip=get_client_ip(headers, peer),
    )


def _with_trace_id_header(trace_id: str | None) -> dict[str, str] | None:
    if not trace_id:
        return None
    return {"X-Trace-Id": trace_id}


def make_boundary_handler(responder: ErrorResponder):
    async def _boundary_handler(request: Request, exc: Exception) -> JSONResponse:
        outcome = responder.evaluate(exc, request_context(request))
        background = None
        if outcome.report is not None:
            # Runs after the response body is sent.
            background = BackgroundTask(responder.dispatch, outcome.report)
        return JSONResponse(
            status_code=outcome.status_code,
            headers=_with_trace_id_header(getattr(request.state, "trace_id", None)),
            content=outcome.body,
            background=background,
        )

    return _boundary_handler


class UnhandledErrorMiddleware:
    """Answer errors no exception handler claimed.

    Sits inside Starlette's ServerErrorMiddleware, which would otherwise
    re-raise the error to the server after responding. Errors raised after
    the response has started are left to the server.
    """

    def __init__(self, app: ASGIApp, *, handler) -> None:
        self.app = app
        self.handler = handler

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        started = False

        async def _send(message: Message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        try:
            await self.app(scope, receive, _send)
        except Exception as exc:
            if started:
                raise
            response = await self.handler(Request(scope), exc)
            await response(scope, receive, send)


def install_error_boundary(app: FastAPI, responder: ErrorResponder) -> None:
    """Route every error reaching the app boundary through responder."""

    handler = make_boundary_handler(responder)

    app.add_middleware(BodyCaptureMiddleware)
    app.add_middleware(UnhandledErrorMiddleware, handler=handler)

    for exc_class in (
        AppError,
        jwt.InvalidTokenError,
        StarletteHTTPException,
        RequestValidationError,
    ):
        app.add_exception_handler(exc_class, handler)
