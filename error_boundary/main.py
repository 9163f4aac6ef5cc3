from __future__ import annotations

import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from error_boundary.api.boundary import install_error_boundary
from error_boundary.api.router import api_router
from error_boundary.core.logging import configure_logging
from error_boundary.core.responder import ErrorResponder
from error_boundary.core.settings import get_settings
from error_boundary.services.notifier import Notifier, build_notifier


def create_app(*, notifier: Notifier | None = None) -> FastAPI:
    settings = get_settings()
    configure_logging(level=settings.log_level)

    app = FastAPI(title="Error Boundary API")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_allow_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def _trace_id_middleware(request, call_next):
        trace_id = request.headers.get("X-Trace-Id") or str(uuid.uuid4())
        request.state.trace_id = trace_id
        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response

    responder = ErrorResponder(
        mode=settings.environment,
        notifier=notifier or build_notifier(settings),
        redacted_fields=settings.redacted_body_fields,
        redacted_headers=settings.redacted_headers,
    )
    app.state.error_responder = responder
    install_error_boundary(app, responder)

    app.include_router(api_router)

    return app


app = create_app()
