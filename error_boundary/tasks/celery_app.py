from __future__ import annotations

import os

from celery import Celery

from error_boundary.core.settings import Settings, get_settings


REPORT_QUEUE = "error-reports"


def create_celery_app(settings: Settings | None = None) -> Celery:
    """Create the Celery application that delivers error reports.

    Eager mode (the default) delivers inline on the caller's thread. When it
    is disabled a Redis broker URL is required and delivery moves to a worker
    consuming the ``error-reports`` queue.
    """

    settings = settings or get_settings()

    app = Celery("error_boundary")
    # Reports are flat str -> str mappings.
    app.conf.update(
        task_serializer="json",
        accept_content=["json"],
        task_ignore_result=True,
        task_default_queue=REPORT_QUEUE,
    )

    if settings.celery_eager:
        app.conf.update(
            task_always_eager=True,
            task_eager_propagates=True,
        )
        return app

    broker_url = settings.redis_url or os.getenv("REDIS_URL")
    if not broker_url:
        raise ValueError(
            "Celery eager mode is disabled (ERROR_BOUNDARY_CELERY_EAGER=0) but no "
            "broker URL was provided. Set ERROR_BOUNDARY_REDIS_URL or REDIS_URL."
        )

    app.conf.update(
        broker_url=broker_url,
        task_always_eager=False,
    )
    return app


celery_app = create_celery_app()
