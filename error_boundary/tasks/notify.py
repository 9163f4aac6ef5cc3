from __future__ import annotations

import logging

from error_boundary.core.settings import get_settings
from error_boundary.services.notifier import WebhookNotifier
from error_boundary.tasks.celery_app import celery_app


logger = logging.getLogger(__name__)


@celery_app.task(name="error_boundary.deliver_error_report", ignore_result=True)
def deliver_error_report(report: dict[str, str]) -> None:
    settings = get_settings()
    if not settings.notify_webhook_url:
        logger.warning(
            "No webhook configured; dropping error report (status=%s code=%s)",
            report.get("Error Status"),
            report.get("Error Code"),
        )
        return

    notifier = WebhookNotifier(
        url=settings.notify_webhook_url,
        timeout_s=float(settings.notify_timeout_s),
    )
    notifier.notify(report)
