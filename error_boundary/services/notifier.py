from __future__ import annotations

import json
import logging
from typing import Protocol

import httpx

from error_boundary.core.settings import Settings


logger = logging.getLogger(__name__)


class NotifierError(Exception):
    pass


class Notifier(Protocol):
    def notify(self, report: dict[str, str]) -> None: ...


class NullNotifier:
    def notify(self, report: dict[str, str]) -> None:
        return None


class LogNotifier:
    """Writes reports to the application log; the default for local runs."""

    def __init__(self, *, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def notify(self, report: dict[str, str]) -> None:
        self._log.warning(
            "Error report (status=%s code=%s %s %s): %s",
            report.get("Error Status"),
            report.get("Error Code"),
            report.get("HTTP Method"),
            report.get("URL"),
            json.dumps(report, ensure_ascii=False),
        )


class WebhookNotifier:
    """POSTs each report as JSON to an operator webhook."""

    def __init__(
        self,
        *,
        url: str,
        timeout_s: float,
        http_client: httpx.Client | None = None,
    ) -> None:
        self._url = url
        self._timeout = timeout_s
        self._client = http_client

    def notify(self, report: dict[str, str]) -> None:
        close_client = False
        client = self._client
        if client is None:
            close_client = True
            client = httpx.Client()

        try:
            try:
                resp = client.post(self._url, json=report, timeout=self._timeout)
            except httpx.TimeoutException as e:
                raise NotifierError("Webhook request timed out") from e
            except httpx.HTTPError as e:
                raise NotifierError("Webhook request failed") from e

            if not resp.is_success:
                raise NotifierError(f"Webhook rejected report: {resp.status_code}")
        finally:
            if close_client:
                client.close()


class CeleryNotifier:
    """Queues reports for webhook delivery by a Celery worker."""

    def notify(self, report: dict[str, str]) -> None:
        # Imported here: the task module builds a WebhookNotifier itself.
        from error_boundary.tasks.notify import deliver_error_report

        deliver_error_report.delay(report)


def build_notifier(settings: Settings) -> Notifier:
    match settings.notifier:
        case "none":
            return NullNotifier()
        case "webhook":
            if not settings.notify_webhook_url:
                # /readyz reports not_ready until this is fixed.
                logger.warning(
                    "ERROR_BOUNDARY_NOTIFY_WEBHOOK_URL is not set; logging error reports instead"
                )
                return LogNotifier()
            return WebhookNotifier(
                url=settings.notify_webhook_url,
                timeout_s=float(settings.notify_timeout_s),
            )
        case "celery":
            return CeleryNotifier()
        case _:
            return LogNotifier()
