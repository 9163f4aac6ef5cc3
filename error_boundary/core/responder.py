from __future__ import annotations

import dataclasses
import datetime as dt
import logging
from collections.abc import Callable, Iterable
from typing import Any

from error_boundary.core.errors import (
    INTERNAL_SERVER_ERROR,
    ErrorKind,
    ErrorRecord,
    classify,
)
from error_boundary.core.settings import Mode
from error_boundary.services.notifier import Notifier
from error_boundary.services.snapshot import (
    RequestContext,
    RequestSnapshot,
    build_report,
)


logger = logging.getLogger(__name__)


GENERIC_MESSAGE = "Oops! Something went wrong..."

# Expected high-volume conditions: not found, validation, rate limited.
QUIET_STATUSES = frozenset({404, 422, 429})

DEFAULT_REDACTED_FIELDS = ("password", "oldPassword", "newPassword", "token")


def should_notify(status: int | None) -> bool:
    return (status or 500) not in QUIET_STATUSES


@dataclasses.dataclass(frozen=True, slots=True)
class Outcome:
    status_code: int
    body: dict[str, Any]
    record: ErrorRecord
    report: dict[str, str] | None = None


class ErrorResponder:
    """Terminal error handler: classify, pick a disclosure level, notify.

    Holds configuration only; every call works on its own ErrorRecord so
    concurrent requests never share state.
    """

    def __init__(
        self,
        *,
        mode: Mode,
        notifier: Notifier,
        redacted_fields: Iterable[str] = DEFAULT_REDACTED_FIELDS,
        redacted_headers: Iterable[str] = (),
        clock: Callable[[], dt.datetime] | None = None,
    ) -> None:
        self._mode = mode
        self._notifier = notifier
        self._redacted_fields = tuple(redacted_fields)
        self._redacted_headers = tuple(redacted_headers)
        self._clock = clock

    @property
    def mode(self) -> Mode:
        return self._mode

    def normalize(self, error: Any) -> ErrorRecord:
        try:
            match classify(error):
                case ErrorKind.TOKEN:
                    # Never echo verification-library internals.
                    record = ErrorRecord.invalid_token()
                case ErrorKind.OPERATIONAL | ErrorKind.UNKNOWN:
                    record = ErrorRecord.from_error(error)
        except Exception:
            logger.warning(
                "Could not read error of type %s", type(error).__name__, exc_info=True
            )
            record = ErrorRecord(message=type(error).__name__)
        return record.with_defaults()

    def evaluate(self, error: Any, ctx: RequestContext) -> Outcome:
        """Build the client response and the pending report without sending it."""

        record = self.normalize(error)
        status = record.status_code or 500

        match self._mode:
            case Mode.DEVELOPMENT:
                body: dict[str, Any] = {
                    "code": record.code,
                    "message": record.message,
                    "error": record.to_dict(),
                }
            case Mode.PRODUCTION if record.is_operational:
                body = {"code": record.code, "message": record.message}
            case Mode.PRODUCTION:
                record = dataclasses.replace(record, code=INTERNAL_SERVER_ERROR)
                status = 500
                logger.error(
                    "ERROR %s %s (status=%s): %s\n%s",
                    ctx.method,
                    ctx.url.split("?", 1)[0],
                    record.status_code,
                    record.message,
                    record.stack or "<no stack>",
                )
                body = {"code": INTERNAL_SERVER_ERROR, "message": GENERIC_MESSAGE}

        # The record keeps its own status even when the client sees 500.
        notify_status = record.status_code or 500
        report = None
        if should_notify(notify_status):
            report = self._build_report(record, notify_status, ctx)
        return Outcome(status_code=status, body=body, record=record, report=report)

    def dispatch(self, report: dict[str, str] | None) -> None:
        """Hand a report to the notifier; failures are logged, never raised."""

        if report is None:
            return
        try:
            self._notifier.notify(report)
        except Exception:
            logger.warning(
                "Error notification failed (status=%s code=%s)",
                report.get("Error Status"),
                report.get("Error Code"),
                exc_info=True,
            )

    def handle(self, error: Any, ctx: RequestContext) -> tuple[int, dict[str, Any]]:
        outcome = self.evaluate(error, ctx)
        self.dispatch(outcome.report)
        return outcome.status_code, outcome.body

    def _build_report(
        self, record: ErrorRecord, status: int, ctx: RequestContext
    ) -> dict[str, str] | None:
        try:
            snapshot = RequestSnapshot.from_context(
                ctx,
                redacted_fields=self._redacted_fields,
                redacted_headers=self._redacted_headers,
            )
            now = self._clock() if self._clock else None
            return build_report(record, status=status, snapshot=snapshot, now=now)
        except Exception:
            logger.warning(
                "Could not build error report (status=%s code=%s)",
                status,
                record.code,
                exc_info=True,
            )
            return None
