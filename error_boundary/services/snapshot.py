from __future__ import annotations

import dataclasses
import datetime as dt
import json
from collections.abc import Iterable, Mapping
from typing import Any

from error_boundary.core.errors import ErrorRecord
from error_boundary.utils.log_date import date_and_time


REDACTED = "[REDACTED]"
UNPARSED_BODY = "[UNPARSED BODY]"


@dataclasses.dataclass(frozen=True, slots=True)
class RequestContext:
    """What the boundary knows about the request that produced an error."""

    method: str
    url: str
    headers: Mapping[str, str] = dataclasses.field(default_factory=dict)
    params: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    query: Mapping[str, Any] = dataclasses.field(default_factory=dict)
    body: Any = None
    client_ip: str | None = None


def redact(value: Any, fields: Iterable[str]) -> Any:
    """Return a copy of value without the given keys, at any depth."""

    drop = frozenset(fields)

    def _walk(node: Any) -> Any:
        if isinstance(node, Mapping):
            return {k: _walk(v) for k, v in node.items() if k not in drop}
        if isinstance(node, (list, tuple)):
            return [_walk(v) for v in node]
        return node

    return _walk(value)


def _reportable_body(body: Any, fields: Iterable[str]) -> Any:
    # Raw text cannot be redacted field by field.
    if isinstance(body, (str, bytes, bytearray)) and body and body != UNPARSED_BODY:
        return UNPARSED_BODY
    return redact(body, fields)


@dataclasses.dataclass(frozen=True, slots=True)
class RequestSnapshot:
    method: str
    path: str
    ip: str | None
    headers: dict[str, str]
    params: dict[str, Any]
    query: dict[str, Any]
    body: Any

    @classmethod
    def from_context(
        cls,
        ctx: RequestContext,
        *,
        redacted_fields: Iterable[str],
        redacted_headers: Iterable[str] = (),
    ) -> RequestSnapshot:
        masked = {h.lower() for h in redacted_headers}
        headers = {
            k: (REDACTED if k.lower() in masked else v) for k, v in ctx.headers.items()
        }
        return cls(
            method=ctx.method,
            path=ctx.url.split("?", 1)[0],
            ip=ctx.client_ip,
            headers=headers,
            params=dict(ctx.params),
            query=dict(ctx.query),
            body=_reportable_body(ctx.body, redacted_fields),
        )


def _dumps(value: Any) -> str:
    return json.dumps(value, default=str, ensure_ascii=False)


def build_report(
    record: ErrorRecord,
    *,
    status: int,
    snapshot: RequestSnapshot,
    now: dt.datetime | None = None,
) -> dict[str, str]:
    """Flatten an error and its request into the notifier payload."""

    return {
        "Date": date_and_time(now),
        "IP": snapshot.ip or "",
        "Headers": _dumps(snapshot.headers),
        "Parameters": _dumps(snapshot.params),
        "Query": _dumps(snapshot.query),
        "Body": _dumps(snapshot.body),
        "HTTP Method": snapshot.method,
        "URL": snapshot.path,
        "Error Code": record.code or "",
        "Error Status": str(status),
        "Error Stack": record.stack or "",
    }
