"""Client IP resolution from proxy headers.

Headers are checked in order; the first one holding a valid address wins.
Forwarding headers may carry a comma-separated chain, in which case the
left-most valid address is the originating client.
"""

from __future__ import annotations

import ipaddress
from collections.abc import Mapping


_IP_HEADERS = (
    "x-client-ip",
    "x-forwarded-for",
    "cf-connecting-ip",
    "fastly-client-ip",
    "true-client-ip",
    "x-real-ip",
    "x-cluster-client-ip",
    "x-forwarded",
    "forwarded-for",
    "forwarded",
)


def _clean(candidate: str) -> str | None:
    value = candidate.strip().strip('"')
    if value.lower().startswith("for="):
        value = value[4:].strip('"')
    if value.startswith("[") and "]" in value:
        # [v6]:port
        value = value[1 : value.index("]")]
    elif value.count(":") == 1:
        # v4:port
        value = value.split(":", 1)[0]
    try:
        return str(ipaddress.ip_address(value))
    except ValueError:
        return None


def _first_valid(header_value: str) -> str | None:
    for part in header_value.split(","):
        # Forwarded: for=1.2.3.4;proto=https
        for token in part.split(";"):
            ip = _clean(token)
            if ip:
                return ip
    return None


def get_client_ip(headers: Mapping[str, str], peer: str | None = None) -> str | None:
    lowered = {k.lower(): v for k, v in headers.items()}
    for name in _IP_HEADERS:
        value = lowered.get(name)
        if not value:
            continue
        ip = _first_valid(value)
        if ip:
            return ip
    if peer:
        return _clean(peer) or peer
    return None
