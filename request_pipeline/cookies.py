"""Cookie store - client-scoped session cookies reconciled from responses.

Only active in browser mode. Each ``Set-Cookie`` header on a response either
upserts the stored value or, if the cookie has already expired, deletes it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from http.cookiejar import parse_ns_headers
from threading import Lock

import httpx

logger = logging.getLogger(__name__)


class CookieStore:
    """Thread-safe name -> value cookie map.

    Every read and write takes the lock, so concurrent browser-mode calls
    and configuration calls never interleave on the underlying dict.
    """

    def __init__(self, cookies: dict[str, str] | None = None) -> None:
        self._cookies: dict[str, str] = dict(cookies or {})
        self._lock = Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cookies)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._cookies

    def get(self, name: str) -> str | None:
        with self._lock:
            return self._cookies.get(name)

    def set(self, name: str, value: str) -> None:
        with self._lock:
            self._cookies[name] = value

    def update(self, cookies: dict[str, str]) -> None:
        with self._lock:
            self._cookies.update(cookies)

    def delete(self, name: str) -> None:
        with self._lock:
            self._cookies.pop(name, None)

    def snapshot(self) -> dict[str, str]:
        """Copy of the current cookies."""
        with self._lock:
            return dict(self._cookies)

    def header_value(self) -> str:
        """Cookies joined as ``name=value;name=value`` for a Cookie header."""
        with self._lock:
            return ";".join(f"{k}={v}" for k, v in self._cookies.items())

    def sync(self, response: httpx.Response, now: datetime | None = None) -> None:
        """Reconcile the store with the cookies set by *response*.

        A cookie whose Expires is strictly before *now*, or whose Max-Age is
        zero or negative, is removed. Any other cookie overwrites the stored
        value for its name.

        Args:
            response: Response whose Set-Cookie headers are applied.
            now: Evaluation time (timezone-aware). Defaults to the current
                UTC time.
        """
        now = now or datetime.now(timezone.utc)
        for name, value, expires, max_age in _parse_set_cookies(response):
            expired = (expires is not None and expires < now) or (
                max_age is not None and max_age <= 0
            )
            with self._lock:
                if expired:
                    self._cookies.pop(name, None)
                else:
                    self._cookies[name] = value


def _parse_set_cookies(
    response: httpx.Response,
) -> list[tuple[str, str, datetime | None, int | None]]:
    """Extract (name, value, expires, max_age) for each Set-Cookie header.

    Only the leading ``name=value`` pair is the cookie. Of the attributes
    that follow, only Expires and Max-Age are read; unknown ones and flags
    such as Partitioned are ignored.
    """
    result: list[tuple[str, str, datetime | None, int | None]] = []
    for header in response.headers.get_list("set-cookie"):
        pairs = parse_ns_headers([header])
        if not pairs:
            continue
        (name, value), *attributes = pairs[0]
        if value is None:
            logger.debug("Ignoring Set-Cookie header without a value: %r", header)
            continue
        attrs = dict(attributes)
        result.append(
            (
                name,
                _unquote(value),
                _parse_expires(attrs.get("expires")),
                _parse_max_age(attrs.get("max-age")),
            )
        )
    return result


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] == '"':
        return value[1:-1]
    return value


def _parse_expires(timestamp: float | None) -> datetime | None:
    """Convert a parsed Expires timestamp. Unparseable dates arrive as None."""
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _parse_max_age(raw: str | None) -> int | None:
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None
