"""Client response wrapper with exactly-once release of the connection."""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class ClientResponse:
    """An httpx response plus a copy of the request body that produced it.

    The caller owns the response and must release it, either with
    ``close()`` or by using it as a context manager:

        with client.get("/items") as resp:
            data = resp.read()

    ``close()`` is safe to call more than once; only the first call reaches
    the underlying connection.
    """

    def __init__(self, response: httpx.Response, request_body: bytes = b"") -> None:
        self._response = response
        self._request_body = request_body
        self._closed = False

    def __enter__(self) -> ClientResponse:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        self.close()

    @property
    def raw(self) -> httpx.Response:
        return self._response

    @property
    def status_code(self) -> int:
        return self._response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self._response.headers

    @property
    def cookies(self) -> httpx.Cookies:
        return self._response.cookies

    @property
    def request_body(self) -> bytes:
        """Bytes that were sent as the request body (for diagnostics/replay)."""
        return self._request_body

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self) -> bytes:
        """Read the full response body."""
        return self._response.read()

    @property
    def text(self) -> str:
        self._response.read()
        return self._response.text

    def close(self) -> None:
        """Release the underlying connection. Close failures are logged only."""
        if self._closed:
            return
        self._closed = True
        close_quietly(self._response)

    def dump(self) -> str:
        """Render the raw request and response for debugging."""
        request = self._response.request
        lines = [f"{request.method} {request.url} HTTP/1.1"]
        lines.extend(f"{k}: {v}" for k, v in request.headers.multi_items())
        lines.append("")
        lines.append(self._request_body.decode("utf-8", errors="replace"))
        lines.append("")
        lines.append(
            f"{self._response.http_version} {self._response.status_code} "
            f"{self._response.reason_phrase}"
        )
        lines.extend(f"{k}: {v}" for k, v in self._response.headers.multi_items())
        lines.append("")
        if not self._closed:
            lines.append(self.text)
        return "\n".join(lines)


def close_quietly(response: httpx.Response) -> None:
    """Close *response*, logging rather than raising on failure."""
    try:
        response.close()
    except Exception:
        logger.exception("Failed to close response for %s", _describe(response))


def _describe(response: httpx.Response) -> str:
    try:
        return f"{response.request.method} {response.request.url}"
    except RuntimeError:
        # Response built without an attached request
        return "<unbound response>"
