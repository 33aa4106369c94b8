"""Retry executor - sends one request to the transport with bounded retry.

Total attempts per call are ``retry_count + 1``: the first send is not a
retry. The budget is local to each call.
"""

from __future__ import annotations

import logging
from typing import Callable

import httpx

from request_pipeline.context import RequestCancelledError, RequestContext
from request_pipeline.models import OutboundRequest
from request_pipeline.response import ClientResponse, close_quietly

logger = logging.getLogger(__name__)

# (context, seconds) -> True if the wait completed, False if the context ended it.
WaitFunc = Callable[[RequestContext, float], bool]


def _context_wait(context: RequestContext, seconds: float) -> bool:
    return context.wait(seconds)


class RetryExecutor:
    """Executes an OutboundRequest against an httpx transport.

    Usage:
        executor = RetryExecutor(httpx.Client(), retry_count=2, retry_interval=0.5)
        response = executor.execute(request)
        try:
            ...
        finally:
            response.close()
    """

    def __init__(
        self,
        transport: httpx.Client,
        retry_count: int = 0,
        retry_interval: float = 0.0,
        wait: WaitFunc | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            transport: Client used to send requests.
            retry_count: Retries allowed after the first attempt.
            retry_interval: Seconds to wait between attempts.
            wait: Replacement for the context-aware wait, for tests.
        """
        if retry_count < 0:
            raise ValueError("retry_count must be >= 0")
        self._transport = transport
        self._retry_count = retry_count
        self._retry_interval = retry_interval
        self._wait = wait or _context_wait

    def execute(self, request: OutboundRequest) -> ClientResponse:
        """Send *request*, retrying transport failures.

        The body is buffered once and every attempt sends the same bytes.

        Returns:
            ClientResponse owning the httpx response and a copy of the body.

        Raises:
            httpx.HTTPError: The last transport error once the budget is spent.
            RequestCancelledError: If the context ends before a send or
                during the wait between attempts.
        """
        body = bytes(request.body)
        request.body = body
        context = request.context
        remaining = self._retry_count
        attempt = 0

        while True:
            if context.done():
                raise RequestCancelledError(f"{request.method} {request.url}: {context.reason()}")

            attempt += 1
            logger.debug("Sending %s %s (attempt %d)", request.method, request.url, attempt)
            try:
                http_response = self._transport.send(request.to_httpx())
            except httpx.HTTPError as e:
                failed = _response_of(e)
                if failed is not None:
                    close_quietly(failed)

                if remaining <= 0:
                    raise

                remaining -= 1
                logger.warning(
                    "%s %s failed (%s); retrying in %.3fs, %d retries left",
                    request.method,
                    request.url,
                    e,
                    self._retry_interval,
                    remaining,
                )
                if not self._wait(context, self._retry_interval):
                    raise RequestCancelledError(
                        f"{request.method} {request.url}: {context.reason()} while waiting to retry"
                    ) from e
                continue

            return ClientResponse(http_response, request_body=body)


def _response_of(error: httpx.HTTPError) -> httpx.Response | None:
    """The response a failed send still produced, if any."""
    if isinstance(error, httpx.HTTPStatusError):
        return error.response
    return None
