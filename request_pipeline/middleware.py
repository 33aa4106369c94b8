"""Middleware chain - ordered interceptors around the network call.

An interceptor is any callable with the signature

    def interceptor(client, request, chain) -> ClientResponse

It may modify *request*, call ``chain.next(request)`` to run the rest of the
chain, then inspect or replace the result. The terminal handler, which sends
the request with retry, is always the last element.

Calling ``chain.next`` more than once from the same interceptor invocation
runs the remainder of the chain again. The chain does not prevent this;
interceptors that do it (e.g. to re-send after refreshing a token) are
responsible for closing responses they discard.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Sequence

from request_pipeline.models import OutboundRequest
from request_pipeline.response import ClientResponse

if TYPE_CHECKING:
    from request_pipeline.client import Client


Interceptor = Callable[["Client", OutboundRequest, "ChainCursor"], ClientResponse]


class MiddlewareError(Exception):
    """Raised when the chain is advanced past its last element."""


class ChainCursor:
    """Immutable position in an interceptor chain.

    Each ``next`` call hands the following element a new cursor one index
    further, so the index seen by any one interceptor never changes.
    """

    __slots__ = ("_client", "_handlers", "_index")

    def __init__(
        self,
        client: Client,
        handlers: tuple[Interceptor, ...],
        index: int = -1,
    ) -> None:
        self._client = client
        self._handlers = handlers
        self._index = index

    @property
    def index(self) -> int:
        return self._index

    def next(self, request: OutboundRequest) -> ClientResponse:
        """Invoke the next element of the chain and return its response."""
        position = self._index + 1
        if position >= len(self._handlers):
            raise MiddlewareError(
                f"middleware chain exhausted at index {position} "
                f"({len(self._handlers)} handlers)"
            )
        handler = self._handlers[position]
        return handler(self._client, request, ChainCursor(self._client, self._handlers, position))


class MiddlewareChain:
    """Interceptors followed by a terminal handler."""

    def __init__(
        self,
        interceptors: Sequence[Interceptor],
        terminal: Callable[[OutboundRequest], ClientResponse],
    ) -> None:
        def _terminal(client: Client, request: OutboundRequest, chain: ChainCursor) -> ClientResponse:
            return terminal(request)

        self._handlers: tuple[Interceptor, ...] = (*interceptors, _terminal)

    def __len__(self) -> int:
        return len(self._handlers)

    def dispatch(self, client: Client, request: OutboundRequest) -> ClientResponse:
        """Run *request* through the chain from the first interceptor."""
        return ChainCursor(client, self._handlers).next(request)
