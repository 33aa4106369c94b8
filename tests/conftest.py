"""Pytest configuration and fixtures for request-pipeline tests.

This file provides:
- RecordingTransport: an httpx.Client over httpx.MockTransport that records
  every request it receives and answers from a scripted handler
- make_client: Client wired to a RecordingTransport with a no-op retry wait
"""

from __future__ import annotations

from typing import Callable, Generator

import httpx
import pytest

from request_pipeline.client import Client
from request_pipeline.context import RequestContext
from request_pipeline.models import ClientConfig

BASE_URL = "http://api.test"

Handler = Callable[[httpx.Request], httpx.Response]


def ok_handler(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, content=b"ok")


class RecordingTransport:
    """httpx.Client whose requests are captured before the handler answers.

    Usage:
        transport = RecordingTransport(lambda req: httpx.Response(201))
        client = Client(transport=transport.client)
        ...
        assert transport.requests[0].method == "POST"
    """

    def __init__(self, handler: Handler = ok_handler) -> None:
        self.handler = handler
        self.requests: list[httpx.Request] = []
        self.bodies: list[bytes] = []
        self.client = httpx.Client(transport=httpx.MockTransport(self._handle))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.bodies.append(request.read())
        return self.handler(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def close(self) -> None:
        self.client.close()


class WaitRecorder:
    """Stand-in for the retry wait that never blocks."""

    def __init__(self, result: bool = True) -> None:
        self.result = result
        self.calls: list[tuple[RequestContext, float]] = []

    def __call__(self, context: RequestContext, seconds: float) -> bool:
        self.calls.append((context, seconds))
        return self.result


@pytest.fixture
def transport() -> Generator[RecordingTransport, None, None]:
    recorder = RecordingTransport()
    yield recorder
    recorder.close()


@pytest.fixture
def wait() -> WaitRecorder:
    return WaitRecorder()


@pytest.fixture
def make_client(transport: RecordingTransport, wait: WaitRecorder) -> Callable[..., Client]:
    """Factory for clients that send through the recording transport."""

    def _make(**config_kwargs) -> Client:
        config_kwargs.setdefault("prefix", BASE_URL)
        return Client(ClientConfig(**config_kwargs), transport=transport.client, wait=wait)

    return _make
