"""Tests for RetryExecutor.

Tests cover:
- N retries means exactly N+1 attempts against an always-failing transport
- the final error is the last transport error, unwrapped
- success stops retrying; the wait is called with the retry interval
- responses carried by errors are closed
- body is replayed identically on every attempt and captured
- context cancellation before sending and during the wait
"""

import logging
from unittest.mock import MagicMock

import httpx
import pytest

from request_pipeline.context import RequestCancelledError, RequestContext
from request_pipeline.models import OutboundRequest
from request_pipeline.retry import RetryExecutor

from tests.conftest import RecordingTransport, WaitRecorder


def _failing_transport() -> tuple[RecordingTransport, list[httpx.ConnectError]]:
    errors: list[httpx.ConnectError] = []

    def fail(request: httpx.Request) -> httpx.Response:
        error = httpx.ConnectError(f"connection refused #{len(errors) + 1}", request=request)
        errors.append(error)
        raise error

    return RecordingTransport(fail), errors


class TestRetryAttempts:
    @pytest.mark.parametrize("retry_count", [0, 1, 3])
    def test_attempts_equal_retry_count_plus_one(self, retry_count: int) -> None:
        transport, errors = _failing_transport()
        wait = WaitRecorder()
        executor = RetryExecutor(transport.client, retry_count=retry_count, retry_interval=0.25, wait=wait)

        with pytest.raises(httpx.ConnectError) as exc_info:
            executor.execute(OutboundRequest("GET", "http://h/"))

        assert len(transport.requests) == retry_count + 1
        assert exc_info.value is errors[-1]
        assert [seconds for _, seconds in wait.calls] == [0.25] * retry_count

    def test_success_returns_immediately(self) -> None:
        transport = RecordingTransport()
        wait = WaitRecorder()
        executor = RetryExecutor(transport.client, retry_count=5, wait=wait)

        response = executor.execute(OutboundRequest("GET", "http://h/"))

        assert response.status_code == 200
        assert len(transport.requests) == 1
        assert wait.calls == []
        response.close()

    def test_recovers_after_transient_failures(self) -> None:
        attempts = []

        def flaky(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 3:
                raise httpx.ReadTimeout("timed out", request=request)
            return httpx.Response(201)

        transport = RecordingTransport(flaky)
        executor = RetryExecutor(transport.client, retry_count=2, wait=WaitRecorder())

        response = executor.execute(OutboundRequest("POST", "http://h/", body=b"x"))

        assert response.status_code == 201
        assert len(attempts) == 3

    def test_budget_is_per_call(self) -> None:
        transport, _ = _failing_transport()
        executor = RetryExecutor(transport.client, retry_count=2, wait=WaitRecorder())

        for _ in range(2):
            with pytest.raises(httpx.ConnectError):
                executor.execute(OutboundRequest("GET", "http://h/"))

        assert len(transport.requests) == 6

    def test_non_transport_errors_not_retried(self) -> None:
        transport = MagicMock()
        transport.send.side_effect = RuntimeError("bug")
        executor = RetryExecutor(transport, retry_count=3, wait=WaitRecorder())

        with pytest.raises(RuntimeError):
            executor.execute(OutboundRequest("GET", "http://h/"))

        assert transport.send.call_count == 1

    def test_negative_retry_count_rejected(self) -> None:
        with pytest.raises(ValueError):
            RetryExecutor(MagicMock(), retry_count=-1)

    def test_retry_logged_as_warning(self, caplog) -> None:
        transport, _ = _failing_transport()
        executor = RetryExecutor(transport.client, retry_count=1, wait=WaitRecorder())

        with caplog.at_level(logging.WARNING, logger="request_pipeline.retry"):
            with pytest.raises(httpx.ConnectError):
                executor.execute(OutboundRequest("GET", "http://h/"))

        assert "retrying" in caplog.text


class TestFailedResponseRelease:
    def test_response_on_error_is_closed(self) -> None:
        failed_response = MagicMock(spec=httpx.Response)
        error = httpx.HTTPStatusError("503", request=MagicMock(), response=failed_response)
        transport = MagicMock()
        transport.send.side_effect = error
        executor = RetryExecutor(transport, retry_count=1, wait=WaitRecorder())

        with pytest.raises(httpx.HTTPStatusError):
            executor.execute(OutboundRequest("GET", "http://h/"))

        assert failed_response.close.call_count == 2

    def test_close_failure_logged(self, caplog) -> None:
        failed_response = MagicMock(spec=httpx.Response)
        failed_response.close.side_effect = RuntimeError("socket gone")
        transport = MagicMock()
        transport.send.side_effect = httpx.HTTPStatusError(
            "500", request=MagicMock(), response=failed_response
        )
        executor = RetryExecutor(transport, retry_count=0, wait=WaitRecorder())

        with caplog.at_level(logging.ERROR, logger="request_pipeline.response"):
            with pytest.raises(httpx.HTTPStatusError):
                executor.execute(OutboundRequest("GET", "http://h/"))

        assert "Failed to close response" in caplog.text


class TestBodyReplay:
    def test_same_body_sent_on_every_attempt(self) -> None:
        bodies = []

        def flaky(request: httpx.Request) -> httpx.Response:
            bodies.append(request.read())
            if len(bodies) < 2:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200)

        transport = RecordingTransport(flaky)
        executor = RetryExecutor(transport.client, retry_count=1, wait=WaitRecorder())

        response = executor.execute(OutboundRequest("PUT", "http://h/", body=b"payload"))

        assert bodies == [b"payload", b"payload"]
        assert response.request_body == b"payload"

    def test_body_captured_on_response(self) -> None:
        transport = RecordingTransport()
        executor = RetryExecutor(transport.client)

        response = executor.execute(OutboundRequest("POST", "http://h/", body=bytearray(b"abc")))

        assert response.request_body == b"abc"
        assert transport.bodies == [b"abc"]


class TestCancellation:
    def test_cancelled_context_sends_nothing(self) -> None:
        transport = RecordingTransport()
        context = RequestContext()
        context.cancel()
        executor = RetryExecutor(transport.client, retry_count=3)

        with pytest.raises(RequestCancelledError, match="cancelled"):
            executor.execute(OutboundRequest("GET", "http://h/", context=context))

        assert transport.requests == []

    def test_wait_interrupted_stops_retrying(self) -> None:
        transport, errors = _failing_transport()
        executor = RetryExecutor(transport.client, retry_count=5, retry_interval=10.0, wait=WaitRecorder(result=False))

        with pytest.raises(RequestCancelledError) as exc_info:
            executor.execute(OutboundRequest("GET", "http://h/"))

        assert len(transport.requests) == 1
        assert exc_info.value.__cause__ is errors[0]

    def test_default_wait_respects_deadline(self) -> None:
        """A retry interval longer than the deadline ends at the deadline."""
        transport, _ = _failing_transport()
        context = RequestContext.with_timeout(0.05)
        executor = RetryExecutor(transport.client, retry_count=3, retry_interval=30.0)

        with pytest.raises(RequestCancelledError, match="deadline"):
            executor.execute(OutboundRequest("GET", "http://h/", context=context))

        assert len(transport.requests) == 1
