"""Tests for request/response correlation."""

from __future__ import annotations

import asyncio
import logging

import pytest

from ricecoder_client.correlator import Correlator
from ricecoder_client.errors import (
    ConnectionLost,
    ErrorCode,
    RemoteError,
    RequestTimeoutError,
    RpcConnectionError,
    ValidationError,
)
from ricecoder_client.protocol.messages import JsonRpcMessage

from .helpers import FakeTransport, error_response, response


class TestIssue:
    """Sending requests."""

    @pytest.mark.asyncio
    async def test_ids_start_at_one_and_increase(
        self, correlator: Correlator, transport: FakeTransport
    ) -> None:
        for _ in range(3):
            correlator.issue("ping")
        assert [msg.id for msg in transport.sent] == [1, 2, 3]
        assert correlator.pending_count == 3

    @pytest.mark.asyncio
    async def test_request_is_framed(self, correlator: Correlator, transport: FakeTransport) -> None:
        correlator.issue("completion", {"file": "main.rs", "line": 3})
        assert transport.last().to_dict() == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "completion",
            "params": {"file": "main.rs", "line": 3},
        }

    @pytest.mark.asyncio
    async def test_send_failure_rejects_and_discards(
        self, correlator: Correlator, transport: FakeTransport
    ) -> None:
        """A request that cannot be written fails immediately."""
        transport.is_connected = False
        with pytest.raises(RpcConnectionError, match="Not connected"):
            await correlator.request("hover")
        assert correlator.pending_count == 0


class TestResponses:
    """Matching responses to pending requests."""

    @pytest.mark.asyncio
    async def test_out_of_order_responses(
        self, correlator: Correlator, transport: FakeTransport
    ) -> None:
        """Each future gets the result carrying its own id."""
        futures = [correlator.issue("echo", {"n": n}) for n in range(5)]

        for msg in reversed(transport.sent):
            assert correlator.handle_response(response(msg.id, msg.params["n"]))

        assert await asyncio.gather(*futures) == [0, 1, 2, 3, 4]
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_remote_error(self, correlator: Correlator) -> None:
        future = correlator.issue("definition")
        correlator.handle_response(
            error_response(1, ErrorCode.INVALID_PARAMS, "missing file", {"field": "file"})
        )

        with pytest.raises(RemoteError) as exc_info:
            await future
        assert exc_info.value.code == -32602
        assert exc_info.value.message == "missing file"
        assert exc_info.value.data == {"field": "file"}
        assert str(exc_info.value) == "[-32602] missing file"

    @pytest.mark.asyncio
    async def test_malformed_error_object(self, correlator: Correlator) -> None:
        """An error without code/message still rejects the request."""
        future = correlator.issue("hover")
        correlator.handle_response(JsonRpcMessage(id=1, error={"oops": True}))

        with pytest.raises(RemoteError) as exc_info:
            await future
        assert exc_info.value.code == ErrorCode.INTERNAL_ERROR

    @pytest.mark.asyncio
    async def test_unknown_id_is_dropped(
        self, correlator: Correlator, caplog: pytest.LogCaptureFixture
    ) -> None:
        future = correlator.issue("hover")

        assert correlator.handle_response(response(99, "stray")) is False

        assert not future.done()
        assert "no matching request" in caplog.text
        assert any(r.levelno == logging.WARNING for r in caplog.records)
        future.cancel()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", [True, 1.0])
    async def test_non_integer_id_does_not_match(
        self, correlator: Correlator, caplog: pytest.LogCaptureFixture, bad_id: object
    ) -> None:
        """true and 1.0 compare equal to 1 but must not resolve request 1."""
        future = correlator.issue("hover")

        assert correlator.handle_response(JsonRpcMessage(id=bad_id, result="wrong")) is False

        assert not future.done()
        assert correlator.pending_count == 1
        assert "non-integer id" in caplog.text
        assert correlator.handle_response(response(1, "right"))
        assert await future == "right"

    @pytest.mark.asyncio
    async def test_null_result_resolves(self, correlator: Correlator) -> None:
        future = correlator.issue("shutdown")
        correlator.handle_response(response(1, None))
        assert await future is None


class TestTimeouts:
    """Per-request deadlines."""

    @pytest.mark.asyncio
    async def test_request_times_out(self, correlator: Correlator) -> None:
        with pytest.raises(RequestTimeoutError) as exc_info:
            await correlator.request("slow", timeout=100)

        err = exc_info.value
        assert isinstance(err, TimeoutError)
        assert err.code == ErrorCode.TIMEOUT
        assert err.method == "slow"
        assert err.request_id == 1
        assert err.timeout_ms == 100
        assert correlator.pending_count == 0

    @pytest.mark.asyncio
    async def test_late_response_is_ignored(
        self, correlator: Correlator, caplog: pytest.LogCaptureFixture
    ) -> None:
        """A response after the deadline has no effect."""
        future = correlator.issue("slow", timeout=100)
        with pytest.raises(RequestTimeoutError):
            await future

        caplog.clear()
        assert correlator.handle_response(response(1, "too late")) is False

        late = [r for r in caplog.records if "late response" in r.getMessage()]
        assert late and late[0].levelno == logging.DEBUG
        assert isinstance(future.exception(), RequestTimeoutError)

    @pytest.mark.asyncio
    async def test_expired_ids_are_bounded(
        self, transport: FakeTransport, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Only the most recent timeouts are remembered as expired."""
        correlator = Correlator(transport, request_timeout=100, expired_history=2)
        for _ in range(3):
            with pytest.raises(RequestTimeoutError):
                await correlator.request("slow")

        assert correlator._expired == {2, 3}

        caplog.clear()
        correlator.handle_response(response(1, "too late"))
        correlator.handle_response(response(3, "too late"))

        levels = {r.getMessage(): r.levelno for r in caplog.records}
        assert levels["Dropping response with no matching request: id=1"] == logging.WARNING
        assert levels["Dropping late response for expired request 3"] == logging.DEBUG
        assert correlator._expired == {2}

    @pytest.mark.asyncio
    async def test_response_before_deadline_cancels_timer(self, correlator: Correlator) -> None:
        future = correlator.issue("fast", timeout=100)
        correlator.handle_response(response(1, "ok"))
        assert await future == "ok"

        await asyncio.sleep(0.15)
        assert future.result() == "ok"

    @pytest.mark.asyncio
    async def test_default_timeout_used(self, transport: FakeTransport) -> None:
        correlator = Correlator(transport, request_timeout=100)
        with pytest.raises(RequestTimeoutError) as exc_info:
            await correlator.request("slow")
        assert exc_info.value.timeout_ms == 100

    @pytest.mark.parametrize("value", [99, 300001, 0, -5, "5000", True])
    def test_invalid_default_timeout_rejected(
        self, transport: FakeTransport, value: object
    ) -> None:
        with pytest.raises(ValidationError):
            Correlator(transport, request_timeout=value)  # type: ignore[arg-type]

    def test_timeout_bounds_accepted(self, correlator: Correlator) -> None:
        correlator.request_timeout = 100
        assert correlator.request_timeout == 100
        correlator.request_timeout = 300000
        assert correlator.request_timeout == 300000

    def test_rejected_timeout_keeps_previous(self, correlator: Correlator) -> None:
        with pytest.raises(ValidationError):
            correlator.request_timeout = 50
        assert correlator.request_timeout == 1000


class TestCancellation:
    """Caller-side cancellation."""

    @pytest.mark.asyncio
    async def test_cancelled_caller_removes_entry(self, correlator: Correlator) -> None:
        task = asyncio.create_task(correlator.request("hover"))
        await asyncio.sleep(0)
        assert correlator.pending_count == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert correlator.pending_count == 0
        assert correlator.handle_response(response(1, "x")) is False


class TestFailAll:
    """Disconnect sweep."""

    @pytest.mark.asyncio
    async def test_every_pending_request_rejected_once(self, correlator: Correlator) -> None:
        futures = [correlator.issue("m", timeout=100) for _ in range(3)]

        assert correlator.fail_all(ConnectionLost("Connection closed by server")) == 3
        assert correlator.pending_count == 0

        for future in futures:
            err = future.exception()
            assert isinstance(err, ConnectionLost)
            assert err.message == "Connection closed by server"

        # Timers were cancelled: nothing fires after the deadline.
        await asyncio.sleep(0.15)
        assert all(isinstance(f.exception(), ConnectionLost) for f in futures)

    @pytest.mark.asyncio
    async def test_fail_all_when_empty(self, correlator: Correlator) -> None:
        assert correlator.fail_all(ConnectionLost("gone")) == 0


class TestNotify:
    """Fire-and-forget notifications."""

    def test_notify_sends(self, correlator: Correlator, transport: FakeTransport) -> None:
        assert correlator.notify("didOpen", {"file": "a.rs"}) is True
        assert transport.last().to_dict() == {
            "jsonrpc": "2.0",
            "method": "didOpen",
            "params": {"file": "a.rs"},
        }

    def test_notify_disconnected_is_noop(
        self, correlator: Correlator, transport: FakeTransport, caplog: pytest.LogCaptureFixture
    ) -> None:
        transport.is_connected = False
        assert correlator.notify("didOpen") is False
        assert transport.sent == []
        assert "not connected" in caplog.text

    def test_notify_send_failure_swallowed(
        self, correlator: Correlator, transport: FakeTransport
    ) -> None:
        transport.fail_methods.add("didSave")
        assert correlator.notify("didSave") is False
