"""Request/response correlation.

Every outbound request gets the next integer id (starting at 1, never reused
for the lifetime of the connection) and a PendingRequest holding the future the
caller awaits plus its deadline timer. A pending request leaves the table in
exactly one way: a matching response, its deadline, caller cancellation, or
the disconnect sweep.
"""

from __future__ import annotations

import asyncio
import functools
from collections import deque
from dataclasses import dataclass
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from ricecoder_client.errors import (
    ConnectionLost,
    ErrorCode,
    RemoteError,
    RequestTimeoutError,
    RicecoderError,
    ValidationError,
)
from ricecoder_client.logging import get_logger
from ricecoder_client.protocol.messages import ErrorObject, JsonRpcMessage
from ricecoder_client.settings.schema import DEFAULT_REQUEST_TIMEOUT
from ricecoder_client.settings.validator import validate_field

log = get_logger("correlator")

# How many timed-out ids are remembered to tell late responses from unknown ones.
EXPIRED_HISTORY = 1024


class MessageSink(Protocol):
    """What the correlator needs from a transport."""

    @property
    def is_connected(self) -> bool: ...

    def send(self, msg: JsonRpcMessage) -> None: ...


@dataclass
class PendingRequest:
    """An issued request awaiting its response."""

    id: int
    method: str
    future: asyncio.Future[Any]
    timeout_ms: int
    timer: asyncio.TimerHandle | None = None


class Correlator:
    """Assigns request ids and resolves futures on matching responses."""

    def __init__(
        self,
        transport: MessageSink,
        *,
        request_timeout: int = DEFAULT_REQUEST_TIMEOUT,
        expired_history: int = EXPIRED_HISTORY,
    ) -> None:
        self._transport = transport
        self._pending: dict[int, PendingRequest] = {}
        self._expired: set[int] = set()
        self._expired_order: deque[int] = deque(maxlen=expired_history)
        self._next_id = 1
        self._request_timeout = DEFAULT_REQUEST_TIMEOUT
        self.request_timeout = request_timeout

    @property
    def request_timeout(self) -> int:
        """Default request deadline in milliseconds."""
        return self._request_timeout

    @request_timeout.setter
    def request_timeout(self, value: int) -> None:
        result = validate_field("requestTimeout", value)
        if not result.valid:
            raise ValidationError(result)
        self._request_timeout = value

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_pending(self, request_id: int) -> bool:
        return request_id in self._pending

    def issue(
        self,
        method: str,
        params: Any = None,
        *,
        timeout: int | None = None,
    ) -> asyncio.Future[Any]:
        """Send a request and return the future of its result.

        The request is registered and written before this returns. Send
        failures are reported through the returned future.

        Args:
            method: JSON-RPC method name.
            params: Optional params payload.
            timeout: Per-request deadline in milliseconds; defaults to
                request_timeout.
        """
        loop = asyncio.get_running_loop()
        timeout_ms = self._request_timeout if timeout is None else timeout

        request_id = self._next_id
        self._next_id += 1

        future: asyncio.Future[Any] = loop.create_future()
        pending = PendingRequest(
            id=request_id, method=method, future=future, timeout_ms=timeout_ms
        )
        self._pending[request_id] = pending
        pending.timer = loop.call_later(timeout_ms / 1000, self._expire, request_id)
        future.add_done_callback(functools.partial(self._discard, request_id))

        log.debug("Request %d: %s", request_id, method)
        try:
            self._transport.send(JsonRpcMessage.request(request_id, method, params))
        except RicecoderError as e:
            self._reject(request_id, e)

        return future

    async def request(
        self,
        method: str,
        params: Any = None,
        *,
        timeout: int | None = None,
    ) -> Any:
        """Send a request and wait for its result.

        Raises:
            RemoteError: The server answered with an error object.
            RequestTimeoutError: No response within the deadline.
            ConnectionLost: The connection closed first.
            RpcConnectionError: Not connected.
        """
        return await self.issue(method, params, timeout=timeout)

    def notify(self, method: str, params: Any = None) -> bool:
        """Send a notification. Never raises; returns whether it was written."""
        if not self._transport.is_connected:
            log.warning("Dropping notification %s: not connected", method)
            return False
        try:
            self._transport.send(JsonRpcMessage.notification(method, params))
        except RicecoderError as e:
            log.warning("Failed to send notification %s: %s", method, e)
            return False
        return True

    def handle_response(self, msg: JsonRpcMessage) -> bool:
        """Resolve the pending request matching msg.id.

        Returns:
            True if a pending request was resolved, False if the response was
            late or unsolicited (both are logged and dropped).
        """
        request_id = msg.id
        # true and 1.0 hash equal to 1 but are not ids this client issued.
        if type(request_id) is not int:
            log.warning("Dropping response with non-integer id: %r", request_id)
            return False

        pending = self._pending.pop(request_id, None)
        if pending is None:
            if request_id in self._expired:
                self._expired.discard(request_id)
                log.debug("Dropping late response for expired request %s", request_id)
            else:
                log.warning("Dropping response with no matching request: id=%r", request_id)
            return False

        if pending.timer is not None:
            pending.timer.cancel()
        if pending.future.done():
            return False

        if msg.error is not None:
            pending.future.set_exception(_remote_error(msg.error))
        else:
            pending.future.set_result(msg.result)
        return True

    def fail_all(self, reason: ConnectionLost) -> int:
        """Reject every pending request with ConnectionLost.

        Returns:
            The number of requests rejected.
        """
        pending = list(self._pending.values())
        self._pending.clear()
        for request in pending:
            if request.timer is not None:
                request.timer.cancel()
            if not request.future.done():
                request.future.set_exception(ConnectionLost(reason.message))
        if pending:
            log.info("Rejected %d pending request(s): %s", len(pending), reason.message)
        return len(pending)

    def _expire(self, request_id: int) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        self._remember_expired(request_id)
        log.warning(
            "Request %d (%s) timed out after %dms",
            request_id,
            pending.method,
            pending.timeout_ms,
        )
        if not pending.future.done():
            pending.future.set_exception(
                RequestTimeoutError(pending.method, request_id, pending.timeout_ms)
            )

    def _remember_expired(self, request_id: int) -> None:
        if len(self._expired_order) == self._expired_order.maxlen:
            self._expired.discard(self._expired_order[0])
        self._expired_order.append(request_id)
        self._expired.add(request_id)

    def _reject(self, request_id: int, error: Exception) -> None:
        pending = self._pending.pop(request_id, None)
        if pending is None:
            return
        if pending.timer is not None:
            pending.timer.cancel()
        if not pending.future.done():
            pending.future.set_exception(error)

    def _discard(self, request_id: int, future: asyncio.Future[Any]) -> None:
        # Runs after any completion; only does work when the caller cancelled.
        pending = self._pending.get(request_id)
        if pending is None or pending.future is not future:
            return
        del self._pending[request_id]
        if pending.timer is not None:
            pending.timer.cancel()
        log.debug("Request %d (%s) cancelled by caller", request_id, pending.method)


def _remote_error(error: Any) -> RemoteError:
    try:
        obj = ErrorObject.model_validate(error)
    except PydanticValidationError:
        return RemoteError(ErrorCode.INTERNAL_ERROR, f"Malformed error response: {error!r}")
    return RemoteError(obj.code, obj.message, obj.data)
