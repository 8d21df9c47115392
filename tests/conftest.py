"""Root pytest configuration for all tests."""

from __future__ import annotations

import logging
from typing import AsyncIterator

import pytest
import pytest_asyncio

from ricecoder_client.correlator import Correlator
from ricecoder_client.events import EventEmitter
from ricecoder_client.streams import StreamManager

from .helpers import FakeServer, FakeTransport


@pytest.fixture(autouse=True)
def client_log_level(caplog: pytest.LogCaptureFixture) -> None:
    """Capture everything the client logs, down to DEBUG."""
    caplog.set_level(logging.DEBUG, logger="ricecoder_client")


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def correlator(transport: FakeTransport) -> Correlator:
    return Correlator(transport, request_timeout=1000)


@pytest.fixture
def events() -> EventEmitter:
    return EventEmitter()


@pytest.fixture
def streams(correlator: Correlator, events: EventEmitter) -> StreamManager:
    return StreamManager(correlator, events=events)


@pytest_asyncio.fixture
async def server() -> AsyncIterator[FakeServer]:
    """Loopback ricecoder server on an ephemeral port."""
    fake = FakeServer()
    await fake.start()
    yield fake
    await fake.stop()
