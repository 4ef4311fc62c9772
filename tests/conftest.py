import time

import pytest
from fastapi.testclient import TestClient

from app import create_app
from registry import RoomRegistry


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def client(registry):
    app = create_app(relay_mode="rooms", registry=registry)
    # entering the client shares one event loop between all WebSocket sessions
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def flat_client(registry):
    app = create_app(relay_mode="flat", registry=registry)
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def wait_until():
    """Poll `predicate` from the test thread while the app loop catches up."""

    def _wait_until(predicate, timeout=2.0):
        deadline = time.monotonic() + timeout
        while not predicate():
            if time.monotonic() > deadline:
                raise AssertionError("condition not met before timeout")
            time.sleep(0.01)

    return _wait_until
