from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from inventory_service.main import CSRF_COOKIE, CSRF_HEADER, app
from inventory_service.storage import InMemoryStorage, JsonFileStorage, get_storage


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def file_storage(tmp_path):
    return JsonFileStorage(tmp_path / "storage" / "products.json")


def make_client(storage):
    app.dependency_overrides[get_storage] = lambda: storage
    return TestClient(app)


@pytest.fixture
def anonymous_client(storage):
    """Client that has not loaded the page, so it carries no anti-forgery token."""
    with make_client(storage) as client:
        yield client


@pytest.fixture
def client(storage):
    """Client that loaded the page first and echoes the token like the page script."""
    with make_client(storage) as client:
        client.get("/")
        client.headers[CSRF_HEADER] = client.cookies.get(CSRF_COOKIE)
        yield client


class FixedClock:
    """Hands out strictly increasing ISO timestamps, one second apart."""

    def __init__(self, start="2024-05-01T10:00:00+00:00"):
        self._next = datetime.fromisoformat(start)
        self._step = timedelta(seconds=1)

    def __call__(self):
        value = self._next
        self._next += self._step
        return value.isoformat()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture(autouse=True)
def reset_overrides():
    yield
    app.dependency_overrides.clear()
