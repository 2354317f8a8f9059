import os
import sys
import pytest

# ensure workspace root is on sys.path so our application packages can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from store import client as store_client


@pytest.fixture(autouse=True)
def clear_fallback(monkeypatch):
    """Wipe the in-memory store before and after each test and keep every
    store helper on it, so no test attempts a Redis connection.
    """
    store_client._fallback.clear()
    monkeypatch.setattr(store_client, "_redis_client", None)

    async def no_redis():
        return None

    monkeypatch.setattr(store_client, "get_redis", no_redis)

    from services.investigation_service import investigation_service
    investigation_service.reset()

    yield

    store_client._fallback.clear()
    investigation_service.reset()


# Prevent pytest from attempting to collect any modules inside the engine
# package itself; collection stays focused on the tests directory.

def pytest_ignore_collect(collection_path, config):
    if "engine" in collection_path.parts:
        return True
    return None
