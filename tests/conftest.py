import httpx
import pytest
from fastapi.testclient import TestClient

from hlsrelay import create_app
from hlsrelay.config import Settings


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def make_client():
    """Build a TestClient whose upstream traffic goes to a MockTransport handler."""
    opened = []

    def _make(handler, **settings):
        upstream = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        app = create_app(Settings(**settings), client=upstream)
        client = TestClient(app)
        client.__enter__()
        opened.append(client)
        return client

    yield _make

    for client in opened:
        client.__exit__(None, None, None)
