import asyncio
from contextlib import asynccontextmanager
from typing import Dict, List, Tuple

import pytest

from waybackx.workflows.client import WaybackClient


class FakeResponse:
    def __init__(self, status: int, body: bytes, headers: Dict[str, str]) -> None:
        self.status = status
        self.headers = headers
        self._body = body

    async def read(self) -> bytes:
        return self._body


class FakeSession:
    def __init__(self, response: FakeResponse) -> None:
        self.response = response
        self.requests: List[Tuple[str, Dict[str, str]]] = []
        self.closed = False

    @asynccontextmanager
    async def _open(self):
        yield self.response

    def get(self, url: str, headers=None):
        self.requests.append((url, dict(headers or {})))
        return self._open()

    async def close(self) -> None:
        self.closed = True


def test_fetch_cdx_sends_user_agent_and_feeds_limiter() -> None:
    session = FakeSession(
        FakeResponse(200, b"20200101000000 http://example.com/\n", {"X-RateLimit-Remaining": "0"})
    )
    client = WaybackClient(user_agent="WaybackURLsX/1.0", session=session)

    async def scenario():
        async with client:
            return await client.fetch_cdx("http://cdx.test/q", 3, label="example.com")

    outcome = asyncio.run(scenario())

    assert outcome.body == b"20200101000000 http://example.com/\n"
    assert session.requests == [("http://cdx.test/q", {"User-Agent": "WaybackURLsX/1.0"})]
    assert client.limiter.interval == 5.0
    # injected sessions belong to the caller
    assert session.closed is False


def test_get_requires_an_open_session() -> None:
    client = WaybackClient()
    with pytest.raises(RuntimeError):
        client.get("http://cdx.test/q")


def test_owned_session_is_created_and_closed() -> None:
    async def scenario():
        client = WaybackClient(timeout=5, user_agent="agent/1")
        async with client:
            session = client._session
            assert session is not None
            assert session.timeout.total == 5
            assert session.headers.get("User-Agent") == "agent/1"
        return client, session

    client, session = asyncio.run(scenario())

    assert session.closed
    assert client._session is None
