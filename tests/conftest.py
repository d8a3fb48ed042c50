from __future__ import annotations

from typing import Any, Dict, List, Tuple, Union

import aiohttp
import pytest


class _DummyResponse:
    def __init__(self, body: str, *, status: int = 200):
        self._body = body
        self.status = status

    async def __aenter__(self) -> "_DummyResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def text(self, encoding: str | None = None, errors: str = "strict") -> str:
        return self._body


Route = Union[str, Tuple[int, str], Exception]


class DummySession:
    """Routes url -> body, (status, body) or an exception to raise"""

    def __init__(self, routes: Dict[str, Route] | None = None):
        self.routes = dict(routes or {})
        self.calls: List[Dict[str, Any]] = []

    @property
    def urls(self) -> List[str]:
        return [c["url"] for c in self.calls]

    def get(self, url: str, **kwargs) -> _DummyResponse:
        self.calls.append({"url": url, **kwargs})
        route = self.routes.get(url)
        if route is None:
            raise aiohttp.ClientConnectionError(f"no route for {url}")
        if isinstance(route, Exception):
            raise route
        if isinstance(route, tuple):
            status, body = route
            return _DummyResponse(body, status=status)
        return _DummyResponse(route)


@pytest.fixture
def dummy_session():
    return DummySession
