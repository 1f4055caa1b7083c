"""
Test configuration and fixtures for the Clinic AI audit API.

Network access is never needed: every fetch goes through ``FakeFetcher``,
which answers from a per-URL script.
"""

import asyncio
from typing import Dict, Generator, List, Union

import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient

from app.features.audit.schemas.fetch import FetchResponse

load_dotenv()

Scripted = Union[FetchResponse, Exception, str, List[Union[FetchResponse, Exception, str]]]


class FakeFetcher:
    """
    HtmlFetcher double. ``routes`` maps a URL to a response, an exception
    to raise, a plain string (served as a 200 body) or a list of those
    consumed one per call. Unknown URLs get a 404.
    """

    def __init__(self, routes: Dict[str, Scripted] = None, delay: float = 0.0, delays: Dict[str, float] = None):
        self.routes = dict(routes or {})
        self.delay = delay
        self.delays = dict(delays or {})
        self.calls: List[str] = []
        self.active = 0
        self.max_active = 0

    async def fetch(self, url: str, timeout: float) -> FetchResponse:
        self.calls.append(url)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            delay = self.delays.get(url, self.delay)
            if delay:
                await asyncio.sleep(delay)
            scripted = self.routes.get(url)
            if isinstance(scripted, list):
                scripted = scripted.pop(0) if len(scripted) > 1 else scripted[0]
            if scripted is None:
                return FetchResponse(status=404)
            if isinstance(scripted, Exception):
                raise scripted
            if isinstance(scripted, str):
                return FetchResponse(status=200, body=scripted, final_url=url)
            return scripted
        finally:
            self.active -= 1

    def call_count(self, url: str) -> int:
        return self.calls.count(url)


@pytest.fixture
def fake_fetcher():
    """Factory: ``fake_fetcher({url: response, ...})``."""
    return FakeFetcher


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from app.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    Create a test client for making HTTP requests.
    A clean TestClient per test keeps dependency overrides isolated.
    """
    with TestClient(test_app) as test_client:
        yield test_client
    test_app.dependency_overrides.clear()
