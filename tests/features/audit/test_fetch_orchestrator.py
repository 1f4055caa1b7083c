import logging
from unittest.mock import MagicMock

import pytest

from app.features.audit.schemas.fetch import FetchResponse
from app.features.audit.services.fetching.fetch_orchestrator import ABANDONED_REASON, FetchOrchestrator
from app.platform.events import FETCH_ABANDONED, FETCH_FAILED
from app.platform.exceptions import InvalidInput, TransientFetchFailure

ROOT = "https://clinic.example"


def _urls(count: int):
    return [f"{ROOT}/page-{i}" for i in range(count)]


def _events(log: MagicMock):
    return [c.kwargs["extra"] for c in log.log.call_args_list]


class TestFetchOrchestrator:
    """Bounded pool with per-URL outcomes"""

    @pytest.mark.asyncio
    async def test_every_url_has_exactly_one_outcome(self, fake_fetcher):
        urls = _urls(10)
        routes = {url: "<html>ok</html>" for url in urls}
        routes[urls[3]] = TransientFetchFailure("connection reset")
        routes[urls[7]] = TransientFetchFailure("connection reset")
        orchestrator = FetchOrchestrator(fake_fetcher(routes), retry_backoff=0)

        result = await orchestrator.fetch_all(urls + [urls[0]], max_concurrent=4)

        succeeded = {page.url for page in result.succeeded}
        failed = {failure.url for failure in result.failed}
        assert len(succeeded) == 8
        assert failed == {urls[3], urls[7]}
        assert succeeded.isdisjoint(failed)
        assert succeeded | failed == set(urls)
        assert all(f.attempts == 2 and f.reason == "connection reset" for f in result.failed)

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried_once(self, fake_fetcher):
        url = f"{ROOT}/doctors"
        fetcher = fake_fetcher({url: [TransientFetchFailure("timeout after 10s"), "<html>doctors</html>"]})

        result = await FetchOrchestrator(fetcher, retry_backoff=0).fetch_all([url])

        assert [page.html for page in result.succeeded] == ["<html>doctors</html>"]
        assert result.failed == []
        assert fetcher.call_count(url) == 2

    @pytest.mark.asyncio
    async def test_http_error_is_final(self, fake_fetcher):
        url = f"{ROOT}/broken"
        log = MagicMock(spec=logging.Logger)
        fetcher = fake_fetcher({url: FetchResponse(status=500)})

        result = await FetchOrchestrator(fetcher, retry_backoff=0, logger=log).fetch_all([url])

        assert result.failed[0].reason == "HTTP 500"
        assert result.failed[0].attempts == 1
        assert fetcher.call_count(url) == 1
        assert _events(log)[0]["event"] == FETCH_FAILED
        assert _events(log)[0]["event_fields"]["url"] == url

    @pytest.mark.asyncio
    async def test_slow_page_times_out(self, fake_fetcher):
        url = f"{ROOT}/slow"
        fetcher = fake_fetcher({url: "<html></html>"}, delays={url: 1.0})

        result = await FetchOrchestrator(fetcher, retry_backoff=0).fetch_all([url], per_request_timeout=0.05)

        assert result.succeeded == []
        assert result.failed[0].reason.startswith("timeout")
        assert result.failed[0].attempts == 2

    @pytest.mark.asyncio
    async def test_unexpected_error_stays_with_its_page(self, fake_fetcher):
        urls = _urls(2)
        fetcher = fake_fetcher({urls[0]: RuntimeError("boom"), urls[1]: "<html></html>"})

        result = await FetchOrchestrator(fetcher, retry_backoff=0).fetch_all(urls)

        assert result.failed[0].reason == "RuntimeError: boom"
        assert fetcher.call_count(urls[0]) == 1
        assert [page.url for page in result.succeeded] == [urls[1]]

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, fake_fetcher):
        urls = _urls(10)
        fetcher = fake_fetcher({url: "<html></html>" for url in urls}, delay=0.02)

        result = await FetchOrchestrator(fetcher).fetch_all(urls, max_concurrent=3)

        assert len(result.succeeded) == 10
        assert fetcher.max_active == 3

    @pytest.mark.asyncio
    async def test_deadline_abandons_unstarted_urls(self, fake_fetcher):
        urls = _urls(6)
        log = MagicMock(spec=logging.Logger)
        fetcher = fake_fetcher({url: "<html></html>" for url in urls}, delay=0.2)
        orchestrator = FetchOrchestrator(fetcher, retry_backoff=0, logger=log)

        result = await orchestrator.fetch_all(urls, max_concurrent=1, per_request_timeout=1.0, audit_timeout=0.3)

        assert [page.url for page in result.succeeded] == [urls[0]]
        assert result.total == 6
        never_started = [f for f in result.failed if f.url in urls[2:]]
        assert all(f.abandoned and f.attempts == 0 and f.reason == ABANDONED_REASON for f in never_started)
        abandoned_event = [e for e in _events(log) if e["event"] == FETCH_ABANDONED]
        assert len(abandoned_event) == 1
        assert set(urls[2:]) <= set(abandoned_event[0]["event_fields"]["urls"])

    @pytest.mark.asyncio
    async def test_empty_input(self, fake_fetcher):
        result = await FetchOrchestrator(fake_fetcher()).fetch_all([])
        assert result.total == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "kwargs",
        [
            {"max_concurrent": 0},
            {"per_request_timeout": 0},
            {"audit_timeout": -1},
        ],
    )
    async def test_invalid_parameters(self, fake_fetcher, kwargs):
        with pytest.raises(InvalidInput):
            await FetchOrchestrator(fake_fetcher()).fetch_all(_urls(1), **kwargs)
