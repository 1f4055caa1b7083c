import asyncio
import logging
from unittest.mock import MagicMock

import httpx
import pytest

from app.features.audit.services.enrichment.providers import (
    GooglePlacesProvider,
    GoogleSearchBacklinksProvider,
    build_default_providers,
    collect_enrichment,
)
from app.platform.config import Settings
from app.platform.events import UPSTREAM_FAILED

ROOT = "https://clinic.example"


class StaticProvider:
    def __init__(self, name, payload=None, error=None, delay=0.0):
        self.name = name
        self.payload = payload or {}
        self.error = error
        self.delay = delay

    async def fetch(self, root_url):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.payload


class TestCollectEnrichment:
    """Merging of independent third-party sources"""

    @pytest.mark.asyncio
    async def test_first_provider_wins(self):
        providers = [
            StaticProvider("places", {"rating": 4.6, "gbp_completeness_percent": 80}),
            StaticProvider("other", {"rating": 3.0, "ctr_percent": 4.2}),
        ]
        enrichment = await collect_enrichment(ROOT, providers)

        assert enrichment.rating == 4.6
        assert enrichment.gbp_completeness_percent == 80.0
        assert enrichment.ctr_percent == 4.2
        assert enrichment.sources == ("places", "other")

    @pytest.mark.asyncio
    async def test_failing_provider_is_dropped(self):
        log = MagicMock(spec=logging.Logger)
        providers = [
            StaticProvider("broken", error=ConnectionError("refused")),
            StaticProvider("search", {"local_backlink_domains": 7}),
        ]
        enrichment = await collect_enrichment(ROOT, providers, log=log)

        assert enrichment.local_backlink_domains == 7
        assert enrichment.sources == ("search",)
        extra = log.log.call_args.kwargs["extra"]
        assert extra["event"] == UPSTREAM_FAILED
        assert extra["event_fields"]["provider"] == "broken"
        assert extra["event_fields"]["reason"] == "ConnectionError: refused"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"ctr_percent": 140},
            {"rating": 7},
            {"local_backlink_domains": -1},
            {"gbp_completeness_percent": "full"},
        ],
    )
    async def test_out_of_range_values_are_rejected(self, payload):
        log = MagicMock(spec=logging.Logger)
        enrichment = await collect_enrichment(ROOT, [StaticProvider("bad", payload)], log=log)

        assert enrichment.sources == ()
        assert log.log.call_args.kwargs["extra"]["event"] == UPSTREAM_FAILED

    @pytest.mark.asyncio
    async def test_slow_provider_times_out(self):
        log = MagicMock(spec=logging.Logger)
        enrichment = await collect_enrichment(
            ROOT, [StaticProvider("slow", {"rating": 5}, delay=1.0)], timeout=0.05, log=log
        )

        assert enrichment.rating is None
        assert log.log.call_args.kwargs["extra"]["event_fields"]["reason"] == "timeout after 0.05s"

    @pytest.mark.asyncio
    async def test_no_providers(self):
        enrichment = await collect_enrichment(ROOT, [])
        assert enrichment.sources == ()
        assert enrichment.rating is None


class TestGoogleProviders:
    @pytest.mark.asyncio
    async def test_places_lookup(self):
        def handler(request):
            if request.url.path.endswith("/textsearch/json"):
                assert request.url.params["query"] == "clinic.example"
                return httpx.Response(200, json={"status": "OK", "results": [{"place_id": "abc"}]})
            assert request.url.params["place_id"] == "abc"
            result = {
                "name": "Family Clinic",
                "formatted_address": "Khreshchatyk 1, Kyiv",
                "website": "https://clinic.example",
                "rating": 4.6,
            }
            return httpx.Response(200, json={"result": result})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            payload = await GooglePlacesProvider("key", client=client).fetch("https://www.clinic.example/")

        assert payload == {"rating": 4.6, "gbp_completeness_percent": 40.0}

    @pytest.mark.asyncio
    async def test_places_without_match_fails(self):
        log = MagicMock(spec=logging.Logger)
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"status": "ZERO_RESULTS"}))

        async with httpx.AsyncClient(transport=transport) as client:
            enrichment = await collect_enrichment(ROOT, [GooglePlacesProvider("key", client=client)], log=log)

        assert enrichment.sources == ()
        assert log.log.call_args.kwargs["extra"]["event_fields"]["provider"] == "google_places"

    @pytest.mark.asyncio
    async def test_backlink_domains(self):
        items = [
            {"link": "https://a.com/review"},
            {"link": "https://www.a.com/other"},
            {"link": "https://b.org/list"},
            {"link": "https://clinic.example/self"},
        ]
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"items": items}))

        async with httpx.AsyncClient(transport=transport) as client:
            payload = await GoogleSearchBacklinksProvider("key", "cx", client=client).fetch(ROOT)

        assert payload == {"local_backlink_domains": 2}

    def test_default_providers_follow_configured_keys(self):
        assert build_default_providers(Settings(GOOGLE_PLACES_API_KEY=None, GOOGLE_SEARCH_API_KEY=None)) == []

        providers = build_default_providers(
            Settings(GOOGLE_PLACES_API_KEY="p", GOOGLE_SEARCH_API_KEY="s", GOOGLE_SEARCH_ENGINE_ID="cx")
        )
        assert [p.name for p in providers] == ["google_places", "google_search"]
