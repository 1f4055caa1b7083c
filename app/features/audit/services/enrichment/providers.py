"""
Third-party enrichment for the local category.

Every provider is optional and independent. A provider that errors, times
out or returns out-of-range values is logged as ``upstream-failed`` and its
fields stay unavailable; it never fails the audit. When several providers
report the same field, the first one in the provider list wins.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol, Sequence
from urllib.parse import urlparse

import httpx

from app.features.audit.schemas.signals import LocalEnrichment
from app.platform.config import Settings, settings
from app.platform.events import UPSTREAM_FAILED, emit_event, engine_logger
from app.platform.exceptions import UpstreamServiceFailure
from app.platform.utils.url_validator import bare_host

logger = engine_logger(__name__)

PERCENT_FIELDS = ("gbp_completeness_percent", "review_response_rate_24h_percent", "ctr_percent")
COUNT_FIELDS = ("local_backlink_domains",)
RATING_FIELD = "rating"
MAX_RATING = 5.0

PLACES_TEXT_SEARCH_URL = "https://maps.googleapis.com/maps/api/place/textsearch/json"
PLACES_DETAILS_URL = "https://maps.googleapis.com/maps/api/place/details/json"
CUSTOM_SEARCH_URL = "https://www.googleapis.com/customsearch/v1"

# Business-profile fields checked for completeness
PROFILE_FIELDS = (
    "name",
    "formatted_address",
    "formatted_phone_number",
    "website",
    "opening_hours",
    "photos",
    "rating",
    "types",
    "business_status",
    "url",
)


class EnrichmentProvider(Protocol):
    name: str

    async def fetch(self, root_url: str) -> Dict[str, Any]:
        ...


def _valid_fields(provider: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    """Known fields with sane values. Anything else is an upstream defect."""
    clean: Dict[str, Any] = {}
    for key, value in payload.items():
        if value is None:
            continue
        if key in PERCENT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= 100:
                raise UpstreamServiceFailure(provider, f"{key} out of range: {value!r}")
            clean[key] = float(value)
        elif key in COUNT_FIELDS:
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise UpstreamServiceFailure(provider, f"{key} is not a count: {value!r}")
            clean[key] = value
        elif key == RATING_FIELD:
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0 <= value <= MAX_RATING:
                raise UpstreamServiceFailure(provider, f"rating out of range: {value!r}")
            clean[key] = float(value)
    return clean


async def _fetch_one(
    provider: EnrichmentProvider,
    root_url: str,
    timeout: float,
    log: logging.Logger,
) -> Optional[Dict[str, Any]]:
    try:
        try:
            payload = await asyncio.wait_for(provider.fetch(root_url), timeout=timeout)
        except UpstreamServiceFailure:
            raise
        except asyncio.TimeoutError as e:
            raise UpstreamServiceFailure(provider.name, f"timeout after {timeout}s") from e
        except Exception as e:
            raise UpstreamServiceFailure(provider.name, f"{type(e).__name__}: {e}") from e
        return _valid_fields(provider.name, payload or {})
    except UpstreamServiceFailure as failure:
        emit_event(
            log,
            UPSTREAM_FAILED,
            f"Enrichment provider {failure.provider} unavailable: {failure.reason}",
            provider=failure.provider,
            reason=failure.reason,
        )
        return None


async def collect_enrichment(
    root_url: str,
    providers: Sequence[EnrichmentProvider],
    timeout: float = settings.ENRICHMENT_TIMEOUT,
    log: Optional[logging.Logger] = None,
) -> LocalEnrichment:
    log = log or logger
    if not providers:
        return LocalEnrichment()

    results = await asyncio.gather(*(_fetch_one(p, root_url, timeout, log) for p in providers))

    merged: Dict[str, Any] = {}
    sources: List[str] = []
    for provider, fields in zip(providers, results):
        if fields is None:
            continue
        contributed = False
        for key, value in fields.items():
            if key not in merged:
                merged[key] = value
                contributed = True
        if contributed:
            sources.append(provider.name)

    return LocalEnrichment(**merged, sources=tuple(sources))


class GooglePlacesProvider:
    """Rating and profile completeness from the Places API, looked up by domain."""

    name = "google_places"

    def __init__(self, api_key: str, client: Optional[httpx.AsyncClient] = None, query: Optional[str] = None):
        self.api_key = api_key
        self.client = client
        self.query = query

    async def fetch(self, root_url: str) -> Dict[str, Any]:
        query = self.query or bare_host(urlparse(root_url).netloc)
        if self.client is not None:
            return await self._lookup(self.client, query)
        async with httpx.AsyncClient(timeout=10.0) as client:
            return await self._lookup(client, query)

    async def _lookup(self, client: httpx.AsyncClient, query: str) -> Dict[str, Any]:
        search = await client.get(PLACES_TEXT_SEARCH_URL, params={"query": query, "key": self.api_key})
        search.raise_for_status()
        data = search.json()
        if data.get("status") != "OK" or not data.get("results"):
            raise UpstreamServiceFailure(self.name, f"no place found for {query!r} ({data.get('status')})")
        place_id = data["results"][0]["place_id"]

        details = await client.get(
            PLACES_DETAILS_URL,
            params={"place_id": place_id, "fields": ",".join(PROFILE_FIELDS), "key": self.api_key},
        )
        details.raise_for_status()
        result = details.json().get("result") or {}
        filled = sum(1 for field in PROFILE_FIELDS if result.get(field))
        return {
            "rating": result.get("rating"),
            "gbp_completeness_percent": round(filled / len(PROFILE_FIELDS) * 100, 2),
        }


class GoogleSearchBacklinksProvider:
    """Distinct external domains mentioning the clinic's domain, via Custom Search."""

    name = "google_search"

    def __init__(self, api_key: str, engine_id: str, client: Optional[httpx.AsyncClient] = None):
        self.api_key = api_key
        self.engine_id = engine_id
        self.client = client

    async def fetch(self, root_url: str) -> Dict[str, Any]:
        if self.client is not None:
            return await self._search(self.client, root_url)
        async with httpx.AsyncClient(timeout=10.0) as client:
            return await self._search(client, root_url)

    async def _search(self, client: httpx.AsyncClient, root_url: str) -> Dict[str, Any]:
        domain = bare_host(urlparse(root_url).netloc)
        response = await client.get(
            CUSTOM_SEARCH_URL,
            params={"key": self.api_key, "cx": self.engine_id, "q": f'"{domain}" -site:{domain}'},
        )
        response.raise_for_status()
        domains = set()
        for item in response.json().get("items", []):
            host = bare_host(urlparse(item.get("link", "")).netloc)
            if host and host != domain:
                domains.add(host)
        return {"local_backlink_domains": len(domains)}


def build_default_providers(config: Settings = settings) -> List[EnrichmentProvider]:
    """Providers whose API keys are configured, in merge-precedence order."""
    providers: List[EnrichmentProvider] = []
    if config.GOOGLE_PLACES_API_KEY:
        providers.append(GooglePlacesProvider(config.GOOGLE_PLACES_API_KEY))
    if config.GOOGLE_SEARCH_API_KEY and config.GOOGLE_SEARCH_ENGINE_ID:
        providers.append(GoogleSearchBacklinksProvider(config.GOOGLE_SEARCH_API_KEY, config.GOOGLE_SEARCH_ENGINE_ID))
    return providers
