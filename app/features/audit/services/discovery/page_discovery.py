"""
Page discovery.

Expands a clinic's root URL into a bounded, deduplicated and filtered list
of pages to audit. Sources, in order: sitemap.xml (or sitemap_index.xml),
the Sitemap: lines of robots.txt, and optionally the links of the homepage
(one hop, never recursive). Discovery never comes back empty: when nothing
is found it falls back to the root URL alone.
"""

import asyncio
import logging
from typing import Dict, List, NamedTuple, Optional, Tuple
from urllib.parse import urldefrag

from app.features.audit.schemas.discovery import (
    DiscoveryOptions,
    DiscoverySource,
    FilterType,
    PageDiscoveryManifest,
)
from app.features.audit.services.extraction.html_utils import attr_text, make_soup
from app.features.audit.services.extraction.robots_extractor import parse_robots_txt
from app.features.audit.services.extraction.sitemap_extractor import parse_sitemap
from app.features.audit.services.fetching.http_fetcher import HtmlFetcher
from app.platform.config import settings
from app.platform.events import DISCOVERY_DEGRADED, emit_event, engine_logger
from app.platform.exceptions import InvalidInput
from app.platform.utils.url_validator import (
    canonical_url,
    is_same_site,
    normalize_audit_key,
    resolve_link,
    site_root,
    validate_url,
)

SITEMAP_PATHS = ("/sitemap.xml", "/sitemap_index.xml")
ROBOTS_PATH = "/robots.txt"
MAX_CHILD_SITEMAPS = 20
SITEMAP_FETCH_CONCURRENCY = 5

FILTER_PATTERNS: Dict[FilterType, Tuple[str, ...]] = {
    FilterType.BLOG: ("/blog", "/news", "/articles", "/статті"),
    FilterType.DOCTORS: ("/doctors", "/team", "/врачи", "/лікарі"),
    FilterType.ARTICLES: ("/article", "/post", "/стаття"),
}

# Where a URL came from; the manifest source is derived from the returned URLs only
ORIGIN_SITEMAP = "sitemap"
ORIGIN_ROBOTS = "robots"
ORIGIN_CRAWL = "crawl"


def matches_filter(url: str, filter_type: FilterType) -> bool:
    if filter_type == FilterType.ALL:
        return True
    lowered = url.lower()
    return any(pattern in lowered for pattern in FILTER_PATTERNS[filter_type])


def source_label(origins: List[str]) -> DiscoverySource:
    """Label describing the strategies that actually contributed returned URLs."""
    has_sitemap = ORIGIN_SITEMAP in origins
    has_robots = ORIGIN_ROBOTS in origins
    has_crawl = ORIGIN_CRAWL in origins
    if (has_sitemap or has_robots) and has_crawl:
        return DiscoverySource.SITEMAP_AND_CRAWL
    if has_sitemap:
        return DiscoverySource.SITEMAP
    if has_robots:
        return DiscoverySource.ROBOTS
    return DiscoverySource.CRAWL


def validate_options(options: DiscoveryOptions) -> None:
    if not 1 <= options.max_pages <= settings.AUDIT_MAX_PAGES_LIMIT:
        raise InvalidInput(
            f"max_pages must be between 1 and {settings.AUDIT_MAX_PAGES_LIMIT}, got {options.max_pages}"
        )


def root_only_manifest(root_url: str) -> PageDiscoveryManifest:
    return PageDiscoveryManifest(
        root_url=root_url,
        candidate_urls=[root_url],
        source=DiscoverySource.CRAWL,
        truncated=False,
        degraded=True,
    )


class DiscoveryRun(NamedTuple):
    """A manifest plus the bodies discovery read on the way (None when unavailable), keyed by URL."""

    manifest: PageDiscoveryManifest
    files: Dict[str, Optional[str]]


class PageDiscoveryService:
    def __init__(
        self,
        fetcher: HtmlFetcher,
        request_timeout: float = settings.AUDIT_REQUEST_TIMEOUT,
        logger: Optional[logging.Logger] = None,
    ):
        self.fetcher = fetcher
        self.request_timeout = request_timeout
        self.logger = engine_logger(__name__, logger)
        # One discovery per (site, options) at a time; overlapping callers share it
        self._in_flight: Dict[str, asyncio.Task] = {}
        self._waiters: Dict[str, int] = {}

    async def discover(self, root_url: str, options: Optional[DiscoveryOptions] = None) -> PageDiscoveryManifest:
        run = await self.discover_with_files(root_url, options)
        return run.manifest

    async def discover_with_files(self, root_url: str, options: Optional[DiscoveryOptions] = None) -> DiscoveryRun:
        """
        Same as ``discover`` but also hands back the robots.txt and sitemap
        bodies that were read, so callers do not fetch them a second time.
        """
        options = options or DiscoveryOptions()
        validate_options(options)
        is_valid, normalized, error = validate_url(root_url)
        if not is_valid:
            raise InvalidInput(error)

        key = f"{normalize_audit_key(normalized)}|{options.model_dump_json()}"
        task = self._in_flight.get(key)
        if task is None:
            task = asyncio.create_task(self._discover(normalized, options))
            self._in_flight[key] = task
            self._waiters[key] = 0
            task.add_done_callback(lambda _: self._forget(key))
        self._waiters[key] += 1
        try:
            return await asyncio.shield(task)
        finally:
            if self._in_flight.get(key) is task:
                self._waiters[key] -= 1
                if self._waiters[key] == 0:
                    # Every caller gave up on a run that is still going
                    task.cancel()

    def in_flight_count(self) -> int:
        return len(self._in_flight)

    def _forget(self, key: str) -> None:
        self._in_flight.pop(key, None)
        self._waiters.pop(key, None)

    async def _discover(self, root_url: str, options: DiscoveryOptions) -> DiscoveryRun:
        root = site_root(root_url)
        found: List[Tuple[str, str]] = []
        fetched_sitemaps: List[str] = []
        files: Dict[str, Optional[str]] = {}

        if options.use_sitemap:
            for path in SITEMAP_PATHS:
                urls = await self._collect_sitemap(root + path, fetched_sitemaps, files)
                if urls:
                    found.extend((url, ORIGIN_SITEMAP) for url in urls)
                    break

        if options.use_robots:
            robots_text = await self._get_text(root + ROBOTS_PATH, files)
            if robots_text:
                _, declared = parse_robots_txt(robots_text)
                for sitemap_url in declared:
                    urls = await self._collect_sitemap(sitemap_url, fetched_sitemaps, files)
                    found.extend((url, ORIGIN_ROBOTS) for url in urls)

        if options.crawl_internal_links:
            homepage = await self._get_text(root_url)
            if homepage:
                # Not capped here: the filter runs first, truncation after
                found.extend((url, ORIGIN_CRAWL) for url in self._internal_links(homepage, root_url))

        candidates, origins = self._dedupe(found, root_url)
        candidates_filtered = []
        origins_filtered = []
        for url, origin in zip(candidates, origins):
            if matches_filter(url, options.filter_type):
                candidates_filtered.append(url)
                origins_filtered.append(origin)

        if not candidates_filtered:
            reason = "no pages matched the filter" if candidates else "sitemap, robots and crawl produced no pages"
            emit_event(
                self.logger,
                DISCOVERY_DEGRADED,
                f"Discovery for {root_url} fell back to the root URL: {reason}",
                root_url=root_url,
                reason=reason,
            )
            return DiscoveryRun(root_only_manifest(root_url), files)

        truncated = len(candidates_filtered) > options.max_pages
        kept = candidates_filtered[: options.max_pages]
        manifest = PageDiscoveryManifest(
            root_url=root_url,
            candidate_urls=kept,
            source=source_label(origins_filtered[: options.max_pages]),
            truncated=truncated,
        )
        return DiscoveryRun(manifest, files)

    async def _get_text(self, url: str, files: Optional[Dict[str, Optional[str]]] = None) -> Optional[str]:
        """Body of a 2xx response, None for anything else. Never raises for fetch trouble."""
        text = None
        try:
            response = await asyncio.wait_for(
                self.fetcher.fetch(url, self.request_timeout), timeout=self.request_timeout
            )
        except Exception as e:
            # Timeouts, network errors and fetcher bugs all mean "unavailable" here
            self.logger.debug(f"Discovery fetch failed for {url}: {type(e).__name__}: {e}")
        else:
            if response.ok:
                text = response.body
        if files is not None:
            files[url] = text
        return text

    async def _collect_sitemap(
        self,
        sitemap_url: str,
        fetched: List[str],
        files: Optional[Dict[str, Optional[str]]] = None,
    ) -> List[str]:
        """Page URLs of a sitemap, following one level of sitemap-index nesting."""
        key = canonical_url(sitemap_url)
        if key in fetched:
            return []
        fetched.append(key)

        document = parse_sitemap(await self._get_text(sitemap_url, files))
        urls = list(document.urls)
        if not document.child_sitemaps:
            return urls

        children = [c for c in document.child_sitemaps if canonical_url(c) not in fetched]
        children = children[:MAX_CHILD_SITEMAPS]
        fetched.extend(canonical_url(c) for c in children)

        semaphore = asyncio.Semaphore(SITEMAP_FETCH_CONCURRENCY)

        async def load_child(child_url: str) -> List[str]:
            async with semaphore:
                # Grandchildren are not followed
                return parse_sitemap(await self._get_text(child_url)).urls

        for child_urls in await asyncio.gather(*(load_child(c) for c in children)):
            urls.extend(child_urls)
        return urls

    @staticmethod
    def _internal_links(html: str, page_url: str) -> List[str]:
        links: List[str] = []
        seen = set()
        for anchor in make_soup(html).find_all("a", href=True):
            absolute = resolve_link(page_url, attr_text(anchor, "href"))
            if not absolute or not is_same_site(absolute, page_url):
                continue
            key = canonical_url(absolute)
            if key in seen:
                continue
            seen.add(key)
            links.append(urldefrag(absolute)[0])
        return links

    @staticmethod
    def _dedupe(found: List[Tuple[str, str]], root_url: str) -> Tuple[List[str], List[str]]:
        """First-seen order; same-site pages only; fragments dropped."""
        urls: List[str] = []
        origins: List[str] = []
        seen = set()
        for url, origin in found:
            url = urldefrag(url.strip())[0]
            if not url or not is_same_site(url, root_url):
                continue
            key = canonical_url(url)
            if key in seen:
                continue
            seen.add(key)
            urls.append(url)
            origins.append(origin)
        return urls, origins
