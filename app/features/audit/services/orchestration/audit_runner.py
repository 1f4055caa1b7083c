"""
End-to-end audit of one clinic site.

discover pages -> fetch them (bounded pool) -> extract signals per page ->
aggregate categories -> composite score. Aggregation starts only once the
whole fetch batch has resolved, so scores are reproducible for a given
set of fetched pages.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from app.features.audit.schemas.audit import AuditConfig
from app.features.audit.schemas.fetch import FetchBatchResult, FetchFailure
from app.features.audit.schemas.scores import AuditResult, CategoryScore, Recommendation, VisibilityItem
from app.features.audit.schemas.signals import LocalEnrichment, MetaSignals
from app.features.audit.services.aggregation.common import make_category_score
from app.features.audit.services.aggregation.content import aggregate_content
from app.features.audit.services.aggregation.eeat import aggregate_eeat
from app.features.audit.services.aggregation.local import aggregate_local
from app.features.audit.services.aggregation.technical import aggregate_technical
from app.features.audit.services.discovery.page_discovery import (
    ROBOTS_PATH,
    PageDiscoveryService,
    root_only_manifest,
    validate_options,
)
from app.features.audit.services.enrichment.providers import EnrichmentProvider, collect_enrichment
from app.features.audit.services.extraction.content_extractor import extract_content_signals
from app.features.audit.services.extraction.eeat_extractor import extract_eeat_signals
from app.features.audit.services.extraction.llms_extractor import extract_llms_signals
from app.features.audit.services.extraction.local_extractor import extract_local_signals
from app.features.audit.services.extraction.meta_extractor import extract_meta_signals
from app.features.audit.services.extraction.robots_extractor import extract_robots_signals
from app.features.audit.services.extraction.schema_extractor import extract_schema_signals
from app.features.audit.services.extraction.sitemap_extractor import parse_sitemap
from app.features.audit.services.fetching.fetch_orchestrator import FetchOrchestrator
from app.features.audit.services.fetching.http_fetcher import HtmlFetcher
from app.features.audit.services.scoring.calculators import ensure_percentage, mean_score
from app.features.audit.services.scoring.composite import CLINIC_AI_FORMULA, OTHER_BASELINE, CompositeScoreEngine
from app.features.audit.services.scoring.visibility import (
    calculate_average_position,
    calculate_rank_position_score,
    calculate_visibility_rate,
    score_visibility_item,
)
from app.platform.config import settings
from app.platform.events import FETCH_ABANDONED, emit_event, engine_logger
from app.platform.exceptions import InvalidInput
from app.platform.utils.url_validator import canonical_url, normalize_audit_key, site_root, validate_url

MAX_CONCURRENT_LIMIT = 20
CATEGORY_ORDER = ("tech", "content", "trust", "local", "visibility", "other")
LLMS_PATH = "/llms.txt"
SITEMAP_PATH = "/sitemap.xml"


def validate_config(config: AuditConfig) -> None:
    validate_options(config.discovery_options())
    if not 1 <= config.max_concurrent <= MAX_CONCURRENT_LIMIT:
        raise InvalidInput(f"max_concurrent must be between 1 and {MAX_CONCURRENT_LIMIT}, got {config.max_concurrent}")
    if config.request_timeout <= 0:
        raise InvalidInput(f"request_timeout must be positive, got {config.request_timeout}")
    if config.audit_timeout is not None and config.audit_timeout <= 0:
        raise InvalidInput(f"audit_timeout must be positive, got {config.audit_timeout}")


def visibility_category(items: Sequence[VisibilityItem]) -> CategoryScore:
    weight = CLINIC_AI_FORMULA.weight_of("visibility")
    if not items:
        return make_category_score("visibility", None, weight)
    breakdowns = [score_visibility_item(item) for item in items]
    rate = calculate_visibility_rate(len(items), sum(1 for item in items if item.is_visible))
    partials = {
        "visibility_rate": rate,
        "average_item_score": mean_score(b.score for b in breakdowns),
        "rank_position_score": calculate_rank_position_score(calculate_average_position(items)),
    }
    return make_category_score("visibility", rate, weight, partials=partials)


def other_category(other_score: Optional[float]) -> CategoryScore:
    weight = CLINIC_AI_FORMULA.weight_of("other")
    if other_score is None:
        return make_category_score("other", OTHER_BASELINE, weight, available=False)
    return make_category_score("other", ensure_percentage("other score", other_score), weight)


class AuditRunner:
    def __init__(
        self,
        fetcher: HtmlFetcher,
        providers: Sequence[EnrichmentProvider] = (),
        engine: Optional[CompositeScoreEngine] = None,
        discovery: Optional[PageDiscoveryService] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.fetcher = fetcher
        self.providers = list(providers)
        self.engine = engine or CompositeScoreEngine()
        self.logger = engine_logger(__name__, logger)
        self.discovery = discovery or PageDiscoveryService(fetcher, logger=logger)
        self.orchestrator = FetchOrchestrator(fetcher, logger=logger)

    async def run(
        self,
        root_url: str,
        config: Optional[AuditConfig] = None,
        uniqueness_percent: Optional[float] = None,
        visibility_items: Sequence[VisibilityItem] = (),
        other_score: Optional[float] = None,
    ) -> AuditResult:
        config = config or AuditConfig()
        validate_config(config)
        is_valid, url, error = validate_url(root_url)
        if not is_valid:
            raise InvalidInput(error)
        if uniqueness_percent is not None:
            ensure_percentage("uniqueness", uniqueness_percent)

        # Category values that depend only on caller input are checked before any I/O
        visibility = visibility_category(list(visibility_items))
        other = other_category(other_score)

        started_at = datetime.now(timezone.utc)
        loop = asyncio.get_running_loop()
        # The audit deadline covers discovery, the site files and the page batch
        deadline = loop.time() + config.audit_timeout if config.audit_timeout is not None else None

        def remaining() -> Optional[float]:
            return None if deadline is None else max(deadline - loop.time(), 0.0)

        try:
            manifest, files = await asyncio.wait_for(
                self.discovery.discover_with_files(url, config.discovery_options()),
                timeout=remaining(),
            )
        except asyncio.TimeoutError:
            emit_event(
                self.logger,
                FETCH_ABANDONED,
                f"Audit deadline reached during discovery of {url}, auditing the root URL only",
                urls=[url],
                stage="discovery",
            )
            manifest, files = root_only_manifest(url), {}

        root = site_root(url)
        site_files = [root + ROBOTS_PATH, root + LLMS_PATH, root + SITEMAP_PATH]
        (robots_text, llms_text, sitemap_text), enrichment = await asyncio.gather(
            asyncio.gather(*(self._site_file(u, files, config.request_timeout, remaining) for u in site_files)),
            self._enrichment(url, remaining),
        )

        budget = remaining()
        batch = await self.orchestrator.fetch_all(
            self._page_urls(url, manifest.candidate_urls),
            max_concurrent=config.max_concurrent,
            per_request_timeout=config.request_timeout,
            audit_timeout=None if budget is None else max(budget, 0.001),
        )

        robots = extract_robots_signals(robots_text, root + ROBOTS_PATH)
        llms = extract_llms_signals(llms_text, root + LLMS_PATH)
        sitemap_doc = parse_sitemap(sitemap_text)
        sitemap_present = bool(sitemap_doc.urls or sitemap_doc.child_sitemaps or robots.sitemap_urls)

        pages, failed = self._extract_pages(batch, started_at)
        homepage_meta = self._homepage_meta(pages["meta"], url)
        trusted_links = {d for page in pages["content"] for d in page.authority_domains}

        tech, tech_recs = aggregate_technical(
            url,
            robots,
            llms,
            sitemap_present,
            homepage_meta=homepage_meta,
            schemas=pages["schema"],
            trusted_link_count=len(trusted_links),
        )
        content, content_recs = aggregate_content(pages["content"], uniqueness_percent, root_url=url)
        trust, trust_recs = aggregate_eeat(pages["eeat"], [f.url for f in failed], enrichment)
        local, local_recs = aggregate_local(pages["local"], enrichment)

        categories: Dict[str, CategoryScore] = {
            "tech": tech,
            "content": content,
            "trust": trust,
            "local": local,
            "visibility": visibility,
            "other": other,
        }
        recommendations: List[Recommendation] = tech_recs + content_recs + trust_recs + local_recs

        return AuditResult(
            root_url=url,
            audit_key=normalize_audit_key(url),
            categories={name: categories[name] for name in CATEGORY_ORDER},
            composite=self.engine.from_categories(categories),
            recommendations=recommendations,
            created_at=started_at,
            discovery=manifest,
            pages_succeeded=len(pages["meta"]),
            pages_failed=failed,
        )

    @staticmethod
    def _page_urls(root_url: str, candidates: Sequence[str]) -> List[str]:
        """Homepage first, then the discovered pages, each normalized URL once."""
        urls: List[str] = []
        seen = set()
        for url in [root_url, *candidates]:
            key = canonical_url(url)
            if key not in seen:
                seen.add(key)
                urls.append(url)
        return urls

    async def _site_file(
        self,
        url: str,
        known: Dict[str, Optional[str]],
        request_timeout: float,
        remaining: Callable[[], Optional[float]],
    ) -> Optional[str]:
        """robots.txt, llms.txt or sitemap.xml: reused from discovery when it already read it."""
        if url in known:
            return known[url]
        budget = remaining()
        if budget is not None and budget <= 0:
            emit_event(self.logger, FETCH_ABANDONED, f"Audit deadline reached, skipped {url}", urls=[url])
            return None
        return await self._get_text(url, request_timeout if budget is None else min(request_timeout, budget))

    async def _enrichment(self, url: str, remaining: Callable[[], Optional[float]]) -> LocalEnrichment:
        budget = remaining()
        if not self.providers or budget is None:
            return await collect_enrichment(url, self.providers, log=self.logger)
        if budget <= 0:
            emit_event(self.logger, FETCH_ABANDONED, f"Audit deadline reached, enrichment skipped for {url}", urls=[])
            return LocalEnrichment()
        timeout = min(settings.ENRICHMENT_TIMEOUT, budget)
        return await collect_enrichment(url, self.providers, timeout=timeout, log=self.logger)

    async def _get_text(self, url: str, timeout: float) -> Optional[str]:
        try:
            response = await asyncio.wait_for(self.fetcher.fetch(url, timeout), timeout=timeout)
        except Exception as e:
            # Any fetch trouble just means the file is unavailable
            self.logger.debug(f"Could not fetch {url}: {type(e).__name__}: {e}")
            return None
        return response.body if response.ok else None

    def _extract_pages(self, batch: FetchBatchResult, reference: datetime) -> Tuple[dict, List[FetchFailure]]:
        pages: Dict[str, list] = {"meta": [], "schema": [], "content": [], "eeat": [], "local": []}
        failed = list(batch.failed)
        for page in batch.succeeded:
            try:
                extracted = (
                    extract_meta_signals(page.html, page.url),
                    extract_schema_signals(page.html, page.url),
                    extract_content_signals(page.html, page.url, reference),
                    extract_eeat_signals(page.html, page.url),
                    extract_local_signals(page.html, page.url),
                )
            except Exception as e:
                self.logger.warning(f"Could not parse {page.url}: {e}")
                failed.append(FetchFailure(url=page.url, reason=f"unparseable page: {e}"))
                continue
            for key, record in zip(("meta", "schema", "content", "eeat", "local"), extracted):
                pages[key].append(record)
        return pages, failed

    @staticmethod
    def _homepage_meta(metas: Sequence[MetaSignals], root_url: str) -> Optional[MetaSignals]:
        root_key = canonical_url(root_url)
        return next((m for m in metas if canonical_url(m.url) == root_key), None)
