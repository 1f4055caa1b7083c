from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.features.audit.schemas.audit import (
    AuditRequest,
    CompareRequest,
    CompetitorStatsRequest,
    DiscoverRequest,
    VisibilityScoreRequest,
)
from app.features.audit.services.discovery.page_discovery import PageDiscoveryService
from app.features.audit.services.enrichment.providers import build_default_providers
from app.features.audit.services.fetching.http_fetcher import HtmlFetcher
from app.features.audit.services.orchestration.audit_runner import AuditRunner
from app.features.audit.services.scoring.calculators import get_score_badge
from app.features.audit.services.scoring.visibility import (
    aggregate_competitor_stats,
    get_visibility_rating,
    score_visibility_item,
)
from app.features.audit.services.trend.comparison import compare
from app.features.audit.services.trend.history import (
    AuditHistoryStore,
    InMemoryAuditHistoryStore,
    load_comparison,
)
from app.platform.exceptions import InvalidInput
from app.platform.logger import get_logger
from app.platform.response import api_response
from app.platform.utils.url_validator import validate_url

logger = get_logger("audit_routes")

router = APIRouter(prefix="/audits", tags=["audits"])

_history_store = InMemoryAuditHistoryStore()


def get_fetcher(request: Request) -> HtmlFetcher:
    """The app-wide pooled HTTP client opened in the lifespan handler."""
    return request.app.state.fetcher


def get_discovery_service(request: Request, fetcher: HtmlFetcher = Depends(get_fetcher)) -> PageDiscoveryService:
    """
    One discovery service per fetcher, kept on the app, so overlapping
    requests for the same site share a single discovery run.
    """
    service = getattr(request.app.state, "discovery", None)
    if service is None or service.fetcher is not fetcher:
        service = PageDiscoveryService(fetcher, logger=logger)
        request.app.state.discovery = service
    return service


def get_history_store() -> AuditHistoryStore:
    return _history_store


@router.post("")
async def run_audit(
    data: AuditRequest,
    fetcher: HtmlFetcher = Depends(get_fetcher),
    discovery: PageDiscoveryService = Depends(get_discovery_service),
    store: AuditHistoryStore = Depends(get_history_store),
):
    """
    Run a full audit of one clinic site.

    Discovers pages, fetches them through a bounded pool, scores every
    category and rolls them into the composite score. Pages that failed to
    load are listed in ``pages_failed`` instead of failing the request.
    """
    logger.info(f"Starting audit for URL: {data.url}")
    runner = AuditRunner(fetcher, providers=build_default_providers(), discovery=discovery, logger=logger)
    try:
        result = await runner.run(
            data.url,
            data.config,
            uniqueness_percent=data.uniqueness_percent,
            visibility_items=data.visibility_items,
            other_score=data.other_score,
        )
    except InvalidInput:
        raise
    except Exception as e:
        logger.error(f"Critical internal error auditing {data.url}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred while processing the audit.",
        )

    await store.save(result)
    logger.info(
        f"Audit finished for {result.root_url}: composite={result.composite}, "
        f"pages ok={result.pages_succeeded}, failed={len(result.pages_failed)}"
    )
    return api_response(data=result, message="Website audited", status_code=status.HTTP_200_OK)


@router.post("/discover")
async def discover_pages(
    data: DiscoverRequest,
    discovery: PageDiscoveryService = Depends(get_discovery_service),
):
    """Candidate pages for an audit, with the source they came from."""
    is_valid, url, error = validate_url(data.url)
    if not is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error)

    manifest = await discovery.discover(url, data.options)
    return api_response(
        data=manifest,
        message=f"Discovered {len(manifest.candidate_urls)} pages",
        status_code=status.HTTP_200_OK,
    )


@router.post("/compare")
async def compare_audits(data: CompareRequest):
    result = compare(data.previous, data.current)
    return api_response(data=result, message=result.summary, status_code=status.HTTP_200_OK)


@router.get("/history")
async def audit_history(
    url: str = Query(..., description="Site whose last two audits are compared"),
    store: AuditHistoryStore = Depends(get_history_store),
):
    result = await load_comparison(store, url)
    return api_response(data=result, message=result.summary, status_code=status.HTTP_200_OK)


@router.post("/visibility-score")
async def visibility_score(data: VisibilityScoreRequest):
    breakdown = score_visibility_item(data)
    return api_response(
        data={
            **breakdown.model_dump(),
            "rating": get_visibility_rating(breakdown.score),
            "badge": get_score_badge(breakdown.score),
        },
        message="Visibility score calculated",
        status_code=status.HTTP_200_OK,
    )


@router.post("/competitors")
async def competitor_stats(data: CompetitorStatsRequest):
    points = aggregate_competitor_stats(data.items, data.client_domain)
    return api_response(
        data=[p.model_dump() for p in points],
        message=f"{len(points)} competitors found",
        status_code=status.HTTP_200_OK,
    )
