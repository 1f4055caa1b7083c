from typing import List, Optional

from pydantic import BaseModel, Field

from app.features.audit.schemas.discovery import DiscoveryOptions, FilterType
from app.features.audit.schemas.scores import AuditResult, VisibilityItem
from app.platform.config import settings


class AuditConfig(BaseModel):
    """Per-run configuration. Defaults come from Settings; bounds are checked by the runner."""
    max_pages: int = settings.AUDIT_MAX_PAGES
    filter_type: FilterType = FilterType.ALL
    max_concurrent: int = settings.AUDIT_MAX_CONCURRENT
    use_sitemap: bool = True
    use_robots: bool = True
    crawl_internal_links: bool = False
    request_timeout: float = settings.AUDIT_REQUEST_TIMEOUT
    audit_timeout: Optional[float] = settings.AUDIT_TIMEOUT

    def discovery_options(self) -> DiscoveryOptions:
        return DiscoveryOptions(
            use_sitemap=self.use_sitemap,
            use_robots=self.use_robots,
            crawl_internal_links=self.crawl_internal_links,
            max_pages=self.max_pages,
            filter_type=self.filter_type,
        )


class AuditRequest(BaseModel):
    url: str
    config: AuditConfig = Field(default_factory=AuditConfig)
    uniqueness_percent: Optional[float] = None
    visibility_items: List[VisibilityItem] = Field(default_factory=list)
    other_score: Optional[float] = None

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://clinic.example",
                "config": {"max_pages": 20, "filter_type": "all", "crawl_internal_links": True},
                "uniqueness_percent": 92,
                "visibility_items": [
                    {"is_visible": True, "position": 2, "total_results": 10, "competitor_score": 60}
                ],
            }
        }


class DiscoverRequest(BaseModel):
    url: str
    options: DiscoveryOptions = Field(default_factory=DiscoveryOptions)


class CompareRequest(BaseModel):
    previous: Optional[AuditResult] = None
    current: AuditResult


class VisibilityScoreRequest(VisibilityItem):
    pass


class CompetitorStatsRequest(BaseModel):
    items: List[VisibilityItem]
    client_domain: Optional[str] = None
