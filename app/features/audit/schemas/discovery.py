from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class FilterType(str, Enum):
    BLOG = "blog"
    DOCTORS = "doctors"
    ARTICLES = "articles"
    ALL = "all"


class DiscoverySource(str, Enum):
    SITEMAP = "sitemap"
    ROBOTS = "robots"
    CRAWL = "crawl"
    SITEMAP_AND_CRAWL = "sitemap+crawl"


class DiscoveryOptions(BaseModel):
    use_sitemap: bool = True
    use_robots: bool = True
    crawl_internal_links: bool = False
    max_pages: int = 50
    filter_type: FilterType = FilterType.ALL


class PageDiscoveryManifest(BaseModel):
    model_config = ConfigDict(frozen=True)

    root_url: str
    candidate_urls: List[str] = Field(default_factory=list)
    source: DiscoverySource = DiscoverySource.CRAWL
    truncated: bool = False
    degraded: bool = False


class SitemapDocument(BaseModel):
    """Parsed sitemap file: page URLs for a urlset, child sitemaps for an index."""
    is_index: bool = False
    urls: List[str] = Field(default_factory=list)
    child_sitemaps: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "is_index": False,
                "urls": ["https://clinic.example/", "https://clinic.example/doctors/"],
                "child_sitemaps": [],
            }
        }
