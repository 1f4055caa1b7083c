"""
Typed signal records.

One record kind per extractor. Every field has an explicit default that
stands for "signal absent", so aggregators never have to guess what a
missing value means:

- booleans default to False (not detected)
- counts default to 0
- free text defaults to None (tag missing) or "" (tag present but empty)
- values that depend on a third-party source are Optional and None means
  "unavailable", which is different from 0
"""

from typing import Dict, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class SignalRecord(BaseModel):
    """Common header of every record: which page, which extractor."""
    model_config = ConfigDict(frozen=True)

    kind: str
    url: str

    @property
    def record_id(self) -> str:
        return f"{self.kind}:{self.url}"


class MetaSignals(SignalRecord):
    kind: Literal["meta"] = "meta"
    title_present: bool = False
    title: Optional[str] = None
    title_length: int = 0
    title_optimal: bool = False
    description_present: bool = False
    description: Optional[str] = None
    description_length: int = 0
    description_optimal: bool = False
    canonical: Optional[str] = None
    lang: Optional[str] = None
    has_viewport: bool = False
    noindex: bool = False
    images_total: int = 0
    images_missing_alt: int = 0


class SchemaTypeStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    present: bool = False
    valid: bool = False
    count: int = 0
    found_fields: Tuple[str, ...] = ()
    missing_fields: Tuple[str, ...] = ()


class SchemaSignals(SignalRecord):
    kind: Literal["schema"] = "schema"
    blocks_found: int = 0
    invalid_blocks: int = 0
    types: Dict[str, SchemaTypeStatus] = Field(default_factory=dict)
    valid_types_count: int = 0
    total_score: float = 0.0
    medical_types: Dict[str, bool] = Field(default_factory=dict)
    all_types: Tuple[str, ...] = ()


class RobotsRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_agent: str
    disallow: Tuple[str, ...] = ()
    allow: Tuple[str, ...] = ()


class RobotsSignals(SignalRecord):
    kind: Literal["robots"] = "robots"
    present: bool = False
    empty: bool = False
    rules: Tuple[RobotsRule, ...] = ()
    sitemap_urls: Tuple[str, ...] = ()
    disallow_all: bool = False
    blocks_ai_bots: bool = False
    blocked_ai_bots: Tuple[str, ...] = ()
    has_wildcard_user_agent: bool = False
    problematic_disallow_count: int = 0
    score: float = 0.0
    issues: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()


class LlmsSignals(SignalRecord):
    kind: Literal["llms"] = "llms"
    present: bool = False
    content_length: int = 0
    has_content: bool = False
    oversized: bool = False
    has_organization: bool = False
    has_addresses: bool = False
    has_phone: bool = False
    has_doctors: bool = False
    has_services: bool = False
    has_headings: bool = False
    has_dates: bool = False
    heuristic_score: float = 0.0
    score: float = 0.0
    missing_sections: Tuple[str, ...] = ()
    recommendations: Tuple[str, ...] = ()


class DoctorDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    has_photos: bool = False
    has_bio: bool = False
    has_experience: bool = False
    has_certificates: bool = False

    @property
    def filled(self) -> int:
        return sum([self.has_photos, self.has_bio, self.has_experience, self.has_certificates])


class ContentSignals(SignalRecord):
    """Content-structure signals of one page."""
    kind: Literal["content"] = "content"
    is_doctor_page: bool = False
    is_service_page: bool = False
    is_direction_page: bool = False
    is_blog_page: bool = False
    has_blog_links: bool = False
    has_department_keywords: bool = False
    doctor_links: Tuple[str, ...] = ()
    service_links: Tuple[str, ...] = ()
    direction_links: Tuple[str, ...] = ()
    has_doctor_section_text: bool = False
    word_count: int = 0
    stop_word_count: int = 0
    wateriness: float = 0.0
    doctor_details: DoctorDetails = Field(default_factory=DoctorDetails)
    blog_posts_count: int = 0
    blog_regularly_updated: bool = False
    avg_article_length: int = 0
    nav_link_count: int = 0
    nav_avg_depth: Optional[float] = None
    nav_max_depth: Optional[int] = None
    authority_domains: Tuple[str, ...] = ()
    has_phone: bool = False
    has_address: bool = False
    faq_count: int = 0


class EeatSignals(SignalRecord):
    """Experience / expertise / authority / trust signals of one page."""
    kind: Literal["eeat"] = "eeat"
    is_article: bool = False
    has_google_maps: bool = False
    platforms: Tuple[str, ...] = ()
    social_links: Tuple[str, ...] = ()
    has_privacy_policy: bool = False
    has_licenses: bool = False
    has_contact_page: bool = False
    has_phone: bool = False
    has_address: bool = False
    has_about_page: bool = False
    scientific_sources: Tuple[str, ...] = ()
    community_mentions: Tuple[str, ...] = ()
    has_author_block: bool = False
    author_has_credentials: bool = False
    author_is_medical: bool = False
    has_doctor_profile_link: bool = False
    has_case_studies: bool = False
    experience_figures: Tuple[str, ...] = ()

    @property
    def has_nap(self) -> bool:
        return self.has_phone and self.has_address

    @property
    def scientific_sources_count(self) -> int:
        return len(self.scientific_sources)


class LocalSignals(SignalRecord):
    """Local-SEO signals readable from the site itself."""
    kind: Literal["local"] = "local"
    schema_implemented: bool = False
    schema_functioning: bool = False
    schema_type: Optional[str] = None
    schema_has_name: bool = False
    schema_has_address: bool = False
    schema_has_phone: bool = False
    schema_has_hours: bool = False
    facebook_url: Optional[str] = None
    instagram_url: Optional[str] = None


class LocalEnrichment(BaseModel):
    """
    Third-party local data (business profile, reviews, backlink search).
    None means the source was not configured or failed.
    """
    model_config = ConfigDict(frozen=True)

    gbp_completeness_percent: Optional[float] = None
    review_response_rate_24h_percent: Optional[float] = None
    ctr_percent: Optional[float] = None
    local_backlink_domains: Optional[int] = None
    rating: Optional[float] = None
    sources: Tuple[str, ...] = ()
