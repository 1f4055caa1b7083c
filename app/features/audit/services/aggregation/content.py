"""
Content category: site structure, text quality and authority.

Per-page ContentSignals are merged first (distinct linked pages are
counted once, booleans are OR-ed, word counts are summed) and the merged
values go through the partial calculators and the content formula.
"""

from typing import List, Optional, Sequence, Tuple

from app.features.audit.schemas.scores import CategoryScore, Recommendation, Severity
from app.features.audit.schemas.signals import ContentSignals, DoctorDetails
from app.features.audit.services.aggregation.common import (
    RecommendationRule,
    evaluate_rules,
    make_category_score,
)
from app.features.audit.services.scoring import calculators as calc
from app.features.audit.services.scoring.composite import CLINIC_AI_FORMULA, WeightedFormula
from app.platform.config import settings
from app.platform.utils.url_validator import canonical_url

CATEGORY = "content"

STRUCTURE_FORMULA = WeightedFormula(
    "content_structure",
    {
        "directions": 0.10,
        "services": 0.15,
        "doctors": 0.15,
        "architecture": 0.15,
        "blog": 0.10,
    },
    total=0.65,
)

CONTENT_FORMULA = WeightedFormula(
    "content",
    {
        "directions": 0.10,
        "services": 0.15,
        "doctors": 0.15,
        "architecture": 0.15,
        "blog": 0.10,
        "text_quality": 0.20,
        "authority_links": 0.05,
        "faq": 0.05,
        "contacts": 0.05,
    },
)

UNIQUENESS_WEIGHT = 0.75
DRYNESS_WEIGHT = 0.25
WATERINESS_HIGH = 25.0
WATERINESS_ELEVATED = 20.0
UNIQUENESS_WARNING = 90.0


def text_quality_score(uniqueness_percent: float, wateriness_percent: float) -> float:
    return calc.finalize_score(
        calc.uniqueness_credit(uniqueness_percent) * UNIQUENESS_WEIGHT
        + calc.dryness_score(wateriness_percent) * DRYNESS_WEIGHT
    )


def _distinct(pages: Sequence[ContentSignals], links_attr: str, page_flag: str) -> List[str]:
    urls: List[str] = []
    for page in pages:
        candidates = list(getattr(page, links_attr))
        if getattr(page, page_flag):
            candidates.append(canonical_url(page.url))
        for url in candidates:
            if url not in urls:
                urls.append(url)
    return urls


def _merged_doctor_details(pages: Sequence[ContentSignals]) -> DoctorDetails:
    doctor_pages = [p for p in pages if p.is_doctor_page] or list(pages)
    return DoctorDetails(
        has_photos=any(p.doctor_details.has_photos for p in doctor_pages),
        has_bio=any(p.doctor_details.has_bio for p in doctor_pages),
        has_experience=any(p.doctor_details.has_experience for p in doctor_pages),
        has_certificates=any(p.doctor_details.has_certificates for p in doctor_pages),
    )


def _navigation_page(pages: Sequence[ContentSignals], root_url: Optional[str]) -> ContentSignals:
    if root_url:
        root_key = canonical_url(root_url)
        for page in pages:
            if canonical_url(page.url) == root_key:
                return page
    return max(pages, key=lambda p: p.nav_link_count)


def merge_content(pages: Sequence[ContentSignals], root_url: Optional[str] = None) -> dict:
    directions = _distinct(pages, "direction_links", "is_direction_page")
    services = _distinct(pages, "service_links", "is_service_page")
    doctors = _distinct(pages, "doctor_links", "is_doctor_page")
    nav = _navigation_page(pages, root_url)

    total_words = sum(p.word_count for p in pages)
    total_stop = sum(p.stop_word_count for p in pages)
    wateriness = calc.round_score(total_stop / total_words * 100) if total_words else 0.0

    authority_domains: List[str] = []
    for page in pages:
        for domain in page.authority_domains:
            if domain not in authority_domains:
                authority_domains.append(domain)

    return {
        "directions_count": len(directions),
        "has_direction_pages": bool(directions) or any(p.has_department_keywords for p in pages),
        "services_count": len(services),
        "has_service_pages": bool(services),
        "has_doctor_pages": bool(doctors) or any(p.has_doctor_section_text for p in pages),
        "doctor_details": _merged_doctor_details(pages),
        "nav_avg_depth": nav.nav_avg_depth,
        "nav_max_depth": nav.nav_max_depth,
        "nav_link_count": nav.nav_link_count,
        "has_blog": any(p.has_blog_links or p.is_blog_page for p in pages),
        "blog_posts_count": max((p.blog_posts_count for p in pages), default=0),
        "blog_regularly_updated": any(p.blog_regularly_updated for p in pages),
        "wateriness": wateriness,
        "authority_domains": authority_domains,
        "faq_count": max((p.faq_count for p in pages), default=0),
        "has_phone": any(p.has_phone for p in pages),
        "has_address": any(p.has_address for p in pages),
    }


CONTENT_RULES = (
    RecommendationRule(
        "content.wateriness_high",
        Severity.WARNING,
        lambda c: c["wateriness"] >= WATERINESS_HIGH,
        lambda c: f"Wateriness is {c['wateriness']:.1f}%, aim for <25%. Reduce stop words and filler content.",
    ),
    RecommendationRule(
        "content.wateriness_elevated",
        Severity.INFO,
        lambda c: WATERINESS_ELEVATED <= c["wateriness"] < WATERINESS_HIGH,
        lambda c: f"Wateriness is {c['wateriness']:.1f}%, consider reducing it further to <20% for optimal content quality.",
    ),
    RecommendationRule(
        "content.architecture",
        Severity.WARNING,
        lambda c: c["partials"]["architecture"] < 60,
        lambda c: (
            f"Site architecture score is {c['partials']['architecture']:g}. "
            "Improve navigation structure with 2-3 levels of depth for better SEO."
        ),
    ),
    RecommendationRule(
        "content.no_doctor_pages",
        Severity.WARNING,
        lambda c: not c["has_doctor_pages"],
        "No doctor pages detected. Consider adding doctor profiles with education, experience, and certifications.",
    ),
    RecommendationRule(
        "content.no_service_pages",
        Severity.WARNING,
        lambda c: not c["has_service_pages"],
        "No service pages detected. Add dedicated service pages to improve site structure and SEO.",
    ),
    RecommendationRule(
        "content.no_department_pages",
        Severity.INFO,
        lambda c: not c["has_direction_pages"],
        "No department pages detected. Consider adding department-specific landing pages to improve site architecture.",
    ),
    RecommendationRule(
        "content.no_blog",
        Severity.INFO,
        lambda c: not c["has_blog"],
        "No blog section detected. Consider adding a blog with medical articles to improve content marketing and SEO.",
    ),
    RecommendationRule(
        "content.uniqueness",
        Severity.WARNING,
        lambda c: c["uniqueness"] < UNIQUENESS_WARNING,
        lambda c: f"Content uniqueness is {c['uniqueness']:g}%. Ensure content is original and not duplicated from other sources.",
    ),
    RecommendationRule(
        "content.no_authority_links",
        Severity.WARNING,
        lambda c: not c["authority_domains"],
        "No authority links detected. Add links to trusted medical sources (WHO, NIH, CDC, PubMed, etc.) to improve E-E-A-T signals.",
    ),
    RecommendationRule(
        "content.few_authority_links",
        Severity.INFO,
        lambda c: 0 < len(c["authority_domains"]) < 3,
        lambda c: (
            f"Only {len(c['authority_domains'])} authority link(s) found. "
            "Consider adding more links to trusted medical organizations and evidence-based sources."
        ),
    ),
    RecommendationRule(
        "content.no_phone",
        Severity.WARNING,
        lambda c: not c["has_phone"],
        "No valid phone number detected. Add a clickable phone number (tel: link) for better user experience and local SEO.",
    ),
    RecommendationRule(
        "content.no_address",
        Severity.WARNING,
        lambda c: not c["has_address"],
        "No valid physical address detected. Add a complete address with city and street information for local SEO and trust signals.",
    ),
    RecommendationRule(
        "content.no_faq",
        Severity.INFO,
        lambda c: c["faq_count"] == 0,
        "No FAQ section detected. Add an FAQ section with at least 3 questions to improve user experience and potential for featured snippets.",
    ),
    RecommendationRule(
        "content.few_faq",
        Severity.INFO,
        lambda c: 0 < c["faq_count"] < 3,
        lambda c: f"Only {c['faq_count']} FAQ item(s) found. Consider expanding to at least 3-5 FAQs for better coverage.",
    ),
)


def aggregate_content(
    pages: Sequence[ContentSignals],
    uniqueness_percent: Optional[float] = None,
    root_url: Optional[str] = None,
) -> Tuple[CategoryScore, List[Recommendation]]:
    """
    Content category over every fetched page. ``uniqueness_percent`` comes
    from an external plagiarism check; without one the neutral default
    applies. No pages at all means the category is unavailable.
    """
    weight = CLINIC_AI_FORMULA.weight_of(CATEGORY)
    if not pages:
        return make_category_score(CATEGORY, None, weight), []

    uniqueness = calc.ensure_percentage(
        "uniqueness",
        settings.DEFAULT_UNIQUENESS_PERCENT if uniqueness_percent is None else uniqueness_percent,
    )
    merged = merge_content(pages, root_url)

    partials = {
        "directions": calc.directions_score(merged["directions_count"]),
        "services": calc.services_score(merged["services_count"], merged["has_service_pages"]),
        "doctors": calc.doctors_score(merged["has_doctor_pages"], merged["doctor_details"]),
        "architecture": calc.architecture_score(
            merged["nav_avg_depth"], merged["nav_max_depth"], merged["nav_link_count"]
        ),
        "blog": calc.blog_score(
            merged["has_blog"], merged["blog_posts_count"], merged["blog_regularly_updated"]
        ),
        "text_quality": text_quality_score(uniqueness, merged["wateriness"]),
        "authority_links": calc.count_score(len(merged["authority_domains"])),
        "faq": calc.faq_score(merged["faq_count"]),
        "contacts": calc.contacts_score(merged["has_phone"], merged["has_address"]),
    }
    structure = STRUCTURE_FORMULA.compute(partials)
    authority = calc.mean_score([partials["authority_links"], partials["faq"], partials["contacts"]])
    value = CONTENT_FORMULA.compute(partials)

    context = dict(merged, partials=partials, uniqueness=uniqueness)
    recommendations = evaluate_rules(CATEGORY, CONTENT_RULES, context)

    score = make_category_score(
        CATEGORY,
        value,
        weight,
        pages,
        partials=dict(partials, structure=structure, authority=authority),
    )
    return score, recommendations
