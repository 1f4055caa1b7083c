"""
Trust category (E-E-A-T).

Site-wide flags are OR-ed over every fetched page. Authorship and source
ratios are computed over article pages only; article pages that failed to
fetch still count in the denominator, so lost pages lower the ratio instead
of disappearing from it. With no article pages those ratios are absent.
"""

from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from app.features.audit.schemas.scores import CategoryScore, Recommendation, Severity
from app.features.audit.schemas.signals import EeatSignals, LocalEnrichment
from app.features.audit.services.aggregation.common import (
    RecommendationRule,
    evaluate_rules,
    make_category_score,
)
from app.features.audit.services.extraction.eeat_extractor import (
    ARTICLE_URL_MARKERS,
    PLATFORM_PATTERNS,
    SOCIAL_PATTERNS,
)
from app.features.audit.services.scoring import calculators as calc
from app.features.audit.services.scoring.composite import CLINIC_AI_FORMULA

CATEGORY = "trust"

AUTHORS_WARNING_PERCENT = 80.0
CREDENTIALS_WARNING_PERCENT = 80.0
SOURCES_WARNING_PERCENT = 70.0

PLATFORM_COUNT = len(set(PLATFORM_PATTERNS.values()))
SOCIAL_COUNT = len(set(SOCIAL_PATTERNS.values()))


def _flag(value: bool) -> float:
    return 100.0 if value else 0.0


def looks_like_article(url: str) -> bool:
    path = urlparse(url).path.lower()
    if not path.endswith("/"):
        path += "/"
    return any(marker in path for marker in ARTICLE_URL_MARKERS)


def article_metrics(pages: Sequence[EeatSignals], failed_urls: Sequence[str] = ()) -> Optional[Dict[str, float]]:
    """Authorship and sources percentages over article pages, None without any."""
    articles = [p for p in pages if p.is_article]
    missing = sum(1 for url in failed_urls if looks_like_article(url))
    total = len(articles) + missing
    if total == 0:
        return None
    return {
        "total_articles": total,
        "authors_percent": calc.ratio_percent(sum(1 for p in articles if p.has_author_block), total),
        "credentials_percent": calc.ratio_percent(sum(1 for p in articles if p.author_has_credentials), total),
        "medical_authors_percent": calc.ratio_percent(sum(1 for p in articles if p.author_is_medical), total),
        "sources_percent": calc.ratio_percent(sum(1 for p in articles if p.scientific_sources), total),
    }


def _union(pages: Sequence[EeatSignals], attr: str) -> List[str]:
    found: List[str] = []
    for page in pages:
        for value in getattr(page, attr):
            if value not in found:
                found.append(value)
    return found


def merge_eeat(pages: Sequence[EeatSignals]) -> dict:
    return {
        "platforms": _union(pages, "platforms"),
        "social_links": _union(pages, "social_links"),
        "scientific_sources": _union(pages, "scientific_sources"),
        "community_mentions": _union(pages, "community_mentions"),
        "experience_figures": _union(pages, "experience_figures"),
        "has_google_maps": any(p.has_google_maps for p in pages),
        "has_privacy_policy": any(p.has_privacy_policy for p in pages),
        "has_licenses": any(p.has_licenses for p in pages),
        "has_contact_page": any(p.has_contact_page for p in pages),
        "has_nap": any(p.has_nap for p in pages),
        "has_about_page": any(p.has_about_page for p in pages),
        "has_doctor_profile_link": any(p.has_doctor_profile_link for p in pages),
        "has_author_credentials": any(p.author_has_credentials for p in pages),
        "has_case_studies": any(p.has_case_studies for p in pages),
        "has_article_without_author": any(p.is_article and not p.has_author_block for p in pages),
    }


def sub_scores(merged: dict, articles: Optional[Dict[str, float]], rating: Optional[float]) -> Dict[str, Optional[float]]:
    experience = calc.mean_score([
        _flag(merged["has_case_studies"]),
        _flag(bool(merged["experience_figures"])),
    ])
    expertise_parts = [_flag(merged["has_doctor_profile_link"])]
    if articles is not None:
        expertise_parts += [
            articles["authors_percent"],
            articles["credentials_percent"],
            articles["medical_authors_percent"],
        ]
    else:
        expertise_parts.append(_flag(merged["has_author_credentials"]))
    authority_parts = [
        calc.count_score(len(merged["scientific_sources"])),
        _flag(bool(merged["community_mentions"])),
        calc.ratio_percent(len(merged["platforms"]), PLATFORM_COUNT),
        calc.ratio_percent(len(merged["social_links"]), SOCIAL_COUNT),
    ]
    if articles is not None:
        authority_parts.append(articles["sources_percent"])
    trust_parts = [
        _flag(merged["has_privacy_policy"]),
        _flag(merged["has_licenses"]),
        _flag(merged["has_contact_page"]),
        _flag(merged["has_nap"]),
        _flag(merged["has_about_page"]),
    ]
    if rating is not None:
        trust_parts.append(calc.rating_score(rating))
    return {
        "experience": experience,
        "expertise": calc.mean_score(expertise_parts),
        "authority": calc.mean_score(authority_parts),
        "trust": calc.mean_score(trust_parts),
    }


EEAT_RULES = (
    RecommendationRule(
        "trust.no_google_maps",
        Severity.WARNING,
        lambda c: not c["has_google_maps"],
        "Add link to Google Maps profile for better local visibility and trust signals.",
    ),
    RecommendationRule(
        "trust.no_platforms",
        Severity.INFO,
        lambda c: not c["platforms"],
        "Add links to external medical platforms (Doc.ua, Likarni, Helsi) to improve reputation signals.",
    ),
    RecommendationRule(
        "trust.no_social",
        Severity.INFO,
        lambda c: not c["social_links"],
        "Add social media links (Facebook, Instagram, YouTube) to improve online presence and trust.",
    ),
    RecommendationRule(
        "trust.no_privacy_policy",
        Severity.CRITICAL,
        lambda c: not c["has_privacy_policy"],
        "Add Privacy Policy page and link to it from footer. Required for GDPR compliance and trust.",
    ),
    RecommendationRule(
        "trust.no_licenses",
        Severity.CRITICAL,
        lambda c: not c["has_licenses"],
        "Display medical licenses and certifications (e.g., \"Ліцензія\", \"Наказ МОЗ\") prominently on the site.",
    ),
    RecommendationRule(
        "trust.no_contact_page",
        Severity.WARNING,
        lambda c: not c["has_contact_page"],
        "Add a dedicated Contact page with phone number (tel: link) for better accessibility.",
    ),
    RecommendationRule(
        "trust.no_nap",
        Severity.WARNING,
        lambda c: not c["has_nap"],
        "Ensure NAP (Name, Address, Phone) data is complete: add tel: link and physical address.",
    ),
    RecommendationRule(
        "trust.no_about_page",
        Severity.WARNING,
        lambda c: not c["has_about_page"],
        "Add \"About Us\" page with clinic history, mission, and team information.",
    ),
    RecommendationRule(
        "authority.no_scientific_sources",
        Severity.WARNING,
        lambda c: not c["scientific_sources"],
        "Add links to scientific sources (PubMed, WHO, Cochrane) to demonstrate evidence-based practice.",
    ),
    RecommendationRule(
        "authority.few_scientific_sources",
        Severity.INFO,
        lambda c: 0 < len(c["scientific_sources"]) < 3,
        lambda c: (
            f"Only {len(c['scientific_sources'])} scientific source(s) linked. "
            "Consider adding more references to authoritative medical literature."
        ),
    ),
    RecommendationRule(
        "authority.no_community_mentions",
        Severity.INFO,
        lambda c: not c["community_mentions"],
        "Add mentions of conferences, media appearances, or professional associations to demonstrate community involvement.",
    ),
    RecommendationRule(
        "expertise.no_doctor_links",
        Severity.WARNING,
        lambda c: not c["has_doctor_profile_link"],
        "Add links to Doctor/Team pages (/doctors/, /team/) to showcase medical expertise.",
    ),
    RecommendationRule(
        "expertise.no_credentials",
        Severity.INFO,
        lambda c: not c["has_author_credentials"],
        "Include author credentials (Dr., MD, к.м.н.) in content to demonstrate expertise.",
    ),
    RecommendationRule(
        "expertise.article_without_author",
        Severity.WARNING,
        lambda c: c["has_article_without_author"],
        "Add author block to article pages with author name and link to profile.",
    ),
    RecommendationRule(
        "expertise.low_author_coverage",
        Severity.WARNING,
        lambda c: c["articles"] is not None and c["articles"]["authors_percent"] < AUTHORS_WARNING_PERCENT,
        lambda c: (
            f"Only {c['articles']['authors_percent']:g}% of articles have an author block. "
            "Aim for at least 80%."
        ),
    ),
    RecommendationRule(
        "expertise.low_credentials_coverage",
        Severity.WARNING,
        lambda c: c["articles"] is not None and c["articles"]["credentials_percent"] < CREDENTIALS_WARNING_PERCENT,
        lambda c: (
            f"Only {c['articles']['credentials_percent']:g}% of article authors show credentials. "
            "Aim for at least 80%."
        ),
    ),
    RecommendationRule(
        "authority.low_sources_coverage",
        Severity.WARNING,
        lambda c: c["articles"] is not None and c["articles"]["sources_percent"] < SOURCES_WARNING_PERCENT,
        lambda c: (
            f"Only {c['articles']['sources_percent']:g}% of articles cite scientific sources. "
            "Aim for at least 70%."
        ),
    ),
    RecommendationRule(
        "experience.no_case_studies",
        Severity.WARNING,
        lambda c: not c["has_case_studies"],
        "Add Case Studies or Before/After portfolio section to demonstrate real experience and results.",
    ),
    RecommendationRule(
        "experience.no_figures",
        Severity.INFO,
        lambda c: not c["experience_figures"],
        "Add specific experience metrics (e.g., \"10+ years of experience\", \"5000+ patients\") to build credibility.",
    ),
)


def aggregate_eeat(
    pages: Sequence[EeatSignals],
    failed_urls: Sequence[str] = (),
    enrichment: Optional[LocalEnrichment] = None,
) -> Tuple[CategoryScore, List[Recommendation]]:
    weight = CLINIC_AI_FORMULA.weight_of(CATEGORY)
    if not pages:
        return make_category_score(CATEGORY, None, weight), []

    merged = merge_eeat(pages)
    articles = article_metrics(pages, failed_urls)
    rating = enrichment.rating if enrichment is not None else None
    subs = sub_scores(merged, articles, rating)

    partials: Dict[str, Optional[float]] = dict(subs)
    if articles is not None:
        partials.update({k: v for k, v in articles.items() if k != "total_articles"})

    value = calc.mean_score(subs.values())
    recommendations = evaluate_rules(CATEGORY, EEAT_RULES, dict(merged, articles=articles))
    return make_category_score(CATEGORY, value, weight, pages, partials=partials), recommendations
