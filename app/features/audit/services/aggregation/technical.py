from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from app.features.audit.schemas.scores import CategoryScore, Recommendation, Severity
from app.features.audit.schemas.signals import LlmsSignals, MetaSignals, RobotsSignals, SchemaSignals
from app.features.audit.services.aggregation.common import (
    RecommendationRule,
    evaluate_rules,
    make_category_score,
)
from app.features.audit.services.extraction.schema_extractor import MEDICAL_TYPES
from app.features.audit.services.scoring import calculators as calc
from app.features.audit.services.scoring.composite import CLINIC_AI_FORMULA

CATEGORY = "tech"


def _flag(value: bool) -> float:
    return 100.0 if value else 0.0


def medical_schema_coverage(schemas: Sequence[SchemaSignals]) -> Dict[str, bool]:
    """Medical catalog types found on at least one page."""
    return {
        name: any(s.medical_types.get(name, False) for s in schemas)
        for name in MEDICAL_TYPES
    }


TECH_RULES = (
    RecommendationRule("tech.no_https", Severity.CRITICAL, lambda c: not c["https"], "Serve the site over HTTPS."),
    RecommendationRule(
        "tech.no_viewport",
        Severity.CRITICAL,
        lambda c: c["meta"] is not None and not c["meta"].has_viewport,
        "Add a viewport meta tag so the site is mobile friendly.",
    ),
    RecommendationRule(
        "tech.no_robots",
        Severity.CRITICAL,
        lambda c: not c["robots"].present,
        "Add a robots.txt file.",
    ),
    RecommendationRule(
        "tech.ai_bots_blocked",
        Severity.CRITICAL,
        lambda c: c["robots"].blocks_ai_bots,
        lambda c: f"robots.txt blocks AI crawlers ({', '.join(c['robots'].blocked_ai_bots)}). Allow them to be cited in AI answers.",
    ),
    RecommendationRule(
        "tech.no_sitemap",
        Severity.CRITICAL,
        lambda c: not c["sitemap_present"],
        "Add sitemap.xml and reference it from robots.txt.",
    ),
    RecommendationRule(
        "tech.no_canonical",
        Severity.CRITICAL,
        lambda c: c["meta"] is not None and not c["meta"].canonical,
        "Add a canonical URL to the homepage.",
    ),
    RecommendationRule(
        "tech.noindex",
        Severity.CRITICAL,
        lambda c: c["meta"] is not None and c["meta"].noindex,
        "Remove the noindex directive from the homepage.",
    ),
    RecommendationRule(
        "tech.no_org_schema",
        Severity.CRITICAL,
        lambda c: not c["coverage"]["MedicalOrganization"] and not c["coverage"]["LocalBusiness"],
        "Add MedicalOrganization or LocalBusiness schema markup.",
    ),
    RecommendationRule(
        "tech.no_llms",
        Severity.CRITICAL,
        lambda c: not c["llms"].present,
        "Add an llms.txt file for AI optimisation.",
    ),
    RecommendationRule(
        "tech.no_lang",
        Severity.WARNING,
        lambda c: c["meta"] is not None and not c["meta"].lang,
        "Declare the page language with the html lang attribute.",
    ),
    RecommendationRule(
        "tech.title",
        Severity.WARNING,
        lambda c: c["meta"] is not None and not c["meta"].title_optimal,
        "Optimise the page title (30-60 characters).",
    ),
    RecommendationRule(
        "tech.description",
        Severity.WARNING,
        lambda c: c["meta"] is not None and not c["meta"].description_optimal,
        "Optimise the meta description (120-160 characters).",
    ),
    RecommendationRule(
        "tech.missing_alt",
        Severity.WARNING,
        lambda c: c["meta"] is not None and c["meta"].images_missing_alt > 0,
        lambda c: f"Add alt text to {c['meta'].images_missing_alt} image(s).",
    ),
    RecommendationRule(
        "tech.no_physician_schema",
        Severity.INFO,
        lambda c: not c["coverage"]["Physician"],
        "Add Physician schema markup for doctor pages.",
    ),
    RecommendationRule(
        "tech.no_faq_schema",
        Severity.INFO,
        lambda c: not c["coverage"]["FAQPage"],
        "Add FAQPage schema markup for the FAQ section.",
    ),
    RecommendationRule(
        "tech.no_breadcrumbs",
        Severity.INFO,
        lambda c: not c["coverage"]["BreadcrumbList"],
        "Add BreadcrumbList schema markup.",
    ),
)


def aggregate_technical(
    root_url: str,
    robots: RobotsSignals,
    llms: LlmsSignals,
    sitemap_present: bool,
    homepage_meta: Optional[MetaSignals] = None,
    schemas: Sequence[SchemaSignals] = (),
    trusted_link_count: int = 0,
) -> Tuple[CategoryScore, List[Recommendation]]:
    """
    Mean of the technical checks. Homepage checks (meta, viewport, images)
    only take part when the homepage itself was fetched.
    """
    weight = CLINIC_AI_FORMULA.weight_of(CATEGORY)
    coverage = medical_schema_coverage(schemas)
    https = urlparse(root_url).scheme == "https"

    checks: Dict[str, Optional[float]] = {
        "https": _flag(https),
        "robots": robots.score,
        "sitemap": _flag(sitemap_present),
        "llms": llms.score,
        "schema": calc.ratio_percent(sum(coverage.values()), len(coverage)),
        "trusted_links": calc.count_score(trusted_link_count),
        "viewport": None,
        "lang": None,
        "canonical": None,
        "title": None,
        "description": None,
        "indexable": None,
        "images": None,
    }
    if homepage_meta is not None:
        checks.update(
            viewport=_flag(homepage_meta.has_viewport),
            lang=_flag(bool(homepage_meta.lang)),
            canonical=_flag(bool(homepage_meta.canonical)),
            title=_flag(homepage_meta.title_optimal),
            description=_flag(homepage_meta.description_optimal),
            indexable=_flag(not homepage_meta.noindex),
            images=calc.image_alt_score(homepage_meta.images_total, homepage_meta.images_missing_alt),
        )

    records = [robots, llms, *schemas]
    if homepage_meta is not None:
        records.append(homepage_meta)

    context = {
        "https": https,
        "meta": homepage_meta,
        "robots": robots,
        "llms": llms,
        "sitemap_present": sitemap_present,
        "coverage": coverage,
    }
    recommendations = evaluate_rules(CATEGORY, TECH_RULES, context)
    value = calc.mean_score(checks.values())
    return make_category_score(CATEGORY, value, weight, records, partials=checks), recommendations
