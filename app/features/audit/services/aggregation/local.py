from typing import List, Optional, Sequence, Tuple

from app.features.audit.schemas.scores import CategoryScore, Recommendation, Severity
from app.features.audit.schemas.signals import LocalEnrichment, LocalSignals
from app.features.audit.services.aggregation.common import (
    RecommendationRule,
    evaluate_rules,
    make_category_score,
)
from app.features.audit.services.scoring import calculators as calc
from app.features.audit.services.scoring.composite import CLINIC_AI_FORMULA

CATEGORY = "local"

GBP_COMPLETENESS_TARGET = 80.0
RESPONSE_RATE_TARGET = 90.0
CTR_TARGET = 5.0
BACKLINK_DOMAINS_TARGET = 5


def merge_local(pages: Sequence[LocalSignals]) -> dict:
    return {
        "schema_implemented": any(p.schema_implemented for p in pages),
        "schema_functioning": any(p.schema_functioning for p in pages),
        "facebook_url": next((p.facebook_url for p in pages if p.facebook_url), None),
        "instagram_url": next((p.instagram_url for p in pages if p.instagram_url), None),
    }


def _known(value) -> bool:
    return value is not None


LOCAL_RULES = (
    RecommendationRule(
        "local.gbp_completeness",
        Severity.WARNING,
        lambda c: _known(c["gbp"]) and c["gbp"] < GBP_COMPLETENESS_TARGET,
        lambda c: (
            f"Google Business Profile completeness is {c['gbp']:g}%. "
            "Aim for 100% by filling all available fields."
        ),
    ),
    RecommendationRule(
        "local.review_response",
        Severity.WARNING,
        lambda c: _known(c["response_rate"]) and c["response_rate"] < RESPONSE_RATE_TARGET,
        lambda c: (
            f"Improve review response rate within 24 hours "
            f"(currently {c['response_rate']:g}%, aim for 90%+)."
        ),
    ),
    RecommendationRule(
        "local.ctr",
        Severity.INFO,
        lambda c: _known(c["ctr"]) and c["ctr"] < CTR_TARGET,
        lambda c: (
            f"Improve Google Business Profile CTR (currently {c['ctr']:g}%, aim for 5%+). "
            "Optimize profile photos, description, and posts."
        ),
    ),
    RecommendationRule(
        "local.backlinks",
        Severity.INFO,
        lambda c: _known(c["backlinks"]) and c["backlinks"] < BACKLINK_DOMAINS_TARGET,
        lambda c: (
            f"Increase local backlinks (currently {c['backlinks']} local domains, aim for 5+). "
            "Reach out to city portals, local news sites, and partners."
        ),
    ),
    RecommendationRule(
        "local.no_social",
        Severity.WARNING,
        lambda c: not c["facebook_url"] and not c["instagram_url"],
        "Create and maintain active profiles on Facebook and Instagram with correct NAP data and local content.",
    ),
    RecommendationRule(
        "local.no_schema",
        Severity.WARNING,
        lambda c: not c["schema_implemented"],
        "Implement LocalBusiness schema markup on your website to help search engines understand your business information.",
    ),
    RecommendationRule(
        "local.schema_errors",
        Severity.WARNING,
        lambda c: c["schema_implemented"] and not c["schema_functioning"],
        "Fix LocalBusiness schema markup errors. Ensure all required fields (name, address, phone) are present and correctly formatted.",
    ),
)


def aggregate_local(
    pages: Sequence[LocalSignals],
    enrichment: Optional[LocalEnrichment] = None,
) -> Tuple[CategoryScore, List[Recommendation]]:
    """
    Mean of the local partial scores. Inputs that depend on a third-party
    source are left out of the mean when the source was unavailable.
    """
    weight = CLINIC_AI_FORMULA.weight_of(CATEGORY)
    enrichment = enrichment or LocalEnrichment()
    if not pages and not enrichment.sources:
        return make_category_score(CATEGORY, None, weight), []

    merged = merge_local(pages)
    partials = {
        "gbp_completeness": None,
        "review_response": None,
        "ctr": None,
        "backlinks": None,
        "social": calc.social_profiles_score(bool(merged["facebook_url"]), bool(merged["instagram_url"])),
        "schema": calc.local_schema_score(merged["schema_implemented"], merged["schema_functioning"]),
    }
    if enrichment.gbp_completeness_percent is not None:
        partials["gbp_completeness"] = calc.ensure_percentage("gbp completeness", enrichment.gbp_completeness_percent)
    if enrichment.review_response_rate_24h_percent is not None:
        partials["review_response"] = calc.ensure_percentage(
            "review response rate", enrichment.review_response_rate_24h_percent
        )
    if enrichment.ctr_percent is not None:
        partials["ctr"] = calc.ensure_percentage("ctr", enrichment.ctr_percent)
    if enrichment.local_backlink_domains is not None:
        partials["backlinks"] = calc.backlinks_score(enrichment.local_backlink_domains)

    context = dict(
        merged,
        gbp=enrichment.gbp_completeness_percent,
        response_rate=enrichment.review_response_rate_24h_percent,
        ctr=enrichment.ctr_percent,
        backlinks=enrichment.local_backlink_domains,
    )
    recommendations = evaluate_rules(CATEGORY, LOCAL_RULES, context)
    value = calc.mean_score(partials.values())
    return make_category_score(CATEGORY, value, weight, pages, partials=partials), recommendations
