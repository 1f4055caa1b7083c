"""
Score calculators.

Pure functions only: no I/O, no clock, no randomness. Percentage inputs
outside 0..100 and negative counts raise ``InvalidInput``; "no data" is
never an error and maps to 0 or to the documented neutral default.

Only final results are clamped. Rounding is half away from zero at two
decimals, done through ``Decimal`` so 0.125 becomes 0.13 on every platform.
"""

import math
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from numbers import Real
from typing import Iterable, Optional

from app.features.audit.schemas.signals import DoctorDetails
from app.platform.exceptions import InvalidInput

SCORE_MIN = 0.0
SCORE_MAX = 100.0


# ── Rounding / bounds ───────────────────────────


def round_score(value: float, places: int = 2) -> float:
    quantum = Decimal(1).scaleb(-places)
    try:
        return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))
    except InvalidOperation as e:
        raise InvalidInput(f"Cannot round non-finite value {value!r}") from e


def clamp_score(value: float) -> float:
    return max(SCORE_MIN, min(SCORE_MAX, value))


def finalize_score(value: float) -> float:
    """Clamp to [0, 100] then round. Apply to final results only."""
    return round_score(clamp_score(value))


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and not math.isnan(value)


def ensure_percentage(name: str, value) -> float:
    if not _is_number(value):
        raise InvalidInput(f"{name} must be a number between 0 and 100, got {value!r}")
    if value < 0 or value > 100:
        raise InvalidInput(f"{name} must be between 0 and 100, got {value}")
    return float(value)


def ensure_count(name: str, value) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidInput(f"{name} must be an integer count, got {value!r}")
    if value < 0:
        raise InvalidInput(f"{name} cannot be negative, got {value}")
    return value


# ── Generic helpers ─────────────────────────────


def mean_score(values: Iterable[Optional[float]]) -> Optional[float]:
    """Mean of the values that are not None; None when nothing is left."""
    present = [v for v in values if v is not None]
    if not present:
        return None
    return round_score(sum(present) / len(present))


def ratio_percent(matching: int, total: int) -> float:
    """matching/total as a percentage; 0 when the denominator is empty."""
    ensure_count("matching", matching)
    ensure_count("total", total)
    if matching > total:
        raise InvalidInput(f"matching ({matching}) cannot exceed total ({total})")
    if total == 0:
        return 0.0
    return round_score(matching / total * 100)


def count_score(count: int, per_item: float = 20.0) -> float:
    """min(100, count * per_item). Used for links, platforms and sources."""
    ensure_count("count", count)
    return min(SCORE_MAX, count * per_item)


# ── Content structure partials ──────────────────


def directions_score(count: int) -> float:
    ensure_count("directions count", count)
    return 100.0 if count >= 5 else count * 20.0


def services_score(count: int, has_service_pages: bool) -> float:
    ensure_count("services count", count)
    if not has_service_pages:
        return 0.0
    if count > 5:
        return 100.0
    if count > 0:
        return 60.0
    return 50.0


def doctors_score(has_doctor_pages: bool, details: DoctorDetails) -> float:
    if not has_doctor_pages:
        return 0.0
    return 20.0 + 20.0 * details.filled


def architecture_score(
    avg_depth: Optional[float], max_depth: Optional[int], link_count: int
) -> float:
    """
    Navigation depth score. Depth is the number of path segments of an
    internal navigation link. 2-3 levels on average is the target band;
    no navigation links at all scores 50.
    """
    ensure_count("link count", link_count)
    if avg_depth is None or max_depth is None or link_count == 0:
        return 50.0

    score = 70.0
    if 2 <= avg_depth <= 3 and max_depth <= 4:
        score = 85 + min(15.0, (3 - avg_depth) * 5)
    elif avg_depth < 2:
        score = 50 + avg_depth * 10
    elif avg_depth > 3:
        score = max(40.0, 80 - (avg_depth - 3) * 10)

    if link_count > 10:
        score += 5
    return finalize_score(score)


def blog_score(has_blog: bool, posts_count: int, regularly_updated: bool) -> float:
    ensure_count("posts count", posts_count)
    if not has_blog:
        return 0.0
    score = 30.0
    if posts_count >= 10:
        score += 30
    elif posts_count > 0:
        score += posts_count * 3
    if regularly_updated:
        score += 40
    return min(SCORE_MAX, score)


# ── Text quality partials ───────────────────────

UNIQUENESS_FULL_CREDIT = 95.0
UNIQUENESS_PARTIAL_CREDIT = 80.0


def uniqueness_credit(uniqueness_percent: float) -> float:
    """
    >= 95 scores 100, 80..95 keeps the raw value (partial band), below 80
    scores 0.
    """
    value = ensure_percentage("uniqueness", uniqueness_percent)
    if value >= UNIQUENESS_FULL_CREDIT:
        return 100.0
    if value >= UNIQUENESS_PARTIAL_CREDIT:
        return value
    return 0.0


def dryness_score(wateriness_percent: float) -> float:
    """Inverse of wateriness (share of stop words)."""
    return 100.0 - ensure_percentage("wateriness", wateriness_percent)


# ── Authority partials ──────────────────────────


def faq_score(faq_count: int) -> float:
    ensure_count("faq count", faq_count)
    if faq_count >= 10:
        return 100.0
    if faq_count >= 3:
        return 70.0
    if faq_count > 0:
        return 30.0
    return 0.0


def contacts_score(has_phone: bool, has_address: bool) -> float:
    return (50.0 if has_phone else 0.0) + (50.0 if has_address else 0.0)


# ── Local partials ──────────────────────────────


def backlinks_score(unique_local_domains: int) -> float:
    ensure_count("local backlink domains", unique_local_domains)
    if unique_local_domains >= 5:
        return 100.0
    return round_score(unique_local_domains / 5 * 100)


def social_profiles_score(has_facebook: bool, has_instagram: bool) -> float:
    if has_facebook and has_instagram:
        return 100.0
    if has_facebook or has_instagram:
        return 50.0
    return 0.0


def local_schema_score(implemented: bool, functioning: bool) -> float:
    if implemented and functioning:
        return 100.0
    if implemented:
        return 50.0
    return 0.0


def rating_score(rating: float, best: float = 5.0) -> float:
    if not _is_number(rating) or rating < 0 or rating > best:
        raise InvalidInput(f"rating must be between 0 and {best}, got {rating!r}")
    return round_score(rating / best * 100)


# ── Technical partials ──────────────────────────


def image_alt_score(images_total: int, missing_alt: int) -> float:
    ensure_count("images total", images_total)
    ensure_count("images missing alt", missing_alt)
    if missing_alt > images_total:
        raise InvalidInput("images missing alt cannot exceed images total")
    if images_total == 0:
        return 100.0
    return round_score((images_total - missing_alt) / images_total * 100)


def get_score_badge(score: float) -> str:
    value = ensure_percentage("score", score)
    if value >= 70:
        return "success"
    if value >= 40:
        return "warning"
    return "outline"
