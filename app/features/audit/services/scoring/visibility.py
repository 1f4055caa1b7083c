"""
AI-visibility calculators for tracked services (how a clinic shows up in
AI engine answers for a given query).
"""

from collections import OrderedDict
from typing import Iterable, List, Optional

from app.features.audit.schemas.scores import (
    CompetitorPoint,
    VisibilityItem,
    VisibilityScoreBreakdown,
)
from app.features.audit.services.scoring.calculators import (
    clamp_score,
    ensure_count,
    ensure_percentage,
    finalize_score,
    round_score,
)
from app.platform.exceptions import InvalidInput

VISIBILITY_WEIGHT = 0.30
POSITION_WEIGHT = 0.25
COMPETITOR_WEIGHT = 0.20

TOP_COMPETITORS = 9
TIE_THRESHOLD = 0.01


def calculate_visibility_rate(total: int, visible: int) -> float:
    """Share of tracked items that are visible, in percent."""
    ensure_count("total", total)
    ensure_count("visible", visible)
    if visible > total:
        raise InvalidInput(f"visible ({visible}) cannot exceed total ({total})")
    if total == 0:
        return 0.0
    return finalize_score(visible / total * 100)


def calculate_position_score(position: Optional[int], total_results: int, is_visible: bool = True) -> float:
    """100 for rank 1, linear (1 - rank/total) * 100 otherwise, 0 when not found."""
    if not is_visible or position is None:
        return 0.0
    _validate_rank(position, total_results)
    if position == 1:
        return 100.0
    return clamp_score((1 - position / total_results) * 100)


def _validate_total(total_results: int) -> None:
    if not isinstance(total_results, int) or isinstance(total_results, bool) or total_results < 1:
        raise InvalidInput(f"total_results must be >= 1, got {total_results!r}")


def _validate_rank(position: int, total_results: int) -> None:
    _validate_total(total_results)
    if not isinstance(position, int) or isinstance(position, bool):
        raise InvalidInput(f"position must be an integer, got {position!r}")
    if position < 1 or position > total_results:
        raise InvalidInput(f"position must be between 1 and {total_results}, got {position}")


def _validate_item(is_visible: bool, position: Optional[int], total_results: int, competitor_score: float) -> None:
    _validate_total(total_results)
    ensure_percentage("competitor_score", competitor_score)
    if position is not None:
        _validate_rank(position, total_results)


def calculate_item_visibility_score(
    is_visible: bool,
    position: Optional[int],
    total_results: int,
    competitor_score: float,
) -> VisibilityScoreBreakdown:
    """
    score = V * (V*100*0.30 + P*0.25 + C*0.20)

    V is 1 or 0, P the position score and C the competitor score. The outer
    V zeroes the whole expression for items that were not found.
    """
    _validate_item(is_visible, position, total_results, competitor_score)

    visible = 1 if is_visible else 0
    position_score = calculate_position_score(position, total_results, is_visible)
    score = visible * (
        visible * 100 * VISIBILITY_WEIGHT
        + position_score * POSITION_WEIGHT
        + competitor_score * COMPETITOR_WEIGHT
    )

    return VisibilityScoreBreakdown(
        visibility=float(visible),
        position_score=round_score(position_score),
        competitor_score=round_score(competitor_score),
        score=finalize_score(score),
    )


def score_visibility_item(item: VisibilityItem) -> VisibilityScoreBreakdown:
    return calculate_item_visibility_score(
        item.is_visible, item.position, item.total_results, item.competitor_score
    )


def calculate_rank_position_score(avg_position: Optional[float]) -> float:
    """Dashboard position score: rank 1 is 100, rank 10 or worse is 0."""
    if avg_position is None or avg_position < 1:
        return 0.0
    if avg_position <= 1:
        return 100.0
    if avg_position >= 10:
        return 0.0
    return round_score((10 - avg_position) / 9 * 100)


def calculate_average_position(items: Iterable[VisibilityItem]) -> Optional[float]:
    positions = [item.position for item in items if item.is_visible and item.position is not None]
    if not positions:
        return None
    return round_score(sum(positions) / len(positions), 1)


def get_visibility_rating(score: float) -> str:
    value = ensure_percentage("score", score)
    if value >= 30:
        return "Excellent"
    if value >= 20:
        return "Good"
    if value >= 10:
        return "Fair"
    if value >= 5:
        return "Poor"
    return "Very Poor"


def compare_visibility_scores(score_a: float, score_b: float) -> dict:
    a = ensure_percentage("score_a", score_a)
    b = ensure_percentage("score_b", score_b)
    difference = round_score(a - b)
    if abs(a - b) < TIE_THRESHOLD:
        winner = "tie"
    elif a > b:
        winner = "a"
    else:
        winner = "b"
    return {"difference": difference, "winner": winner}


def aggregate_competitor_stats(
    items: Iterable[VisibilityItem], client_domain: Optional[str] = None
) -> List[CompetitorPoint]:
    """
    Per domain seen in AI answers: how often it appears, its average position
    and ai_score = visibility_rate*0.6 + position_score*0.4, where
    position_score = max(0, 100 - avg_position*10). Top 9 by mentions, then
    sorted by ai_score.
    """
    stats: "OrderedDict[str, dict]" = OrderedDict()
    for item in items:
        for raw_domain in item.competitor_domains:
            domain = raw_domain.strip().lower()
            if not domain:
                continue
            entry = stats.setdefault(domain, {"appearances": 0, "positions": []})
            entry["appearances"] += 1
            if item.is_visible and item.position is not None:
                entry["positions"].append(item.position)

    top = sorted(stats.items(), key=lambda kv: kv[1]["appearances"], reverse=True)[:TOP_COMPETITORS]

    points = []
    client = client_domain.lower() if client_domain else None
    for domain, entry in top:
        positions = entry["positions"]
        avg_position = sum(positions) / len(positions) if positions else None
        visibility_rate = len(positions) / entry["appearances"] * 100
        position_score = max(0.0, 100 - avg_position * 10) if avg_position else 0.0
        ai_score = visibility_rate * 0.6 + position_score * 0.4
        points.append(
            CompetitorPoint(
                domain=domain,
                mentions=entry["appearances"],
                avg_position=round_score(avg_position, 1) if avg_position is not None else None,
                ai_score=round_score(ai_score, 1),
                is_client=client is not None and domain == client,
            )
        )

    return sorted(points, key=lambda p: p.ai_score, reverse=True)
