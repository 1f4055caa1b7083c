"""
Comparison of two audit snapshots.

A metric improves when its percent change is above +5, declines below -5,
and is stable otherwise. A zero baseline reads as +100% when the metric
became positive and 0% when it stayed at zero.
"""

from typing import Dict, List, Mapping, Optional, Union

from app.features.audit.schemas.scores import AuditResult
from app.features.audit.schemas.trend import (
    ComparisonResult,
    TrendDelta,
    TrendDirection,
    TrendIndicator,
    TrendStatus,
)
from app.features.audit.services.scoring.calculators import round_score

SIGNIFICANT_CHANGE_PERCENT = 5.0
ARROW_STABLE_PERCENT = 0.1

METRIC_LABELS: Dict[str, str] = {
    "composite": "ClinicAI Score",
    "visibility": "Visibility",
    "tech": "Tech Score",
    "content": "Content Score",
    "trust": "E-E-A-T Score",
    "local": "Local Score",
    "other": "Other",
}

NO_BASELINE_SUMMARY = "No previous audit to compare with yet. This audit is the baseline."
STABLE_SUMMARY = "Metrics remained relatively stable between periods."

Snapshot = Union[AuditResult, Mapping[str, float]]


def percent_change(previous: float, current: float) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round_score((current - previous) / abs(previous) * 100)


def classify(percent: float) -> TrendStatus:
    if percent > SIGNIFICANT_CHANGE_PERCENT:
        return TrendStatus.IMPROVED
    if percent < -SIGNIFICANT_CHANGE_PERCENT:
        return TrendStatus.DECLINED
    return TrendStatus.STABLE


def summarize(improved: List[str], declined: List[str]) -> str:
    if improved and declined:
        return f"Mixed results: {', '.join(improved)} improved, but {', '.join(declined)} declined."
    if improved:
        return f"Great progress! {', '.join(improved)} improved significantly."
    if declined:
        return f"Attention needed: {', '.join(declined)} declined."
    return STABLE_SUMMARY


def _metrics(snapshot: Snapshot) -> Dict[str, float]:
    if isinstance(snapshot, AuditResult):
        return snapshot.metric_values()
    return {name: float(value) for name, value in snapshot.items()}


def compare(previous: Optional[Snapshot], current: Snapshot) -> ComparisonResult:
    """Deltas for every metric present in both snapshots, in the current snapshot's order."""
    if previous is None:
        return ComparisonResult(deltas=[], summary=NO_BASELINE_SUMMARY, has_baseline=False)

    before = _metrics(previous)
    after = _metrics(current)

    deltas: List[TrendDelta] = []
    buckets: Dict[TrendStatus, List[str]] = {status: [] for status in TrendStatus}
    for name, value in after.items():
        if name not in before:
            continue
        percent = percent_change(before[name], value)
        status = classify(percent)
        deltas.append(
            TrendDelta(
                metric_name=name,
                previous=before[name],
                current=value,
                absolute=round_score(value - before[name]),
                percent=percent,
                status=status,
            )
        )
        buckets[status].append(METRIC_LABELS.get(name, name))

    return ComparisonResult(
        deltas=deltas,
        summary=summarize(buckets[TrendStatus.IMPROVED], buckets[TrendStatus.DECLINED]),
        improved=buckets[TrendStatus.IMPROVED],
        declined=buckets[TrendStatus.DECLINED],
        stable=buckets[TrendStatus.STABLE],
    )


def calculate_trend_arrow(current: float, previous: float, inverse: bool = False) -> TrendIndicator:
    """
    Dashboard arrow for a KPI. Changes under 0.1% are stable. For
    lower-is-better metrics (``inverse``) going down is the good direction.
    """
    change = current - previous
    change_percent = change / previous * 100 if previous != 0 else 0.0

    if abs(change_percent) < ARROW_STABLE_PERCENT:
        return TrendIndicator(change_percent=round_score(change_percent), direction=TrendDirection.STABLE, is_positive=True)

    direction = TrendDirection.UP if change > 0 else TrendDirection.DOWN
    is_positive = (direction == TrendDirection.UP) != inverse
    return TrendIndicator(change_percent=round_score(change_percent), direction=direction, is_positive=is_positive)
