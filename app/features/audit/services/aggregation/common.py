from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Union

from app.features.audit.schemas.scores import CategoryScore, Recommendation, Severity
from app.features.audit.schemas.signals import SignalRecord
from app.features.audit.services.scoring.calculators import finalize_score


class RecommendationRule(NamedTuple):
    """
    One threshold rule. ``condition`` and a callable ``message`` receive the
    aggregator's context dict. Rules of a category are evaluated in order
    and independently, so several can fire at once.
    """
    code: str
    severity: Severity
    condition: Callable[[Dict[str, Any]], bool]
    message: Union[str, Callable[[Dict[str, Any]], str]]


def evaluate_rules(category: str, rules: Iterable[RecommendationRule], context: Dict[str, Any]) -> List[Recommendation]:
    fired = []
    for rule in rules:
        if not rule.condition(context):
            continue
        message = rule.message(context) if callable(rule.message) else rule.message
        fired.append(Recommendation(code=rule.code, category=category, severity=rule.severity, message=message))
    return fired


def signal_ids(records: Iterable[SignalRecord]) -> tuple:
    ids = []
    for record in records:
        if record.record_id not in ids:
            ids.append(record.record_id)
    return tuple(ids)


def make_category_score(
    name: str,
    value: Optional[float],
    weight: float,
    records: Iterable[SignalRecord] = (),
    partials: Optional[Dict[str, Optional[float]]] = None,
    available: bool = True,
) -> CategoryScore:
    """None as value means the category had no data: it scores 0 and is flagged unavailable."""
    if value is None:
        value = 0.0
        available = False
    return CategoryScore(
        name=name,
        value=finalize_score(value),
        weight=weight,
        contributing_signals=signal_ids(records),
        available=available,
        partials=dict(partials or {}),
    )
