from datetime import datetime, timedelta, timezone

import pytest

from app.features.audit.schemas.scores import AuditResult
from app.features.audit.schemas.trend import TrendDirection, TrendStatus
from app.features.audit.services.aggregation.common import make_category_score
from app.features.audit.services.trend.comparison import (
    NO_BASELINE_SUMMARY,
    STABLE_SUMMARY,
    calculate_trend_arrow,
    compare,
    percent_change,
)
from app.features.audit.services.trend.history import InMemoryAuditHistoryStore, load_comparison
from app.platform.exceptions import InvalidInput

START = datetime(2026, 9, 1, tzinfo=timezone.utc)


def _result(composite: float, tech: float, days: int = 0, url: str = "https://clinic.example") -> AuditResult:
    return AuditResult(
        root_url=url,
        audit_key="https://clinic.example",
        categories={"tech": make_category_score("tech", tech, 0.1)},
        composite=composite,
        created_at=START + timedelta(days=days),
    )


class TestComparison:
    """Deltas, classification and summaries"""

    def test_zero_baseline(self):
        assert percent_change(0, 0) == 0.0
        assert percent_change(0, 5) == 100.0
        assert percent_change(80, 60) == -25.0

    def test_improvement(self):
        result = compare({"composite": 0, "tech": 0}, {"composite": 5, "tech": 0})

        composite, tech = result.deltas
        assert composite.percent == 100.0 and composite.status == TrendStatus.IMPROVED
        assert tech.percent == 0.0 and tech.status == TrendStatus.STABLE
        assert result.summary == "Great progress! ClinicAI Score improved significantly."
        assert result.has_baseline is True

    def test_decline(self):
        result = compare({"tech": 80}, {"tech": 60})

        assert result.deltas[0].absolute == -20.0
        assert result.deltas[0].status == TrendStatus.DECLINED
        assert result.summary == "Attention needed: Tech Score declined."

    def test_mixed(self):
        result = compare({"content": 50, "local": 70}, {"content": 60, "local": 50})
        assert result.summary == "Mixed results: Content Score improved, but Local Score declined."

    def test_stable(self):
        result = compare({"composite": 50}, {"composite": 51})
        assert result.deltas[0].status == TrendStatus.STABLE
        assert result.summary == STABLE_SUMMARY

    def test_metric_missing_from_previous_is_skipped(self):
        result = compare({"composite": 50}, {"composite": 50, "visibility": 30})
        assert [d.metric_name for d in result.deltas] == ["composite"]

    def test_no_baseline(self):
        result = compare(None, _result(60, 70))
        assert result.has_baseline is False
        assert result.deltas == []
        assert result.summary == NO_BASELINE_SUMMARY

    def test_audit_results(self):
        result = compare(_result(60, 70), _result(66, 70, days=7))
        assert [(d.metric_name, d.status) for d in result.deltas] == [
            ("composite", TrendStatus.IMPROVED),
            ("tech", TrendStatus.STABLE),
        ]


class TestTrendArrow:
    def test_up(self):
        arrow = calculate_trend_arrow(110, 100)
        assert arrow.direction == TrendDirection.UP
        assert arrow.change_percent == 10.0
        assert arrow.is_positive is True

    def test_inverse_metric(self):
        assert calculate_trend_arrow(110, 100, inverse=True).is_positive is False
        assert calculate_trend_arrow(90, 100, inverse=True).is_positive is True

    def test_tiny_change_is_stable(self):
        assert calculate_trend_arrow(100, 100.05).direction == TrendDirection.STABLE
        assert calculate_trend_arrow(5, 0).direction == TrendDirection.STABLE


class TestHistory:
    """In-memory history keyed by normalized URL"""

    @pytest.mark.asyncio
    async def test_recent_is_newest_first(self):
        store = InMemoryAuditHistoryStore()
        await store.save(_result(60, 70, days=7))
        await store.save(_result(50, 70, days=0))
        await store.save(_result(70, 70, days=14, url="https://www.clinic.example/"))

        recent = await store.recent("clinic.example")

        assert [r.composite for r in recent] == [70, 60]

    @pytest.mark.asyncio
    async def test_invalid_limit(self):
        with pytest.raises(InvalidInput):
            await InMemoryAuditHistoryStore().recent("clinic.example", limit=0)

    @pytest.mark.asyncio
    async def test_load_comparison(self):
        store = InMemoryAuditHistoryStore()
        assert (await load_comparison(store, "clinic.example")).has_baseline is False

        await store.save(_result(50, 70))
        assert (await load_comparison(store, "clinic.example")).has_baseline is False

        await store.save(_result(60, 70, days=7))
        comparison = await load_comparison(store, "https://clinic.example/")
        assert comparison.has_baseline is True
        assert comparison.deltas[0].previous == 50
        assert comparison.deltas[0].current == 60
