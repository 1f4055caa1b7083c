import pytest

from app.features.audit.schemas.scores import VisibilityItem
from app.features.audit.services.scoring.visibility import (
    TOP_COMPETITORS,
    aggregate_competitor_stats,
    calculate_average_position,
    calculate_item_visibility_score,
    calculate_position_score,
    calculate_rank_position_score,
    calculate_visibility_rate,
    compare_visibility_scores,
    get_visibility_rating,
    score_visibility_item,
)
from app.platform.exceptions import InvalidInput


class TestItemVisibilityScore:
    """score = V * (V*100*0.30 + P*0.25 + C*0.20)"""

    def test_top_position_scenario(self):
        breakdown = calculate_item_visibility_score(True, 1, 100, 70)
        assert breakdown.position_score == 100.0
        assert breakdown.visibility == 1.0
        assert breakdown.score == 69.0

    def test_middle_position(self):
        # 30 + 50 * 0.25 + 0 = 42.5
        breakdown = calculate_item_visibility_score(True, 5, 10, 0)
        assert breakdown.position_score == 50.0
        assert breakdown.score == 42.5

    @pytest.mark.parametrize("position,competitor", [(1, 100), (3, 90), (None, 50), (10, 0)])
    def test_not_visible_scores_exactly_zero(self, position, competitor):
        breakdown = calculate_item_visibility_score(False, position, 10, competitor)
        assert breakdown.score == 0
        assert breakdown.position_score == 0

    @pytest.mark.parametrize("total_results", [1, 2, 10, 1000])
    def test_first_position_is_always_100(self, total_results):
        assert calculate_position_score(1, total_results) == 100.0
        breakdown = calculate_item_visibility_score(True, 1, total_results, 0)
        assert breakdown.position_score == 100.0

    @pytest.mark.parametrize("position,total_results", [(5, 3), (2, 0), (0, 10)])
    def test_position_score_rejects_impossible_ranks(self, position, total_results):
        with pytest.raises(InvalidInput):
            calculate_position_score(position, total_results)

    def test_position_score_not_found_skips_rank_checks(self):
        assert calculate_position_score(5, 3, is_visible=False) == 0.0
        assert calculate_position_score(None, 0) == 0.0

    def test_visible_without_position(self):
        breakdown = calculate_item_visibility_score(True, None, 10, 40)
        assert breakdown.position_score == 0
        assert breakdown.score == 38.0

    def test_scores_stay_in_bounds(self):
        for position in range(1, 11):
            for competitor in (0, 50, 100):
                for visible in (True, False):
                    score = calculate_item_visibility_score(visible, position, 10, competitor).score
                    assert 0 <= score <= 100

    @pytest.mark.parametrize(
        "position,total_results,competitor",
        [(11, 10, 50), (0, 10, 50), (1, 0, 50), (1, 10, 120), (1, 10, -1)],
    )
    def test_invalid_inputs(self, position, total_results, competitor):
        with pytest.raises(InvalidInput):
            calculate_item_visibility_score(True, position, total_results, competitor)

    def test_score_from_item_model(self):
        item = VisibilityItem(is_visible=True, position=1, total_results=100, competitor_score=70)
        assert score_visibility_item(item).score == 69.0


class TestVisibilityRate:
    def test_rate(self):
        assert calculate_visibility_rate(10, 4) == 40.0

    def test_no_items(self):
        assert calculate_visibility_rate(0, 0) == 0.0

    def test_visible_above_total(self):
        with pytest.raises(InvalidInput):
            calculate_visibility_rate(3, 4)

    def test_negative_count(self):
        with pytest.raises(InvalidInput):
            calculate_visibility_rate(-1, 0)


class TestRankPosition:
    def test_rank_position_score(self):
        assert calculate_rank_position_score(1) == 100.0
        assert calculate_rank_position_score(10) == 0.0
        assert calculate_rank_position_score(5.5) == 50.0
        assert calculate_rank_position_score(None) == 0.0
        assert calculate_rank_position_score(0.5) == 0.0

    def test_average_position_uses_visible_items_only(self):
        items = [
            VisibilityItem(is_visible=True, position=2),
            VisibilityItem(is_visible=True, position=5),
            VisibilityItem(is_visible=False, position=1),
        ]
        assert calculate_average_position(items) == 3.5

    def test_average_position_without_positions(self):
        assert calculate_average_position([VisibilityItem(is_visible=False)]) is None


class TestRatingAndComparison:
    @pytest.mark.parametrize(
        "score,rating",
        [(30, "Excellent"), (25, "Good"), (10, "Fair"), (5, "Poor"), (4.99, "Very Poor")],
    )
    def test_rating_bands(self, score, rating):
        assert get_visibility_rating(score) == rating

    def test_winner(self):
        assert compare_visibility_scores(60, 40) == {"difference": 20.0, "winner": "a"}
        assert compare_visibility_scores(40, 60)["winner"] == "b"

    def test_tie_under_threshold(self):
        assert compare_visibility_scores(50, 49.995)["winner"] == "tie"


class TestCompetitorStats:
    def test_stats_per_domain(self):
        items = [
            VisibilityItem(is_visible=True, position=2, competitor_domains=["a.com", "b.com"]),
            VisibilityItem(is_visible=True, position=4, competitor_domains=["A.com"]),
            VisibilityItem(is_visible=False, competitor_domains=["b.com", "clinic.example"]),
        ]
        points = aggregate_competitor_stats(items, client_domain="clinic.example")

        assert [p.domain for p in points] == ["a.com", "b.com", "clinic.example"]
        a, b, client = points
        # visibility 100 * 0.6 + (100 - 3 * 10) * 0.4
        assert a.mentions == 2
        assert a.avg_position == 3.0
        assert a.ai_score == 88.0
        assert b.ai_score == 62.0
        assert client.ai_score == 0.0
        assert client.is_client is True
        assert a.is_client is False

    def test_limited_to_top_competitors(self):
        items = [VisibilityItem(is_visible=True, position=1, competitor_domains=[f"d{i}.com"]) for i in range(12)]
        assert len(aggregate_competitor_stats(items)) == TOP_COMPETITORS
