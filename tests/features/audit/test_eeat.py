import pytest

from app.features.audit.schemas.signals import EeatSignals, LocalEnrichment
from app.features.audit.services.aggregation.eeat import (
    aggregate_eeat,
    article_metrics,
    looks_like_article,
)
from app.features.audit.services.extraction.eeat_extractor import extract_eeat_signals

ROOT = "https://clinic.example/"

ARTICLE = """
<html><body><article>
  <h1>Heart health after forty</h1>
  <div class="author">Автор: <a href="/doctors/ivanov/">Dr. Ivan Ivanov, кардіолог</a></div>
  <p>Ми маємо понад 15 років досвіду та 5000+ patients.</p>
  <p>Read the <a href="https://pubmed.ncbi.nlm.nih.gov/1">original study</a>.</p>
  <a href="https://www.google.com/maps/place/family-clinic">Map</a>
  <a href="https://facebook.com/familyclinic">Facebook</a>
  <a href="/privacy-policy">Політика конфіденційності</a>
  <a href="/contacts">Contacts</a>
  <a href="/about">About us</a>
  <a href="/cases/">Results</a>
  <p>Ліцензія МОЗ № 123 від 2020 року.</p>
  <p>Our head physician spoke at the national cardiology conference.</p>
</article></body></html>
"""


def _article(url: str, **flags) -> EeatSignals:
    return EeatSignals(url=url, is_article=True, **flags)


class TestEeatExtractor:
    """Per-page experience, expertise, authority and trust signals"""

    def test_article_page(self):
        signals = extract_eeat_signals(ARTICLE, ROOT + "blog/heart-health/")

        assert signals.is_article is True
        assert signals.has_google_maps is True
        assert signals.platforms == ("Google Maps",)
        assert signals.social_links == ("Facebook",)
        assert signals.has_privacy_policy is True
        assert signals.has_licenses is True
        assert signals.has_contact_page is True
        assert signals.has_about_page is True
        assert "pubmed.ncbi.nlm.nih.gov" in signals.scientific_sources
        assert "conference" in signals.community_mentions
        assert signals.has_case_studies is True

    def test_author_block(self):
        signals = extract_eeat_signals(ARTICLE, ROOT + "blog/heart-health/")

        assert signals.has_author_block is True
        assert signals.author_has_credentials is True
        assert signals.author_is_medical is True
        assert signals.has_doctor_profile_link is True

    def test_experience_figures(self):
        figures = extract_eeat_signals(ARTICLE, ROOT + "blog/heart-health/").experience_figures
        assert "5000+ patients" in figures
        assert "понад 15" in figures

    def test_map_iframe_counts_as_google_maps(self):
        html = '<html><body><iframe src="https://www.google.com/maps/embed?pb=1"></iframe></body></html>'
        signals = extract_eeat_signals(html, ROOT)
        assert signals.has_google_maps is True
        assert signals.platforms == ("Google Maps",)

    def test_plain_page(self):
        signals = extract_eeat_signals("<html><body><p>Hello</p></body></html>", ROOT)

        assert signals.is_article is False
        assert signals.has_author_block is False
        assert signals.platforms == ()
        assert signals.has_nap is False

    def test_article_detected_from_url(self):
        assert extract_eeat_signals("<html></html>", ROOT + "news/open-day").is_article is True
        assert looks_like_article(ROOT + "blog/post-1") is True
        assert looks_like_article(ROOT + "doctors/ivanov") is False


class TestArticleCoverage:
    """Ratios over article pages, including pages that failed to load"""

    def test_failed_articles_stay_in_the_denominator(self):
        fetched = [
            _article(
                f"{ROOT}blog/post-{i}",
                has_author_block=True,
                author_has_credentials=True,
                author_is_medical=True,
                scientific_sources=("who.int",),
            )
            for i in range(8)
        ]
        failed = [f"{ROOT}blog/post-8", f"{ROOT}blog/post-9"]

        metrics = article_metrics(fetched, failed)

        assert metrics["total_articles"] == 10
        assert metrics["authors_percent"] == 80.0
        assert metrics["credentials_percent"] == 80.0
        assert metrics["sources_percent"] == 80.0

    def test_failed_non_article_urls_are_ignored(self):
        fetched = [_article(f"{ROOT}blog/post-1", has_author_block=True)]
        metrics = article_metrics(fetched, [f"{ROOT}contacts"])
        assert metrics["authors_percent"] == 100.0

    def test_no_articles(self):
        assert article_metrics([EeatSignals(url=ROOT)]) is None


class TestEeatAggregation:
    def _pages(self, count):
        return [
            _article(
                f"{ROOT}blog/post-{i}",
                has_author_block=True,
                author_has_credentials=True,
                author_is_medical=True,
                scientific_sources=("who.int",),
            )
            for i in range(count)
        ]

    def test_partial_failure_reduces_but_does_not_zero(self):
        full, _ = aggregate_eeat(self._pages(10))
        partial, _ = aggregate_eeat(self._pages(8), [f"{ROOT}blog/post-8", f"{ROOT}blog/post-9"])

        assert partial.partials["authors_percent"] == 80.0
        assert full.partials["authors_percent"] == 100.0
        assert 0 < partial.value < full.value
        assert partial.available is True

    def test_empty_page_scores_zero_but_available(self):
        score, _ = aggregate_eeat([EeatSignals(url=ROOT)])
        assert score.value == 0.0
        assert score.available is True
        assert set(score.partials) == {"experience", "expertise", "authority", "trust"}

    def test_rating_feeds_trust(self):
        # trust: five failed checks plus a 4.5 rating (90) -> 15; mean of 0, 0, 0, 15
        score, _ = aggregate_eeat([EeatSignals(url=ROOT)], enrichment=LocalEnrichment(rating=4.5))
        assert score.partials["trust"] == 15.0
        assert score.value == 3.75

    def test_no_pages_is_unavailable(self):
        score, recommendations = aggregate_eeat([])
        assert score.available is False
        assert recommendations == []

    def test_coverage_warnings(self):
        pages = [_article(f"{ROOT}blog/post-{i}", has_author_block=i < 2) for i in range(4)]
        _, recommendations = aggregate_eeat(pages)
        codes = [r.code for r in recommendations]

        assert "expertise.low_author_coverage" in codes
        assert "expertise.low_credentials_coverage" in codes
        assert "authority.low_sources_coverage" in codes
        assert "expertise.article_without_author" in codes

    def test_recommendations_are_stable(self):
        pages = [EeatSignals(url=ROOT)]
        first = aggregate_eeat(pages)[1]
        assert first == aggregate_eeat(pages)[1]
        assert first[0].code == "trust.no_google_maps"
        assert all(r.category == "trust" for r in first)

    @pytest.mark.parametrize("count", [1, 3, 10])
    def test_value_in_bounds(self, count):
        score, _ = aggregate_eeat(self._pages(count), enrichment=LocalEnrichment(rating=5))
        assert 0 <= score.value <= 100
