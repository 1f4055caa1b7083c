"""
Tests for the file-level extractors: meta tags, JSON-LD schema, robots.txt,
llms.txt and sitemap parsing.
"""

import json

import pytest

from app.features.audit.services.extraction.llms_extractor import extract_llms_signals
from app.features.audit.services.extraction.meta_extractor import extract_meta_signals
from app.features.audit.services.extraction.robots_extractor import (
    WILDCARD_BLOCK_LABEL,
    extract_robots_signals,
    parse_robots_txt,
)
from app.features.audit.services.extraction.schema_extractor import extract_schema_signals
from app.features.audit.services.extraction.sitemap_extractor import parse_sitemap

ROOT = "https://clinic.example/"
DESCRIPTION = ("Family clinic in Kyiv with cardiology and neurology departments. " * 2).strip()


def _json_ld(payload) -> str:
    return f'<script type="application/ld+json">{json.dumps(payload)}</script>'


class TestMetaExtractor:
    """Title, description and head checks of a single page"""

    def test_complete_head(self):
        html = f"""
        <html lang="uk"><head>
          <title>Family Clinic Kyiv | Cardiology and Neurology</title>
          <meta name="description" content="{DESCRIPTION}">
          <meta name="viewport" content="width=device-width">
          <link rel="canonical" href="https://clinic.example/">
        </head><body>
          <img src="a.jpg" alt="Reception"><img src="b.jpg">
        </body></html>
        """
        meta = extract_meta_signals(html, ROOT)

        assert meta.title_present and meta.title_optimal
        assert meta.title_length == 45
        assert meta.description_length == 129
        assert meta.description_optimal is True
        assert meta.canonical == "https://clinic.example/"
        assert meta.lang == "uk"
        assert meta.has_viewport is True
        assert meta.noindex is False
        assert meta.images_total == 2
        assert meta.images_missing_alt == 1

    def test_missing_tags(self):
        meta = extract_meta_signals("<html><body><p>Hello</p></body></html>", ROOT)

        assert meta.title_present is False
        assert meta.title is None
        assert meta.description_present is False
        assert meta.canonical is None
        assert meta.lang is None
        assert meta.has_viewport is False

    def test_empty_title_is_present_but_not_optimal(self):
        meta = extract_meta_signals("<html><head><title>  </title></head></html>", ROOT)
        assert meta.title_present is True
        assert meta.title == ""
        assert meta.title_optimal is False

    def test_noindex(self):
        html = '<html><head><meta name="ROBOTS" content="NOINDEX, follow"></head></html>'
        assert extract_meta_signals(html, ROOT).noindex is True


class TestSchemaExtractor:
    """JSON-LD catalog detection, including @graph and broken blocks"""

    @pytest.fixture
    def html(self):
        graph = {
            "@context": "https://schema.org",
            "@graph": [
                {
                    "@type": "MedicalClinic",
                    "name": "Family Clinic",
                    "address": {"@type": "PostalAddress", "streetAddress": "Khreshchatyk 1"},
                    "telephone": "+380441234567",
                },
                {"@type": "Organization", "name": "Family Clinic", "url": ROOT},
                {
                    "@type": "FAQPage",
                    "mainEntity": [
                        {"@type": "Question", "name": "Do you accept children?", "acceptedAnswer": {"@type": "Answer", "text": "Yes"}}
                    ],
                },
            ],
        }
        broken = '<script type="application/ld+json">{"@type": "Article",</script>'
        return f"<html><head>{_json_ld(graph)}{broken}</head></html>"

    def test_blocks_counted(self, html):
        schema = extract_schema_signals(html, ROOT)
        assert schema.blocks_found == 2
        assert schema.invalid_blocks == 1

    def test_rich_result_catalog(self, html):
        schema = extract_schema_signals(html, ROOT)

        assert schema.types["Organization"].valid is True
        assert schema.types["Organization"].found_fields == ("name", "url")
        assert schema.types["Organization"].missing_fields == ("logo", "sameAs")
        assert schema.types["FAQPage"].valid is True
        assert schema.types["Article"].present is False
        assert schema.valid_types_count == 2
        assert schema.total_score == 25.0

    def test_medical_catalog(self, html):
        schema = extract_schema_signals(html, ROOT)

        assert schema.medical_types["MedicalOrganization"] is True
        assert schema.medical_types["LocalBusiness"] is True
        assert schema.medical_types["FAQPage"] is True
        assert schema.medical_types["Physician"] is False
        assert {"MedicalClinic", "PostalAddress", "Question", "Answer"} <= set(schema.all_types)

    def test_page_without_markup(self):
        schema = extract_schema_signals("<html></html>", ROOT)
        assert schema.blocks_found == 0
        assert schema.total_score == 0.0
        assert not any(schema.medical_types.values())


class TestRobotsExtractor:
    """robots.txt scoring and AI crawler detection"""

    def test_parse_groups_and_sitemaps(self):
        rules, sitemaps = parse_robots_txt(
            "# comment\nUser-agent: *\nDisallow: /admin\nDisallow:\nAllow: /blog\n"
            "Sitemap: https://clinic.example/sitemap.xml\n"
        )
        assert len(rules) == 1
        assert rules[0].user_agent == "*"
        assert rules[0].disallow == ("/admin",)
        assert rules[0].allow == ("/blog",)
        assert sitemaps == ["https://clinic.example/sitemap.xml"]

    def test_well_configured_file_scores_100(self):
        robots = extract_robots_signals(
            "User-agent: *\nDisallow: /admin\nSitemap: https://clinic.example/sitemap.xml", ROOT + "robots.txt"
        )
        assert robots.present is True
        assert robots.score == 100.0
        assert robots.issues == ()

    def test_wildcard_block_all(self):
        robots = extract_robots_signals("User-agent: *\nDisallow: /", ROOT + "robots.txt")
        assert robots.disallow_all is True
        assert robots.blocked_ai_bots == (WILDCARD_BLOCK_LABEL,)
        assert robots.score == 0.0

    def test_specific_ai_bot_blocked(self):
        robots = extract_robots_signals(
            "User-agent: GPTBot\nDisallow: /\n\nUser-agent: *\nAllow: /", ROOT + "robots.txt"
        )
        # 20 base + 25 not blocking all - 30 AI bots blocked + 10 wildcard group
        assert robots.score == 25.0
        assert robots.blocked_ai_bots == ("gptbot",)
        assert robots.blocks_ai_bots is True

    def test_empty_file(self):
        robots = extract_robots_signals("   \n", ROOT + "robots.txt")
        assert robots.present is True
        assert robots.empty is True
        assert robots.score == 10.0

    def test_missing_file(self):
        robots = extract_robots_signals(None, ROOT + "robots.txt")
        assert robots.present is False
        assert robots.score == 0.0
        assert robots.issues == ("robots.txt is missing",)

    def test_too_many_disallowed_paths(self):
        content = "User-agent: *\n" + "".join(f"Disallow: /{p}\n" for p in "abcdef") + "Disallow: /admin\n"
        robots = extract_robots_signals(content, ROOT + "robots.txt")
        assert robots.problematic_disallow_count == 6
        assert "Too many disallowed paths (6)" in robots.issues


class TestLlmsExtractor:
    FULL_FILE = (
        "# Family Clinic\n"
        "Medical clinic in Kyiv. Updated 2024.\n"
        "## Doctors\n"
        "Dr. Olena Shevchenko, cardiologist.\n"
        "## Services\n"
        "Cardiology consultation, ECG.\n"
        "Address: 12 Khreshchatyk Street, Kyiv. Phone: +380441234567\n"
    )

    def test_missing_file(self):
        llms = extract_llms_signals(None, ROOT + "llms.txt")
        assert llms.present is False
        assert llms.score == 0.0

    def test_complete_file(self):
        llms = extract_llms_signals(self.FULL_FILE, ROOT + "llms.txt")
        assert llms.present and llms.has_content
        assert llms.heuristic_score == 100.0
        assert llms.score == 100.0
        assert llms.missing_sections == ()

    def test_trivial_file_gets_presence_credit_only(self):
        llms = extract_llms_signals("Family Clinic, the best doctors", ROOT + "llms.txt")
        assert llms.has_content is False
        assert llms.score == 30.0

    def test_oversized_file(self):
        llms = extract_llms_signals("a" * 100_001, ROOT + "llms.txt")
        assert llms.oversized is True
        assert llms.has_content is False
        assert llms.score == 30.0


class TestSitemapParser:
    def test_urlset(self):
        document = parse_sitemap(
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">'
            "<url><loc>https://clinic.example/</loc></url>"
            "<url><loc> https://clinic.example/doctors/ </loc></url>"
            "</urlset>"
        )
        assert document.is_index is False
        assert document.urls == ["https://clinic.example/", "https://clinic.example/doctors/"]

    def test_index(self):
        document = parse_sitemap(
            "<sitemapindex>"
            "<sitemap><loc>https://clinic.example/pages.xml</loc></sitemap>"
            "<sitemap><loc>https://clinic.example/posts.xml</loc></sitemap>"
            "</sitemapindex>"
        )
        assert document.is_index is True
        assert document.child_sitemaps == ["https://clinic.example/pages.xml", "https://clinic.example/posts.xml"]
        assert document.urls == []

    def test_truncated_file_keeps_complete_entries(self):
        document = parse_sitemap("<urlset><url><loc>https://clinic.example/a</loc></url><url><loc>")
        assert document.urls == ["https://clinic.example/a"]

    @pytest.mark.parametrize("text", [None, "", "not a sitemap at all"])
    def test_empty_or_foreign_input(self, text):
        document = parse_sitemap(text)
        assert document.urls == []
        assert document.child_sitemaps == []
