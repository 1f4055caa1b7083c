import re
from typing import Dict, List
from urllib.parse import urlparse

from app.features.audit.schemas.signals import EeatSignals
from app.features.audit.services.extraction.content_extractor import has_phone_number, has_postal_address
from app.features.audit.services.extraction.html_utils import (
    WHITESPACE_RE,
    attr_text,
    make_soup,
    page_text,
)

PLATFORM_PATTERNS: Dict[str, str] = {
    "google.com/maps": "Google Maps",
    "maps.google.": "Google Maps",
    "goo.gl/maps": "Google Maps",
    "doc.ua": "Doc.ua",
    "likarni.com": "Likarni",
    "helsi.me": "Helsi",
}

SOCIAL_PATTERNS: Dict[str, str] = {
    "facebook.com": "Facebook",
    "instagram.com": "Instagram",
    "youtube.com": "YouTube",
}

SCIENTIFIC_DOMAINS = (
    "ncbi.nlm.nih.gov",
    "pubmed.gov",
    "pubmed.ncbi.nlm.nih.gov",
    "cochrane.org",
    "who.int",
    "moz.gov.ua",
)

PRIVACY_LINK_PATTERNS = ("/privacy", "/policy", "/terms")
PRIVACY_TEXT_PATTERNS = ("політика конфіденційності", "privacy policy")
LICENSE_PATTERNS = ("ліцензія", "license", "наказ моз")
CONTACT_LINK_PATTERNS = ("/contact", "/контакт")
ABOUT_LINK_PATTERNS = ("/about", "/про-нас", "/о-клинике")
ABOUT_TEXT_PATTERNS = ("про нас", "about us")

# Credentials in an author byline
AUTHOR_PATTERNS = ("лікар-", "dr.", "doctor", "к.м.н.", "md", "phd", "професор", "professor")
MEDICAL_AUTHOR_RE = re.compile(
    r"лікар|врач|doctor|dr\.|\bmd\b|к\.м\.н\.|хірург|кардіолог|стоматолог|surgeon|dentist|physician",
    re.I,
)
AUTHOR_LINK_PATTERNS = ("/doctors/", "/team/", "/врачи/", "/лікарі/", "/author/")

CASE_STUDY_PATTERNS = (
    "case", "result", "portfolio", "roboti", "до-та-після", "keisy", "before-after",
)

COMMUNITY_KEYWORDS = (
    "конференц", "виступ", "інтерв'ю", "змі про нас", "асоціація", "конгрес",
    "семінар", "спікер", "доповід", "conference", "interview", "association",
)

EXPERIENCE_PATTERNS = (
    re.compile(r"\d+\+?\s*років", re.I),
    re.compile(r"\d+\+?\s*рок[іу]", re.I),
    re.compile(r"\d+\+?\s*пацієнт", re.I),
    re.compile(r"\d+\+?\s*операц", re.I),
    re.compile(r"\d+\+?\s*years", re.I),
    re.compile(r"\d+\+?\s*patients", re.I),
    re.compile(r"досвід[у]?\s+\d+", re.I),
    re.compile(r"experience\s+\d+", re.I),
    re.compile(r"понад\s+\d+", re.I),
    re.compile(r"більше\s+\d+", re.I),
    re.compile(r"more\s+than\s+\d+", re.I),
)

ARTICLE_CLASS_RE = re.compile(r"^(article|blog-post|post|entry|content-article|news-item)$", re.I)
ARTICLE_URL_MARKERS = ("/blog/", "/article/", "/articles/", "/post/", "/news/", "/стаття/", "/статті/")
ARTICLE_ITEMTYPE_RE = re.compile(r"schema\.org/(Article|BlogPosting|MedicalScholarlyArticle)", re.I)
AUTHOR_PREFIX_RE = re.compile(r"^(автор|author|by):?\s*", re.I)

AUTHOR_SELECTORS = (
    ".author",
    ".byline",
    ".article-author",
    ".post-author",
    "[itemprop=author]",
    "[rel=author]",
    ".author-info",
    ".author-block",
)


def is_article_page(soup, url: str) -> bool:
    """Article markup, a blog-style URL or Article microdata."""
    if soup.find("article") is not None:
        return True
    if soup.find(class_=ARTICLE_CLASS_RE) is not None:
        return True
    path = urlparse(url).path.lower()
    if not path.endswith("/"):
        path += "/"
    if any(marker in path for marker in ARTICLE_URL_MARKERS):
        return True
    return soup.find(attrs={"itemtype": ARTICLE_ITEMTYPE_RE}) is not None


def _matches(hrefs: List[str], patterns: Dict[str, str]) -> List[str]:
    found: List[str] = []
    for href in hrefs:
        for pattern, label in patterns.items():
            if pattern in href and label not in found:
                found.append(label)
    return found


def _author_block(soup):
    for selector in AUTHOR_SELECTORS:
        element = soup.select_one(selector)
        if element is not None:
            return element
    return None


def extract_eeat_signals(html: str, url: str) -> EeatSignals:
    soup = make_soup(html)
    text = page_text(html)
    lowered = text.lower()

    anchors = []
    for link in soup.find_all("a", href=True):
        anchors.append((attr_text(link, "href").lower(), WHITESPACE_RE.sub(" ", link.get_text(" ")).strip().lower()))
    hrefs = [href for href, _ in anchors]

    platforms = _matches(hrefs, PLATFORM_PATTERNS)
    if soup.find("iframe", src=re.compile(r"google\.[a-z.]+/maps", re.I)) is not None and "Google Maps" not in platforms:
        platforms.insert(0, "Google Maps")

    scientific = []
    for href in hrefs:
        host = urlparse(href).netloc
        for domain in SCIENTIFIC_DOMAINS:
            if (host == domain or host.endswith("." + domain)) and domain not in scientific:
                scientific.append(domain)

    author_text = ""
    has_author_block = False
    has_profile_link = False
    block = _author_block(soup)
    if block is not None:
        has_author_block = True
        author_text = AUTHOR_PREFIX_RE.sub("", WHITESPACE_RE.sub(" ", block.get_text(" ")).strip()).lower()
        has_profile_link = block.find("a", href=True) is not None
    if not has_profile_link:
        has_profile_link = any(pattern in href for href in hrefs for pattern in AUTHOR_LINK_PATTERNS)

    return EeatSignals(
        url=url,
        is_article=is_article_page(soup, url),
        has_google_maps="Google Maps" in platforms,
        platforms=tuple(platforms),
        social_links=tuple(_matches(hrefs, SOCIAL_PATTERNS)),
        has_privacy_policy=any(
            any(p in href for p in PRIVACY_LINK_PATTERNS) or any(p in anchor for p in PRIVACY_TEXT_PATTERNS)
            for href, anchor in anchors
        ),
        has_licenses=any(p in lowered for p in LICENSE_PATTERNS),
        has_contact_page=any(
            href.startswith("tel:") or any(p in href for p in CONTACT_LINK_PATTERNS) for href in hrefs
        ),
        has_phone=has_phone_number(soup, text),
        has_address=has_postal_address(text),
        has_about_page=any(
            any(p in href for p in ABOUT_LINK_PATTERNS) or any(p in anchor for p in ABOUT_TEXT_PATTERNS)
            for href, anchor in anchors
        ),
        scientific_sources=tuple(scientific),
        community_mentions=tuple(k for k in COMMUNITY_KEYWORDS if k in lowered),
        has_author_block=has_author_block,
        author_has_credentials=bool(author_text) and any(p in author_text for p in AUTHOR_PATTERNS),
        author_is_medical=bool(MEDICAL_AUTHOR_RE.search(author_text)),
        has_doctor_profile_link=has_profile_link,
        has_case_studies=any(
            any(p in href or p in anchor for p in CASE_STUDY_PATTERNS) for href, anchor in anchors
        ),
        experience_figures=tuple(m.group(0) for p in EXPERIENCE_PATTERNS for m in [p.search(text)] if m),
    )
