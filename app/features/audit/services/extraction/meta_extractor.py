import re

from app.features.audit.schemas.signals import MetaSignals
from app.features.audit.services.extraction.html_utils import WHITESPACE_RE, attr_text, make_soup

TITLE_MIN_LENGTH = 30
TITLE_MAX_LENGTH = 60
DESCRIPTION_MIN_LENGTH = 120
DESCRIPTION_MAX_LENGTH = 160


def _meta_by_name(soup, name: str):
    return soup.find("meta", attrs={"name": re.compile(rf"^{name}$", re.I)})


def extract_meta_signals(html: str, url: str) -> MetaSignals:
    """
    Title, description and the small head/body checks that feed the
    technical score. A tag that exists but is empty counts as present
    and never as optimal.
    """
    soup = make_soup(html)

    title_tag = soup.find("title")
    title = WHITESPACE_RE.sub(" ", title_tag.get_text()).strip() if title_tag else None
    title_length = len(title) if title is not None else 0

    description_tag = _meta_by_name(soup, "description")
    description = attr_text(description_tag, "content") if description_tag else None
    description_length = len(description) if description is not None else 0

    canonical_tag = soup.find("link", rel="canonical")
    canonical = attr_text(canonical_tag, "href") or None if canonical_tag else None

    robots_tag = _meta_by_name(soup, "robots")
    noindex = bool(robots_tag and "noindex" in attr_text(robots_tag, "content").lower())

    html_tag = soup.find("html")
    lang = attr_text(html_tag, "lang") or None if html_tag else None

    images = soup.find_all("img")
    missing_alt = sum(1 for img in images if not attr_text(img, "alt"))

    return MetaSignals(
        url=url,
        title_present=title_tag is not None,
        title=title,
        title_length=title_length,
        title_optimal=TITLE_MIN_LENGTH <= title_length <= TITLE_MAX_LENGTH,
        description_present=description_tag is not None,
        description=description,
        description_length=description_length,
        description_optimal=DESCRIPTION_MIN_LENGTH <= description_length <= DESCRIPTION_MAX_LENGTH,
        canonical=canonical,
        lang=lang,
        has_viewport=_meta_by_name(soup, "viewport") is not None,
        noindex=noindex,
        images_total=len(images),
        images_missing_alt=missing_alt,
    )
