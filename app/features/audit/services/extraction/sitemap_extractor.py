from typing import List, Optional

from app.features.audit.schemas.discovery import SitemapDocument
from app.features.audit.services.extraction.html_utils import make_soup


def _locs(entries) -> List[str]:
    urls = []
    for entry in entries:
        loc = entry.find("loc")
        if loc is None:
            continue
        value = loc.get_text().strip()
        if value:
            urls.append(value)
    return urls


def parse_sitemap(xml_text: Optional[str]) -> SitemapDocument:
    """
    Page URLs of a <urlset> or child sitemaps of a <sitemapindex>.
    Broken or non-sitemap input yields an empty document.
    """
    if not xml_text or not xml_text.strip():
        return SitemapDocument()

    # html.parser is lenient with truncated files and lowercases tag names
    soup = make_soup(xml_text)
    url_entries = soup.find_all("url")
    sitemap_entries = soup.find_all("sitemap")
    is_index = soup.find("sitemapindex") is not None or (bool(sitemap_entries) and not url_entries)

    return SitemapDocument(
        is_index=is_index,
        urls=_locs(url_entries),
        child_sitemaps=_locs(sitemap_entries),
    )
