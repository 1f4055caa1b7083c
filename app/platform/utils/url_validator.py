from typing import Optional, Tuple
from urllib.parse import urljoin, urlparse, urlunparse


def normalize_url(url: str) -> Tuple[str, bool]:
    """Add https:// when the scheme is missing. Returns (url, was_modified)."""
    url = url.strip()

    parsed = urlparse(url)

    if not parsed.scheme:
        normalized = f"https://{url.lstrip('/')}"
        return normalized, True

    return url, False


def validate_url(url: str) -> Tuple[bool, str, str]:
    if not url or not url.strip():
        return False, "", "URL cannot be empty"

    normalized_url, _ = normalize_url(url)

    try:
        parsed = urlparse(normalized_url)

        if not parsed.netloc:
            return False, normalized_url, "Invalid URL format: missing domain"

        if parsed.scheme not in ["http", "https"]:
            return False, normalized_url, f"Invalid URL scheme: {parsed.scheme} (must be http or https)"

        return True, normalized_url, ""

    except ValueError as e:
        return False, normalized_url, f"URL parsing error: {str(e)}"


def site_root(url: str) -> str:
    """scheme://host of a URL, no path."""
    parsed = urlparse(normalize_url(url)[0])
    return urlunparse((parsed.scheme, parsed.netloc, "", "", "", ""))


def bare_host(host: str) -> str:
    host = (host or "").lower().split(":")[0]
    return host[4:] if host.startswith("www.") else host


def canonical_url(url: str) -> str:
    """
    Dedup key for a page URL: lowercase scheme and host, no "www.", no
    fragment, no trailing slash (root path stays "/"). Query strings are kept.
    """
    parsed = urlparse(url.strip())
    scheme = (parsed.scheme or "https").lower()
    host = bare_host(parsed.netloc)
    path = parsed.path or "/"
    if len(path) > 1:
        path = path.rstrip("/") or "/"
    return urlunparse((scheme, host, path, "", parsed.query, ""))


def normalize_audit_key(url: str) -> str:
    """Lookup key for audit history: same URL with or without scheme/www/slash maps to one key."""
    normalized, _ = normalize_url(url)
    key = canonical_url(normalized)
    return key[:-1] if key.endswith("/") else key


def resolve_link(base_url: str, href: Optional[str]) -> Optional[str]:
    """Absolute http(s) URL for an href, or None for mailto:, tel:, javascript: and fragments."""
    if not href:
        return None
    href = href.strip()
    if not href or href.startswith("#"):
        return None
    absolute = urljoin(base_url, href)
    if urlparse(absolute).scheme not in ("http", "https"):
        return None
    return absolute


def is_same_site(url: str, base_url: str) -> bool:
    """Same host ignoring "www."; scheme differences are tolerated."""
    try:
        a, b = urlparse(url), urlparse(base_url)
    except ValueError:
        return False
    if not a.netloc or not b.netloc:
        return False
    return bare_host(a.netloc) == bare_host(b.netloc)
