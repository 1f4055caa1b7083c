import json
import re
from typing import Any, Iterator, List, Tuple

from bs4 import BeautifulSoup

WHITESPACE_RE = re.compile(r"\s+")


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def page_text(html: str) -> str:
    """Visible text of a document, whitespace collapsed. Scripts and styles are dropped."""
    soup = make_soup(html)
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    root = soup.body or soup
    return WHITESPACE_RE.sub(" ", root.get_text(" ")).strip()


def attr_text(tag, name: str) -> str:
    value = tag.get(name)
    if isinstance(value, list):
        value = " ".join(value)
    return (value or "").strip()


def json_ld_blocks(soup: BeautifulSoup) -> Tuple[List[Any], int]:
    """Parsed JSON-LD payloads plus the number of blocks that were not valid JSON."""
    parsed = []
    invalid = 0
    for script in soup.find_all("script", attrs={"type": re.compile(r"application/ld\+json", re.I)}):
        raw = script.string or script.get_text() or ""
        if not raw.strip():
            continue
        try:
            parsed.append(json.loads(raw))
        except json.JSONDecodeError:
            invalid += 1
    return parsed, invalid


def iter_json_ld_nodes(payload: Any) -> Iterator[dict]:
    """Every object node of a JSON-LD payload: top level, @graph members, lists and nested values."""
    if isinstance(payload, list):
        for item in payload:
            yield from iter_json_ld_nodes(item)
    elif isinstance(payload, dict):
        yield payload
        for key, value in payload.items():
            if key == "@context":
                continue
            if isinstance(value, (dict, list)):
                yield from iter_json_ld_nodes(value)


def node_types(node: dict) -> List[str]:
    raw = node.get("@type")
    if isinstance(raw, str):
        return [raw]
    if isinstance(raw, list):
        return [t for t in raw if isinstance(t, str)]
    return []
