from typing import List, Optional

from app.features.audit.schemas.signals import LocalSignals
from app.features.audit.services.extraction.html_utils import (
    attr_text,
    iter_json_ld_nodes,
    json_ld_blocks,
    make_soup,
    node_types,
)

LOCAL_BUSINESS_MARKERS = ("localbusiness", "medicalbusiness", "physician", "hospital", "dentist", "clinic")
FACEBOOK_PATTERNS = ("facebook.com", "fb.com")
INSTAGRAM_PATTERNS = ("instagram.com",)


def _schema_type_label(types: List[str]) -> str:
    if any("hospital" in t for t in types):
        return "Hospital"
    if any("physician" in t or "doctor" in t for t in types):
        return "Physician"
    if any("medical" in t for t in types):
        return "MedicalBusiness"
    return "LocalBusiness"


def find_social_profile(soup, patterns) -> Optional[str]:
    for link in soup.find_all("a", href=True):
        href = attr_text(link, "href")
        if any(p in href.lower() for p in patterns):
            return href if href.startswith("http") else f"https://{href.lstrip('/')}"
    return None


def extract_local_signals(html: str, url: str) -> LocalSignals:
    """
    LocalBusiness-family markup and social profiles linked from the page.
    The markup works when a single node carries name, address and telephone.
    """
    soup = make_soup(html)
    payloads, _ = json_ld_blocks(soup)

    schema_type = None
    has_name = has_address = has_phone = has_hours = False
    functioning = False
    for payload in payloads:
        for node in iter_json_ld_nodes(payload):
            types = [t.lower() for t in node_types(node)]
            if not any(marker in t for t in types for marker in LOCAL_BUSINESS_MARKERS):
                continue
            schema_type = schema_type or _schema_type_label(types)
            node_name = bool(node.get("name"))
            node_address = bool(node.get("address"))
            node_phone = bool(node.get("telephone"))
            has_name = has_name or node_name
            has_address = has_address or node_address
            has_phone = has_phone or node_phone
            has_hours = has_hours or "openingHours" in node or "openingHoursSpecification" in node
            functioning = functioning or (node_name and node_address and node_phone)

    return LocalSignals(
        url=url,
        schema_implemented=schema_type is not None,
        schema_functioning=functioning,
        schema_type=schema_type,
        schema_has_name=has_name,
        schema_has_address=has_address,
        schema_has_phone=has_phone,
        schema_has_hours=has_hours,
        facebook_url=find_social_profile(soup, FACEBOOK_PATTERNS),
        instagram_url=find_social_profile(soup, INSTAGRAM_PATTERNS),
    )
