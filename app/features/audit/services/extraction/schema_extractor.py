from typing import Dict, List, Set

from app.features.audit.schemas.signals import SchemaSignals, SchemaTypeStatus
from app.features.audit.services.extraction.html_utils import (
    iter_json_ld_nodes,
    json_ld_blocks,
    make_soup,
    node_types,
)
from app.features.audit.services.scoring.calculators import round_score

# Rich-result catalog: a type is valid when an instance carries at least one of these
REQUIRED_FIELDS: Dict[str, List[str]] = {
    "Organization": ["name", "url", "logo", "sameAs"],
    "LocalBusiness": ["name", "address", "telephone", "url"],
    "Product": ["name", "description", "image", "offers"],
    "Article": ["headline", "datePublished", "author", "image"],
    "BreadcrumbList": ["itemListElement", "position", "name"],
    "FAQPage": ["mainEntity", "question", "acceptedAnswer"],
    "VideoObject": ["name", "description", "thumbnailUrl", "uploadDate"],
    "AggregateRating": ["ratingValue", "ratingCount", "bestRating"],
}

# Medical catalog checked by the technical audit, with accepted subtypes
MEDICAL_TYPES: Dict[str, Set[str]] = {
    "MedicalOrganization": {"medicalorganization", "medicalclinic", "hospital", "dentist"},
    "LocalBusiness": {"localbusiness", "medicalbusiness", "medicalclinic", "dentist"},
    "Physician": {"physician"},
    "MedicalProcedure": {"medicalprocedure"},
    "MedicalSpecialty": {"medicalspecialty"},
    "FAQPage": {"faqpage"},
    "Review": {"review"},
    "BreadcrumbList": {"breadcrumblist"},
}


def _has_value(value) -> bool:
    if value is None:
        return False
    if isinstance(value, (str, list, dict)):
        return len(value) > 0
    return True


def _field_present(node: dict, field: str) -> bool:
    """Field on the node itself, or on its direct children (e.g. itemListElement[].position)."""
    if _has_value(node.get(field)):
        return True
    for value in node.values():
        children = value if isinstance(value, list) else [value]
        for child in children:
            if isinstance(child, dict) and _has_value(child.get(field)):
                return True
    return False


def extract_schema_signals(html: str, url: str) -> SchemaSignals:
    soup = make_soup(html)
    payloads, invalid = json_ld_blocks(soup)

    counts: Dict[str, int] = {name: 0 for name in REQUIRED_FIELDS}
    found: Dict[str, Set[str]] = {name: set() for name in REQUIRED_FIELDS}
    valid: Dict[str, bool] = {name: False for name in REQUIRED_FIELDS}
    seen_types: List[str] = []

    for payload in payloads:
        for node in iter_json_ld_nodes(payload):
            for type_name in node_types(node):
                if type_name not in seen_types:
                    seen_types.append(type_name)
                if type_name not in REQUIRED_FIELDS:
                    continue
                counts[type_name] += 1
                present_fields = {f for f in REQUIRED_FIELDS[type_name] if _field_present(node, f)}
                found[type_name] |= present_fields
                if present_fields:
                    valid[type_name] = True

    statuses = {}
    for name, required in REQUIRED_FIELDS.items():
        statuses[name] = SchemaTypeStatus(
            present=counts[name] > 0,
            valid=valid[name],
            count=counts[name],
            found_fields=tuple(f for f in required if f in found[name]),
            missing_fields=tuple(f for f in required if f not in found[name]) if counts[name] else (),
        )

    lowered = {t.lower() for t in seen_types}
    medical = {name: bool(lowered & aliases) for name, aliases in MEDICAL_TYPES.items()}
    valid_count = sum(1 for status in statuses.values() if status.valid)

    return SchemaSignals(
        url=url,
        blocks_found=len(payloads) + invalid,
        invalid_blocks=invalid,
        types=statuses,
        valid_types_count=valid_count,
        total_score=round_score(valid_count / len(REQUIRED_FIELDS) * 100),
        medical_types=medical,
        all_types=tuple(seen_types),
    )
