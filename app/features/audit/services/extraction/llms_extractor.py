import re
from typing import Optional

from app.features.audit.schemas.signals import LlmsSignals
from app.features.audit.services.scoring.calculators import finalize_score, round_score

PRESENCE_CREDIT = 30.0
CONTENT_CREDIT = 20.0
QUALITY_SHARE = 0.5
MIN_CONTENT_LENGTH = 50
MAX_CONTENT_LENGTH = 100_000

HEADING_RE = re.compile(r"(^|\n)#+\s+\w+", re.M)
ORGANIZATION_RE = re.compile(r"organization|clinic|hospital|medical", re.I)
DOCTORS_RE = re.compile(r"doctor|dr\.|physician|specialist|licen[sc]e", re.I)
ADDRESS_RE = re.compile(r"\b\d{1,4}\s+\w+|address:|street|city|postcode|postal code|zip", re.I)
PHONE_RE = re.compile(r"\+?\d{5,15}|phone:", re.I)
SERVICES_RE = re.compile(r"service|procedure|conditions|treat(s|ment)", re.I)
DATES_RE = re.compile(r"updated|\b20\d{2}\b|\b\d{4}-\d{2}-\d{2}\b", re.I)


def extract_llms_signals(content: Optional[str], url: str) -> LlmsSignals:
    """
    Score of an llms.txt file out of 100:

    - 30 for existing at all
    - 20 for non-trivial content that stays under the size ceiling
    - half of the heuristic quality score (organization, locations,
      doctors, services, structure and freshness)
    """
    if content is None:
        return LlmsSignals(
            url=url,
            missing_sections=("llms.txt missing",),
            recommendations=("Add an llms.txt file to help AI systems understand your content structure.",),
        )

    text = content.strip()
    length = len(text)
    oversized = length > MAX_CONTENT_LENGTH
    has_content = MIN_CONTENT_LENGTH <= length <= MAX_CONTENT_LENGTH

    has_heading = bool(HEADING_RE.search(text))
    has_organization = bool(ORGANIZATION_RE.search(text))
    has_doctors = bool(DOCTORS_RE.search(text))
    has_addresses = bool(ADDRESS_RE.search(text))
    has_phone = bool(PHONE_RE.search(text))
    has_services = bool(SERVICES_RE.search(text))
    has_dates = bool(DATES_RE.search(text))

    heuristic = 0.0
    if has_organization:
        heuristic += 20
    if has_addresses and has_phone:
        heuristic += 25
    if has_doctors:
        heuristic += 25
    if has_services:
        heuristic += 20
    if has_heading and has_dates:
        heuristic += 10

    missing = []
    recommendations = []
    if not text:
        missing.append("llms.txt is empty")
        recommendations.append("Add content to llms.txt to improve AI visibility.")
    if oversized:
        recommendations.append("Trim llms.txt to a concise summary; very large files are not read in full.")
    if not has_organization:
        missing.append("Organization identity (name, aliases)")
        recommendations.append("Add an 'Organization' section: full legal name, aliases and the cities served.")
    if not has_addresses:
        missing.append("Office locations with full addresses")
        recommendations.append("List each office with full address and postal code.")
    if not has_phone:
        missing.append("Phone numbers in local format")
        recommendations.append("Add phone numbers in international format.")
    if not has_doctors:
        missing.append("Doctor/specialist profiles with credentials")
        recommendations.append("Create a 'Doctors' section with names, degrees, specializations and license numbers.")
    if not has_services:
        missing.append("Service definitions (procedure descriptions, conditions treated)")
        recommendations.append("For each service, describe the procedure, conditions treated and expected outcomes.")
    if not has_heading:
        missing.append("Structured headings (H1/H2/H3) for readability")
        recommendations.append("Use Markdown headings to structure llms.txt for easier parsing by LLMs.")
    if not has_dates:
        recommendations.append("Add last-updated dates for freshness signals.")
    if heuristic < 30 and text:
        recommendations.insert(0, "File exists but lacks the key sections listed below.")

    score = PRESENCE_CREDIT
    if has_content:
        score += CONTENT_CREDIT
        score += heuristic * QUALITY_SHARE

    return LlmsSignals(
        url=url,
        present=True,
        content_length=length,
        has_content=has_content,
        oversized=oversized,
        has_organization=has_organization,
        has_addresses=has_addresses,
        has_phone=has_phone,
        has_doctors=has_doctors,
        has_services=has_services,
        has_headings=has_heading,
        has_dates=has_dates,
        heuristic_score=round_score(heuristic),
        score=finalize_score(score),
        missing_sections=tuple(missing),
        recommendations=tuple(recommendations),
    )
