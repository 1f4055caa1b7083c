import re
from datetime import datetime, timedelta, timezone
from typing import List, Optional
from urllib.parse import urlparse

from app.features.audit.schemas.signals import ContentSignals, DoctorDetails
from app.features.audit.services.extraction.html_utils import (
    attr_text,
    iter_json_ld_nodes,
    json_ld_blocks,
    make_soup,
    node_types,
    page_text,
)
from app.features.audit.services.scoring.calculators import round_score
from app.platform.utils.url_validator import bare_host, canonical_url, resolve_link

STOP_WORDS = frozenset(
    # Ukrainian
    "дуже що це який яка яке які для про від до на в з і або та але так ні не було була "
    "були буде будуть є єсть був може можна можуть треба потрібно варто слід як також ще вже "
    "тут там де куди звідки коли чому якщо хоча поки після перед під над біля коло між серед через "
    "без проти за при відповідно згідно зокрема "
    # Russian
    "очень что это какой какая какое какие от с и или а но да нет будет будут есть был "
    "может можно могут нужно надо стоит следует как также еще уже здесь где куда откуда когда "
    "почему если хотя пока после около между среди против соответственно согласно "
    # English
    "the a an and or but in on at to for of with by from as is are was were be been being have "
    "has had do does did will would should could may might must can this that these those i you "
    "he she it we they me him her us them my your his its our their mine yours hers ours theirs".split()
)

DOCTOR_LINK_RE = re.compile(r"[/.](doctors|team|vrachi|likari|specialists|doctor|likar|vrach)[/.]", re.I)
SERVICE_LINK_RE = re.compile(r"[/.](services|poslugi|uslugi)[/.]", re.I)
DIRECTION_LINK_RE = re.compile(
    r"[/.](?:napryamki|directions|departments|specialties|specialty|specializations|otdeleniya|"
    r"viddilennya|відділення|напрямки|категорії)(?:[/.]|$|\?)",
    re.I,
)
BLOG_PATH_MARKERS = ("/blog/", "/news/", "/articles/", "/новини/", "/новости/", "/статті/", "/статьи/")

DOCTOR_TEXT_PATTERNS = ("our doctors", "наші лікарі", "наши врачи", "команда лікарів", "команда врачей")

MEDICAL_DEPARTMENTS = (
    "кардіологія", "cardiology", "кардиология",
    "гінекологія", "gynecology", "гинекология",
    "неврологія", "neurology", "неврология",
    "онкологія", "oncology", "онкология",
    "ортопедія", "orthopedics", "ортопедия",
    "дерматологія", "dermatology", "дерматология",
    "стоматологія", "dentistry", "стоматология",
    "педіатрія", "pediatrics", "педиатрия",
    "хірургія", "surgery", "хирургия",
    "офтальмологія", "ophthalmology", "офтальмология",
    "урологія", "urology", "урология",
)

TRUSTED_DOMAINS = (
    "who.int", "nih.gov", "cdc.gov", "ecdc.europa.eu", "un.org", "moz.gov.ua", "phc.org.ua",
    "pubmed.ncbi.nlm.nih.gov", "medlineplus.gov", "cochrane.org", "cebm.org.ua",
    "ncbi.nlm.nih.gov", "ufmo.org.ua", "amzu.info", "cardiology.org",
)
TRUSTED_SUFFIXES = (".edu.ua", ".gov.ua")

PHONE_PATTERNS = (
    re.compile(r"\+380\s?\d{2}\s?\d{3}\s?\d{2}\s?\d{2}"),
    re.compile(r"0\d{2}\s?\d{3}\s?\d{2}\s?\d{2}"),
    re.compile(r"\(\d{3}\)\s?\d{3}-\d{2}-\d{2}"),
    re.compile(r"\+7\s?\d{3}\s?\d{3}\s?\d{2}\s?\d{2}"),
    re.compile(r"8\s?\d{3}\s?\d{3}\s?\d{2}\s?\d{2}"),
)

_CYR = "А-ЯІЇЄҐа-яіїєґ"
ADDRESS_PATTERNS = (
    re.compile(rf"вул\.\s+[{_CYR}\w\s]+,\s*\d+[а-яіїєґ]?,\s*м\.\s+[{_CYR}\w\s]+", re.I),
    re.compile(rf"м\.\s+[{_CYR}\w\s]+,\s*вул\.\s+[{_CYR}\w\s]+", re.I),
    re.compile(r"г\.\s+[А-Яа-я\w\s]+,\s*ул\.\s+[А-Яа-я\w\s]+", re.I),
    re.compile(r"ул\.\s+[А-Яа-я\w\s]+,\s*д\.\s+\d+,\s*г\.\s+[А-Яа-я\w\s]+", re.I),
    re.compile(
        r"(?:Kyiv|Київ|Киев|Lviv|Львів|Львов|Kharkiv|Харків|Харьков|Odesa|Одеса|Одесса)"
        r".*(?:вул\.|ул\.|Street|St\b|проспект|пр\.)",
        re.I,
    ),
)

EXPERIENCE_YEARS_RE = re.compile(r"\d+\s*(років|року|літ|лет|years)", re.I)
WORD_CLEAN_RE = re.compile(r"[^\w]", re.UNICODE)

FAQ_CONTAINER_RE = re.compile(r"faq|accordion", re.I)
FAQ_QUESTION_RE = re.compile(r"question", re.I)
FAQ_ANSWER_RE = re.compile(r"answer", re.I)
POST_CLASS_RE = re.compile(r"post|article", re.I)
DATE_CLASS_RE = re.compile(r"date|time", re.I)

REGULAR_UPDATE_WINDOW = timedelta(days=30)


def calculate_wateriness(text: str):
    """(stop words / words) * 100, rounded. Returns (words, stop_words, wateriness)."""
    words = [w for w in text.lower().split() if w]
    if not words:
        return 0, 0, 0.0
    stop = sum(1 for w in words if WORD_CLEAN_RE.sub("", w) in STOP_WORDS)
    return len(words), stop, round_score(stop / len(words) * 100)


def _path_of(url: str) -> str:
    path = urlparse(url).path.lower()
    return path if path.endswith("/") else path + "/"


def _matching_links(hrefs: List[str], pattern) -> List[str]:
    seen = []
    for href in hrefs:
        if pattern.search(_path_of(href)) and href not in seen:
            seen.append(href)
    return seen


def detect_doctor_details(text: str, soup) -> DoctorDetails:
    lowered = text.lower()
    photos = any(
        any(marker in attr_text(img, "alt").lower() for marker in ("лікар", "врач", "doctor"))
        or "doctor" in attr_text(img, "src").lower()
        for img in soup.find_all("img")
    )
    return DoctorDetails(
        has_photos=photos,
        has_bio=any(k in lowered for k in ("біографія", "биография", "про лікаря", "о враче", "освіта", "образование")),
        has_experience=any(k in lowered for k in ("досвід", "опыт", "стаж")) or bool(EXPERIENCE_YEARS_RE.search(lowered)),
        has_certificates=any(
            k in lowered for k in ("сертифікат", "сертификат", "диплом", "грамота", "award", "certificate")
        ),
    )


def _parse_date(raw: str) -> Optional[datetime]:
    raw = raw.strip()
    if not raw:
        return None
    candidates = [raw, raw[:10]]
    for candidate in candidates:
        try:
            parsed = datetime.fromisoformat(candidate.replace("Z", "+00:00"))
        except ValueError:
            continue
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    for fmt in ("%d.%m.%Y", "%d/%m/%Y"):
        try:
            return datetime.strptime(raw[:10], fmt).replace(tzinfo=timezone.utc)
        except ValueError:
            continue
    return None


def detect_blog_metrics(soup, word_count: int, has_blog_links: bool, reference: datetime):
    posts = {id(tag) for tag in soup.find_all("article")}
    posts |= {id(tag) for tag in soup.find_all(class_=POST_CLASS_RE)}
    posts_count = len(posts)

    dates = []
    for tag in soup.find_all("time"):
        parsed = _parse_date(attr_text(tag, "datetime") or tag.get_text())
        if parsed:
            dates.append(parsed)
    for tag in soup.find_all(class_=DATE_CLASS_RE):
        parsed = _parse_date(tag.get_text())
        if parsed:
            dates.append(parsed)

    regularly_updated = False
    if len(dates) > 1:
        regularly_updated = max(dates) > reference - REGULAR_UPDATE_WINDOW

    avg_length = round(word_count / posts_count) if posts_count else word_count
    if not posts_count and has_blog_links:
        # Blog linked but listing markup not recognisable
        posts_count = 5
    return posts_count, regularly_updated, avg_length


def navigation_depths(soup, url: str) -> List[int]:
    host = bare_host(urlparse(url).netloc)
    depths = []
    seen = set()
    for container in soup.find_all(["nav", "header", "footer"]):
        for link in container.find_all("a", href=True):
            # <nav> inside <header> would otherwise count twice
            if id(link) in seen:
                continue
            seen.add(id(link))
            absolute = resolve_link(url, attr_text(link, "href"))
            if not absolute or bare_host(urlparse(absolute).netloc) != host:
                continue
            depths.append(len([part for part in urlparse(absolute).path.split("/") if part]))
    return depths


def is_trusted_domain(host: str) -> bool:
    host = bare_host(host)
    if any(host == d or host.endswith(f".{d}") for d in TRUSTED_DOMAINS):
        return True
    return host.endswith(TRUSTED_SUFFIXES)


def authority_domains(hrefs: List[str], url: str) -> List[str]:
    own = bare_host(urlparse(url).netloc)
    found: List[str] = []
    for href in hrefs:
        host = bare_host(urlparse(href).netloc)
        if host and host != own and is_trusted_domain(host) and host not in found:
            found.append(host)
    return found


def has_phone_number(soup, text: str) -> bool:
    if soup.find("a", href=re.compile(r"^tel:", re.I)):
        return True
    return any(p.search(text) for p in PHONE_PATTERNS)


def has_postal_address(text: str) -> bool:
    return any(p.search(text) for p in ADDRESS_PATTERNS)


def count_faq_items(soup) -> int:
    payloads, _ = json_ld_blocks(soup)
    schema_count = 0
    for payload in payloads:
        for node in iter_json_ld_nodes(payload):
            if any("faqpage" in t.lower() for t in node_types(node)):
                entities = node.get("mainEntity")
                if isinstance(entities, list):
                    schema_count = max(schema_count, len(entities))
    if schema_count >= 3:
        return schema_count

    for attr in ("class", "id"):
        for container in soup.find_all(attrs={attr: FAQ_CONTAINER_RE}):
            questions = container.find_all(["dt", "h3", "h4"]) + container.find_all(class_=FAQ_QUESTION_RE)
            answers = container.find_all(["dd", "p"]) + container.find_all(class_=FAQ_ANSWER_RE)
            items = max(len(questions), len(answers))
            if items >= 3:
                return items

    for definition_list in soup.find_all("dl"):
        terms = len(definition_list.find_all("dt"))
        if terms >= 3:
            return terms
    return 0


def extract_content_signals(html: str, url: str, reference: Optional[datetime] = None) -> ContentSignals:
    """
    Content-structure signals of one page. ``reference`` is the moment the
    audit started and anchors the "regularly updated" blog check.
    """
    reference = reference or datetime.now(timezone.utc)
    soup = make_soup(html)
    text = page_text(html)
    lowered = text.lower()

    hrefs = []
    for link in soup.find_all("a", href=True):
        absolute = resolve_link(url, attr_text(link, "href"))
        if absolute:
            hrefs.append(canonical_url(absolute))

    page_path = _path_of(url)
    doctor_links = _matching_links(hrefs, DOCTOR_LINK_RE)
    service_links = _matching_links(hrefs, SERVICE_LINK_RE)
    direction_links = _matching_links(hrefs, DIRECTION_LINK_RE)
    has_blog_links = any(marker in href.lower() + "/" for href in hrefs for marker in BLOG_PATH_MARKERS)

    word_count, stop_count, wateriness = calculate_wateriness(text)
    posts_count, regularly_updated, avg_length = detect_blog_metrics(soup, word_count, has_blog_links, reference)
    depths = navigation_depths(soup, url)

    return ContentSignals(
        url=url,
        is_doctor_page=bool(DOCTOR_LINK_RE.search(page_path)),
        is_service_page=bool(SERVICE_LINK_RE.search(page_path)),
        is_direction_page=bool(DIRECTION_LINK_RE.search(page_path)),
        is_blog_page=any(marker in page_path for marker in BLOG_PATH_MARKERS),
        has_blog_links=has_blog_links,
        has_department_keywords=any(dept in lowered for dept in MEDICAL_DEPARTMENTS),
        doctor_links=tuple(doctor_links),
        service_links=tuple(service_links),
        direction_links=tuple(direction_links),
        has_doctor_section_text=any(p in lowered for p in DOCTOR_TEXT_PATTERNS),
        word_count=word_count,
        stop_word_count=stop_count,
        wateriness=wateriness,
        doctor_details=detect_doctor_details(text, soup),
        blog_posts_count=posts_count,
        blog_regularly_updated=regularly_updated,
        avg_article_length=avg_length,
        nav_link_count=len(depths),
        nav_avg_depth=round_score(sum(depths) / len(depths)) if depths else None,
        nav_max_depth=max(depths) if depths else None,
        authority_domains=tuple(authority_domains(hrefs, url)),
        has_phone=has_phone_number(soup, text),
        has_address=has_postal_address(text),
        faq_count=count_faq_items(soup),
    )
