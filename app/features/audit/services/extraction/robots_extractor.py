from typing import List, Optional, Tuple

from app.features.audit.schemas.signals import RobotsRule, RobotsSignals
from app.features.audit.services.scoring.calculators import finalize_score

AI_BOT_USER_AGENTS = (
    "gptbot",
    "chatgpt-user",
    "anthropic-ai",
    "claude-web",
    "claudebot",
    "cohere-ai",
    "perplexitybot",
    "google-extended",
    "bingbot",
    "googlebot",
)

WILDCARD_BLOCK_LABEL = "* (all bots)"

_ACCEPTABLE_BASE = (
    "/admin", "/login", "/register", "/cart", "/checkout", "/user",
    "/account", "/wp-admin", "/api", "/private", "/test", "/tmp",
)
ACCEPTABLE_DISALLOW_PATHS = frozenset(
    [p for base in _ACCEPTABLE_BASE for p in (base, base + "/")] + ["/*.pdf$", "/cgi-bin"]
)
PROBLEMATIC_DISALLOW_LIMIT = 5


def parse_robots_txt(content: str) -> Tuple[List[RobotsRule], List[str]]:
    """
    Line based parse. Each User-agent line opens a new group; empty
    Disallow/Allow values are ignored; Sitemap lines are global.
    """
    groups: List[dict] = []
    sitemaps: List[str] = []
    current: Optional[dict] = None

    for raw_line in content.splitlines():
        line = raw_line.split("#", 1)[0].strip()
        if not line or ":" not in line:
            continue
        directive, _, value = line.partition(":")
        directive = directive.strip().lower()
        value = value.strip()

        if directive == "user-agent":
            current = {"user_agent": value.lower(), "disallow": [], "allow": []}
            groups.append(current)
        elif directive in ("disallow", "allow"):
            if current is not None and value:
                current[directive].append(value)
        elif directive == "sitemap":
            if value:
                sitemaps.append(value)

    rules = [RobotsRule(**group) for group in groups]
    return rules, sitemaps


def blocks_all_paths(rule: RobotsRule) -> bool:
    return any(path in ("/", "/*") for path in rule.disallow)


def find_blocked_ai_bots(rules: List[RobotsRule]) -> List[str]:
    blocked: List[str] = []
    has_ai_specific_rules = any(
        bot in rule.user_agent for rule in rules for bot in AI_BOT_USER_AGENTS
    )
    for rule in rules:
        if blocks_all_paths(rule):
            for bot in AI_BOT_USER_AGENTS:
                if bot in rule.user_agent and bot not in blocked:
                    blocked.append(bot)
            if rule.user_agent == "*" and not has_ai_specific_rules and WILDCARD_BLOCK_LABEL not in blocked:
                blocked.append(WILDCARD_BLOCK_LABEL)
    return blocked


def _problematic_disallows(rule: Optional[RobotsRule]) -> int:
    if rule is None:
        return 0
    acceptable = {p.lower() for p in ACCEPTABLE_DISALLOW_PATHS}
    return sum(1 for path in rule.disallow if path != "/" and path.lower() not in acceptable)


def extract_robots_signals(content: Optional[str], url: str) -> RobotsSignals:
    """
    ``content`` is None when robots.txt could not be fetched. An empty file
    is present with a reduced score of 10.
    """
    if content is None:
        return RobotsSignals(
            url=url,
            issues=("robots.txt is missing",),
            recommendations=("Create a robots.txt file to control crawling and indexing",),
        )

    if not content.strip():
        return RobotsSignals(
            url=url,
            present=True,
            empty=True,
            score=10.0,
            issues=("robots.txt is empty",),
            recommendations=("Add crawl rules and a Sitemap directive to robots.txt",),
        )

    rules, sitemap_urls = parse_robots_txt(content)
    wildcard = next((rule for rule in rules if rule.user_agent == "*"), None)
    disallow_all = blocks_all_paths(wildcard) if wildcard else False
    blocked = find_blocked_ai_bots(rules)
    problematic = _problematic_disallows(wildcard)

    issues: List[str] = []
    recommendations: List[str] = []
    score = 20.0

    if sitemap_urls:
        score += 30
    else:
        issues.append("No Sitemap directive in robots.txt")
        recommendations.append("Add a directive such as 'Sitemap: https://yoursite.com/sitemap.xml'")

    if disallow_all:
        score -= 50
        issues.append("'Disallow: /' blocks the whole site for crawlers")
        recommendations.append("Remove 'Disallow: /' or replace it with specific paths")
    else:
        score += 25

    if blocked:
        score -= 30
        issues.append(f"AI crawlers are blocked: {', '.join(blocked)}")
        recommendations.append("Allow AI crawlers (GPTBot, ChatGPT-User, PerplexityBot) to be cited in AI answers")
    else:
        score += 25

    if wildcard is not None:
        score += 10

    if problematic > PROBLEMATIC_DISALLOW_LIMIT:
        issues.append(f"Too many disallowed paths ({problematic})")
        recommendations.append("Review the Disallow rules; some of them are probably unnecessary")

    return RobotsSignals(
        url=url,
        present=True,
        rules=tuple(rules),
        sitemap_urls=tuple(sitemap_urls),
        disallow_all=disallow_all,
        blocks_ai_bots=bool(blocked),
        blocked_ai_bots=tuple(blocked),
        has_wildcard_user_agent=wildcard is not None,
        problematic_disallow_count=problematic,
        score=finalize_score(score),
        issues=tuple(issues),
        recommendations=tuple(recommendations),
    )
