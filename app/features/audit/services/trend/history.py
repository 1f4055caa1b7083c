import asyncio
from collections import defaultdict
from typing import Dict, List, Protocol

from app.features.audit.schemas.scores import AuditResult
from app.features.audit.schemas.trend import ComparisonResult
from app.features.audit.services.trend.comparison import compare
from app.platform.exceptions import InvalidInput
from app.platform.utils.url_validator import normalize_audit_key


class AuditHistoryStore(Protocol):
    """Storage boundary. Implementations keep finished results per normalized URL."""

    async def save(self, result: AuditResult) -> None:
        ...

    async def recent(self, key: str, limit: int = 2) -> List[AuditResult]:
        """Most recent results for ``key``, newest first."""
        ...


class InMemoryAuditHistoryStore:
    def __init__(self):
        self._results: Dict[str, List[AuditResult]] = defaultdict(list)
        self._lock = asyncio.Lock()

    async def save(self, result: AuditResult) -> None:
        async with self._lock:
            self._results[normalize_audit_key(result.root_url)].append(result)

    async def recent(self, key: str, limit: int = 2) -> List[AuditResult]:
        if limit < 1:
            raise InvalidInput(f"limit must be at least 1, got {limit}")
        async with self._lock:
            results = list(self._results.get(normalize_audit_key(key), []))
        results.sort(key=lambda r: r.created_at, reverse=True)
        return results[:limit]


async def load_comparison(store: AuditHistoryStore, url: str) -> ComparisonResult:
    """Compare the two most recent audits of a site. One or none yields the no-baseline result."""
    results = await store.recent(normalize_audit_key(url), limit=2)
    if not results:
        return compare(None, {})
    current = results[0]
    previous = results[1] if len(results) > 1 else None
    return compare(previous, current)
