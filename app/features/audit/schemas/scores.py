from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from app.features.audit.schemas.discovery import PageDiscoveryManifest
from app.features.audit.schemas.fetch import FetchFailure


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class Recommendation(BaseModel):
    model_config = ConfigDict(frozen=True)

    code: str
    category: str
    severity: Severity = Severity.INFO
    message: str


class CategoryScore(BaseModel):
    """
    Score of one category. Build through ``make_category_score`` so the
    value is clamped and rounded the same way everywhere.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    value: float = Field(ge=0, le=100)
    weight: float = Field(ge=0, le=1)
    contributing_signals: Tuple[str, ...] = ()
    available: bool = True
    partials: Dict[str, Optional[float]] = Field(default_factory=dict)


class AuditResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    root_url: str
    audit_key: str
    categories: Dict[str, CategoryScore] = Field(default_factory=dict)
    composite: float = Field(ge=0, le=100)
    recommendations: List[Recommendation] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    discovery: Optional[PageDiscoveryManifest] = None
    pages_succeeded: int = 0
    pages_failed: List[FetchFailure] = Field(default_factory=list)

    def metric_values(self) -> Dict[str, float]:
        """Flat metric view used by the comparison engine."""
        metrics = {"composite": self.composite}
        for name, category in self.categories.items():
            metrics[name] = category.value
        return metrics


class VisibilityItem(BaseModel):
    """One tracked service/query as seen in an AI engine answer."""
    is_visible: bool
    position: Optional[int] = None
    total_results: int = 10
    competitor_score: float = 0.0
    competitor_domains: List[str] = Field(default_factory=list)


class VisibilityScoreBreakdown(BaseModel):
    model_config = ConfigDict(frozen=True)

    visibility: float
    position_score: float
    competitor_score: float
    score: float


class CompetitorPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    domain: str
    mentions: int
    avg_position: Optional[float] = None
    ai_score: float
    is_client: bool = False
