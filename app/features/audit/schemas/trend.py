from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class TrendStatus(str, Enum):
    IMPROVED = "improved"
    DECLINED = "declined"
    STABLE = "stable"


class TrendDelta(BaseModel):
    model_config = ConfigDict(frozen=True)

    metric_name: str
    previous: float
    current: float
    absolute: float
    percent: Optional[float] = None
    status: TrendStatus = TrendStatus.STABLE


class ComparisonResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    deltas: List[TrendDelta] = Field(default_factory=list)
    summary: str
    has_baseline: bool = True
    improved: List[str] = Field(default_factory=list)
    declined: List[str] = Field(default_factory=list)
    stable: List[str] = Field(default_factory=list)


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class TrendIndicator(BaseModel):
    """Arrow shown next to a dashboard KPI."""
    model_config = ConfigDict(frozen=True)

    change_percent: float
    direction: TrendDirection
    is_positive: bool
