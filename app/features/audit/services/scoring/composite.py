import logging
import math
from typing import Dict, Mapping, Optional

from app.features.audit.schemas.scores import CategoryScore
from app.features.audit.services.scoring.calculators import (
    ensure_percentage,
    finalize_score,
)
from app.platform.events import WEIGHT_INVARIANT_VIOLATED, emit_event, engine_logger
from app.platform.exceptions import InvalidInput, InvalidWeightConfiguration

logger = engine_logger(__name__)

WEIGHT_TOLERANCE = 1e-9

# Baseline for the "other" slot of the composite when nothing feeds it
OTHER_BASELINE = 50.0


class WeightedFormula:
    """
    A fixed weighted sum. The weight total is checked once, here, so a bad
    edit to any formula fails at import time instead of skewing scores.
    The result is divided by the documented total, which lets partial
    formulas (e.g. structure, total 0.65) still land on a 0-100 scale.
    """

    def __init__(
        self,
        name: str,
        weights: Mapping[str, float],
        total: float = 1.0,
        log: Optional[logging.Logger] = None,
    ):
        self.name = name
        self.weights: Dict[str, float] = dict(weights)
        self.total = total
        self._validate(log or logger)

    def _validate(self, log: logging.Logger) -> None:
        actual = math.fsum(self.weights.values())
        bad_weight = any(w < 0 or w > 1 for w in self.weights.values())
        if bad_weight or self.total <= 0 or abs(actual - self.total) > WEIGHT_TOLERANCE:
            emit_event(
                log,
                WEIGHT_INVARIANT_VIOLATED,
                f"Weights of formula '{self.name}' sum to {actual}, expected {self.total}",
                level=logging.ERROR,
                formula=self.name,
                expected=self.total,
                actual=actual,
            )
            raise InvalidWeightConfiguration(
                f"Weights of formula '{self.name}' sum to {actual}, expected {self.total}"
            )

    def weight_of(self, key: str) -> float:
        return self.weights[key]

    def raw(self, values: Mapping[str, float]) -> float:
        missing = [key for key in self.weights if key not in values]
        if missing:
            raise InvalidInput(f"Formula '{self.name}' is missing inputs: {', '.join(missing)}")
        weighted = math.fsum(
            ensure_percentage(key, values[key]) * weight for key, weight in self.weights.items()
        )
        return weighted / self.total

    def compute(self, values: Mapping[str, float]) -> float:
        return finalize_score(self.raw(values))


CLINIC_AI_FORMULA = WeightedFormula(
    "clinic_ai_score",
    {
        "visibility": 0.25,
        "tech": 0.20,
        "content": 0.20,
        "trust": 0.15,
        "local": 0.10,
        "other": 0.10,
    },
)


class CompositeScoreEngine:
    """Rolls category scores into the single composite score."""

    def __init__(
        self,
        formula: WeightedFormula = CLINIC_AI_FORMULA,
        other_baseline: float = OTHER_BASELINE,
    ):
        self.formula = formula
        self.other_baseline = ensure_percentage("other baseline", other_baseline)

    def score(
        self,
        visibility: float,
        tech: float,
        content: float,
        trust: float,
        local: float,
        other: Optional[float] = None,
    ) -> float:
        return self.formula.compute(
            {
                "visibility": visibility,
                "tech": tech,
                "content": content,
                "trust": trust,
                "local": local,
                "other": self.other_baseline if other is None else other,
            }
        )

    def from_categories(self, categories: Mapping[str, CategoryScore]) -> float:
        """Categories missing from the mapping count as 0, except "other" which takes the baseline."""
        values = {}
        for key in self.formula.weights:
            category = categories.get(key)
            if category is not None:
                values[key] = category.value
            elif key == "other":
                values[key] = self.other_baseline
            else:
                values[key] = 0.0
        return self.formula.compute(values)
