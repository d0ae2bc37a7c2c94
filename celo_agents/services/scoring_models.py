"""
Scoring Models
Lightweight, deterministic stand-ins for ML: weighted linear scoring,
nearest-point clustering and distance-based anomaly detection.
Stateless at evaluation time: feature vector in, score out.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ..infrastructure.errors import CatalogError


class ScoringModelKind(str, Enum):
    CLASSIFICATION = "classification"
    REGRESSION = "regression"
    CLUSTERING = "clustering"
    ANOMALY_DETECTION = "anomaly_detection"


@dataclass
class ScoringModel:
    id: str
    name: str
    kind: ScoringModelKind
    features: List[str]
    weights: List[float]
    threshold: Optional[float] = None
    training_data: List[List[float]] = field(default_factory=list)
    accuracy: float = 0.0

    def __post_init__(self):
        self.kind = ScoringModelKind(self.kind)
        if len(self.features) != len(self.weights):
            raise CatalogError(
                f"Model '{self.id}' has {len(self.features)} features but {len(self.weights)} weights",
                self.id,
            )

    def score(self, vector: Sequence[float]) -> float:
        return run_model(self, vector)


def euclidean_distance(a: Sequence[float], b: Sequence[float]) -> float:
    if len(a) != len(b):
        return math.inf
    return math.sqrt(sum((x - y) ** 2 for x, y in zip(a, b)))


def run_model(model: ScoringModel, vector: Sequence[float]) -> float:
    """Score a feature vector. Mismatched vector length scores 0."""
    if len(vector) != len(model.features):
        return 0.0

    raw = sum(x * w for x, w in zip(vector, model.weights))

    if model.kind is ScoringModelKind.CLASSIFICATION:
        threshold = model.threshold if model.threshold is not None else 0.5
        return 1.0 if raw >= threshold else 0.0

    if model.kind is ScoringModelKind.REGRESSION:
        return min(1.0, max(0.0, raw))

    if model.kind is ScoringModelKind.CLUSTERING:
        return _cluster_affinity(model, vector)

    return _anomaly(model, vector)


def _cluster_affinity(model: ScoringModel, vector: Sequence[float]) -> float:
    """1 - nearest / farthest training point distance"""
    distances = [d for d in (euclidean_distance(vector, p) for p in model.training_data) if math.isfinite(d)]
    if not distances:
        return 0.0
    farthest = max(distances)
    if farthest == 0:
        return 0.0
    return 1.0 - min(distances) / farthest


def _anomaly(model: ScoringModel, vector: Sequence[float]) -> float:
    """1 when the mean distance to training points exceeds the threshold"""
    distances = [d for d in (euclidean_distance(vector, p) for p in model.training_data) if math.isfinite(d)]
    if not distances:
        return 0.0
    threshold = model.threshold if model.threshold is not None else 0.5
    return 1.0 if sum(distances) / len(distances) > threshold else 0.0
