#!/usr/bin/env python3
"""
Trained model registry types.

The registry is produced by the model builder and handed to the CRM engine
read-only. This module contains:
- Result types for the supported model kinds
- Nearest-centroid persona assignment against a clustering result
"""

import logging
from enum import Enum
from typing import Dict, List, Optional

import numpy as np
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ModelType(str, Enum):
    """Supported model types."""
    USER_PERSONA = "User Persona Clustering"
    BEHAVIOR_ANALYSIS = "Behavior Analysis"
    RECOMMENDATION = "Product Recommendation"
    SALES_PREDICTION = "Sales & Inventory Prediction"


class TrainingMetrics(BaseModel):
    accuracy: float
    loss: float
    precision: float
    recall: float
    epoch: int


class CentroidFeatures(BaseModel):
    avg_age: float
    avg_brew_hour: float
    pref_temp: float


class ClusterCentroid(BaseModel):
    id: int
    features: CentroidFeatures
    size: int
    label: str


class RecommendationRule(BaseModel):
    """Association rule: buyers of `antecedent` also buy `consequent`."""
    antecedent: str
    consequent: str
    confidence: float
    lift: float


class ForecastPoint(BaseModel):
    day: int
    value: float


class RegressionResult(BaseModel):
    slope: float
    intercept: float
    r_squared: float
    forecast: List[ForecastPoint] = Field(default_factory=list)


class MLResult(BaseModel):
    """Outcome of one training run."""
    type: ModelType
    metrics: TrainingMetrics
    algorithm: Optional[str] = None
    clusters: Optional[List[ClusterCentroid]] = None
    regression: Optional[RegressionResult] = None
    recommendations: Optional[List[RecommendationRule]] = None


TrainedModelRegistry = Dict[ModelType, MLResult]

# Min-max normalization ranges for (age, brew hour, temperature)
FEATURE_MINS = np.array([18.0, 0.0, 80.0])
FEATURE_MAXS = np.array([80.0, 23.0, 98.0])


def normalize_features(age: float, hour: float, temp: float) -> np.ndarray:
    return (np.array([age, hour, temp], dtype=float) - FEATURE_MINS) / (FEATURE_MAXS - FEATURE_MINS)


def predict_user_cluster(age: float, hour: float, temp: float, model_result: MLResult) -> Optional[str]:
    """
    Assign a user to the nearest persona centroid.

    Args:
        age: User age
        hour: Average brew hour
        temp: Average brew temperature
        model_result: Clustering result carrying centroids

    Returns:
        Label of the nearest cluster, or None if the result has no clusters
    """
    if not model_result.clusters:
        return None

    point = normalize_features(age, hour, temp)
    centroids = np.array([
        normalize_features(c.features.avg_age, c.features.avg_brew_hour, c.features.pref_temp)
        for c in model_result.clusters
    ])
    distances = np.linalg.norm(centroids - point, axis=1)

    # argmin keeps the first centroid on ties
    best = model_result.clusters[int(np.argmin(distances))]
    logger.debug(f"Assigned persona cluster {best.label} (distance {distances.min():.3f})")
    return best.label
