"""Inter-stage Pydantic contracts for the 4-stage assessment pipeline."""

from models.schemas.occupation import (
    AlternateTitle,
    MatchResult,
    OccupationDetails,
    OccupationMatch,
    OccupationProfile,
    OccupationTask,
)
from models.schemas.activity import ActivityMapping, ActivityRef, DetailedActivity, UserTask
from models.schemas.exposure import ExposureResult, TaskExposureScore
from models.schemas.career import CareerCandidate, OccupationComparison, RecommendationOptions

__all__ = [
    "AlternateTitle",
    "MatchResult",
    "OccupationDetails",
    "OccupationMatch",
    "OccupationProfile",
    "OccupationTask",
    "ActivityMapping",
    "ActivityRef",
    "DetailedActivity",
    "UserTask",
    "ExposureResult",
    "TaskExposureScore",
    "CareerCandidate",
    "OccupationComparison",
    "RecommendationOptions",
]
