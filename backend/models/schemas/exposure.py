"""Stage 3 output: aggregated AI exposure for a set of tasks."""

from typing import Literal

from pydantic import BaseModel, Field

ExposureCategory = Literal["low", "medium", "high"]


class ConfidenceRange(BaseModel):
    low: int = Field(ge=0, le=100)
    high: int = Field(ge=0, le=100)


class ScenarioScores(BaseModel):
    slow: int = Field(ge=0, le=100)  # conservative AI adoption
    rapid: int = Field(ge=0, le=100)  # aggressive AI adoption


class CategoryBreakdown(BaseModel):
    """Share of work time (percent) spent in each exposure category."""
    low: int = 0
    medium: int = 0
    high: int = 0


class ScoredActivity(BaseModel):
    activity_id: str
    title: str
    score: float


class TaskExposureScore(BaseModel):
    description: str
    time_share: float  # normalized, shares of one result sum to 100
    exposure_score: float  # 0-100, confidence-adjusted
    category: ExposureCategory
    top_activities: list[ScoredActivity] = []
    unscored: bool = False  # had activities, none with a known score


class ExposureResult(BaseModel):
    """Structured output of the Exposure Aggregator.

    `estimated` marks results produced by the preparation-tier heuristic
    instead of per-activity aggregation. `degraded` marks results that
    include fallback mappings or unscored tasks, or were cut short by the
    pipeline deadline.
    """
    risk_score: int = Field(ge=0, le=100)
    confidence_range: ConfidenceRange
    scenario_scores: ScenarioScores
    category_breakdown: CategoryBreakdown
    task_scores: list[TaskExposureScore] = []
    protected_skills: list[str] = []
    vulnerable_skills: list[str] = []
    average_mapping_confidence: float = 0.0
    estimated: bool = False
    degraded: bool = False
