"""Stage 4 output: ranked alternate occupations."""

from typing import Literal

from pydantic import BaseModel, Field

from models.schemas.exposure import ExposureResult
from models.schemas.occupation import OccupationProfile

Viability = Literal["low", "medium", "high"]


class RecommendationOptions(BaseModel):
    min_skill_match: float = Field(default=40.0, ge=0.0, le=100.0)
    max_risk_score: float = Field(default=70.0, ge=0.0, le=100.0)
    limit: int = Field(default=5, ge=1, le=50)


class SkillMatchResult(BaseModel):
    match_percent: int = 0  # 0-100
    applicable: list[str] = []  # current skills at >= 70% of the target level
    to_learn: list[str] = []  # important target skills that are missing or well below target


class CareerCandidate(BaseModel):
    occupation: OccupationProfile
    skill_match_percent: int = Field(ge=0, le=100)
    risk_score: int = Field(ge=0, le=100)
    risk_reduction: int  # current risk - candidate risk
    composite_rank: float
    skills_applicable: list[str] = []
    skills_to_learn: list[str] = []
    growth_outlook: Literal["High", "Moderate", "Low"] = "Moderate"
    salary_range: str = "Varies"
    transition_viability: Viability = "low"
    risk_estimated: bool = False  # risk came from the preparation-tier heuristic


class OccupationComparison(BaseModel):
    current_exposure: ExposureResult | None = None
    target_exposure: ExposureResult | None = None
    risk_reduction: int = 0
    transition_viability: Viability = "low"
