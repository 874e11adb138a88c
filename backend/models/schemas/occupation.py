"""Stage 1 output: occupation reference records and title matches."""

from typing import Literal

from pydantic import BaseModel, Field

MatchType = Literal["exact", "partial", "semantic"]


class OccupationProfile(BaseModel):
    """A standardized occupation from the reference catalogue.

    `skills` maps a skill id to the required proficiency level (0-7 scale in
    the reference data, but any non-negative value is accepted).
    """
    code: str
    title: str
    description: str = ""
    preparation_tier: int | None = Field(default=None, ge=1, le=5)
    skills: dict[str, float] = {}

    model_config = {"frozen": True}


class AlternateTitle(BaseModel):
    """A known alias for an occupation (e.g. "RN" for Registered Nurses)."""
    code: str
    title: str

    model_config = {"frozen": True}


class OccupationTask(BaseModel):
    """A task statement of an occupation and the activities it is linked to."""
    task_id: str
    code: str
    statement: str
    importance: float | None = None
    activity_ids: list[str] = []

    model_config = {"frozen": True}


class OccupationMatch(BaseModel):
    occupation: OccupationProfile
    match_type: MatchType
    confidence: float = Field(ge=0.0, le=1.0)
    alternate_title: str | None = None  # the alias that matched, if not the canonical title


class MatchResult(BaseModel):
    searched_title: str
    matches: list[OccupationMatch] = []

    @property
    def best_match(self) -> OccupationMatch | None:
        return self.matches[0] if self.matches else None


class OccupationDetails(BaseModel):
    occupation: OccupationProfile
    tasks: list[OccupationTask] = []
    alternate_titles: list[str] = []
