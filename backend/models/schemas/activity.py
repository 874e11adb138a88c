"""Stage 2 output: user tasks mapped to detailed work activities."""

from pydantic import BaseModel, Field


class DetailedActivity(BaseModel):
    """A standardized unit of work with a precomputed automation-exposure score.

    Reference data, refreshed offline. Never mutated by the pipeline.
    """
    activity_id: str
    title: str
    exposure_score: float = Field(ge=0.0, le=100.0)
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)

    model_config = {"frozen": True}


class UserTask(BaseModel):
    description: str
    time_share: float = Field(ge=0.0, le=100.0)  # percent of work time


class ActivityRef(BaseModel):
    activity_id: str
    title: str = ""
    relevance: float = Field(default=0.0, ge=0.0, le=1.0)


class ActivityMapping(BaseModel):
    """Structured output of the Activity Mapper for a single user task.

    `fallback` is set when the mapping is the fail-open default produced
    after a semantic-matching failure; such a mapping has no activities and
    a low confidence.
    """
    description: str
    time_share: float = Field(ge=0.0, le=100.0)
    activities: list[ActivityRef] = []
    mapping_confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    fallback: bool = False

    @property
    def activity_ids(self) -> list[str]:
        return [a.activity_id for a in self.activities]
