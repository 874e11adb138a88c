from pydantic import BaseModel, Field

from models.schemas.career import RecommendationOptions


class TaskInput(BaseModel):
    description: str = Field(..., min_length=1, max_length=1000, description="What the person does")
    time_share: float = Field(..., ge=0, le=100, description="Percent of work time; normalized server-side")


class AssessmentRequest(BaseModel):
    job_title: str = Field(..., max_length=200, description="Free-text job title")
    tasks: list[TaskInput] = Field(..., max_length=50)
    industry: str | None = Field(default=None, max_length=200)
    occupation_code: str | None = Field(
        default=None, max_length=20, description="Known occupation code; skips title matching"
    )
    require_occupation: bool = Field(
        default=False, description="Fail with 422 instead of continuing without an occupation"
    )
    include_recommendations: bool = True
    recommendation_options: RecommendationOptions | None = None
    deadline_seconds: float | None = Field(default=None, gt=0, le=300)
