from pydantic import BaseModel

from models.schemas.activity import ActivityMapping
from models.schemas.career import CareerCandidate
from models.schemas.exposure import ExposureResult
from models.schemas.occupation import OccupationMatch


class AssessmentResponse(BaseModel):
    job_title: str
    matched_occupation: OccupationMatch | None = None
    alternative_matches: list[OccupationMatch] = []
    exposure: ExposureResult
    mappings: list[ActivityMapping] = []
    recommendations: list[CareerCandidate] = []
    mapping_confidence: float = 0.0
    warnings: list[str] = []
    degraded: bool = False


class OccupationExposureResponse(BaseModel):
    code: str
    title: str
    exposure: ExposureResult
