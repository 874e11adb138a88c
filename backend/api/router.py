from fastapi import APIRouter, Depends, HTTPException, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from api.dependencies import get_pipeline
from config import settings
from models.requests import AssessmentRequest
from models.responses import AssessmentResponse, OccupationExposureResponse
from models.schemas.career import OccupationComparison
from models.schemas.occupation import MatchResult, OccupationDetails, OccupationProfile
from services.errors import EmptyOrInvalidTaskInput, NoOccupationMatch, ReferenceDataUnavailable
from services.pipeline.orchestrator import AssessmentPipeline

router = APIRouter()
limiter = Limiter(key_func=get_remote_address)


def _occupation_or_422(pipeline: AssessmentPipeline, code: str) -> OccupationProfile:
    occupation = pipeline.store.get_occupation(code)
    if occupation is None:
        raise HTTPException(status_code=422, detail=str(NoOccupationMatch(code)))
    return occupation


@router.get("/health")
async def health():
    return {
        "status": "ok",
        "gemini_configured": bool(settings.gemini_api_key),
    }


@router.post("/assess", response_model=AssessmentResponse)
@limiter.limit("10/minute")
async def assess(
    request: Request,
    body: AssessmentRequest,
    pipeline: AssessmentPipeline = Depends(get_pipeline),
):
    if not body.tasks:
        raise HTTPException(status_code=400, detail="At least one task is required")

    try:
        return await pipeline.assess(
            body.job_title,
            body.tasks,
            industry=body.industry,
            occupation_code=body.occupation_code,
            require_occupation=body.require_occupation,
            include_recommendations=body.include_recommendations,
            options=body.recommendation_options,
            deadline_seconds=body.deadline_seconds,
        )
    except NoOccupationMatch as e:
        raise HTTPException(status_code=422, detail=str(e))
    except EmptyOrInvalidTaskInput as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ReferenceDataUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/occupations/match", response_model=MatchResult)
async def match_occupation(
    title: str = Query(..., min_length=1, max_length=200),
    industry: str | None = Query(default=None, max_length=200),
    pipeline: AssessmentPipeline = Depends(get_pipeline),
):
    return await pipeline.matcher.match(title, industry=industry)


@router.get("/occupations/{code}", response_model=OccupationDetails)
async def occupation_details(code: str, pipeline: AssessmentPipeline = Depends(get_pipeline)):
    details = pipeline.matcher.occupation_details(code)
    if details is None:
        raise HTTPException(status_code=422, detail=str(NoOccupationMatch(code)))
    return details


@router.get("/occupations/{code}/exposure", response_model=OccupationExposureResponse)
async def occupation_exposure(code: str, pipeline: AssessmentPipeline = Depends(get_pipeline)):
    occupation = _occupation_or_422(pipeline, code)
    exposure = pipeline.aggregator.exposure_or_estimate(occupation.code, occupation.preparation_tier)
    return OccupationExposureResponse(code=occupation.code, title=occupation.title, exposure=exposure)


@router.get("/occupations/{code}/compare/{target}", response_model=OccupationComparison)
async def compare_occupations(
    code: str,
    target: str,
    pipeline: AssessmentPipeline = Depends(get_pipeline),
):
    current = _occupation_or_422(pipeline, code)
    target_occupation = _occupation_or_422(pipeline, target)
    return pipeline.ranker.compare_occupations(current, target_occupation)
