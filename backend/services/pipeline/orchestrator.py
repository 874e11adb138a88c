"""Pipeline orchestrator: wires the 4 stages together for one assessment.

Flow:
    job_title + tasks
      ├─ M1.match(job_title)                    → MatchResult
      │       ↓ best match (or none)
      ├─ M2.map_tasks(tasks, occupation)        → list[ActivityMapping]
      │       ↓
      ├─ M3.aggregate(mappings)                 → ExposureResult
      │       ↓
      └─ M4.recommend(occupation, exposure)     → list[CareerCandidate]
                       ↓
         AssessmentResponse (with warnings / degraded)

The whole run shares one deadline. Running out of time degrades the result
instead of failing it: no occupation during matching, fallback mappings
during mapping, no recommendations during ranking.
"""

import asyncio
import logging
import threading

from config import settings
from models.requests import TaskInput
from models.responses import AssessmentResponse
from models.schemas.activity import ActivityMapping, UserTask
from models.schemas.career import CareerCandidate, RecommendationOptions
from models.schemas.occupation import OccupationMatch
from services.errors import EmptyOrInvalidTaskInput, NoOccupationMatch
from services.gemini_client import RetryPolicy, SemanticClient
from services.pipeline.m1_occupation_matcher import OccupationMatcherService
from services.pipeline.m2_activity_mapper import ActivityMapperService, overall_confidence
from services.pipeline.m3_exposure_aggregator import (
    ExposureAggregatorService,
    normalize_time_shares,
)
from services.pipeline.m4_career_ranker import CareerRankerService
from services.reference_store import ReferenceStore

logger = logging.getLogger(__name__)

HINT_CONFIDENCE = 1.0


class _Deadline:
    """Remaining-time budget measured on the running event loop's clock."""

    def __init__(self, seconds: float) -> None:
        self._loop = asyncio.get_running_loop()
        self._expires_at = self._loop.time() + seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - self._loop.time())


class AssessmentPipeline:
    def __init__(
        self,
        store: ReferenceStore,
        semantic_client: SemanticClient | None = None,
        *,
        deadline_seconds: float = settings.pipeline_deadline_seconds,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self.store = store
        self.matcher = OccupationMatcherService(store, semantic_client, retry_policy=retry_policy)
        self.mapper = ActivityMapperService(store, semantic_client, retry_policy=retry_policy)
        self.aggregator = ExposureAggregatorService(store)
        self.ranker = CareerRankerService(store, self.aggregator)
        self.deadline_seconds = deadline_seconds

    async def assess(
        self,
        job_title: str,
        tasks: list[TaskInput] | list[UserTask],
        *,
        industry: str | None = None,
        occupation_code: str | None = None,
        require_occupation: bool = False,
        include_recommendations: bool = True,
        options: RecommendationOptions | None = None,
        deadline_seconds: float | None = None,
    ) -> AssessmentResponse:
        user_tasks = [UserTask(description=t.description, time_share=t.time_share) for t in tasks]
        if not user_tasks:
            raise EmptyOrInvalidTaskInput("At least one task is required")
        # Reject bad shares before spending any semantic calls on them
        normalize_time_shares([t.time_share for t in user_tasks])

        deadline = _Deadline(deadline_seconds or self.deadline_seconds)
        warnings: list[str] = []
        timed_out = False

        # --- Stage 1: Occupation ---
        matches: list[OccupationMatch] = []
        if occupation_code:
            occupation = self.store.get_occupation(occupation_code)
            if occupation is not None:
                matches = [OccupationMatch(
                    occupation=occupation, match_type="exact", confidence=HINT_CONFIDENCE,
                )]
            else:
                warnings.append(f"Unknown occupation code {occupation_code!r}; matched by title instead")

        if not matches and job_title.strip():
            try:
                result = await asyncio.wait_for(
                    self.matcher.match(job_title, industry=industry), deadline.remaining()
                )
                matches = result.matches
            except asyncio.TimeoutError:
                logger.warning("Deadline reached while matching %r", job_title)
                warnings.append("Occupation matching did not finish before the deadline")
                timed_out = True

        best = matches[0] if matches else None
        if best is None:
            if require_occupation:
                raise NoOccupationMatch(job_title)
            warnings.append(
                f"No occupation matched {job_title!r}; exposure is based on the tasks alone "
                "and no career recommendations are made"
            )
        occupation = best.occupation if best else None

        # --- Stage 2: Activity mapping ---
        try:
            mappings: list[ActivityMapping] = await asyncio.wait_for(
                self.mapper.map_tasks(user_tasks, occupation=occupation), deadline.remaining()
            )
        except asyncio.TimeoutError:
            logger.warning("Deadline reached while mapping %d tasks", len(user_tasks))
            warnings.append("Task mapping did not finish before the deadline")
            mappings = self.mapper.fallback_mappings(user_tasks)
            timed_out = True

        fallbacks = sum(1 for m in mappings if m.fallback)
        if fallbacks:
            warnings.append(
                f"{fallbacks} of {len(mappings)} tasks could not be mapped to work activities "
                "and were scored as neutral"
            )

        # --- Stage 3: Exposure ---
        exposure = self.aggregator.aggregate(mappings)
        unscored = sum(1 for t in exposure.task_scores if t.unscored)
        if unscored:
            warnings.append(
                f"{unscored} of {len(mappings)} tasks matched only activities without an "
                "exposure score and were scored as neutral"
            )
        if timed_out and not exposure.degraded:
            exposure = exposure.model_copy(update={"degraded": True})

        # --- Stage 4: Recommendations ---
        recommendations: list[CareerCandidate] = []
        if occupation is not None and include_recommendations:
            cancel = threading.Event()
            try:
                recommendations = await asyncio.wait_for(
                    asyncio.to_thread(
                        self.ranker.recommend, occupation, exposure, None, options, cancel=cancel
                    ),
                    deadline.remaining(),
                )
            except asyncio.TimeoutError:
                # the worker thread keeps running; stop it from scoring more candidates
                cancel.set()
                logger.warning("Deadline reached while ranking careers for %s", occupation.code)
                warnings.append("Career recommendations did not finish before the deadline")
                timed_out = True

        logger.info(
            "Assessment for %r: occupation=%s risk=%d recommendations=%d degraded=%s",
            job_title, occupation.code if occupation else None, exposure.risk_score,
            len(recommendations), exposure.degraded or timed_out,
        )
        return AssessmentResponse(
            job_title=job_title,
            matched_occupation=best,
            alternative_matches=matches[1:],
            exposure=exposure,
            mappings=mappings,
            recommendations=recommendations,
            mapping_confidence=round(overall_confidence(mappings), 4),
            warnings=warnings,
            degraded=exposure.degraded or timed_out,
        )
