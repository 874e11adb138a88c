"""Stage 4: Career Ranker - lower-exposure occupations the user could move to.

Candidates are filtered on skill overlap first (cheap, in-memory), and only
the survivors get an exposure computation, which runs on a small thread pool.
Composite rank = 0.6 * risk reduction + 0.4 * skill match.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from config import settings
from models.schemas.career import (
    CareerCandidate,
    OccupationComparison,
    RecommendationOptions,
    SkillMatchResult,
    Viability,
)
from models.schemas.exposure import ExposureResult
from models.schemas.occupation import OccupationProfile
from services.pipeline.base import BaseStageService
from services.pipeline.m3_exposure_aggregator import ExposureAggregatorService
from services.reference_store import ReferenceStore

logger = logging.getLogger(__name__)

RISK_WEIGHT = 0.6
SKILL_WEIGHT = 0.4
APPLICABLE_RATIO = 0.7
TO_LEARN_MIN_LEVEL = 3.0
MAX_SKILLS_LISTED = 5
UNKNOWN_SKILL_MATCH = 50

SALARY_BANDS = {
    5: "$80,000 - $150,000+",
    4: "$55,000 - $100,000",
    3: "$40,000 - $70,000",
    2: "$30,000 - $50,000",
    1: "$25,000 - $40,000",
}


def growth_outlook(preparation_tier: int | None) -> str:
    if preparation_tier is None:
        return "Moderate"
    if preparation_tier >= 4:
        return "High"
    if preparation_tier == 3:
        return "Moderate"
    return "Low"


def salary_range(preparation_tier: int | None) -> str:
    return SALARY_BANDS.get(preparation_tier, "Varies")


def transition_viability(risk_reduction: float) -> Viability:
    if risk_reduction >= 20:
        return "high"
    if risk_reduction >= 10:
        return "medium"
    return "low"


def composite_rank(risk_reduction: float, skill_match_percent: float) -> float:
    return RISK_WEIGHT * risk_reduction + SKILL_WEIGHT * skill_match_percent


class CareerRankerService(BaseStageService):
    stage_name = "m4_career_ranker"

    def __init__(
        self,
        store: ReferenceStore,
        aggregator: ExposureAggregatorService,
        *,
        workers: int = settings.candidate_workers,
        pool_size: int = settings.candidate_pool_size,
        min_tier: int = settings.candidate_min_tier,
    ) -> None:
        self._store = store
        self._aggregator = aggregator
        self._workers = max(1, workers)
        self._pool_size = pool_size
        self._min_tier = min_tier

    def load(self) -> None:
        self._aggregator.ensure_loaded()

    def predict(self, **kwargs: Any) -> list[CareerCandidate]:
        return self.recommend(
            kwargs["current_occupation"],
            kwargs["current_exposure"],
            kwargs.get("candidate_pool"),
            kwargs.get("options"),
            cancel=kwargs.get("cancel"),
        )

    def candidate_pool(self) -> list[OccupationProfile]:
        return self._store.list_occupations(min_tier=self._min_tier, limit=self._pool_size)

    def skill_match(
        self,
        current_skills: dict[str, float],
        target_skills: dict[str, float],
    ) -> SkillMatchResult:
        """Weighted share of the target's required skill levels the user already has.

        Each target skill contributes min(have/need, 1) weighted by need.
        Skills are visited most-needed first (ties by id), which decides the
        order of the applicable / to-learn lists.
        """
        if not current_skills or not target_skills:
            return SkillMatchResult(match_percent=UNKNOWN_SKILL_MATCH)

        needed = sorted(
            ((skill, need) for skill, need in target_skills.items() if need > 0),
            key=lambda item: (-item[1], item[0]),
        )
        total_need = sum(need for _, need in needed)
        if total_need <= 0:
            return SkillMatchResult(match_percent=UNKNOWN_SKILL_MATCH)

        matched = 0.0
        applicable: list[str] = []
        to_learn: list[str] = []
        for skill, need in needed:
            ratio = min(current_skills.get(skill, 0.0) / need, 1.0)
            matched += need * ratio
            if ratio >= APPLICABLE_RATIO:
                applicable.append(self._store.skill_label(skill))
            elif need >= TO_LEARN_MIN_LEVEL:
                to_learn.append(self._store.skill_label(skill))

        return SkillMatchResult(
            match_percent=round(100 * matched / total_need),
            applicable=applicable[:MAX_SKILLS_LISTED],
            to_learn=to_learn[:MAX_SKILLS_LISTED],
        )

    def recommend(
        self,
        current_occupation: OccupationProfile,
        current_exposure: ExposureResult,
        candidate_pool: list[OccupationProfile] | None = None,
        options: RecommendationOptions | None = None,
        *,
        cancel: threading.Event | None = None,
    ) -> list[CareerCandidate]:
        """Rank lower-exposure occupations for someone in `current_occupation`.

        Setting `cancel` stops pending exposure work and yields no candidates.
        """
        self.ensure_loaded()
        options = options or RecommendationOptions(
            min_skill_match=settings.min_skill_match,
            max_risk_score=settings.max_risk_score,
            limit=settings.recommendation_limit,
        )
        pool = candidate_pool if candidate_pool is not None else self.candidate_pool()

        shortlisted: list[tuple[OccupationProfile, SkillMatchResult]] = []
        for candidate in pool:
            if candidate.code == current_occupation.code:
                continue
            match = self.skill_match(current_occupation.skills, candidate.skills)
            if match.match_percent >= options.min_skill_match:
                shortlisted.append((candidate, match))

        logger.info(
            "M4 %d of %d candidates pass the %.0f%% skill threshold",
            len(shortlisted), len(pool), options.min_skill_match,
        )
        exposures = self._candidate_exposures([c for c, _ in shortlisted], cancel)
        if cancel is not None and cancel.is_set():
            logger.info("M4 ranking cancelled for %s", current_occupation.code)
            return []

        current_risk = current_exposure.risk_score
        ranked: list[CareerCandidate] = []
        for (candidate, match), exposure in zip(shortlisted, exposures):
            risk = exposure.risk_score
            if risk > options.max_risk_score or risk >= current_risk:
                continue
            reduction = current_risk - risk
            ranked.append(CareerCandidate(
                occupation=candidate,
                skill_match_percent=match.match_percent,
                risk_score=risk,
                risk_reduction=reduction,
                composite_rank=composite_rank(reduction, match.match_percent),
                skills_applicable=match.applicable,
                skills_to_learn=match.to_learn,
                growth_outlook=growth_outlook(candidate.preparation_tier),
                salary_range=salary_range(candidate.preparation_tier),
                transition_viability=transition_viability(reduction),
                risk_estimated=exposure.estimated,
            ))

        ranked.sort(key=lambda c: -c.composite_rank)
        return ranked[: options.limit]

    def compare_occupations(
        self, current: OccupationProfile, target: OccupationProfile
    ) -> OccupationComparison:
        current_exposure = self._exposure(current)
        target_exposure = self._exposure(target)
        reduction = current_exposure.risk_score - target_exposure.risk_score
        return OccupationComparison(
            current_exposure=current_exposure,
            target_exposure=target_exposure,
            risk_reduction=reduction,
            transition_viability=transition_viability(reduction),
        )

    def _exposure(self, occupation: OccupationProfile) -> ExposureResult:
        return self._aggregator.exposure_or_estimate(occupation.code, occupation.preparation_tier)

    def _candidate_exposures(
        self,
        candidates: list[OccupationProfile],
        cancel: threading.Event | None = None,
    ) -> list[ExposureResult | None]:
        if not candidates:
            return []

        def work(occupation: OccupationProfile) -> ExposureResult | None:
            if cancel is not None and cancel.is_set():
                return None
            return self._exposure(occupation)

        with ThreadPoolExecutor(max_workers=self._workers) as pool:
            return list(pool.map(work, candidates))
