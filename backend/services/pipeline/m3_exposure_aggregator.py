"""Stage 3: Exposure Aggregator - per-activity scores to an overall risk.

Scoring methodology (exposure score, 0-100):
    0-30    low      significant human elements required
    31-60   medium   AI assists but humans remain essential
    61-100  high     AI can perform most or all of the work

Per task, the unweighted mean of the mapped activities' exposure scores is
blended toward the neutral 50 by mapping confidence, so low-confidence
mappings cannot swing the result. Tasks are then combined by normalized
time share. Everything here is a pure function of its inputs.
"""

import logging
import math
from collections.abc import Mapping
from typing import Any

from models.schemas.activity import ActivityMapping, ActivityRef, DetailedActivity
from models.schemas.exposure import (
    CategoryBreakdown,
    ConfidenceRange,
    ExposureCategory,
    ExposureResult,
    ScenarioScores,
    ScoredActivity,
    TaskExposureScore,
)
from services.errors import EmptyOrInvalidTaskInput
from services.pipeline.base import BaseStageService
from services.reference_store import ReferenceStore
from services.skill_tagger import tag_skills

logger = logging.getLogger(__name__)

NEUTRAL_SCORE = 50.0
LOW_MAX = 30.0
MEDIUM_MAX = 60.0

# Slow adoption dampens medium/low tasks; rapid adoption boosts everything.
SLOW_FACTORS: dict[str, float] = {"high": 1.0, "medium": 0.6, "low": 0.3}
RAPID_FACTORS: dict[str, float] = {"high": 1.2, "medium": 1.1, "low": 1.0}
SCENARIO_OFFSET = 10.0
RANGE_MARGIN = 5.0
TOP_ACTIVITIES = 3

# Preparation-tier heuristic, used when an occupation has no scored activities
TIER_BASE_RISK = 70.0
TIER_RISK_STEP = 8.0
TIER_SPREAD = 10


def categorize(score: float) -> ExposureCategory:
    if score <= LOW_MAX:
        return "low"
    if score <= MEDIUM_MAX:
        return "medium"
    return "high"


def adjust_score(raw_score: float, confidence: float) -> float:
    """Blend a raw score toward neutral: raw*c + 50*(1-c)."""
    return raw_score * confidence + NEUTRAL_SCORE * (1.0 - confidence)


def _clamp_score(value: float) -> int:
    return int(min(100, max(0, round(value))))


def normalize_time_shares(shares: list[float]) -> list[float]:
    """Rescale time shares so they sum to 100."""
    if not shares:
        raise EmptyOrInvalidTaskInput("At least one task is required")
    if any(not math.isfinite(s) or s < 0 for s in shares):
        raise EmptyOrInvalidTaskInput("Time shares must be finite and non-negative")
    total = sum(shares)
    if total <= 0:
        raise EmptyOrInvalidTaskInput("Time shares sum to zero and cannot be normalized")
    return [s * 100.0 / total for s in shares]


def score_task(
    mapping: ActivityMapping,
    time_share: float,
    activity_lookup: Mapping[str, DetailedActivity],
) -> TaskExposureScore:
    scored = [
        (ref, activity_lookup[ref.activity_id])
        for ref in mapping.activities
        if ref.activity_id in activity_lookup
    ]
    if not scored:
        # no activities, or none scored yet: neutral
        return TaskExposureScore(
            description=mapping.description,
            time_share=time_share,
            exposure_score=NEUTRAL_SCORE,
            category="medium",
            unscored=bool(mapping.activities),
        )

    raw = sum(a.exposure_score for _, a in scored) / len(scored)
    adjusted = adjust_score(raw, mapping.mapping_confidence)
    return TaskExposureScore(
        description=mapping.description,
        time_share=time_share,
        exposure_score=adjusted,
        category=categorize(adjusted),
        top_activities=[
            ScoredActivity(activity_id=a.activity_id, title=a.title, score=a.exposure_score)
            for _, a in scored[:TOP_ACTIVITIES]
        ],
    )


def weighted_mean(values: list[float], weights: list[float]) -> float:
    total = sum(weights)
    if total <= 0:
        return NEUTRAL_SCORE
    return sum(v * w for v, w in zip(values, weights)) / total


def category_breakdown(task_scores: list[TaskExposureScore]) -> CategoryBreakdown:
    """Percent of time per category, rounded so the three sum to exactly 100."""
    sums = {"high": 0.0, "medium": 0.0, "low": 0.0}
    for task in task_scores:
        sums[task.category] += task.time_share
    total = sum(sums.values())
    if total <= 0:
        return CategoryBreakdown(medium=100)

    rounded = {k: round(v * 100.0 / total) for k, v in sums.items()}
    largest = max(sums, key=lambda k: sums[k])
    rounded[largest] += 100 - sum(rounded.values())
    return CategoryBreakdown(**rounded)


def scenario_scores(task_scores: list[TaskExposureScore]) -> ScenarioScores:
    weights = [t.time_share for t in task_scores]
    slow = weighted_mean(
        [t.exposure_score * SLOW_FACTORS[t.category] for t in task_scores], weights
    )
    rapid = weighted_mean(
        [min(100.0, t.exposure_score * RAPID_FACTORS[t.category]) for t in task_scores], weights
    )
    return ScenarioScores(
        slow=_clamp_score(slow - SCENARIO_OFFSET),
        rapid=_clamp_score(rapid + SCENARIO_OFFSET),
    )


def confidence_range(
    task_scores: list[TaskExposureScore],
    mapping_confidences: list[float],
    base_score: float,
) -> ConfidenceRange:
    """Band around `base_score` that widens with score spread and low confidence."""
    weights = [t.time_share for t in task_scores]
    variance = weighted_mean([(t.exposure_score - base_score) ** 2 for t in task_scores], weights)
    avg_confidence = weighted_mean(mapping_confidences, weights)
    spread = math.sqrt(variance) * (1.0 + (1.0 - avg_confidence)) + RANGE_MARGIN
    return ConfidenceRange(
        low=_clamp_score(base_score - spread),
        high=_clamp_score(base_score + spread),
    )


def aggregate(
    mappings: list[ActivityMapping],
    activity_lookup: Mapping[str, DetailedActivity],
) -> ExposureResult:
    """Combine per-task activity mappings into one ExposureResult."""
    shares = normalize_time_shares([m.time_share for m in mappings])
    task_scores = [score_task(m, s, activity_lookup) for m, s in zip(mappings, shares)]
    confidences = [m.mapping_confidence for m in mappings]
    degraded = any(m.fallback for m in mappings) or any(t.unscored for t in task_scores)

    base = weighted_mean([t.exposure_score for t in task_scores], shares)
    protected, vulnerable = tag_skills(task_scores)

    return ExposureResult(
        risk_score=_clamp_score(base),
        confidence_range=confidence_range(task_scores, confidences, base),
        scenario_scores=scenario_scores(task_scores),
        category_breakdown=category_breakdown(task_scores),
        task_scores=task_scores,
        protected_skills=protected,
        vulnerable_skills=vulnerable,
        average_mapping_confidence=round(weighted_mean(confidences, shares), 4),
        degraded=degraded,
    )


def estimate_from_tier(preparation_tier: int | None) -> ExposureResult:
    """Rough exposure from preparation tier alone: lower tier, higher risk."""
    if preparation_tier is None:
        base = NEUTRAL_SCORE
    else:
        base = TIER_BASE_RISK - TIER_RISK_STEP * preparation_tier
    risk = _clamp_score(base)
    return ExposureResult(
        risk_score=risk,
        confidence_range=ConfidenceRange(
            low=_clamp_score(risk - TIER_SPREAD), high=_clamp_score(risk + TIER_SPREAD)
        ),
        scenario_scores=ScenarioScores(
            slow=_clamp_score(risk - TIER_SPREAD), rapid=_clamp_score(risk + TIER_SPREAD)
        ),
        category_breakdown=CategoryBreakdown(low=30, medium=40, high=30),
        estimated=True,
    )


class ExposureAggregatorService(BaseStageService):
    stage_name = "m3_exposure_aggregator"

    def __init__(self, store: ReferenceStore) -> None:
        self._store = store

    def load(self) -> None:
        # Pure computation; activity scores are read per call.
        pass

    def predict(self, **kwargs: Any) -> ExposureResult:
        return self.aggregate(kwargs["mappings"], kwargs.get("activity_lookup"))

    def aggregate(
        self,
        mappings: list[ActivityMapping],
        activity_lookup: Mapping[str, DetailedActivity] | None = None,
    ) -> ExposureResult:
        self.ensure_loaded()
        if activity_lookup is None:
            ids = list(dict.fromkeys(a for m in mappings for a in m.activity_ids))
            activity_lookup = self._store.get_activities(ids)
        return aggregate(mappings, activity_lookup)

    def occupation_exposure(self, code: str) -> ExposureResult | None:
        """Exposure of an occupation from its own task statements.

        Each task statement is treated as a fully confident mapping to its
        linked activities, weighted by importance. Returns None when none of
        the occupation's activities have been scored.
        """
        self.ensure_loaded()
        tasks = self._store.occupation_tasks(code)
        lookup = self._store.get_activities(
            list(dict.fromkeys(a for t in tasks for a in t.activity_ids))
        )

        mappings: list[ActivityMapping] = []
        for task in tasks:
            refs = [
                ActivityRef(activity_id=a, title=lookup[a].title, relevance=1.0)
                for a in task.activity_ids
                if a in lookup
            ]
            if not refs:
                continue
            weight = task.importance if task.importance and task.importance > 0 else 1.0
            mappings.append(ActivityMapping(
                description=task.statement,
                time_share=min(100.0, weight),
                activities=refs,
                mapping_confidence=1.0,
            ))

        if not mappings:
            logger.info("No scored activities for occupation %s", code)
            return None
        return aggregate(mappings, lookup)

    def exposure_or_estimate(self, code: str, preparation_tier: int | None) -> ExposureResult:
        exposure = self.occupation_exposure(code)
        if exposure is None:
            return estimate_from_tier(preparation_tier)
        return exposure
