"""Stage 2: Activity Mapper - free-text tasks to detailed work activities.

Builds a bounded candidate pool (activities linked to the matched
occupation, else a TF-IDF-selected catalogue sample) and asks the semantic
collaborator to pick 1-5 activities per task. Small task sets go out as a
single batched request; otherwise one request per task, run concurrently.

Fail-open: any task whose mapping cannot be obtained gets the fallback
mapping (no activities, low confidence, `fallback=True`), which the
aggregator turns into a neutral score instead of aborting the assessment.
"""

import asyncio
import logging
from typing import Any

from config import settings
from models.schemas.activity import ActivityMapping, ActivityRef, DetailedActivity, UserTask
from models.schemas.occupation import OccupationProfile
from services import prompt_builder
from services.gemini_client import RetryPolicy, SemanticClient, request_structured
from services.pipeline.base import BaseStageService
from services.reference_store import ReferenceStore
from services.semantic_parser import ActivitySelection, BatchMappingPayload, TaskMappingPayload
from services.similarity import select_top_k

logger = logging.getLogger(__name__)

MAX_ACTIVITIES_PER_TASK = 5


def overall_confidence(mappings: list[ActivityMapping]) -> float:
    """Time-share-weighted mean mapping confidence (0 when no time is allotted)."""
    total = sum(m.time_share for m in mappings)
    if total <= 0:
        return 0.0
    return sum(m.mapping_confidence * m.time_share for m in mappings) / total


class ActivityMapperService(BaseStageService):
    stage_name = "m2_activity_mapper"

    def __init__(
        self,
        store: ReferenceStore,
        semantic_client: SemanticClient | None = None,
        *,
        occupation_task_limit: int = settings.occupation_task_limit,
        catalogue_sample_size: int = settings.catalogue_activity_sample_size,
        batch_activity_limit: int = settings.batch_activity_limit,
        batch_min_tasks: int = settings.batch_min_tasks,
        batch_max_tasks: int = settings.batch_max_tasks,
        fallback_confidence: float = settings.fallback_mapping_confidence,
        max_concurrency: int = settings.semantic_max_concurrency,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._store = store
        self._client = semantic_client
        self._occupation_task_limit = occupation_task_limit
        self._catalogue_sample_size = catalogue_sample_size
        self._batch_activity_limit = batch_activity_limit
        self._batch_min_tasks = batch_min_tasks
        self._batch_max_tasks = batch_max_tasks
        self._fallback_confidence = fallback_confidence
        self._max_concurrency = max(1, max_concurrency)
        self._retry_policy = retry_policy or RetryPolicy.from_settings()
        self._catalogue: list[DetailedActivity] = []
        self._catalogue_docs: list[str] = []

    def load(self) -> None:
        self._catalogue = self._store.list_activities()
        self._catalogue_docs = [a.title for a in self._catalogue]
        if self._client is None:
            logger.warning("M2 has no semantic client; every task will get the fallback mapping")

    async def predict(self, **kwargs: Any) -> list[ActivityMapping]:
        return await self.map_tasks(kwargs["tasks"], occupation=kwargs.get("occupation"))

    async def map_tasks(
        self,
        tasks: list[UserTask],
        occupation: OccupationProfile | None = None,
    ) -> list[ActivityMapping]:
        """Map each task to activities. Returns one mapping per task, same order."""
        self.ensure_loaded()
        if not tasks:
            return []

        pool = self.candidate_pool(tasks, occupation)
        if not pool:
            logger.error("M2 candidate activity pool is empty")
            return self.fallback_mappings(tasks)
        if self._client is None:
            return self.fallback_mappings(tasks)

        occupation_title = occupation.title if occupation else None
        if self._batch_min_tasks <= len(tasks) <= self._batch_max_tasks:
            return await self._map_batch(tasks, pool, occupation_title)

        semaphore = asyncio.Semaphore(self._max_concurrency)

        async def bounded(task: UserTask) -> ActivityMapping:
            async with semaphore:
                return await self._map_single(task, pool, occupation_title)

        mappings = await asyncio.gather(*(bounded(task) for task in tasks))
        return list(mappings)

    def candidate_pool(
        self,
        tasks: list[UserTask],
        occupation: OccupationProfile | None = None,
    ) -> list[DetailedActivity]:
        if occupation is not None:
            linked = self._store.activities_for_occupation(
                occupation.code, task_limit=self._occupation_task_limit
            )
            if linked:
                return linked
            logger.info("M2 no activities linked to %s, sampling the catalogue", occupation.code)

        query = " ".join(t.description for t in tasks)
        indices = select_top_k(query, self._catalogue_docs, self._catalogue_sample_size)
        return [self._catalogue[i] for i in indices]

    def fallback_mapping(self, task: UserTask) -> ActivityMapping:
        return ActivityMapping(
            description=task.description,
            time_share=task.time_share,
            activities=[],
            mapping_confidence=self._fallback_confidence,
            fallback=True,
        )

    def fallback_mappings(self, tasks: list[UserTask]) -> list[ActivityMapping]:
        return [self.fallback_mapping(t) for t in tasks]

    # ------------------------------------------------------------------
    # Semantic requests
    # ------------------------------------------------------------------

    async def _map_single(
        self,
        task: UserTask,
        pool: list[DetailedActivity],
        occupation_title: str | None,
    ) -> ActivityMapping:
        prompt = prompt_builder.build_task_mapping_prompt(task, pool, occupation_title)
        result = await request_structured(
            self._client, prompt, TaskMappingPayload,
            policy=self._retry_policy, max_output_tokens=500,
        )
        if not result.ok:
            logger.warning("M2 mapping failed for task %r: %s", task.description[:60], result.error)
            return self.fallback_mapping(task)

        index = {a.activity_id: a for a in pool}
        return self._build_mapping(task, result.data.mappings, result.data.confidence, index)

    async def _map_batch(
        self,
        tasks: list[UserTask],
        pool: list[DetailedActivity],
        occupation_title: str | None,
    ) -> list[ActivityMapping]:
        shown = pool[: self._batch_activity_limit]
        prompt = prompt_builder.build_batch_mapping_prompt(tasks, shown, occupation_title)
        result = await request_structured(
            self._client, prompt, BatchMappingPayload,
            policy=self._retry_policy, max_output_tokens=1500,
        )
        if not result.ok:
            logger.warning("M2 batch mapping failed for %d tasks: %s", len(tasks), result.error)
            return self.fallback_mappings(tasks)

        index = {a.activity_id: a for a in shown}
        by_position: dict[int, ActivityMapping] = {}
        for entry in result.data.task_mappings:
            position = entry.task_index - 1
            if not 0 <= position < len(tasks) or position in by_position:
                continue
            by_position[position] = self._build_mapping(
                tasks[position], entry.mappings, entry.confidence, index
            )

        missing = len(tasks) - len(by_position)
        if missing:
            logger.warning("M2 batch response omitted %d of %d tasks", missing, len(tasks))
        return [by_position.get(i) or self.fallback_mapping(t) for i, t in enumerate(tasks)]

    def _build_mapping(
        self,
        task: UserTask,
        selections: list[ActivitySelection],
        confidence: float,
        index: dict[str, DetailedActivity],
    ) -> ActivityMapping:
        refs: dict[str, ActivityRef] = {}
        for s in selections:
            activity = index.get(s.activity_id)
            if activity is None:
                logger.debug("M2 dropping unknown activity id %s", s.activity_id)
                continue
            refs.setdefault(s.activity_id, ActivityRef(
                activity_id=s.activity_id,
                title=activity.title,
                relevance=s.relevance,
            ))

        if not refs:
            logger.warning("M2 no valid activities for task %r, using fallback", task.description[:60])
            return self.fallback_mapping(task)

        ranked = sorted(refs.values(), key=lambda r: -r.relevance)
        return ActivityMapping(
            description=task.description,
            time_share=task.time_share,
            activities=ranked[:MAX_ACTIVITIES_PER_TASK],
            mapping_confidence=confidence,
        )
