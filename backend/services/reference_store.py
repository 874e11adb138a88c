"""Read-only access to occupation / activity / skill reference data.

The pipeline only ever reads through the ReferenceStore interface, so a
database-backed store can replace the JSON snapshot store without touching
the stages. Snapshot contents are validated through Pydantic DTOs when they
are loaded; anything malformed makes the whole store unavailable rather than
partially loaded.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import BaseModel, ValidationError

from models.schemas.activity import DetailedActivity
from models.schemas.occupation import AlternateTitle, OccupationProfile, OccupationTask
from services.errors import ReferenceDataUnavailable

logger = logging.getLogger(__name__)


class ReferenceSnapshot(BaseModel):
    """On-disk layout of a reference data export."""
    occupations: list[OccupationProfile] = []
    alternate_titles: list[AlternateTitle] = []
    tasks: list[OccupationTask] = []
    activities: list[DetailedActivity] = []
    skill_labels: dict[str, str] = {}


class ReferenceStore(ABC):
    """Point and range reads over the reference catalogue."""

    @abstractmethod
    def get_occupation(self, code: str) -> OccupationProfile | None:
        """Return one occupation by code."""

    @abstractmethod
    def get_occupations(self, codes: list[str]) -> dict[str, OccupationProfile]:
        """Return the occupations among `codes` that exist, keyed by code."""

    @abstractmethod
    def list_occupations(
        self, min_tier: int | None = None, limit: int | None = None
    ) -> list[OccupationProfile]:
        """Occupations in catalogue order, optionally filtered by preparation tier."""

    @abstractmethod
    def find_alternate_titles(self, title: str, limit: int = 5) -> list[AlternateTitle]:
        """Case-insensitive exact match against alternate titles."""

    @abstractmethod
    def search_alternate_titles(self, pattern: str, limit: int = 10) -> list[AlternateTitle]:
        """Case-insensitive LIKE-style search; `%` matches any run of characters."""

    @abstractmethod
    def alternate_titles_for(self, code: str, limit: int = 10) -> list[str]:
        """Alternate titles of one occupation."""

    @abstractmethod
    def occupation_tasks(self, code: str, limit: int | None = None) -> list[OccupationTask]:
        """Task statements of one occupation, most important first."""

    @abstractmethod
    def get_activities(self, activity_ids: list[str]) -> dict[str, DetailedActivity]:
        """Detailed activities among `activity_ids` that exist, keyed by id."""

    @abstractmethod
    def list_activities(self, limit: int | None = None) -> list[DetailedActivity]:
        """Activities in catalogue order."""

    @abstractmethod
    def skill_label(self, skill_id: str) -> str:
        """Human-readable skill name (falls back to the id)."""

    def activities_for_occupation(
        self, code: str, task_limit: int | None = None
    ) -> list[DetailedActivity]:
        """Activities linked to an occupation's task statements, first-seen order."""
        seen: dict[str, None] = {}
        for task in self.occupation_tasks(code, limit=task_limit):
            for activity_id in task.activity_ids:
                seen.setdefault(activity_id, None)
        found = self.get_activities(list(seen))
        return [found[a] for a in seen if a in found]


def like_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a SQL ILIKE pattern (only `%` wildcards) to a regex."""
    parts = [re.escape(p) for p in pattern.split("%")]
    return re.compile(".*".join(parts), re.IGNORECASE | re.DOTALL)


class InMemoryReferenceStore(ReferenceStore):
    def __init__(self, snapshot: ReferenceSnapshot) -> None:
        self._occupations = {o.code: o for o in snapshot.occupations}
        self._alternate_titles = list(snapshot.alternate_titles)
        self._activities = {a.activity_id: a for a in snapshot.activities}
        self._skill_labels = dict(snapshot.skill_labels)

        self._tasks_by_code: dict[str, list[OccupationTask]] = {}
        for task in snapshot.tasks:
            self._tasks_by_code.setdefault(task.code, []).append(task)
        for tasks in self._tasks_by_code.values():
            # stable: equal importance keeps snapshot order
            tasks.sort(key=lambda t: -(t.importance if t.importance is not None else float("-inf")))

    def get_occupation(self, code: str) -> OccupationProfile | None:
        return self._occupations.get(code)

    def get_occupations(self, codes: list[str]) -> dict[str, OccupationProfile]:
        return {c: self._occupations[c] for c in codes if c in self._occupations}

    def list_occupations(
        self, min_tier: int | None = None, limit: int | None = None
    ) -> list[OccupationProfile]:
        result = [
            o for o in self._occupations.values()
            if min_tier is None or (o.preparation_tier is not None and o.preparation_tier >= min_tier)
        ]
        return result[:limit] if limit is not None else result

    def find_alternate_titles(self, title: str, limit: int = 5) -> list[AlternateTitle]:
        needle = title.strip().lower()
        if not needle:
            return []
        hits = [a for a in self._alternate_titles if a.title.strip().lower() == needle]
        return hits[:limit]

    def search_alternate_titles(self, pattern: str, limit: int = 10) -> list[AlternateTitle]:
        regex = like_to_regex(pattern)
        hits = [a for a in self._alternate_titles if regex.fullmatch(a.title)]
        return hits[:limit]

    def alternate_titles_for(self, code: str, limit: int = 10) -> list[str]:
        return [a.title for a in self._alternate_titles if a.code == code][:limit]

    def occupation_tasks(self, code: str, limit: int | None = None) -> list[OccupationTask]:
        tasks = self._tasks_by_code.get(code, [])
        return tasks[:limit] if limit is not None else list(tasks)

    def get_activities(self, activity_ids: list[str]) -> dict[str, DetailedActivity]:
        return {a: self._activities[a] for a in activity_ids if a in self._activities}

    def list_activities(self, limit: int | None = None) -> list[DetailedActivity]:
        activities = list(self._activities.values())
        return activities[:limit] if limit is not None else activities

    def skill_label(self, skill_id: str) -> str:
        return self._skill_labels.get(skill_id, skill_id)


class JsonReferenceStore(InMemoryReferenceStore):
    """Reference store backed by a JSON export of the catalogue tables."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        super().__init__(load_snapshot(self.path))
        logger.info(
            "Reference data loaded from %s: %d occupations, %d activities",
            self.path, len(self._occupations), len(self._activities),
        )


def load_snapshot(path: Path) -> ReferenceSnapshot:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error("Reference data not readable at %s: %s", path, e)
        raise ReferenceDataUnavailable(f"Reference data not readable: {path}") from e

    try:
        return ReferenceSnapshot.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error("Reference data at %s is invalid: %s", path, e)
        raise ReferenceDataUnavailable(f"Reference data invalid: {path}") from e
