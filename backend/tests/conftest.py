"""Shared test configuration, markers and fixtures."""

import asyncio
from collections.abc import Callable

import pytest

from models.schemas.activity import DetailedActivity
from models.schemas.exposure import (
    CategoryBreakdown,
    ConfidenceRange,
    ExposureResult,
    ScenarioScores,
)
from models.schemas.occupation import AlternateTitle, OccupationProfile, OccupationTask
from services.errors import SemanticInferenceFailure
from services.gemini_client import RetryPolicy, SemanticClient
from services.reference_store import InMemoryReferenceStore, ReferenceSnapshot

# No waiting between retries in tests
FAST_RETRY = RetryPolicy(max_attempts=2, backoff_seconds=0.0, timeout_seconds=1.0)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: uses the bundled reference data snapshot"
    )


class FakeSemanticClient(SemanticClient):
    """Scripted stand-in for the Gemini client.

    Replies are taken in order from `responses`, or computed by `responder`
    from the prompt. A reply that is an exception is raised instead of
    returned. Every prompt is recorded in `prompts`, and the highest number of
    overlapping calls in `max_in_flight`.
    """

    def __init__(
        self,
        responses: list[str | Exception] | None = None,
        responder: Callable[[str], str | Exception] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.responses = list(responses or [])
        self.responder = responder
        self.delay = delay
        self.prompts: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def generate(self, prompt: str, max_output_tokens: int = 1024) -> str:
        self.prompts.append(prompt)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1
        if self.responder is not None:
            reply = self.responder(prompt)
        elif self.responses:
            reply = self.responses.pop(0)
        else:
            raise SemanticInferenceFailure("no scripted response left")
        if isinstance(reply, Exception):
            raise reply
        return reply


def make_exposure(risk: int, estimated: bool = False) -> ExposureResult:
    return ExposureResult(
        risk_score=risk,
        confidence_range=ConfidenceRange(low=risk, high=risk),
        scenario_scores=ScenarioScores(slow=risk, rapid=risk),
        category_breakdown=CategoryBreakdown(medium=100),
        estimated=estimated,
    )


def build_snapshot() -> ReferenceSnapshot:
    occupations = [
        OccupationProfile(
            code="29-1141.00", title="Registered Nurses",
            description="Assess patient health problems and administer nursing care.",
            preparation_tier=3,
            skills={"s.listen": 4.0, "s.judge": 4.0, "s.social": 4.0},
        ),
        OccupationProfile(
            code="43-9021.00", title="Data Entry Keyers",
            description="Operate data entry devices and verify data accuracy.",
            preparation_tier=2,
            skills={"s.read": 3.0, "s.listen": 2.0},
        ),
        OccupationProfile(
            code="15-1252.00", title="Software Developers",
            description="Design and develop computer software and applications.",
            preparation_tier=4,
            skills={"s.prog": 4.5, "s.crit": 4.0, "s.read": 3.5},
        ),
        OccupationProfile(
            code="21-1012.00", title="Career Counselors",
            description="Advise students and clients on careers and education.",
            preparation_tier=5,
            skills={"s.listen": 4.0, "s.social": 4.0, "s.judge": 3.5},
        ),
        OccupationProfile(
            code="11-9111.00", title="Medical and Health Services Managers",
            description="Plan and coordinate medical and health services.",
            preparation_tier=4,
            skills={"s.judge": 4.0, "s.listen": 3.5, "s.coord": 4.0},
        ),
        OccupationProfile(
            code="99-0001.00", title="Unscored Specialists",
            description="An occupation without linked activities.",
            preparation_tier=4,
            skills={"s.read": 3.0},
        ),
    ]
    alternate_titles = [
        AlternateTitle(code="29-1141.00", title="Registered Nurse"),
        AlternateTitle(code="29-1141.00", title="Staff Nurse"),
        AlternateTitle(code="43-9021.00", title="Data Entry Clerk"),
        AlternateTitle(code="15-1252.00", title="Software Engineer"),
        AlternateTitle(code="15-1252.00", title="Senior Software Engineer"),
        AlternateTitle(code="21-1012.00", title="Career Counselor"),
        AlternateTitle(code="11-9111.00", title="Health Services Manager"),
    ]
    activities = [
        DetailedActivity(activity_id="A1", title="Enter data into information systems", exposure_score=90),
        DetailedActivity(activity_id="A2", title="Verify accuracy of records", exposure_score=80),
        DetailedActivity(activity_id="A3", title="Counsel patients on emotional matters", exposure_score=10),
        DetailedActivity(activity_id="A4", title="Administer medications", exposure_score=20),
        DetailedActivity(activity_id="A5", title="Write computer programs", exposure_score=70),
        DetailedActivity(activity_id="A6", title="Supervise and mentor staff", exposure_score=15),
        DetailedActivity(activity_id="A7", title="Prepare reports and documentation", exposure_score=75),
    ]
    tasks = [
        OccupationTask(task_id="T1", code="29-1141.00", statement="Administer medications to patients", importance=5.0, activity_ids=["A4"]),
        OccupationTask(task_id="T2", code="29-1141.00", statement="Provide emotional support to patients", importance=4.0, activity_ids=["A3"]),
        OccupationTask(task_id="T3", code="29-1141.00", statement="Record patient conditions", importance=3.0, activity_ids=["A7"]),
        OccupationTask(task_id="T4", code="43-9021.00", statement="Enter and verify data", importance=5.0, activity_ids=["A1", "A2"]),
        OccupationTask(task_id="T5", code="43-9021.00", statement="Prepare data reports", importance=3.0, activity_ids=["A7"]),
        OccupationTask(task_id="T6", code="15-1252.00", statement="Write and modify software", importance=4.0, activity_ids=["A5"]),
        OccupationTask(task_id="T7", code="15-1252.00", statement="Document software status", importance=3.0, activity_ids=["A7"]),
        OccupationTask(task_id="T8", code="21-1012.00", statement="Counsel students on careers", importance=5.0, activity_ids=["A3"]),
        OccupationTask(task_id="T9", code="21-1012.00", statement="Mentor junior counselors", importance=2.0, activity_ids=["A6"]),
        OccupationTask(task_id="T10", code="11-9111.00", statement="Supervise clinical staff", importance=4.0, activity_ids=["A6"]),
        OccupationTask(task_id="T11", code="11-9111.00", statement="Prepare compliance reports", importance=4.0, activity_ids=["A7"]),
    ]
    return ReferenceSnapshot(
        occupations=occupations,
        alternate_titles=alternate_titles,
        tasks=tasks,
        activities=activities,
        skill_labels={
            "s.listen": "Active Listening",
            "s.judge": "Judgment and Decision Making",
            "s.social": "Social Perceptiveness",
            "s.read": "Reading Comprehension",
            "s.prog": "Programming",
            "s.crit": "Critical Thinking",
            "s.coord": "Coordination",
        },
    )


@pytest.fixture
def store() -> InMemoryReferenceStore:
    return InMemoryReferenceStore(build_snapshot())


@pytest.fixture
def fake_client() -> FakeSemanticClient:
    return FakeSemanticClient()


@pytest.fixture
def client_factory() -> type[FakeSemanticClient]:
    return FakeSemanticClient


@pytest.fixture
def fast_retry() -> RetryPolicy:
    return FAST_RETRY


@pytest.fixture
def exposure_factory() -> Callable[..., ExposureResult]:
    return make_exposure


@pytest.fixture
def snapshot() -> ReferenceSnapshot:
    return build_snapshot()
