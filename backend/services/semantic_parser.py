"""Parse-and-validate boundary for semantic-matching responses.

Every response from the semantic collaborator passes through
`parse_semantic_response`, which never raises: it returns a SemanticResult
that is either ok (with a validated payload) or a failure with a reason.
Callers turn failures into their documented fallback.
"""

import json
import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from pydantic import BaseModel, ValidationError, field_validator

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


def _clamp_unit(value: float) -> float:
    return min(1.0, max(0.0, value))


class OccupationSuggestion(BaseModel):
    code: str
    confidence: float
    reasoning: str = ""

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        return _clamp_unit(v)


class OccupationSuggestions(BaseModel):
    suggestions: list[OccupationSuggestion]


class ActivitySelection(BaseModel):
    activity_id: str
    relevance: float

    @field_validator("relevance")
    @classmethod
    def clamp_relevance(cls, v: float) -> float:
        return _clamp_unit(v)


class TaskMappingPayload(BaseModel):
    mappings: list[ActivitySelection]
    confidence: float

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, v: float) -> float:
        return _clamp_unit(v)


class IndexedTaskMapping(TaskMappingPayload):
    task_index: int  # 1-based, as numbered in the prompt


class BatchMappingPayload(BaseModel):
    task_mappings: list[IndexedTaskMapping]


@dataclass(frozen=True)
class SemanticResult(Generic[T]):
    ok: bool
    data: T | None = None
    error: str = ""
    attempts: int = 0

    @classmethod
    def success(cls, data: T, attempts: int = 1) -> "SemanticResult[T]":
        return cls(ok=True, data=data, attempts=attempts)

    @classmethod
    def failure(cls, error: str, attempts: int = 0) -> "SemanticResult[T]":
        return cls(ok=False, error=error, attempts=attempts)


def strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else text[3:]
        if text.endswith("```"):
            text = text[:-3]
        text = text.strip()
    return text


def parse_semantic_response(text: str | None, schema: type[T]) -> SemanticResult[T]:
    """Decode `text` as JSON and validate it against `schema`."""
    if not text or not text.strip():
        return SemanticResult.failure("empty response")

    body = strip_code_fences(text)
    try:
        decoded = json.loads(body)
    except json.JSONDecodeError as e:
        logger.warning("Semantic response is not valid JSON: %s", e)
        return SemanticResult.failure(f"invalid json: {e.msg}")

    try:
        return SemanticResult.success(schema.model_validate(decoded))
    except ValidationError as e:
        logger.warning("Semantic response failed %s validation: %d errors", schema.__name__, e.error_count())
        return SemanticResult.failure(f"invalid {schema.__name__}")
