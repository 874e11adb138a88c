"""Shared dependencies for API routes.

Tests replace these through `app.dependency_overrides`.
"""

from functools import lru_cache
from pathlib import Path

from fastapi import Depends, HTTPException

from config import settings
from services.errors import ReferenceDataUnavailable
from services.gemini_client import SemanticClient, create_client
from services.pipeline.orchestrator import AssessmentPipeline
from services.reference_store import JsonReferenceStore, ReferenceStore

BACKEND_DIR = Path(__file__).resolve().parent.parent


def resolve_data_path(path: str) -> Path:
    """Relative reference data paths are resolved against the backend directory."""
    candidate = Path(path)
    return candidate if candidate.is_absolute() else BACKEND_DIR / candidate


@lru_cache
def _load_store(path: str) -> ReferenceStore:
    return JsonReferenceStore(path)


def get_reference_store() -> ReferenceStore:
    try:
        return _load_store(str(resolve_data_path(settings.reference_data_path)))
    except ReferenceDataUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e)) from e


@lru_cache
def get_semantic_client() -> SemanticClient | None:
    return create_client(settings.gemini_api_key, settings.gemini_model)


@lru_cache(maxsize=4)
def _pipeline_for(store: ReferenceStore, client: SemanticClient | None) -> AssessmentPipeline:
    return AssessmentPipeline(store, client)


def get_pipeline(
    store: ReferenceStore = Depends(get_reference_store),
    client: SemanticClient | None = Depends(get_semantic_client),
) -> AssessmentPipeline:
    return _pipeline_for(store, client)
