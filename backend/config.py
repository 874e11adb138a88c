import os
from pydantic_settings import BaseSettings


def _parse_cors_origins() -> list[str] | None:
    """Parse CORS_ORIGINS env var as comma-separated string or JSON list."""
    raw = os.environ.get("CORS_ORIGINS")
    if not raw:
        return None
    if raw.startswith("["):
        import json
        return json.loads(raw)
    return [o.strip() for o in raw.split(",") if o.strip()]


class Settings(BaseSettings):
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    reference_data_path: str = "data/reference_sample.json"
    cors_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
    ]
    debug: bool = False

    # Semantic-matching calls (occupation fallback + activity mapping)
    semantic_max_attempts: int = 3
    semantic_backoff_seconds: float = 0.5  # doubled after every failed attempt
    semantic_timeout_seconds: float = 20.0  # per attempt
    semantic_max_concurrency: int = 8  # per-task requests in flight for one assessment

    # Candidate sampling for semantic prompts
    occupation_sample_size: int = 100
    occupation_task_limit: int = 100
    catalogue_activity_sample_size: int = 500
    batch_activity_limit: int = 300
    batch_min_tasks: int = 2
    batch_max_tasks: int = 10
    fallback_mapping_confidence: float = 0.3

    # Career recommendations
    candidate_pool_size: int = 50
    candidate_min_tier: int = 3
    candidate_workers: int = 4
    min_skill_match: float = 40.0
    max_risk_score: float = 70.0
    recommendation_limit: int = 5

    pipeline_deadline_seconds: float = 45.0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


_cors_override = _parse_cors_origins()
settings = Settings(**{"cors_origins": _cors_override} if _cors_override else {})
