"""Semantic-matching collaborator backed by Google Gemini.

The pipeline depends only on the SemanticClient interface; tests inject a
scripted fake. `request_structured` wraps any client with a bounded retry
loop and the parse-and-validate boundary, and always returns a
SemanticResult instead of raising.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from google import genai
from google.genai import types

from config import settings
from services.errors import SemanticInferenceFailure
from services.semantic_parser import SemanticResult, T, parse_semantic_response

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_seconds: float = 0.5  # doubled after every failed attempt
    timeout_seconds: float = 20.0  # per attempt

    @classmethod
    def from_settings(cls) -> "RetryPolicy":
        return cls(
            max_attempts=settings.semantic_max_attempts,
            backoff_seconds=settings.semantic_backoff_seconds,
            timeout_seconds=settings.semantic_timeout_seconds,
        )


class SemanticClient(ABC):
    """Answers a bounded textual prompt with raw model text."""

    @abstractmethod
    async def generate(self, prompt: str, max_output_tokens: int = 1024) -> str:
        """Return the model's text response. Raise on transport failure."""


class GeminiSemanticClient(SemanticClient):
    def __init__(self, api_key: str, model: str = "gemini-2.5-flash") -> None:
        self._client = genai.Client(api_key=api_key)
        self.model = model

    async def generate(self, prompt: str, max_output_tokens: int = 1024) -> str:
        response = await self._client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                temperature=0.2,
                max_output_tokens=max_output_tokens,
                response_mime_type="application/json",
            ),
        )
        if not response.text:
            raise SemanticInferenceFailure("Gemini returned no text")
        return response.text


def create_client(api_key: str, model: str) -> SemanticClient | None:
    if not api_key:
        logger.warning("No GEMINI_API_KEY set - semantic matching disabled")
        return None
    return GeminiSemanticClient(api_key=api_key, model=model)


async def request_structured(
    client: SemanticClient | None,
    prompt: str,
    schema: type[T],
    *,
    policy: RetryPolicy = RetryPolicy(),
    max_output_tokens: int = 1024,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> SemanticResult[T]:
    """Send `prompt` and validate the answer against `schema`.

    Transport errors and timeouts are retried up to `policy.max_attempts`
    times with exponential backoff. A response that arrives but does not
    parse is not retried.
    """
    if client is None:
        return SemanticResult.failure("semantic client not configured")

    max_attempts = max(1, policy.max_attempts)
    delay = policy.backoff_seconds
    last_error = ""
    for attempt in range(1, max_attempts + 1):
        try:
            text = await asyncio.wait_for(
                client.generate(prompt, max_output_tokens=max_output_tokens),
                timeout=policy.timeout_seconds,
            )
        except asyncio.TimeoutError:
            last_error = "timeout"
        except Exception as e:  # SDK raises a variety of transport errors
            last_error = f"{type(e).__name__}: {e}"
        else:
            result = parse_semantic_response(text, schema)
            if result.ok:
                return SemanticResult.success(result.data, attempts=attempt)
            return SemanticResult.failure(result.error, attempts=attempt)

        if attempt < max_attempts:
            logger.warning(
                "Semantic request failed (attempt %d/%d): %s; retrying in %.2fs",
                attempt, max_attempts, last_error, delay,
            )
            await sleep(delay)
            delay *= 2

    logger.error("Semantic request gave up after %d attempts: %s", max_attempts, last_error)
    return SemanticResult.failure(last_error, attempts=max_attempts)
