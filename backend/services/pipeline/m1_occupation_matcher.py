"""Stage 1: Occupation Matcher - free-text job title to catalogue occupation.

Staged, each stage only runs when the previous one found nothing adequate:
    1. exact     case-insensitive match on alternate titles (confidence 0.95)
    2. partial   keyword-pattern search on alternate titles, word-overlap scored
    3. semantic  a bounded, TF-IDF-selected sample of occupations ranked by the
                 semantic collaborator; capped at 0.9 so it never outranks a
                 verified exact hit
"""

import logging
from collections.abc import Callable
from typing import Any

from config import settings
from models.schemas.occupation import (
    AlternateTitle,
    MatchResult,
    OccupationDetails,
    OccupationMatch,
    OccupationProfile,
)
from services import prompt_builder
from services.gemini_client import RetryPolicy, SemanticClient, request_structured
from services.pipeline.base import BaseStageService
from services.reference_store import ReferenceStore
from services.semantic_parser import OccupationSuggestions
from services.similarity import select_top_k

logger = logging.getLogger(__name__)

EXACT_CONFIDENCE = 0.95
PARTIAL_BASE_CONFIDENCE = 0.5
PARTIAL_WORD_BONUS = 0.1
PARTIAL_MAX_CONFIDENCE = 0.85
PARTIAL_ACCEPT_CONFIDENCE = 0.7
SEMANTIC_MAX_CONFIDENCE = 0.9
SEMANTIC_SUGGESTIONS = 3
MAX_MATCHES = 5


def tokenize_title(title: str) -> list[str]:
    """Lowercased words of a title, dropping tokens of 2 characters or less."""
    return [w for w in title.lower().split() if len(w) > 2]


def partial_confidence(query: str, candidate_title: str) -> float:
    query_words = set(query.lower().split())
    overlap = sum(1 for w in candidate_title.lower().split() if w in query_words)
    return min(PARTIAL_MAX_CONFIDENCE, PARTIAL_BASE_CONFIDENCE + PARTIAL_WORD_BONUS * overlap)


def sort_matches(matches: list[OccupationMatch]) -> list[OccupationMatch]:
    """Highest confidence first; equal confidence keeps input order; one entry per code."""
    seen: set[str] = set()
    result: list[OccupationMatch] = []
    for m in sorted(matches, key=lambda m: -m.confidence):
        if m.occupation.code not in seen:
            seen.add(m.occupation.code)
            result.append(m)
    return result


class OccupationMatcherService(BaseStageService):
    stage_name = "m1_occupation_matcher"

    def __init__(
        self,
        store: ReferenceStore,
        semantic_client: SemanticClient | None = None,
        *,
        sample_size: int = settings.occupation_sample_size,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._store = store
        self._client = semantic_client
        self._sample_size = sample_size
        self._retry_policy = retry_policy or RetryPolicy.from_settings()
        self._catalogue: list[OccupationProfile] = []
        self._catalogue_docs: list[str] = []

    def load(self) -> None:
        self._catalogue = self._store.list_occupations()
        self._catalogue_docs = [f"{o.title} {o.description}" for o in self._catalogue]
        logger.info(
            "M1 catalogue: %d occupations, semantic fallback %s",
            len(self._catalogue), "enabled" if self._client else "disabled",
        )

    async def predict(self, **kwargs: Any) -> MatchResult:
        return await self.match(
            kwargs["job_title"],
            industry=kwargs.get("industry"),
            use_semantic=kwargs.get("use_semantic", True),
        )

    async def match(
        self,
        job_title: str,
        industry: str | None = None,
        use_semantic: bool = True,
    ) -> MatchResult:
        self.ensure_loaded()
        title = job_title.strip()
        if not title:
            return MatchResult(searched_title=job_title)

        exact = self._exact_matches(title)
        if exact:
            logger.info("M1 exact match for %r: %s", title, exact[0].occupation.code)
            return MatchResult(searched_title=job_title, matches=exact)

        partial = self._partial_matches(title)
        if partial and partial[0].confidence >= PARTIAL_ACCEPT_CONFIDENCE:
            logger.info("M1 partial match for %r: %s", title, partial[0].occupation.code)
            return MatchResult(searched_title=job_title, matches=partial)

        if use_semantic and self._client is not None:
            semantic = await self._semantic_matches(title, industry)
            if semantic:
                combined = sort_matches(semantic + partial)[:MAX_MATCHES]
                logger.info("M1 semantic match for %r: %s", title, combined[0].occupation.code)
                return MatchResult(searched_title=job_title, matches=combined)

        if not partial:
            logger.info("M1 found no occupation for %r", title)
        return MatchResult(searched_title=job_title, matches=partial)

    async def best_match(
        self,
        job_title: str,
        industry: str | None = None,
        use_semantic: bool = True,
    ) -> OccupationMatch | None:
        result = await self.match(job_title, industry=industry, use_semantic=use_semantic)
        return result.best_match

    def occupation_details(self, code: str) -> OccupationDetails | None:
        occupation = self._store.get_occupation(code)
        if occupation is None:
            return None
        return OccupationDetails(
            occupation=occupation,
            tasks=self._store.occupation_tasks(code, limit=20),
            alternate_titles=self._store.alternate_titles_for(code, limit=10),
        )

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def _to_matches(
        self,
        hits: list[AlternateTitle],
        match_type: str,
        confidence_for: Callable[[AlternateTitle], float],
    ) -> list[OccupationMatch]:
        occupations = self._store.get_occupations(list(dict.fromkeys(h.code for h in hits)))
        matches: list[OccupationMatch] = []
        for hit in hits:
            occupation = occupations.get(hit.code)
            if occupation is None:
                continue
            matches.append(OccupationMatch(
                occupation=occupation,
                match_type=match_type,
                confidence=confidence_for(hit),
                alternate_title=hit.title if hit.title != occupation.title else None,
            ))
        return matches

    def _exact_matches(self, title: str) -> list[OccupationMatch]:
        hits = self._store.find_alternate_titles(title, limit=5)
        return sort_matches(self._to_matches(hits, "exact", lambda _: EXACT_CONFIDENCE))

    def _partial_matches(self, title: str) -> list[OccupationMatch]:
        tokens = tokenize_title(title)
        if not tokens:
            return []

        hits = self._store.search_alternate_titles(f"%{'%'.join(tokens)}%", limit=10)
        if not hits:
            longest = max(tokens, key=len)
            hits = self._store.search_alternate_titles(f"%{longest}%", limit=10)

        matches = self._to_matches(hits, "partial", lambda h: partial_confidence(title, h.title))
        return sort_matches(matches)[:MAX_MATCHES]

    def _sample_candidates(self, title: str, industry: str | None) -> list[OccupationProfile]:
        query = f"{title} {industry}" if industry else title
        indices = select_top_k(query, self._catalogue_docs, self._sample_size)
        return [self._catalogue[i] for i in indices]

    async def _semantic_matches(self, title: str, industry: str | None) -> list[OccupationMatch]:
        candidates = self._sample_candidates(title, industry)
        if not candidates:
            return []

        prompt = prompt_builder.build_occupation_prompt(title, candidates, industry)
        result = await request_structured(
            self._client, prompt, OccupationSuggestions,
            policy=self._retry_policy, max_output_tokens=500,
        )
        if not result.ok:
            logger.warning("M1 semantic fallback failed for %r: %s", title, result.error)
            return []

        sampled = {o.code for o in candidates}
        matches: list[OccupationMatch] = []
        for suggestion in result.data.suggestions[:SEMANTIC_SUGGESTIONS]:
            if suggestion.code not in sampled:
                logger.info("M1 discarding suggested code outside the candidate list: %s", suggestion.code)
                continue
            occupation = self._store.get_occupation(suggestion.code)
            if occupation is None:
                continue
            matches.append(OccupationMatch(
                occupation=occupation,
                match_type="semantic",
                confidence=min(SEMANTIC_MAX_CONFIDENCE, suggestion.confidence),
            ))
        return sort_matches(matches)
