"""TF-IDF similarity used to pick bounded candidate samples for prompts."""

import logging

import numpy as np
from sklearn.feature_extraction.text import TfidfVectorizer
from sklearn.metrics.pairwise import cosine_similarity as sklearn_cosine

logger = logging.getLogger(__name__)


def tfidf_scores(query: str, documents: list[str]) -> np.ndarray:
    """Cosine similarity of `query` against each document (zeros if no vocabulary)."""
    if not documents:
        return np.zeros(0)
    if not query.strip():
        return np.zeros(len(documents))

    vectorizer = TfidfVectorizer(
        stop_words="english",
        sublinear_tf=True,
        ngram_range=(1, 2),
    )
    try:
        matrix = vectorizer.fit_transform(documents + [query])
    except ValueError:
        # only stop words / punctuation in the corpus
        return np.zeros(len(documents))
    return sklearn_cosine(matrix[-1], matrix[:-1]).ravel()


def select_top_k(query: str, documents: list[str], limit: int) -> list[int]:
    """Indices of the `limit` documents most similar to `query`.

    Equal scores keep catalogue order, and the selected indices are returned
    in catalogue order so the resulting sample is deterministic.
    """
    if limit <= 0:
        return []
    if len(documents) <= limit:
        return list(range(len(documents)))

    scores = tfidf_scores(query, documents)
    ranked = np.argsort(-scores, kind="stable")[:limit]
    return sorted(int(i) for i in ranked)
