"""Preference-driven recommendation engine for BookNet.

Three stages, each a plain function, orchestrated by
``PreferenceRecommendationService``:

  1. Candidate retrieval: top genres/authors (or an explicit genre filter)
     become a bounded catalog query, over-fetched and pre-sorted by
     popularity.
  2. Scoring: genre affinity + 2 x author affinity + a down-weighted
     popularity term; pure popularity when the user has no preferences.
  3. Ranking: owned books removed, stable sort by score, truncation.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Optional
from uuid import UUID

from booknet.core.config import settings
from booknet.domain.entities import (
    Book,
    CandidateQuery,
    PreferenceProfile,
    RecommendationResult,
    RecommendedBook,
)
from booknet.domain.errors import InvalidArgumentError, NotFoundError
from booknet.domain.repositories import (
    IBookRepository,
    IPreferenceProfileRepository,
    IUserBookRepository,
    IUserRepository,
)
from booknet.domain.services import IRecommendationService

logger = logging.getLogger(__name__)

AUTHOR_MATCH_MULTIPLIER = 2.0
POPULARITY_TIEBREAK_FACTOR = 0.1


# ======================================================================
# Candidate retrieval
# ======================================================================
def top_keys(weights: Optional[Mapping[str, float]], limit: int) -> list[str]:
    """Return the ``limit`` highest-weighted keys, highest first.

    The sort is stable, so equal weights keep the mapping's iteration order.
    That order is not guaranteed to survive a storage round trip; ties are
    therefore not deterministic across recomputations.
    """
    if not weights:
        return []
    ranked = sorted(weights.items(), key=lambda item: item[1], reverse=True)
    return [key for key, _ in ranked[:limit]]


def build_candidate_query(
    top_genres: list[str],
    top_authors: list[str],
    genre_filter: Optional[str] = None,
    pool_size: int = 50,
) -> CandidateQuery:
    """Describe the catalog query for a recommendation request.

    An explicit genre filter decides membership on its own; preferences then
    only rank the result.  Otherwise a book matches if it carries one of the
    top genres or is by one of the top authors, and with no preferences at
    all the whole catalog matches.
    """
    if genre_filter is not None:
        return CandidateQuery(genre_filter=genre_filter, pool_size=pool_size)
    return CandidateQuery(
        genres=tuple(top_genres),
        authors=tuple(top_authors),
        pool_size=pool_size,
    )


# ======================================================================
# Scoring
# ======================================================================
def popularity_score(book: Book) -> float:
    """``average_rating * ln(total_ratings + 1)``; books nobody rated score 0."""
    return book.average_rating * math.log(book.total_ratings + 1)


def score_book(
    book: Book,
    preferred_genres: Mapping[str, float],
    preferred_authors: Mapping[str, float],
    has_preferences: bool,
) -> float:
    if not has_preferences:
        return popularity_score(book)

    genre_score = sum(preferred_genres.get(genre, 0.0) for genre in book.genres)
    author_score = preferred_authors.get(book.author, 0.0)
    return (
        genre_score
        + AUTHOR_MATCH_MULTIPLIER * author_score
        + POPULARITY_TIEBREAK_FACTOR * popularity_score(book)
    )


# ======================================================================
# Orchestrator
# ======================================================================
class PreferenceRecommendationService(IRecommendationService):
    """Ranks catalog books the user does not own against their profile."""

    def __init__(
        self,
        user_repo: IUserRepository,
        book_repo: IBookRepository,
        library_repo: IUserBookRepository,
        profile_repo: IPreferenceProfileRepository,
    ):
        self.user_repo = user_repo
        self.book_repo = book_repo
        self.library_repo = library_repo
        self.profile_repo = profile_repo

    async def recommend(
        self, user_id: UUID, limit: int = 10, genre_filter: Optional[str] = None
    ) -> RecommendationResult:
        if limit < 1:
            raise InvalidArgumentError("limit must be a positive integer")
        limit = min(limit, settings.max_recommendation_limit)
        if genre_filter is not None:
            genre_filter = genre_filter.strip()
            if not genre_filter:
                raise InvalidArgumentError("Genre query parameter required")

        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        # Reads whatever profile is stored, even if a recomputation is in flight
        profile = await self.profile_repo.get(user_id) or PreferenceProfile(user_id=user_id)
        preferred_genres = profile.preferred_genres
        preferred_authors = profile.preferred_authors
        owned = await self.library_repo.get_owned_book_ids(user_id)

        top_genres = top_keys(preferred_genres, settings.top_preference_count)
        top_authors = top_keys(preferred_authors, settings.top_preference_count)
        has_preferences = profile.has_preferences

        query = build_candidate_query(
            top_genres,
            top_authors,
            genre_filter=genre_filter,
            pool_size=limit * settings.candidate_pool_factor,
        )
        candidates = await self.book_repo.find_candidates(query)

        scored: list[tuple[Book, float]] = []
        for book in candidates:
            if book.id in owned:
                continue
            scored.append(
                (book, score_book(book, preferred_genres, preferred_authors, has_preferences))
            )

        # list.sort is stable: equal scores keep the popularity order of the pool
        scored.sort(key=lambda pair: pair[1], reverse=True)
        recommendations = [
            RecommendedBook(
                id=book.id,
                title=book.title,
                author=book.author,
                genres=list(book.genres),
                cover_image=book.cover_image,
                average_rating=book.average_rating,
                score=round(score, 2),
            )
            for book, score in scored[:limit]
        ]

        logger.info(
            "Recommended %d of %d candidates for user %s (personalized=%s, genre=%s)",
            len(recommendations), len(candidates), user_id, has_preferences, genre_filter,
        )
        return RecommendationResult(
            recommendations=recommendations,
            top_genres=top_genres,
            top_authors=top_authors,
        )
