"""Preference recomputation: turns a user's library into weighted tastes.

The preference profile is a derived model: every recomputation rebuilds the
genre and author maps and the rollup statistics from the user's current
library entries, favorites and the referenced books, then overwrites the
stored profile in one write.  Running it twice with no mutation in between
yields the same profile, and a run that follows a stale or failed one
corrects it.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from booknet.domain.entities import PreferenceProfile, ReadingStatus
from booknet.domain.errors import NotFoundError
from booknet.domain.repositories import (
    IFavoriteRepository,
    IPreferenceProfileRepository,
    IUserBookRepository,
    IUserRepository,
)
from booknet.domain.services import IPreferenceService

logger = logging.getLogger(__name__)

# How strongly each library fact signals positive interest
RATING_WEIGHT_FLOOR = 2.5  # ratings at or below this carry no positive signal
FAVORITE_BONUS = 0.5
TO_READ_WEIGHT = 0.1  # latent interest in an unrated, not-yet-read book


def preference_weight(
    rating: Optional[float], is_favorite: bool, status: ReadingStatus
) -> float:
    """Map one library entry to its contribution to genre/author weights.

    Ratings above 2.5 scale linearly to 1.0 at 5 stars; a favorite adds a flat
    0.5; an entry with no other signal that sits on the to-read list counts
    for 0.1.  Never negative.
    """
    weight = 0.0
    if rating is not None and rating > RATING_WEIGHT_FLOOR:
        weight = max(0.0, (rating - 2) / 3)

    if is_favorite:
        weight += FAVORITE_BONUS

    if weight == 0 and status == ReadingStatus.TO_READ:
        weight = TO_READ_WEIGHT

    return weight


class PreferenceService(IPreferenceService):
    """Rebuilds and serves the per-user preference profile."""

    def __init__(
        self,
        user_repo: IUserRepository,
        library_repo: IUserBookRepository,
        favorite_repo: IFavoriteRepository,
        profile_repo: IPreferenceProfileRepository,
    ):
        self.user_repo = user_repo
        self.library_repo = library_repo
        self.favorite_repo = favorite_repo
        self.profile_repo = profile_repo

    async def recompute(self, user_id: UUID) -> PreferenceProfile:
        """Recompute the user's profile from scratch and store it.

        Raises ``NotFoundError`` if the user does not exist.  If the write
        fails the previously stored profile is left untouched.
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        entries = await self.library_repo.list_for_user(user_id)
        favorites = await self.favorite_repo.get_book_ids(user_id)

        genre_scores: dict[str, float] = {}
        author_scores: dict[str, float] = {}
        for entry in entries:
            book = entry.book
            if book is None:
                continue

            weight = preference_weight(entry.rating, book.id in favorites, entry.status)
            if weight <= 0:
                continue

            for genre in book.genres:
                genre_scores[genre] = genre_scores.get(genre, 0.0) + weight
            if book.author:
                author_scores[book.author] = author_scores.get(book.author, 0.0) + weight

        ratings = [e.rating for e in entries if e.rating is not None]
        profile = PreferenceProfile(
            user_id=user_id,
            preferred_genres=genre_scores,
            preferred_authors=author_scores,
            average_rating=sum(ratings) / len(ratings) if ratings else None,
            total_books_read=sum(1 for e in entries if e.status == ReadingStatus.READ),
            last_computed_at=datetime.utcnow(),
        )

        stored = await self.profile_repo.replace(profile)
        logger.info(
            "Preferences recomputed for user %s: %d entries, %d genres, %d authors",
            user_id, len(entries), len(genre_scores), len(author_scores),
        )
        return stored

    async def get_profile(self, user_id: UUID) -> PreferenceProfile:
        """Return the stored profile without recomputing it.

        A user whose profile was never computed gets an empty profile.
        """
        user = await self.user_repo.get_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        profile = await self.profile_repo.get(user_id)
        return profile or PreferenceProfile(user_id=user_id)
