"""Domain-level application service interfaces (ports).

These abstract classes define the contracts that the API layer depends on.
Concrete implementations live in ``booknet/services/`` and
``booknet/infrastructure/tasks/`` and are wired together by the composition
root in ``booknet/core/dependencies.py``.

Every service can be replaced with a test double via FastAPI's
``app.dependency_overrides`` without touching business logic.
"""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from booknet.domain.entities import (
    Book,
    PreferenceProfile,
    ReadingStatus,
    RecommendationResult,
    UserBook,
)


class ILibraryService(ABC):

    @abstractmethod
    async def register_book(self, book: Book) -> Book:
        """Cache a catalog record supplied by the metadata provider."""
        pass

    @abstractmethod
    async def get_book(self, book_id: UUID) -> Book:
        pass

    @abstractmethod
    async def list_library(
        self, user_id: UUID, status: Optional[ReadingStatus] = None
    ) -> list[UserBook]:
        pass

    @abstractmethod
    async def add_to_library(
        self, user_id: UUID, book_id: UUID, status: ReadingStatus = ReadingStatus.TO_READ
    ) -> UserBook:
        pass

    @abstractmethod
    async def update_status(
        self, user_id: UUID, book_id: UUID, status: ReadingStatus
    ) -> UserBook:
        pass

    @abstractmethod
    async def set_rating(self, user_id: UUID, book_id: UUID, rating: float) -> tuple[UserBook, Book]:
        """Set or change a rating; returns the entry and the re-aggregated book."""
        pass

    @abstractmethod
    async def add_favorite(self, user_id: UUID, book_id: UUID) -> None:
        pass

    @abstractmethod
    async def remove_favorite(self, user_id: UUID, book_id: UUID) -> None:
        pass

    @abstractmethod
    async def remove_from_library(self, user_id: UUID, book_id: UUID) -> None:
        pass


class IPreferenceService(ABC):

    @abstractmethod
    async def recompute(self, user_id: UUID) -> PreferenceProfile:
        """Rebuild and store the user's preference profile from scratch."""
        pass

    @abstractmethod
    async def get_profile(self, user_id: UUID) -> PreferenceProfile:
        """Return the stored profile (empty if never computed)."""
        pass


class IRecommendationService(ABC):

    @abstractmethod
    async def recommend(
        self, user_id: UUID, limit: int = 10, genre_filter: Optional[str] = None
    ) -> RecommendationResult:
        pass


class IPreferenceRefresher(ABC):
    """Schedules a detached preference recomputation.

    ``schedule`` never waits for the recomputation and never raises: dispatch
    and execution failures are logged, not surfaced to the caller.
    Returns a task identifier when the backend provides one.
    """

    @abstractmethod
    def schedule(self, user_id: UUID) -> Optional[str]:
        pass
