"""Repository interfaces (ports) for dependency inversion."""

from abc import ABC, abstractmethod
from typing import Optional
from uuid import UUID

from booknet.domain.entities import (
    Book,
    CandidateQuery,
    PreferenceProfile,
    ReadingStatus,
    User,
    UserBook,
)


class IUserRepository(ABC):

    @abstractmethod
    async def create(self, user: User) -> User:
        pass

    @abstractmethod
    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        pass


class IBookRepository(ABC):
    """Catalog store: cached book records and their popularity aggregates."""

    @abstractmethod
    async def create(self, book: Book) -> Book:
        pass

    @abstractmethod
    async def get_by_id(self, book_id: UUID) -> Optional[Book]:
        pass

    @abstractmethod
    async def get_by_external_id(self, external_id: str) -> Optional[Book]:
        pass

    @abstractmethod
    async def apply_rating_change(
        self, book_id: UUID, old: Optional[float], new: Optional[float]
    ) -> Optional[Book]:
        """Fold one user's rating change into a book's popularity aggregates.

        ``old=None`` adds a rating, ``new=None`` withdraws one, both set
        re-rates.  The arithmetic runs against the stored row, never a copy
        read earlier, so concurrent ratings of one book are all counted.
        The change is not committed: it belongs to the caller's unit of work
        and commits with the library change that caused it.  Returns the book
        with its updated aggregates.
        """
        pass

    @abstractmethod
    async def find_candidates(self, query: CandidateQuery) -> list[Book]:
        """Execute a candidate query.

        Results are ordered by ``(average_rating desc, total_ratings desc)``
        and hold at most ``query.pool_size`` books.
        """
        pass


class IUserBookRepository(ABC):
    """Library store: one entry per (user, book)."""

    @abstractmethod
    async def add(self, entry: UserBook) -> UserBook:
        pass

    @abstractmethod
    async def get(self, user_id: UUID, book_id: UUID) -> Optional[UserBook]:
        pass

    @abstractmethod
    async def list_for_user(
        self, user_id: UUID, status: Optional[ReadingStatus] = None
    ) -> list[UserBook]:
        """Return the user's entries with ``book`` populated in one batched load."""
        pass

    @abstractmethod
    async def get_owned_book_ids(self, user_id: UUID) -> set[UUID]:
        pass

    @abstractmethod
    async def update(self, entry: UserBook) -> UserBook:
        pass

    @abstractmethod
    async def delete(self, user_id: UUID, book_id: UUID) -> bool:
        pass


class IFavoriteRepository(ABC):

    @abstractmethod
    async def add(self, user_id: UUID, book_id: UUID) -> bool:
        """Add a favorite; ``False`` if it was already present."""
        pass

    @abstractmethod
    async def remove(self, user_id: UUID, book_id: UUID) -> bool:
        """Remove a favorite; ``False`` if it was not present."""
        pass

    @abstractmethod
    async def get_book_ids(self, user_id: UUID) -> set[UUID]:
        pass


class IPreferenceProfileRepository(ABC):

    @abstractmethod
    async def get(self, user_id: UUID) -> Optional[PreferenceProfile]:
        pass

    @abstractmethod
    async def replace(self, profile: PreferenceProfile) -> PreferenceProfile:
        """Overwrite the user's whole profile in a single commit."""
        pass
