"""Library service: the mutations that feed the preference model.

Every mutation here changes an input of preference recomputation.  The
service only applies the mutation (and the catalog rating aggregates it
implies); scheduling the detached recomputation is the caller's job, after
the mutation has been committed.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from booknet.domain.entities import VALID_RATINGS, Book, ReadingStatus, UserBook
from booknet.domain.errors import ConflictError, InvalidArgumentError, NotFoundError
from booknet.domain.repositories import (
    IBookRepository,
    IFavoriteRepository,
    IUserBookRepository,
)
from booknet.domain.services import ILibraryService

logger = logging.getLogger(__name__)


def _stamp_status(entry: UserBook, status: ReadingStatus) -> None:
    entry.status = status
    now = datetime.utcnow()
    if status == ReadingStatus.READING and entry.date_started is None:
        entry.date_started = now
    if status == ReadingStatus.READ and entry.date_completed is None:
        entry.date_completed = now


class LibraryService(ILibraryService):
    """Applies library, rating and favorite mutations for one user."""

    def __init__(
        self,
        book_repository: IBookRepository,
        library_repository: IUserBookRepository,
        favorite_repository: IFavoriteRepository,
    ):
        self.book_repository = book_repository
        self.library_repository = library_repository
        self.favorite_repository = favorite_repository

    # -----------------------------------------------------------------------
    # Catalog
    # -----------------------------------------------------------------------

    async def register_book(self, book: Book) -> Book:
        """Cache a catalog record; ``external_id`` must be new."""
        existing = await self.book_repository.get_by_external_id(book.external_id)
        if existing:
            raise ConflictError("Book already cached")
        if book.total_ratings == 0:
            book.average_rating = 0.0
        created = await self.book_repository.create(book)
        logger.info("Catalog book cached: %s (%s)", created.id, created.external_id)
        return created

    async def get_book(self, book_id: UUID) -> Book:
        book = await self.book_repository.get_by_id(book_id)
        if book is None:
            raise NotFoundError("Book not found")
        return book

    # -----------------------------------------------------------------------
    # Library membership
    # -----------------------------------------------------------------------

    async def list_library(
        self, user_id: UUID, status: Optional[ReadingStatus] = None
    ) -> list[UserBook]:
        return await self.library_repository.list_for_user(user_id, status)

    async def add_to_library(
        self, user_id: UUID, book_id: UUID, status: ReadingStatus = ReadingStatus.TO_READ
    ) -> UserBook:
        await self.get_book(book_id)
        if await self.library_repository.get(user_id, book_id):
            raise ConflictError("Book already in your library")

        entry = UserBook(id=uuid4(), user_id=user_id, book_id=book_id)
        _stamp_status(entry, status)
        created = await self.library_repository.add(entry)
        logger.info("User %s added book %s as %s", user_id, book_id, status.value)
        return created

    async def update_status(
        self, user_id: UUID, book_id: UUID, status: ReadingStatus
    ) -> UserBook:
        entry = await self._require_entry(user_id, book_id)
        _stamp_status(entry, status)
        return await self.library_repository.update(entry)

    async def set_rating(
        self, user_id: UUID, book_id: UUID, rating: float
    ) -> tuple[UserBook, Book]:
        if rating not in VALID_RATINGS:
            raise InvalidArgumentError("Rating must be 1, 1.5, 2, 2.5, 3, 3.5, 4, 4.5, or 5")

        entry = await self._require_entry(user_id, book_id)
        book = await self.book_repository.apply_rating_change(book_id, entry.rating, rating)
        if book is None:
            raise NotFoundError("Book not found")

        entry.rating = rating
        updated = await self.library_repository.update(entry)
        logger.info(
            "User %s rated book %s %.1f (book avg %.2f over %d)",
            user_id, book_id, rating, book.average_rating, book.total_ratings,
        )
        return updated, book

    async def remove_from_library(self, user_id: UUID, book_id: UUID) -> None:
        entry = await self._require_entry(user_id, book_id)

        if entry.rating is not None:
            await self.book_repository.apply_rating_change(book_id, entry.rating, None)

        await self.library_repository.delete(user_id, book_id)
        logger.info("User %s removed book %s from library", user_id, book_id)

    # -----------------------------------------------------------------------
    # Favorites
    # -----------------------------------------------------------------------

    async def add_favorite(self, user_id: UUID, book_id: UUID) -> None:
        await self.get_book(book_id)
        if not await self.favorite_repository.add(user_id, book_id):
            raise ConflictError("Book already in favorites")

    async def remove_favorite(self, user_id: UUID, book_id: UUID) -> None:
        if not await self.favorite_repository.remove(user_id, book_id):
            raise NotFoundError("Book not in favorites")

    async def _require_entry(self, user_id: UUID, book_id: UUID) -> UserBook:
        entry = await self.library_repository.get(user_id, book_id)
        if entry is None:
            raise NotFoundError("Book not in your library")
        return entry
