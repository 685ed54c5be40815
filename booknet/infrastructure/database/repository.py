"""Repository implementations."""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

from sqlalchemy import case, delete, or_, select, update
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from booknet.domain.entities import (
    Book,
    CandidateQuery,
    PreferenceProfile,
    ReadingStatus,
    User,
    UserBook,
)
from booknet.domain.repositories import (
    IBookRepository,
    IFavoriteRepository,
    IPreferenceProfileRepository,
    IUserBookRepository,
    IUserRepository,
)
from booknet.infrastructure.database.models import (
    BookGenreModel,
    BookModel,
    FavoriteModel,
    PreferenceProfileModel,
    UserBookModel,
    UserModel,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# User Repository
# ---------------------------------------------------------------------------
class UserRepository(IUserRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user: User) -> User:
        db_user = UserModel(
            id=user.id,
            username=user.username,
            email=user.email,
            is_active=user.is_active,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )
        self.session.add(db_user)
        await self.session.commit()
        return self._to_entity(db_user)

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        result = await self.session.execute(select(UserModel).where(UserModel.id == user_id))
        db_user = result.scalar_one_or_none()
        return self._to_entity(db_user) if db_user else None

    @staticmethod
    def _to_entity(model: UserModel) -> User:
        return User(
            id=model.id,
            username=model.username,
            email=model.email,
            is_active=model.is_active,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


# ---------------------------------------------------------------------------
# Book Repository (catalog)
# ---------------------------------------------------------------------------
class BookRepository(IBookRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, book: Book) -> Book:
        # Duplicate labels would violate uq_book_genre; first occurrence wins
        labels = list(dict.fromkeys(g for g in book.genres if g))
        db_book = BookModel(
            id=book.id,
            external_id=book.external_id,
            isbn=book.isbn,
            title=book.title,
            author=book.author,
            cover_image=book.cover_image,
            published_year=book.published_year,
            page_count=book.page_count,
            average_rating=book.average_rating,
            total_ratings=book.total_ratings,
            last_fetched=book.last_fetched,
            created_at=book.created_at,
            genres=[BookGenreModel(genre=g, position=i) for i, g in enumerate(labels)],
        )
        self.session.add(db_book)
        await self.session.commit()
        return self._to_entity(db_book)

    async def get_by_id(self, book_id: UUID) -> Optional[Book]:
        result = await self.session.execute(select(BookModel).where(BookModel.id == book_id))
        db_book = result.scalar_one_or_none()
        return self._to_entity(db_book) if db_book else None

    async def get_by_external_id(self, external_id: str) -> Optional[Book]:
        result = await self.session.execute(
            select(BookModel).where(BookModel.external_id == external_id)
        )
        db_book = result.scalar_one_or_none()
        return self._to_entity(db_book) if db_book else None

    async def apply_rating_change(
        self, book_id: UUID, old: Optional[float], new: Optional[float]
    ) -> Optional[Book]:
        average = BookModel.average_rating
        total = BookModel.total_ratings
        if old is None and new is None:
            return await self.get_by_id(book_id)

        # Expressions read the row's current values; the UPDATE row lock
        # serializes concurrent raters of the same book
        if old is None:
            values = {
                "average_rating": (average * total + new) / (total + 1),
                "total_ratings": total + 1,
            }
        elif new is not None:
            values = {
                "average_rating": case(
                    (total > 0, (average * total - old + new) / total), else_=new
                ),
                "total_ratings": case((total > 0, total), else_=1),
            }
        else:
            values = {
                "average_rating": case(
                    (total > 1, (average * total - old) / (total - 1)), else_=0.0
                ),
                "total_ratings": case((total > 0, total - 1), else_=0),
            }

        await self.session.execute(
            update(BookModel)
            .where(BookModel.id == book_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(
            select(BookModel)
            .where(BookModel.id == book_id)
            .execution_options(populate_existing=True)
        )
        db_book = result.scalar_one_or_none()
        return self._to_entity(db_book) if db_book else None

    async def find_candidates(self, query: CandidateQuery) -> list[Book]:
        stmt = select(BookModel)
        if query.genre_filter is not None:
            stmt = stmt.where(BookModel.id.in_(self._books_in_genres([query.genre_filter])))
        elif not query.matches_everything:
            conditions = []
            if query.genres:
                conditions.append(BookModel.id.in_(self._books_in_genres(query.genres)))
            if query.authors:
                conditions.append(BookModel.author.in_(query.authors))
            stmt = stmt.where(or_(*conditions))

        stmt = stmt.order_by(
            BookModel.average_rating.desc(),
            BookModel.total_ratings.desc(),
            BookModel.created_at,
        ).limit(query.pool_size)
        result = await self.session.execute(stmt)
        return [self._to_entity(b) for b in result.scalars().all()]

    @staticmethod
    def _books_in_genres(genres):
        return select(BookGenreModel.book_id).where(BookGenreModel.genre.in_(list(genres)))

    @staticmethod
    def _to_entity(model: BookModel) -> Book:
        return Book(
            id=model.id,
            external_id=model.external_id,
            isbn=model.isbn,
            title=model.title,
            author=model.author,
            genres=[g.genre for g in model.genres],
            cover_image=model.cover_image,
            published_year=model.published_year,
            page_count=model.page_count,
            average_rating=model.average_rating,
            total_ratings=model.total_ratings,
            last_fetched=model.last_fetched,
            created_at=model.created_at,
        )


# ---------------------------------------------------------------------------
# Library Repository
# ---------------------------------------------------------------------------
class UserBookRepository(IUserBookRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, entry: UserBook) -> UserBook:
        db_entry = UserBookModel(
            id=entry.id,
            user_id=entry.user_id,
            book_id=entry.book_id,
            status=entry.status.value,
            rating=entry.rating,
            date_added=entry.date_added,
            date_started=entry.date_started,
            date_completed=entry.date_completed,
        )
        self.session.add(db_entry)
        await self.session.commit()
        return self._to_entity(db_entry)

    async def get(self, user_id: UUID, book_id: UUID) -> Optional[UserBook]:
        db_entry = await self._get_model(user_id, book_id)
        return self._to_entity(db_entry) if db_entry else None

    async def list_for_user(
        self, user_id: UUID, status: Optional[ReadingStatus] = None
    ) -> list[UserBook]:
        # Books and their genres arrive in two extra IN-queries, not one per entry
        stmt = (
            select(UserBookModel)
            .where(UserBookModel.user_id == user_id)
            .options(selectinload(UserBookModel.book).selectinload(BookModel.genres))
            .order_by(UserBookModel.date_added)
            # Entries already in the session were loaded with ``book`` unset
            .execution_options(populate_existing=True)
        )
        if status is not None:
            stmt = stmt.where(UserBookModel.status == status.value)
        result = await self.session.execute(stmt)
        return [self._to_entity(e) for e in result.scalars().all()]

    async def get_owned_book_ids(self, user_id: UUID) -> set[UUID]:
        result = await self.session.execute(
            select(UserBookModel.book_id).where(UserBookModel.user_id == user_id)
        )
        return set(result.scalars().all())

    async def update(self, entry: UserBook) -> UserBook:
        db_entry = await self._get_model(entry.user_id, entry.book_id)
        if db_entry is None:
            raise LookupError(f"Library entry for book {entry.book_id} not found")
        db_entry.status = entry.status.value
        db_entry.rating = entry.rating
        db_entry.date_started = entry.date_started
        db_entry.date_completed = entry.date_completed
        await self.session.commit()
        return self._to_entity(db_entry)

    async def delete(self, user_id: UUID, book_id: UUID) -> bool:
        result = await self.session.execute(
            delete(UserBookModel).where(
                UserBookModel.user_id == user_id,
                UserBookModel.book_id == book_id,
            )
        )
        await self.session.commit()
        return result.rowcount > 0

    async def _get_model(self, user_id: UUID, book_id: UUID) -> Optional[UserBookModel]:
        result = await self.session.execute(
            select(UserBookModel).where(
                UserBookModel.user_id == user_id,
                UserBookModel.book_id == book_id,
            )
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _to_entity(model: UserBookModel) -> UserBook:
        return UserBook(
            id=model.id,
            user_id=model.user_id,
            book_id=model.book_id,
            status=ReadingStatus(model.status),
            rating=model.rating,
            date_added=model.date_added,
            date_started=model.date_started,
            date_completed=model.date_completed,
            book=BookRepository._to_entity(model.book) if model.book is not None else None,
        )


# ---------------------------------------------------------------------------
# Favorite Repository
# ---------------------------------------------------------------------------
class FavoriteRepository(IFavoriteRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, user_id: UUID, book_id: UUID) -> bool:
        existing = await self.session.execute(
            select(FavoriteModel.id).where(
                FavoriteModel.user_id == user_id,
                FavoriteModel.book_id == book_id,
            )
        )
        if existing.first() is not None:
            return False
        self.session.add(FavoriteModel(id=uuid4(), user_id=user_id, book_id=book_id))
        try:
            await self.session.commit()
        except IntegrityError:
            # Concurrent add of the same favorite
            await self.session.rollback()
            return False
        return True

    async def remove(self, user_id: UUID, book_id: UUID) -> bool:
        result = await self.session.execute(
            delete(FavoriteModel).where(
                FavoriteModel.user_id == user_id,
                FavoriteModel.book_id == book_id,
            )
        )
        await self.session.commit()
        return result.rowcount > 0

    async def get_book_ids(self, user_id: UUID) -> set[UUID]:
        result = await self.session.execute(
            select(FavoriteModel.book_id).where(FavoriteModel.user_id == user_id)
        )
        return set(result.scalars().all())


# ---------------------------------------------------------------------------
# Preference Profile Repository
# ---------------------------------------------------------------------------
class PreferenceProfileRepository(IPreferenceProfileRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: UUID) -> Optional[PreferenceProfile]:
        result = await self.session.execute(
            select(PreferenceProfileModel)
            .where(PreferenceProfileModel.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        db_profile = result.scalar_one_or_none()
        return self._to_entity(db_profile) if db_profile else None

    async def replace(self, profile: PreferenceProfile) -> PreferenceProfile:
        snapshot = {
            "preferred_genres": dict(profile.preferred_genres),
            "preferred_authors": dict(profile.preferred_authors),
            "average_rating": profile.average_rating,
            "total_books_read": profile.total_books_read,
            "last_computed_at": profile.last_computed_at or datetime.utcnow(),
        }
        # Single-statement upsert: overlapping first writes for a user both land
        # and the later commit is the stored profile
        insert = self._insert_for(self.session.get_bind().dialect.name)
        stmt = insert(PreferenceProfileModel).values(
            id=uuid4(), user_id=profile.user_id, **snapshot
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[PreferenceProfileModel.user_id], set_=snapshot
        )
        try:
            await self.session.execute(stmt)
            await self.session.commit()
        except Exception:
            await self.session.rollback()
            logger.error("Preference profile write rolled back for user %s", profile.user_id)
            raise
        return PreferenceProfile(user_id=profile.user_id, **snapshot)

    @staticmethod
    def _insert_for(dialect_name: str):
        if dialect_name == "postgresql":
            return postgresql_insert
        if dialect_name == "sqlite":
            return sqlite_insert
        raise NotImplementedError(f"No profile upsert for dialect {dialect_name!r}")

    @staticmethod
    def _to_entity(model: PreferenceProfileModel) -> PreferenceProfile:
        return PreferenceProfile(
            user_id=model.user_id,
            preferred_genres=dict(model.preferred_genres or {}),
            preferred_authors=dict(model.preferred_authors or {}),
            average_rating=model.average_rating,
            total_books_read=model.total_books_read or 0,
            last_computed_at=model.last_computed_at,
        )
