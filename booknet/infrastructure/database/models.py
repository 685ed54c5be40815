"""SQLAlchemy database models."""

import uuid
from datetime import datetime

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    username = Column(String(100), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    books = relationship(
        "UserBookModel", back_populates="user", lazy="noload", cascade="all, delete-orphan"
    )
    favorites = relationship(
        "FavoriteModel", back_populates="user", lazy="noload", cascade="all, delete-orphan"
    )
    preference_profile = relationship(
        "PreferenceProfileModel", back_populates="user", uselist=False, lazy="noload",
        cascade="all, delete-orphan",
    )


class BookModel(Base):
    """Cached catalog record; descriptive fields come from the metadata provider."""

    __tablename__ = "books"
    __table_args__ = (
        Index("ix_books_popularity", "average_rating", "total_ratings"),
        CheckConstraint("total_ratings >= 0", name="ck_books_total_ratings"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    external_id = Column(String(64), nullable=False, unique=True, index=True)
    isbn = Column(String(20), nullable=True, index=True)
    title = Column(String(255), nullable=False, index=True)
    author = Column(String(255), nullable=False, index=True)
    cover_image = Column(String(512), nullable=True)
    published_year = Column(Integer, nullable=True)
    page_count = Column(Integer, nullable=True)
    average_rating = Column(Float, default=0.0, nullable=False)  # this system's users only
    total_ratings = Column(Integer, default=0, nullable=False)
    last_fetched = Column(DateTime, default=datetime.utcnow, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    genres = relationship(
        "BookGenreModel",
        back_populates="book",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="BookGenreModel.position",
    )


class BookGenreModel(Base):
    """One row per genre label so genre-in-set is an indexed lookup."""

    __tablename__ = "book_genres"
    __table_args__ = (UniqueConstraint("book_id", "genre", name="uq_book_genre"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Uuid, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    genre = Column(String(100), nullable=False, index=True)
    position = Column(Integer, default=0, nullable=False)

    book = relationship("BookModel", back_populates="genres")


class UserBookModel(Base):
    __tablename__ = "user_books"
    __table_args__ = (
        UniqueConstraint("user_id", "book_id", name="uq_user_book"),
        Index("ix_user_books_user_status", "user_id", "status"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(Uuid, ForeignKey("books.id"), nullable=False, index=True)
    status = Column(String(10), nullable=False, default="toRead")  # toRead|reading|read
    rating = Column(Float, nullable=True)  # 1-5 in half points
    date_added = Column(DateTime, default=datetime.utcnow, nullable=False)
    date_started = Column(DateTime, nullable=True)
    date_completed = Column(DateTime, nullable=True)

    user = relationship("UserModel", back_populates="books")
    book = relationship("BookModel", lazy="noload")


class FavoriteModel(Base):
    """Favorites are independent of library membership."""

    __tablename__ = "user_favorites"
    __table_args__ = (UniqueConstraint("user_id", "book_id", name="uq_user_favorite"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    book_id = Column(Uuid, ForeignKey("books.id"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    user = relationship("UserModel", back_populates="favorites")


class PreferenceProfileModel(Base):
    """Derived preference model, overwritten wholesale by each recomputation."""

    __tablename__ = "user_preference_profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, unique=True)
    preferred_genres = Column(JSON, nullable=False, default=dict)  # {"Fiction": 1.5}
    preferred_authors = Column(JSON, nullable=False, default=dict)  # {"Le Guin": 1.0}
    average_rating = Column(Float, nullable=True)
    total_books_read = Column(Integer, default=0, nullable=False)
    last_computed_at = Column(DateTime, nullable=True)

    user = relationship("UserModel", back_populates="preference_profile")
