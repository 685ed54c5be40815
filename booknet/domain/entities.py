"""Domain entities for BookNet."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID


class ReadingStatus(str, Enum):
    TO_READ = "toRead"
    READING = "reading"
    READ = "read"


# Half-point scale accepted for a user's rating
VALID_RATINGS = (1.0, 1.5, 2.0, 2.5, 3.0, 3.5, 4.0, 4.5, 5.0)


@dataclass
class User:
    id: UUID
    username: str
    email: str
    is_active: bool = True
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class Book:
    """Cached catalog record.

    Descriptive fields come from the external metadata provider; the
    popularity fields are aggregated from this system's own users.
    ``average_rating`` is 0 whenever ``total_ratings`` is 0.
    """

    id: UUID
    external_id: str
    title: str
    author: str
    genres: list[str] = field(default_factory=list)
    cover_image: Optional[str] = None
    isbn: Optional[str] = None
    published_year: Optional[int] = None
    page_count: Optional[int] = None
    average_rating: float = 0.0
    total_ratings: int = 0
    last_fetched: datetime = field(default_factory=datetime.utcnow)
    created_at: datetime = field(default_factory=datetime.utcnow)


@dataclass
class UserBook:
    """A book in a user's library, unique per (user, book)."""

    id: UUID
    user_id: UUID
    book_id: UUID
    status: ReadingStatus = ReadingStatus.TO_READ
    rating: Optional[float] = None
    date_added: datetime = field(default_factory=datetime.utcnow)
    date_started: Optional[datetime] = None
    date_completed: Optional[datetime] = None
    book: Optional[Book] = None  # populated by batched library loads


@dataclass
class PreferenceProfile:
    """Derived per-user preference model, always rebuilt wholesale.

    Holds nothing that cannot be recomputed from the user's library entries,
    favorites and the referenced books' genres/authors.
    """

    user_id: UUID
    preferred_genres: dict[str, float] = field(default_factory=dict)
    preferred_authors: dict[str, float] = field(default_factory=dict)
    average_rating: Optional[float] = None
    total_books_read: int = 0
    last_computed_at: Optional[datetime] = None

    @property
    def has_preferences(self) -> bool:
        return bool(self.preferred_genres) or bool(self.preferred_authors)


@dataclass(frozen=True)
class CandidateQuery:
    """Description of a bounded catalog query for recommendation candidates.

    ``genre_filter`` takes precedence over the preference sets. When the
    filter is absent and both sets are empty the whole catalog matches.
    """

    genres: tuple[str, ...] = ()
    authors: tuple[str, ...] = ()
    genre_filter: Optional[str] = None
    pool_size: int = 50

    @property
    def matches_everything(self) -> bool:
        return self.genre_filter is None and not self.genres and not self.authors


@dataclass
class RecommendedBook:
    id: UUID
    title: str
    author: str
    genres: list[str]
    cover_image: Optional[str]
    average_rating: float
    score: float


@dataclass
class RecommendationResult:
    recommendations: list[RecommendedBook]
    top_genres: list[str]
    top_authors: list[str]
