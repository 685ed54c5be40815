"""Pydantic schemas for API requests and responses."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from booknet.domain.entities import ReadingStatus


class MessageResponse(BaseModel):
    message: str


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
class BookCreateRequest(BaseModel):
    """Catalog record supplied by the metadata-lookup service."""

    external_id: str = Field(..., min_length=1, max_length=64)
    title: str = Field(..., min_length=1, max_length=255)
    author: str = Field(..., min_length=1, max_length=255)
    genres: list[str] = Field(default_factory=list)
    cover_image: Optional[str] = Field(None, max_length=512)
    isbn: Optional[str] = Field(None, max_length=20)
    published_year: Optional[int] = None
    page_count: Optional[int] = Field(None, ge=0)


class BookResponse(BaseModel):
    id: UUID
    external_id: str
    title: str
    author: str
    genres: list[str] = []
    cover_image: Optional[str] = None
    isbn: Optional[str] = None
    published_year: Optional[int] = None
    page_count: Optional[int] = None
    average_rating: float = 0.0
    total_ratings: int = 0

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Library
# ---------------------------------------------------------------------------
class LibraryAddRequest(BaseModel):
    book_id: UUID
    status: ReadingStatus = ReadingStatus.TO_READ


class StatusUpdateRequest(BaseModel):
    status: ReadingStatus


class RatingUpdateRequest(BaseModel):
    # Half-point membership is checked by the library service
    rating: float


class LibraryEntryResponse(BaseModel):
    """A library entry joined with its cached book data."""

    book_id: UUID
    status: ReadingStatus
    rating: Optional[float] = None
    date_added: datetime
    date_started: Optional[datetime] = None
    date_completed: Optional[datetime] = None
    title: Optional[str] = None
    author: Optional[str] = None
    genres: list[str] = []
    cover_image: Optional[str] = None
    average_rating: Optional[float] = None


class RatingResponse(BaseModel):
    message: str = "Rating updated"
    rating: float
    book_average_rating: float
    book_total_ratings: int


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------
class RecommendedBookResponse(BaseModel):
    id: UUID
    title: str
    author: str
    genres: list[str] = []
    cover_image: Optional[str] = None
    average_rating: float
    score: float = Field(..., description="Relevance score, rounded to 2 decimals")

    model_config = ConfigDict(from_attributes=True)


class BasedOnResponse(BaseModel):
    """Preference keys that drove the result; empty lists mean no personalization yet."""

    top_genres: list[str] = []
    top_authors: list[str] = []


class RecommendationResponse(BaseModel):
    recommendations: list[RecommendedBookResponse]
    based_on: BasedOnResponse


class PreferenceProfileResponse(BaseModel):
    """The stored preference model; may lag the latest library mutation."""

    user_id: UUID
    preferred_genres: dict[str, float] = {}
    preferred_authors: dict[str, float] = {}
    average_rating: Optional[float] = None
    total_books_read: int = 0
    last_computed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Background tasks
# ---------------------------------------------------------------------------
class TaskStatusResponse(BaseModel):
    task_id: str
    status: str
    error: Optional[str] = None
