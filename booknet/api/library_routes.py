"""Library API routes (shelf membership, reading status, ratings, favorites).

Every successful mutation here changes an input of the user's preference
model, so each one schedules a detached recomputation before returning.
When the dispatcher hands back a task id it is exposed in the ``X-Task-ID``
response header; recomputation failures never affect the response.
"""

import logging
from typing import Annotated, NoReturn, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from booknet.api.schemas import (
    LibraryAddRequest,
    LibraryEntryResponse,
    MessageResponse,
    RatingResponse,
    RatingUpdateRequest,
    StatusUpdateRequest,
)
from booknet.core.dependencies import (
    get_current_user,
    get_library_service,
    get_preference_refresher,
)
from booknet.domain.entities import ReadingStatus, User, UserBook
from booknet.domain.errors import ConflictError, InvalidArgumentError, NotFoundError
from booknet.domain.services import ILibraryService, IPreferenceRefresher

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/library", tags=["library"])


def _schedule_refresh(
    refresher: IPreferenceRefresher, user_id: UUID, response: Response
) -> None:
    task_id = refresher.schedule(user_id)
    if task_id:
        response.headers["X-Task-ID"] = task_id


def _raise_http(exc: Exception) -> NoReturn:
    if isinstance(exc, NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, InvalidArgumentError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    raise exc


def _to_response(entry: UserBook) -> LibraryEntryResponse:
    book = entry.book
    return LibraryEntryResponse(
        book_id=entry.book_id,
        status=entry.status,
        rating=entry.rating,
        date_added=entry.date_added,
        date_started=entry.date_started,
        date_completed=entry.date_completed,
        title=book.title if book else None,
        author=book.author if book else None,
        genres=book.genres if book else [],
        cover_image=book.cover_image if book else None,
        average_rating=book.average_rating if book else None,
    )


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------
@router.get("", response_model=list[LibraryEntryResponse])
async def list_library(
    current_user: Annotated[User, Depends(get_current_user)],
    library_service: Annotated[ILibraryService, Depends(get_library_service)],
    status_filter: Annotated[Optional[ReadingStatus], Query(alias="status")] = None,
) -> list[LibraryEntryResponse]:
    """List the current user's library, oldest first, optionally by status."""
    entries = await library_service.list_library(current_user.id, status_filter)
    return [_to_response(entry) for entry in entries]


@router.post("", response_model=LibraryEntryResponse, status_code=status.HTTP_201_CREATED)
async def add_to_library(
    body: LibraryAddRequest,
    response: Response,
    current_user: Annotated[User, Depends(get_current_user)],
    library_service: Annotated[ILibraryService, Depends(get_library_service)],
    refresher: Annotated[IPreferenceRefresher, Depends(get_preference_refresher)],
) -> LibraryEntryResponse:
    try:
        entry = await library_service.add_to_library(current_user.id, body.book_id, body.status)
        entry.book = await library_service.get_book(body.book_id)
    except (NotFoundError, ConflictError) as e:
        _raise_http(e)

    _schedule_refresh(refresher, current_user.id, response)
    return _to_response(entry)


@router.delete("/{book_id}", response_model=MessageResponse)
async def remove_from_library(
    book_id: UUID,
    response: Response,
    current_user: Annotated[User, Depends(get_current_user)],
    library_service: Annotated[ILibraryService, Depends(get_library_service)],
    refresher: Annotated[IPreferenceRefresher, Depends(get_preference_refresher)],
) -> MessageResponse:
    """Remove a book from the library; its rating leaves the book's aggregate."""
    try:
        await library_service.remove_from_library(current_user.id, book_id)
    except NotFoundError as e:
        _raise_http(e)

    _schedule_refresh(refresher, current_user.id, response)
    return MessageResponse(message="Book removed from library")


# ---------------------------------------------------------------------------
# Status & rating
# ---------------------------------------------------------------------------
@router.patch("/{book_id}/status", response_model=LibraryEntryResponse)
async def update_status(
    book_id: UUID,
    body: StatusUpdateRequest,
    response: Response,
    current_user: Annotated[User, Depends(get_current_user)],
    library_service: Annotated[ILibraryService, Depends(get_library_service)],
    refresher: Annotated[IPreferenceRefresher, Depends(get_preference_refresher)],
) -> LibraryEntryResponse:
    """Move a book between toRead, reading and read.

    Entering ``reading`` stamps ``date_started`` and entering ``read`` stamps
    ``date_completed``; existing stamps are kept.
    """
    try:
        entry = await library_service.update_status(current_user.id, book_id, body.status)
    except NotFoundError as e:
        _raise_http(e)

    _schedule_refresh(refresher, current_user.id, response)
    return _to_response(entry)


@router.patch("/{book_id}/rating", response_model=RatingResponse)
async def rate_book(
    book_id: UUID,
    body: RatingUpdateRequest,
    response: Response,
    current_user: Annotated[User, Depends(get_current_user)],
    library_service: Annotated[ILibraryService, Depends(get_library_service)],
    refresher: Annotated[IPreferenceRefresher, Depends(get_preference_refresher)],
) -> RatingResponse:
    """Rate a book in the library on the half-point 1-5 scale.

    Re-rating replaces the previous value in the book's running average
    instead of counting the user twice.
    """
    try:
        entry, book = await library_service.set_rating(current_user.id, book_id, body.rating)
    except (NotFoundError, InvalidArgumentError) as e:
        _raise_http(e)

    _schedule_refresh(refresher, current_user.id, response)
    return RatingResponse(
        rating=entry.rating,
        book_average_rating=book.average_rating,
        book_total_ratings=book.total_ratings,
    )


# ---------------------------------------------------------------------------
# Favorites
# ---------------------------------------------------------------------------
@router.put("/{book_id}/favorite", response_model=MessageResponse)
async def add_favorite(
    book_id: UUID,
    response: Response,
    current_user: Annotated[User, Depends(get_current_user)],
    library_service: Annotated[ILibraryService, Depends(get_library_service)],
    refresher: Annotated[IPreferenceRefresher, Depends(get_preference_refresher)],
) -> MessageResponse:
    try:
        await library_service.add_favorite(current_user.id, book_id)
    except (NotFoundError, ConflictError) as e:
        _raise_http(e)

    _schedule_refresh(refresher, current_user.id, response)
    return MessageResponse(message="Added to favorites")


@router.delete("/{book_id}/favorite", response_model=MessageResponse)
async def remove_favorite(
    book_id: UUID,
    response: Response,
    current_user: Annotated[User, Depends(get_current_user)],
    library_service: Annotated[ILibraryService, Depends(get_library_service)],
    refresher: Annotated[IPreferenceRefresher, Depends(get_preference_refresher)],
) -> MessageResponse:
    try:
        await library_service.remove_favorite(current_user.id, book_id)
    except NotFoundError as e:
        _raise_http(e)

    _schedule_refresh(refresher, current_user.id, response)
    return MessageResponse(message="Removed from favorites")
