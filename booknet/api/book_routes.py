"""Catalog API routes.

Books are cached here by the metadata-lookup collaborator; users only ever
reference them by id from their library.
"""

import logging
from typing import Annotated
from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, HTTPException, status

from booknet.api.schemas import BookCreateRequest, BookResponse
from booknet.core.dependencies import get_current_user, get_library_service
from booknet.domain.entities import Book, User
from booknet.domain.errors import ConflictError, NotFoundError
from booknet.domain.services import ILibraryService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/books", tags=["books"])


@router.post("", response_model=BookResponse, status_code=status.HTTP_201_CREATED)
async def register_book(
    body: BookCreateRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    library_service: Annotated[ILibraryService, Depends(get_library_service)],
) -> BookResponse:
    """Cache a catalog record keyed by its external id.

    Popularity starts at zero; it is aggregated from this system's own
    ratings, never from the provider.
    """
    book = Book(
        id=uuid4(),
        external_id=body.external_id,
        title=body.title,
        author=body.author,
        genres=body.genres,
        cover_image=body.cover_image,
        isbn=body.isbn,
        published_year=body.published_year,
        page_count=body.page_count,
    )
    try:
        created = await library_service.register_book(book)
    except ConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    return BookResponse.model_validate(created)


@router.get("/{book_id}", response_model=BookResponse)
async def get_book(
    book_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    library_service: Annotated[ILibraryService, Depends(get_library_service)],
) -> BookResponse:
    try:
        book = await library_service.get_book(book_id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return BookResponse.model_validate(book)
