"""Dependency injection container."""

from functools import lru_cache
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.ext.asyncio import AsyncSession

from booknet.core.config import settings
from booknet.core.security import decode_access_token
from booknet.domain.entities import User
from booknet.domain.repositories import (
    IBookRepository,
    IFavoriteRepository,
    IPreferenceProfileRepository,
    IUserBookRepository,
    IUserRepository,
)
from booknet.domain.services import (
    ILibraryService,
    IPreferenceRefresher,
    IPreferenceService,
    IRecommendationService,
)
from booknet.infrastructure.database.connection import async_session_maker, get_db
from booknet.infrastructure.database.repository import (
    BookRepository,
    FavoriteRepository,
    PreferenceProfileRepository,
    UserBookRepository,
    UserRepository,
)
from booknet.infrastructure.tasks.refreshers import (
    CeleryPreferenceRefresher,
    InProcessPreferenceRefresher,
)
from booknet.services.library_service import LibraryService
from booknet.services.preference_service import PreferenceService
from booknet.services.recommendation import PreferenceRecommendationService

# Tokens are issued by the authentication service; this URL is for the docs UI
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/login")


# ---------------------------------------------------------------------------
# Infrastructure providers
# ---------------------------------------------------------------------------
@lru_cache()
def get_preference_refresher() -> IPreferenceRefresher:
    """Return the configured (process-wide) recomputation dispatcher."""
    if settings.preference_refresh_backend == "celery":
        return CeleryPreferenceRefresher()
    elif settings.preference_refresh_backend == "in_process":
        return InProcessPreferenceRefresher(async_session_maker)
    raise ValueError(f"Unknown refresh backend: {settings.preference_refresh_backend}")


# ---------------------------------------------------------------------------
# Repository providers
# ---------------------------------------------------------------------------
async def get_user_repository(session: AsyncSession = Depends(get_db)) -> IUserRepository:
    return UserRepository(session)


async def get_book_repository(session: AsyncSession = Depends(get_db)) -> IBookRepository:
    return BookRepository(session)


async def get_library_repository(session: AsyncSession = Depends(get_db)) -> IUserBookRepository:
    return UserBookRepository(session)


async def get_favorite_repository(session: AsyncSession = Depends(get_db)) -> IFavoriteRepository:
    return FavoriteRepository(session)


async def get_profile_repository(
    session: AsyncSession = Depends(get_db),
) -> IPreferenceProfileRepository:
    return PreferenceProfileRepository(session)


# ---------------------------------------------------------------------------
# Service providers
# ---------------------------------------------------------------------------
async def get_library_service(
    book_repo: IBookRepository = Depends(get_book_repository),
    library_repo: IUserBookRepository = Depends(get_library_repository),
    favorite_repo: IFavoriteRepository = Depends(get_favorite_repository),
) -> ILibraryService:
    return LibraryService(
        book_repository=book_repo,
        library_repository=library_repo,
        favorite_repository=favorite_repo,
    )


async def get_preference_service(
    user_repo: IUserRepository = Depends(get_user_repository),
    library_repo: IUserBookRepository = Depends(get_library_repository),
    favorite_repo: IFavoriteRepository = Depends(get_favorite_repository),
    profile_repo: IPreferenceProfileRepository = Depends(get_profile_repository),
) -> IPreferenceService:
    return PreferenceService(
        user_repo=user_repo,
        library_repo=library_repo,
        favorite_repo=favorite_repo,
        profile_repo=profile_repo,
    )


async def get_recommendation_service(
    user_repo: IUserRepository = Depends(get_user_repository),
    book_repo: IBookRepository = Depends(get_book_repository),
    library_repo: IUserBookRepository = Depends(get_library_repository),
    profile_repo: IPreferenceProfileRepository = Depends(get_profile_repository),
) -> IRecommendationService:
    return PreferenceRecommendationService(
        user_repo=user_repo,
        book_repo=book_repo,
        library_repo=library_repo,
        profile_repo=profile_repo,
    )


# ---------------------------------------------------------------------------
# Auth dependency
# ---------------------------------------------------------------------------
async def get_current_user(
    token: str = Depends(oauth2_scheme),
    user_repo: IUserRepository = Depends(get_user_repository),
) -> User:
    """Verify the bearer token and return the user it names.

    A valid token for a user that no longer exists is a 404, not a 401: the
    caller is authenticated, the resource is gone.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    payload = decode_access_token(token)
    if payload is None:
        raise credentials_exception

    user_id_str: str = payload.get("sub")
    if user_id_str is None:
        raise credentials_exception
    try:
        user_id = UUID(user_id_str)
    except ValueError:
        raise credentials_exception
    user = await user_repo.get_by_id(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    if not user.is_active:
        raise credentials_exception
    return user
