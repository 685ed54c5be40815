"""Recommendation API routes."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from booknet.api.schemas import (
    BasedOnResponse,
    MessageResponse,
    PreferenceProfileResponse,
    RecommendationResponse,
    RecommendedBookResponse,
)
from booknet.core.config import settings
from booknet.core.dependencies import (
    get_current_user,
    get_preference_service,
    get_recommendation_service,
)
from booknet.domain.entities import RecommendationResult, User
from booknet.domain.errors import InvalidArgumentError, NotFoundError
from booknet.domain.services import IPreferenceService, IRecommendationService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/recommendations", tags=["recommendations"])


async def _recommend(
    service: IRecommendationService, user: User, limit: int, genre: Optional[str] = None
) -> RecommendationResponse:
    try:
        result = await service.recommend(user.id, limit=limit, genre_filter=genre)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidArgumentError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _to_response(result)


def _to_response(result: RecommendationResult) -> RecommendationResponse:
    return RecommendationResponse(
        recommendations=[
            RecommendedBookResponse.model_validate(rec) for rec in result.recommendations
        ],
        based_on=BasedOnResponse(top_genres=result.top_genres, top_authors=result.top_authors),
    )


@router.get("", response_model=RecommendationResponse)
async def get_recommendations(
    current_user: Annotated[User, Depends(get_current_user)],
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    limit: int = settings.default_recommendation_limit,
) -> RecommendationResponse:
    """Personalized recommendations for the current user.

    Books already in the user's library are never returned.  ``limit`` above
    the configured maximum is capped rather than rejected.  ``based_on`` lists
    the genres and authors that drove the ranking; both are empty until the
    user has a preference profile, in which case ranking is by popularity.
    """
    return await _recommend(recommendation_service, current_user, limit)


@router.get("/genres", response_model=RecommendationResponse)
async def get_genre_recommendations(
    current_user: Annotated[User, Depends(get_current_user)],
    recommendation_service: Annotated[IRecommendationService, Depends(get_recommendation_service)],
    genre: Optional[str] = None,
    limit: int = settings.default_recommendation_limit,
) -> RecommendationResponse:
    """Recommendations restricted to one genre, ranked by the user's preferences."""
    if not genre or not genre.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Genre query parameter required"
        )
    return await _recommend(recommendation_service, current_user, limit, genre)


@router.post("/refresh", response_model=MessageResponse)
async def refresh_preferences(
    current_user: Annotated[User, Depends(get_current_user)],
    preference_service: Annotated[IPreferenceService, Depends(get_preference_service)],
) -> MessageResponse:
    """Recompute the current user's preferences now and wait for the result."""
    try:
        await preference_service.recompute(current_user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except Exception as e:
        logger.error("Preference refresh failed for user %s: %s", current_user.id, e, exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update preferences",
        )
    return MessageResponse(message="Preferences updated successfully")


@router.get("/profile", response_model=PreferenceProfileResponse)
async def get_preference_profile(
    current_user: Annotated[User, Depends(get_current_user)],
    preference_service: Annotated[IPreferenceService, Depends(get_preference_service)],
) -> PreferenceProfileResponse:
    """The stored preference model, as last recomputed."""
    try:
        profile = await preference_service.get_profile(current_user.id)
    except NotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    return PreferenceProfileResponse.model_validate(profile)
