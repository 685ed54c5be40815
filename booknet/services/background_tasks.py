"""Async implementations of detached background work.

These coroutines contain the actual logic executed outside the request that
triggered them, either by a Celery worker or by the in-process refresher.
Each function is fully self-contained:
  - opens its own DB session (independent of any request lifecycle)
  - builds its repositories and services directly (no FastAPI DI required)

The Celery task wrappers in ``booknet.infrastructure.tasks.preference_tasks``
call these with ``asyncio.run()``, which is safe because each Celery worker
process runs its own event loop.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booknet.domain.errors import NotFoundError
from booknet.infrastructure.database.connection import worker_session_maker
from booknet.infrastructure.database.repository import (
    FavoriteRepository,
    PreferenceProfileRepository,
    UserBookRepository,
    UserRepository,
)
from booknet.services.preference_service import PreferenceService

logger = logging.getLogger(__name__)


async def recompute_preferences_task(
    user_id: str,
    session_maker: Optional[async_sessionmaker[AsyncSession]] = None,
) -> None:
    """Rebuild a user's preference profile after a library mutation.

    Failures are logged with their traceback and re-raised to the runner;
    they never reach the request that scheduled the work.  A user deleted in
    the meantime is not a failure.
    """
    logger.info("BG-TASK: recomputing preferences for user %s", user_id)
    maker = session_maker or worker_session_maker
    try:
        async with maker() as session:
            service = PreferenceService(
                user_repo=UserRepository(session),
                library_repo=UserBookRepository(session),
                favorite_repo=FavoriteRepository(session),
                profile_repo=PreferenceProfileRepository(session),
            )
            await service.recompute(UUID(user_id))
    except NotFoundError:
        logger.warning("BG-TASK: user %s no longer exists, skipping recompute", user_id)
    except Exception as exc:
        logger.error(
            "BG-TASK: preference recompute failed for user %s: %s", user_id, exc, exc_info=True
        )
        raise
