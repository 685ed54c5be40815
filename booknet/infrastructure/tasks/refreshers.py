"""Preference refreshers: fire-and-forget dispatch of recomputation.

Two backends, selected by ``settings.preference_refresh_backend``:

  celery      publishes ``preferences.recompute`` to the Redis broker and a
              separate worker process runs it.
  in_process  runs ``asyncio.create_task`` on the server's own loop with a
              dedicated session, for single-process deployments.

Neither ever raises into the request that scheduled the work.
"""

import asyncio
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booknet.domain.services import IPreferenceRefresher
from booknet.services.background_tasks import recompute_preferences_task

logger = logging.getLogger(__name__)


class CeleryPreferenceRefresher(IPreferenceRefresher):

    def schedule(self, user_id: UUID) -> Optional[str]:
        # Imported lazily so in-process deployments never touch the broker config
        from booknet.infrastructure.tasks.preference_tasks import refresh_user_preferences

        try:
            task = refresh_user_preferences.delay(str(user_id))
        except Exception as exc:
            logger.error(
                "Failed to dispatch preference refresh for user %s: %s",
                user_id, exc, exc_info=True,
            )
            return None
        logger.info("Celery preference task %s dispatched for user %s", task.id, user_id)
        return task.id


class InProcessPreferenceRefresher(IPreferenceRefresher):
    """Runs recomputations as detached asyncio tasks in this process.

    References to pending tasks are kept until they finish so they are not
    garbage-collected mid-run; ``drain`` waits for whatever is still pending
    and is called on application shutdown.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker
        self._pending: set[asyncio.Task] = set()

    def schedule(self, user_id: UUID) -> Optional[str]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            logger.error("No running loop to refresh preferences for user %s: %s", user_id, exc)
            return None

        task = loop.create_task(
            recompute_preferences_task(str(user_id), self.session_maker),
            name=f"preferences.recompute:{user_id}",
        )
        self._pending.add(task)
        task.add_done_callback(self._on_done)
        return task.get_name()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait for every scheduled recomputation to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _on_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Preference refresh %s was cancelled", task.get_name())
            return
        # Traceback already logged by the task itself
        if task.exception() is not None:
            logger.warning("Preference refresh %s failed; stored profile unchanged", task.get_name())
