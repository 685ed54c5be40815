"""Celery task wrapper for preference recomputation.

A thin synchronous wrapper around the coroutine in
``booknet.services.background_tasks``.  Celery workers maintain their own
event loop; ``asyncio.run()`` is safe here because each worker process runs
independently of the API server's event loop.

Retry policy: none.  A failed run is logged by the coroutine and recorded as
FAILURE in the result backend; the next library mutation schedules a fresh,
full recomputation anyway.
"""

import asyncio

from booknet.infrastructure.tasks.celery_app import celery_app
from booknet.services.background_tasks import recompute_preferences_task


@celery_app.task(name="preferences.recompute", max_retries=0, ignore_result=False)
def refresh_user_preferences(user_id: str) -> None:
    """Celery task: rebuild the preference profile for one user."""
    asyncio.run(recompute_preferences_task(user_id))
