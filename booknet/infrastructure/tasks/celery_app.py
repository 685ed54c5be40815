"""Celery application: broker and result backend both backed by Redis.

Workers run as a completely separate process from the API server, so
preference recomputation never blocks request handlers.

Task lifecycle states stored in Redis:
  PENDING  → task dispatched, not yet picked up by a worker
  STARTED  → worker has begun execution  (task_track_started=True)
  SUCCESS  → task finished without error
  FAILURE  → task raised an unhandled exception
"""

from celery import Celery

from booknet.core.config import settings

celery_app = Celery(
    "booknet",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["booknet.infrastructure.tasks.preference_tasks"],
)

celery_app.conf.update(
    # Serialisation
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Timezone
    timezone="UTC",
    enable_utc=True,
    # State tracking
    task_track_started=True,
    result_expires=86400,           # keep results in Redis for 24 h
    # Recomputation is idempotent and the next mutation re-triggers it,
    # so a lost or failed run is never redelivered
    task_acks_late=False,
    worker_prefetch_multiplier=4,
    # Bound the time a request thread can spend publishing to a dead broker
    task_publish_retry=True,
    task_publish_retry_policy={
        "max_retries": 2,
        "interval_start": 0,
        "interval_step": 0.2,
        "interval_max": 0.5,
    },
)
