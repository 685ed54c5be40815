"""Task status API route.

Lets clients poll a preference recomputation dispatched to Celery by one of
the library endpoints (the id arrives in the ``X-Task-ID`` header).

  GET /tasks/{task_id}

``status`` mirrors Celery's task states: PENDING, STARTED, SUCCESS, FAILURE.
Ids of in-process recomputations are not tracked here and report PENDING.
"""

import logging
from typing import Optional

from celery.result import AsyncResult
from fastapi import APIRouter, Depends

from booknet.api.schemas import TaskStatusResponse
from booknet.core.dependencies import get_current_user
from booknet.infrastructure.tasks.celery_app import celery_app

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/tasks", tags=["tasks"], dependencies=[Depends(get_current_user)])


@router.get("/{task_id}", response_model=TaskStatusResponse)
async def get_task_status(task_id: str) -> TaskStatusResponse:
    """Get the current state of a background preference recomputation."""
    result = AsyncResult(task_id, app=celery_app)

    error: Optional[str] = None
    if result.state == "FAILURE":
        error = str(result.result)

    logger.debug("Task %s state: %s", task_id, result.state)
    return TaskStatusResponse(task_id=task_id, status=result.state, error=error)
