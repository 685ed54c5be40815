"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from booknet.api.book_routes import router as books_router
from booknet.api.library_routes import router as library_router
from booknet.api.recommendation_routes import router as recommendation_router
from booknet.api.task_routes import router as task_router
from booknet.core.config import settings
from booknet.core.dependencies import get_preference_refresher
from booknet.infrastructure.database.connection import dispose_engines, init_db
from booknet.infrastructure.tasks.refreshers import InProcessPreferenceRefresher

# Configure logging
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    logger.info("Starting BookNet application")
    await init_db()
    logger.info("Database initialized")
    yield
    logger.info("Shutting down BookNet application")
    refresher = get_preference_refresher()
    if isinstance(refresher, InProcessPreferenceRefresher) and refresher.pending:
        logger.info("Waiting for %d preference refreshes", refresher.pending)
        await refresher.drain()
    await dispose_engines()


app = FastAPI(
    title="BookNet",
    description="Personal reading library with preference-based recommendations",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed input is a plain 400 across the API."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal Server Error"},
    )


app.include_router(books_router)
app.include_router(library_router)
app.include_router(recommendation_router)
app.include_router(task_router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
