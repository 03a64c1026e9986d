"""FastAPI application entry point."""

import logging

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S")

# Apply the same format to Uvicorn's loggers so they also show timestamps.
for _uvicorn_logger in ("uvicorn", "uvicorn.error", "uvicorn.access"):
    _log = logging.getLogger(_uvicorn_logger)
    _log.handlers.clear()
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s", datefmt="%H:%M:%S"))
    _log.addHandler(_handler)
    _log.propagate = False

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.db import create_tables
from src.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)

app = FastAPI(title="Shortage Document Service")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def startup() -> None:
    create_tables()


@app.exception_handler(Exception)
async def _global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    # Import here to avoid circular imports at module level.
    from src.services.job_store import JobNotFoundError
    from src.services.llm import LLMError

    if isinstance(exc, JobNotFoundError):
        return JSONResponse(
            status_code=404,
            content=ErrorResponse(error="not_found", detail=str(exc)).model_dump(),
        )
    if isinstance(exc, LLMError):
        return JSONResponse(
            status_code=502,
            content=ErrorResponse(error="llm_error", detail=str(exc)).model_dump(),
        )
    logger.exception("unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="internal_error", detail=str(exc)).model_dump(),
    )


# Import and register routers after app is defined to avoid circular imports.
from src.api import jobs, sessions  # noqa: E402

app.include_router(jobs.router, prefix="/jobs", tags=["jobs"])
app.include_router(sessions.router, prefix="/sessions", tags=["sessions"])
