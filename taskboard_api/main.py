import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from taskboard_api.errors import PartialMismatch, TaskboardError
from taskboard_api.routes import health, me, projects, statuses, tasks

logging.basicConfig(level=os.environ.get("TASKBOARD_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


def _cors_origins():
    raw = os.environ.get("TASKBOARD_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


app = FastAPI(title="Taskboard API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(TaskboardError)
def taskboard_error_handler(request: Request, exc: TaskboardError):
    body = {"detail": exc.message, "code": exc.code}
    if isinstance(exc, PartialMismatch):
        body["unknown_ids"] = exc.unknown_ids
    return JSONResponse(status_code=exc.status_code, content=body)


@app.exception_handler(SQLAlchemyError)
def storage_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Storage error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Storage error", "code": "storage_error"},
    )


app.include_router(health.router)
app.include_router(me.router)
app.include_router(projects.router)
app.include_router(statuses.router)
app.include_router(tasks.router)
