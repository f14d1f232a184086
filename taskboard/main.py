"""
Task Board - FastAPI Application

Serves the task board API:
- Project creation and roster management
- Task create / read / update / delete under the shared permission rules
- Health endpoints

All authorization happens in the services behind the router. This module only
wires the application together and turns TaskBoardError into structured
JSON responses.
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from . import __version__, SERVICE_NAME
from .config import load_settings
from .errors import TaskBoardError, ValidationError
from .task_router import get_task_service, router as task_router

# -----------------------------------------------------------------------------
# Logging Configuration
# -----------------------------------------------------------------------------
settings = load_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("taskboard")

# -----------------------------------------------------------------------------
# FastAPI Application
# -----------------------------------------------------------------------------
app = FastAPI(
    title=SERVICE_NAME,
    description="Collaborative project task board",
    version=__version__
)

app.include_router(task_router)


# -----------------------------------------------------------------------------
# API Endpoints - Health
# -----------------------------------------------------------------------------
@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": SERVICE_NAME,
        "status": "running",
        "version": __version__
    }


@app.get("/health")
async def health_check():
    """Detailed health check."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "api": "operational",
            "persistence": "file" if settings.persist else "memory",
            "data_dir": settings.data_dir.exists() if settings.persist else None,
        },
        "version": __version__,
    }


# -----------------------------------------------------------------------------
# Error Handlers
# -----------------------------------------------------------------------------
@app.exception_handler(TaskBoardError)
async def taskboard_error_handler(request: Request, exc: TaskBoardError):
    """Return task board errors in the standard error format."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies are reported as 400 in the standard error format."""
    errors = [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]
    error = ValidationError("Invalid request", details={"errors": errors})
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# -----------------------------------------------------------------------------
# Startup Events
# -----------------------------------------------------------------------------
@app.on_event("startup")
async def startup_event():
    logger.info(f"{SERVICE_NAME} v{__version__} starting up...")
    logger.info(f"Settings: {settings.to_dict()}")
    get_task_service()


# -----------------------------------------------------------------------------
# Main Entry Point
# -----------------------------------------------------------------------------
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
