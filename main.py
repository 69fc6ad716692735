"""
FastAPI application entry point.
"""
import logging
import sys

from fastapi import FastAPI

from config import settings

# Import all models to register them with SQLAlchemy
from dao.models import FileRecord  # noqa: F401

from api.errors import APIError, api_error_handler
from api.routes import file_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

app = FastAPI(
    title="Asura Files API",
    description="File upload, Artisan Cut compression and embedding pipeline",
    version="0.1.0",
)

app.add_exception_handler(APIError, api_error_handler)

# Include routers
app.include_router(file_router.router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"status": "ok", "message": "Asura Files API"}
