"""
Shared FastAPI dependencies.
"""
from typing import Optional
from fastapi import Depends
from config import settings
from api.errors import APIError
from services.file_service.file_processor import FileProcessor


async def get_current_user_id() -> Optional[str]:
    """
    Resolve the caller's user id.

    No identity provider is wired in yet, so this is None unless DEV_USER_ID
    is configured for local development.
    """
    return settings.DEV_USER_ID


async def require_user_id(
    user_id: Optional[str] = Depends(get_current_user_id),
) -> str:
    """Reject unauthenticated callers with 401 AUTH_REQUIRED."""
    if not user_id:
        raise APIError(401, "AUTH_REQUIRED", "Authentication required")
    return user_id


def get_file_processor() -> FileProcessor:
    """Processor used by upload background tasks."""
    return FileProcessor()
