"""
Base model with common fields for all database models.
"""
from datetime import datetime, timezone
from sqlalchemy import Column, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.sql import func
import uuid
from database import Base


def utcnow() -> datetime:
    """Timezone-aware current time used for client-side timestamp defaults."""
    return datetime.now(timezone.utc)


class BaseModel(Base):
    """Abstract base model with common fields."""

    __abstract__ = True

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    updated_at = Column(
        DateTime(timezone=True),
        default=utcnow,
        server_default=func.now(),
        onupdate=utcnow,
        nullable=False,
    )
