"""
Playbook Infrastructure Models
==============================

SQLAlchemy ORM model for playbooks.
"""

from datetime import datetime, timezone
from typing import List, Optional
from uuid import UUID, uuid4

from sqlalchemy import JSON, Boolean, DateTime, Float, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from incident_hub.infrastructure.database import Base


class PlaybookModel(Base):
    """
    Database model for the Playbook entity.

    Triggers are stored as a JSON list of
    {trigger_id, title, action, expected_outcome, resources}.
    """
    __tablename__ = "playbooks"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    playbook_id: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    priority: Mapped[str] = mapped_column(String(20), nullable=False, default="Medium")
    tags: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    triggers: Mapped[List[dict]] = mapped_column(JSON, nullable=False, default=list)
    outcome: Mapped[str] = mapped_column(Text, nullable=False, default="")

    usage: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    confidence: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc)
    )
