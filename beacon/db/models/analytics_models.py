from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import (JSON, BigInteger, Boolean, DateTime, ForeignKey, Index,
                        Integer, String, func)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

# SQLite only autoincrements INTEGER PRIMARY KEY columns
EventIdType = BigInteger().with_variant(Integer(), "sqlite")


class Application(Base):
    __tablename__ = "applications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    api_key_hash: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=func.now(), onupdate=func.now(), nullable=False)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    events: Mapped[List["EventRecord"]] = relationship(
        "EventRecord",
        back_populates="application",
        cascade="all, delete-orphan",
        passive_deletes=True
    )

    def __repr__(self):
        return f"<Application(id={self.id}, name='{self.name}', active={self.is_active})>"


class EventRecord(Base):
    __tablename__ = "events"

    id: Mapped[int] = mapped_column(EventIdType, primary_key=True, autoincrement=True)
    application_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("applications.id", ondelete="CASCADE"), nullable=False
    )
    event_name: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(500), nullable=False)
    referrer: Mapped[Optional[str]] = mapped_column(String(500))
    device: Mapped[Optional[str]] = mapped_column(String(50), index=True)
    visitor_identifier: Mapped[Optional[str]] = mapped_column(String(255), index=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[Optional[Dict[str, Any]]] = mapped_column("metadata", JSON)

    application: Mapped["Application"] = relationship("Application", back_populates="events")

    __table_args__ = (
        Index('idx_events_app_timestamp', 'application_id', 'timestamp'),
        Index('idx_events_app_event_timestamp', 'application_id', 'event_name', 'timestamp'),
    )

    def __repr__(self):
        return f"<EventRecord(id={self.id}, application_id={self.application_id}, event_name='{self.event_name}')>"
