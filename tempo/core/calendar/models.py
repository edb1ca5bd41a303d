# /app/tempo/core/calendar/models.py
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from tempo.db.base import Base

if TYPE_CHECKING:  # pragma: no cover
    from tempo.core.users.models import User


class CalendarEvent(Base):
    __tablename__ = "calendar_events"
    # (external event id, owner) is the natural key for upsert and prune
    __table_args__ = (UniqueConstraint("event_id", "user_id", name="uq_calendar_event_owner"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[str] = mapped_column(String(255), nullable=False, comment="Client-side event identifier")
    user_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    is_all_day: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    calendar_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    calendar_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    owner_external_id: Mapped[str] = mapped_column(
        String(128), nullable=False, comment="Denormalized identity subject of the owner"
    )
    fetched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    user: Mapped["User"] = relationship(back_populates="events")
    contacts: Mapped[List["EventContact"]] = relationship(
        back_populates="event",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="EventContact.id",
    )

    def __repr__(self) -> str:
        return f"<CalendarEvent id={self.id} event_id={self.event_id!r} user_id={self.user_id}>"


class EventContact(Base):
    """A contact attached to one event. Denormalized: no identity across events."""
    __tablename__ = "event_contacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    event_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("calendar_events.id", ondelete="CASCADE"), nullable=False, index=True
    )
    contact_id: Mapped[str] = mapped_column(String(255), nullable=False)
    contact_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # JSON-encoded lists of strings
    contact_emails: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    contact_phone_numbers: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    event: Mapped["CalendarEvent"] = relationship(back_populates="contacts")
