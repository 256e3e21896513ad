"""SQLAlchemy models for EventDesk."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import declarative_base, relationship

from .utils import utcnow

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return utcnow()


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_uuid)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(120), nullable=True)
    password_hash = Column(String(255), nullable=False)
    admin = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)

    events = relationship(
        "Event",
        back_populates="organizer",
        order_by="Event.start_date.desc()",
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email


class Event(Base):
    __tablename__ = "events"
    __table_args__ = (
        Index("ix_events_approved_end_date", "approved", "end_date"),
        Index("ix_events_organizer_id", "organizer_id"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    organizer_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    website = Column(String(255), nullable=True)
    code_of_conduct = Column(String(255), nullable=True)
    city = Column(String(120), nullable=True)
    country = Column(String(120), nullable=True)
    organizer_name = Column(String(120), nullable=True)
    organizer_email = Column(String(255), nullable=True)
    number_of_tickets = Column(Integer, nullable=True)
    ticket_funded = Column(Boolean, default=False, nullable=False)
    accommodation_funded = Column(Boolean, default=False, nullable=False)
    travel_funded = Column(Boolean, default=False, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    deadline = Column(Date, nullable=False)
    application_process = Column(String(32), nullable=False)
    application_link = Column(String(255), nullable=True)
    data_protection_confirmation = Column(Boolean, default=False, nullable=False)
    approved = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=_now, nullable=False)
    updated_at = Column(DateTime, default=_now, onupdate=_now, nullable=False)

    organizer = relationship("User", back_populates="events")

    @property
    def location(self) -> str:
        return ", ".join(part for part in (self.city, self.country) if part)

    @property
    def funding(self) -> list[str]:
        """Return the kinds of support the event offers, for display."""
        offered = []
        if self.ticket_funded:
            offered.append("ticket")
        if self.accommodation_funded:
            offered.append("accommodation")
        if self.travel_funded:
            offered.append("travel")
        return offered
