"""CRUD helpers for users and events."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .auth import hash_password
from .models import Event, User
from .utils import utcnow

logger = logging.getLogger("uvicorn.error")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def get_user(session: Session, user_id: str) -> User | None:
    return session.get(User, user_id)


def get_user_by_email(session: Session, email: str) -> User | None:
    normalized = normalize_email(email)
    if not normalized:
        return None
    stmt = select(User).where(User.email == normalized)
    return session.scalars(stmt).first()


def create_user(
    session: Session,
    *,
    email: str,
    password: str,
    name: str | None = None,
    admin: bool = False,
) -> User:
    """Create a user account; raises ``ValueError`` on duplicates."""
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized:
        raise ValueError("Invalid email address")
    if not password:
        raise ValueError("Password required")
    if get_user_by_email(session, normalized):
        raise ValueError("A user with that email already exists")
    user = User(
        email=normalized,
        name=(name or "").strip() or None,
        password_hash=hash_password(password),
        admin=admin,
    )
    session.add(user)
    session.flush()
    logger.info("Created %s account %s", "admin" if admin else "user", user.id)
    return user


def set_admin(session: Session, user: User, admin: bool = True) -> User:
    user.admin = admin
    session.add(user)
    session.flush()
    return user


def get_event(session: Session, event_id: str) -> Event | None:
    return session.get(Event, event_id)


def build_event(*, organizer: User, fields: dict[str, Any]) -> Event:
    """Return an unsaved, unapproved event owned by ``organizer``."""
    event = Event(**fields)
    # Only the id is set; assigning the relationship would attach previews
    # to the organizer's collection.
    event.organizer_id = organizer.id
    event.approved = False
    event.ticket_funded = bool(event.ticket_funded)
    event.accommodation_funded = bool(event.accommodation_funded)
    event.travel_funded = bool(event.travel_funded)
    event.data_protection_confirmation = bool(event.data_protection_confirmation)
    if not event.organizer_email:
        event.organizer_email = organizer.email
    if not event.organizer_name:
        event.organizer_name = organizer.name
    return event


def create_event(session: Session, *, organizer: User, fields: dict[str, Any]) -> Event:
    """Persist a new event from already validated fields."""
    event = build_event(organizer=organizer, fields=fields)
    session.add(event)
    session.flush()
    logger.info("Event %s (%s) submitted by %s", event.id, event.name, organizer.id)
    return event


def update_event(session: Session, event: Event, changes: dict[str, Any]) -> Event:
    """Apply validated changes; ``id`` and ``organizer_id`` never change."""
    for key, value in changes.items():
        if key in ("id", "organizer_id"):
            continue
        setattr(event, key, value)
    event.updated_at = utcnow()
    session.add(event)
    session.flush()
    return event


def save_event(session: Session, event: Event) -> Event:
    event.updated_at = utcnow()
    session.add(event)
    session.flush()
    return event


def listed_events(session: Session, *, today: date) -> Sequence[Event]:
    """Approved events whose last day is today or later."""
    stmt = (
        select(Event)
        .where(Event.approved.is_(True), Event.end_date >= today)
        .order_by(Event.start_date.asc(), Event.name.asc())
    )
    return session.scalars(stmt).all()


def past_events(session: Session, *, today: date) -> Sequence[Event]:
    stmt = (
        select(Event)
        .where(Event.approved.is_(True), Event.end_date < today)
        .order_by(Event.end_date.desc(), Event.name.asc())
    )
    return session.scalars(stmt).all()


def has_past_events(session: Session, *, today: date) -> bool:
    stmt = (
        select(Event.id)
        .where(Event.approved.is_(True), Event.end_date < today)
        .limit(1)
    )
    return session.scalar(stmt) is not None


def events_for_organizer(session: Session, organizer: User) -> Sequence[Event]:
    stmt = (
        select(Event)
        .where(Event.organizer_id == organizer.id)
        .order_by(Event.start_date.desc())
    )
    return session.scalars(stmt).all()


def pending_events(session: Session) -> Sequence[Event]:
    stmt = (
        select(Event)
        .where(Event.approved.is_(False))
        .order_by(Event.created_at.asc())
    )
    return session.scalars(stmt).all()


def _build_pagination(*, page: int, per_page: int, total: int) -> dict:
    total_pages = max(1, (total + per_page - 1) // per_page) if total else 1
    page = max(1, min(page, total_pages)) if total else 1
    return {
        "page": page,
        "per_page": per_page,
        "total_pages": total_pages,
        "total": total,
        "has_prev": page > 1,
        "has_next": page < total_pages and total > 0,
        "prev_page": page - 1 if page > 1 else None,
        "next_page": page + 1 if page < total_pages and total > 0 else None,
    }


def paginate_approved_events(
    session: Session, *, page: int, per_page: int
) -> tuple[Sequence[Event], dict]:
    """Approved events for the admin overview, newest start first."""
    count_stmt = (
        select(func.count()).select_from(Event).where(Event.approved.is_(True))
    )
    total = session.scalar(count_stmt) or 0
    pagination = _build_pagination(page=page, per_page=per_page, total=total)
    offset = (pagination["page"] - 1) * per_page if total else 0
    stmt = (
        select(Event)
        .where(Event.approved.is_(True))
        .order_by(Event.start_date.desc(), Event.name.asc())
        .offset(offset)
        .limit(per_page)
    )
    return session.scalars(stmt).all(), pagination
