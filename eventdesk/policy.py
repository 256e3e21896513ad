"""Event lifecycle, visibility and permission rules.

Every decision here is a pure function of the acting user, the event and the
current calendar day. Nothing in this module touches the database, the clock
or the request; callers pass ``today`` explicitly and persist the results.

Deadlines are compared at day granularity: an event whose deadline is today
still accepts applications and can still be edited by its organizer.
"""

from __future__ import annotations

import logging
from datetime import date
from enum import Enum
from typing import Any, Mapping, Protocol

from .utils import normalize_url, parse_date

logger = logging.getLogger("uvicorn.error")

CONFIRMATION_MESSAGE = "Thank you for submitting {name}. We will review it shortly."


class ActorRole(str, Enum):
    ANONYMOUS = "anonymous"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class ApplicationProcess(str, Enum):
    SELECTION_BY_ORGANIZER = "selection_by_organizer"
    SELECTION_BY_TRAVIS = "selection_by_travis"
    APPLICATION_BY_ORGANIZER = "application_by_organizer"


APPLICATION_PROCESS_LABELS = {
    ApplicationProcess.SELECTION_BY_ORGANIZER: "Selection by the organizers",
    ApplicationProcess.SELECTION_BY_TRAVIS: "Selection by the Travis Foundation",
    ApplicationProcess.APPLICATION_BY_ORGANIZER: "Application on the organizers' site",
}


class PolicyError(Exception):
    """Base class for request-scoped rejections."""


class Unauthenticated(PolicyError):
    """Raised when an operation needs a signed-in user and there is none."""


class AuthorizationDenied(PolicyError):
    """Raised when the signed-in user may not act on an event."""

    def __init__(self, message: str, *, event_id: str | None = None):
        super().__init__(message)
        self.event_id = event_id


class ValidationError(PolicyError):
    """Raised when submitted event fields are inconsistent or incomplete."""

    def __init__(self, errors: list[str]):
        super().__init__("; ".join(errors))
        self.errors = errors


class ActorLike(Protocol):
    id: str
    admin: bool


class EventLike(Protocol):
    organizer_id: str
    approved: bool
    end_date: date
    deadline: date


TEXT_FIELDS = ("name", "description", "city", "country", "organizer_name")
URL_FIELDS = ("website", "code_of_conduct", "application_link")
DATE_FIELDS = ("start_date", "end_date", "deadline")
BOOLEAN_FIELDS = (
    "ticket_funded",
    "accommodation_funded",
    "travel_funded",
    "data_protection_confirmation",
)

EDITABLE_FIELDS = frozenset(
    TEXT_FIELDS
    + URL_FIELDS
    + DATE_FIELDS
    + BOOLEAN_FIELDS
    + ("organizer_email", "number_of_tickets", "application_process")
)

MUTABLE_FIELDS: dict[ActorRole, frozenset[str]] = {
    ActorRole.ANONYMOUS: frozenset(),
    ActorRole.ORGANIZER: EDITABLE_FIELDS,
    ActorRole.ADMIN: EDITABLE_FIELDS | {"approved"},
}

REQUIRED_FIELDS = ("name", "start_date", "end_date", "deadline", "application_process")

_TRUTHY = {"1", "true", "yes", "on"}


def role_for(actor: ActorLike | None) -> ActorRole:
    if actor is None:
        return ActorRole.ANONYMOUS
    if actor.admin:
        return ActorRole.ADMIN
    return ActorRole.ORGANIZER


def require_actor(actor: ActorLike | None) -> ActorLike:
    if actor is None:
        raise Unauthenticated("Please sign in to continue.")
    return actor


def is_owner(actor: ActorLike | None, event: EventLike) -> bool:
    return actor is not None and actor.id == event.organizer_id


def is_listed(event: EventLike, today: date) -> bool:
    """An event is public once approved and until its last day has passed."""
    return bool(event.approved) and event.end_date >= today


def is_past(event: EventLike, today: date) -> bool:
    return bool(event.approved) and event.end_date < today


def can_view(actor: ActorLike | None, event: EventLike) -> bool:
    if event.approved:
        return True
    return role_for(actor) is not ActorRole.ANONYMOUS


def can_apply(event: EventLike, today: date) -> bool:
    return event.deadline >= today


def can_edit(actor: ActorLike | None, event: EventLike, today: date) -> bool:
    role = role_for(actor)
    if role is ActorRole.ADMIN:
        return True
    if role is ActorRole.ANONYMOUS:
        return False
    return is_owner(actor, event) and not event.approved and event.deadline >= today


def ensure_can_edit(actor: ActorLike | None, event: Any, today: date) -> ActorLike:
    actor = require_actor(actor)
    if not can_edit(actor, event, today):
        logger.warning(
            "User %s denied edit access to event %s", actor.id, getattr(event, "id", None)
        )
        if is_owner(actor, event):
            message = "You can no longer edit this event."
        else:
            message = "You can only edit events you organize."
        raise AuthorizationDenied(message, event_id=getattr(event, "id", None))
    return actor


def can_approve(actor: ActorLike | None) -> bool:
    return role_for(actor) is ActorRole.ADMIN


def approve(actor: ActorLike | None, event: Any) -> bool:
    """Move an event from unapproved to approved.

    Returns ``True`` when the state changed; approving twice is a no-op.
    """
    actor = require_actor(actor)
    if not can_approve(actor):
        raise AuthorizationDenied(
            "Only admins can approve events.", event_id=getattr(event, "id", None)
        )
    if event.approved:
        return False
    event.approved = True
    return True


def mutable_fields(role: ActorRole) -> frozenset[str]:
    return MUTABLE_FIELDS[role]


def post_update_redirect(actor: ActorLike) -> str:
    if role_for(actor) is ActorRole.ADMIN:
        return "/admin"
    return f"/users/{actor.id}"


def confirmation_message(name: str) -> str:
    return CONFIRMATION_MESSAGE.format(name=name)


def parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if raw is None:
        return False
    return str(raw).strip().lower() in _TRUTHY


def _parse_text(raw: Any) -> str | None:
    cleaned = str(raw).strip() if raw is not None else ""
    return cleaned or None


def _coerce_fields(raw: Mapping[str, Any], allowed: frozenset[str]) -> tuple[dict, list[str]]:
    """Convert raw form values for ``allowed`` keys into typed values."""
    values: dict[str, Any] = {}
    errors: list[str] = []
    for key, value in raw.items():
        if key not in allowed:
            continue
        if key in BOOLEAN_FIELDS or key == "approved":
            values[key] = parse_bool(value)
        elif key in DATE_FIELDS:
            try:
                values[key] = parse_date(value)
            except ValueError:
                errors.append(f"{key.replace('_', ' ').capitalize()} is not a valid date.")
        elif key in URL_FIELDS:
            values[key] = normalize_url(value)
        elif key == "organizer_email":
            email = _parse_text(value)
            values[key] = email.lower() if email else None
        elif key == "number_of_tickets":
            text = _parse_text(value)
            if text is None:
                values[key] = None
                continue
            try:
                tickets = int(text)
            except ValueError:
                errors.append("Number of tickets must be a whole number.")
                continue
            if tickets < 1:
                errors.append("Number of tickets must be at least 1.")
                continue
            values[key] = tickets
        elif key == "application_process":
            text = _parse_text(value)
            try:
                values[key] = ApplicationProcess(text).value if text else None
            except ValueError:
                errors.append("Please choose a valid application process.")
        else:
            values[key] = _parse_text(value)
    return values, errors


def _check_consistency(merged: Mapping[str, Any]) -> list[str]:
    errors: list[str] = []
    for key in REQUIRED_FIELDS:
        if not merged.get(key):
            errors.append(f"{key.replace('_', ' ').capitalize()} can't be blank.")
    start, end = merged.get("start_date"), merged.get("end_date")
    if start and end and end < start:
        errors.append("End date must be on or after the start date.")
    process = merged.get("application_process")
    if process == ApplicationProcess.SELECTION_BY_ORGANIZER.value:
        if not merged.get("data_protection_confirmation"):
            errors.append(
                "You must agree to protect the applicants' data when selecting "
                "participants yourself."
            )
    elif process == ApplicationProcess.APPLICATION_BY_ORGANIZER.value:
        if not merged.get("application_link"):
            errors.append("Please provide a link to your application form.")
    return errors


def _drop_irrelevant(values: dict[str, Any], process: str | None) -> dict[str, Any]:
    """Clear application data that does not belong to ``process``."""
    if process != ApplicationProcess.SELECTION_BY_ORGANIZER.value:
        values["data_protection_confirmation"] = False
    if process != ApplicationProcess.APPLICATION_BY_ORGANIZER.value:
        values["application_link"] = None
    return values


def clean_submission(raw: Mapping[str, Any]) -> dict[str, Any]:
    """Validate the fields of a new event.

    Returns the typed fields to persist. ``approved`` is never accepted from a
    submission; new events always start unapproved.
    """
    values, errors = _coerce_fields(raw, EDITABLE_FIELDS)
    errors.extend(_check_consistency(values))
    if errors:
        raise ValidationError(errors)
    return _drop_irrelevant(values, values.get("application_process"))


def clean_update(
    actor: ActorLike, event: Any, raw: Mapping[str, Any]
) -> dict[str, Any]:
    """Return the changes ``actor`` may apply to ``event`` from ``raw``.

    Keys outside the actor's allow-list are dropped silently; the remaining
    fields are validated against the event's current state.
    """
    role = role_for(actor)
    allowed = mutable_fields(role)
    known = mutable_fields(ActorRole.ADMIN)
    dropped = sorted(key for key in raw if key in known and key not in allowed)
    if dropped:
        logger.info(
            "Ignoring fields %s from %s %s on event %s",
            ", ".join(dropped),
            role.value,
            actor.id,
            getattr(event, "id", None),
        )
    values, errors = _coerce_fields(raw, allowed)
    merged = {key: getattr(event, key, None) for key in EDITABLE_FIELDS}
    merged.update(values)
    errors.extend(_check_consistency(merged))
    if errors:
        raise ValidationError(errors)
    if "application_process" in values or any(
        key in values for key in ("application_link", "data_protection_confirmation")
    ):
        values = _drop_irrelevant(values, merged.get("application_process"))
    return values
