"""Development helpers for populating fake organizers and events."""

from __future__ import annotations

import random
from datetime import date, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from .crud import create_event, create_user, get_user_by_email
from .database import get_session
from .models import User
from .policy import ApplicationProcess
from .storage import init_db
from .utils import today

SEED_PASSWORD = "eventdesk-demo"

_event_types = [
    "Rails Girls",
    "PyCon",
    "JSConf",
    "Code Retreat",
    "Hackathon",
    "Data Summit",
    "Open Source Camp",
]


def seed_fake_data(
    *,
    user_count: int = 5,
    event_count: int = 12,
    approved_percentage: int = 70,
) -> dict[str, int]:
    """Populate the SQLite database with synthetic organizers and events."""
    if user_count < 1:
        raise ValueError("user_count must be >= 1")
    if event_count < 0:
        raise ValueError("event_count must be >= 0")
    if not 0 <= approved_percentage <= 100:
        raise ValueError("approved_percentage must be between 0 and 100")

    init_db()
    fake = Faker()
    stats = {"users": 0, "events": 0, "approved": 0}

    with get_session() as session:
        organizers = []
        for _ in range(user_count):
            organizers.append(_create_organizer(session, fake))
            stats["users"] += 1
        for _ in range(event_count):
            approved = random.randint(1, 100) <= approved_percentage
            _create_event(session, fake, organizer=random.choice(organizers), approved=approved)
            stats["events"] += 1
            stats["approved"] += int(approved)

    return stats


def _create_organizer(session: Session, fake: Faker) -> User:
    for _ in range(20):
        email = fake.unique.email()
        if get_user_by_email(session, email):
            continue
        return create_user(
            session, email=email, password=SEED_PASSWORD, name=fake.name_nonbinary()
        )
    raise RuntimeError("Failed to create a unique organizer email")


def _create_event(session: Session, fake: Faker, *, organizer: User, approved: bool):
    start_date = today() + timedelta(days=random.randint(-60, 120))
    end_date = start_date + timedelta(days=random.randint(0, 3))
    deadline = _deadline_for(start_date)
    process = random.choice(list(ApplicationProcess))
    fields = {
        "name": f"{random.choice(_event_types)} {fake.city()}",
        "description": "\n\n".join(fake.paragraphs(nb=2)),
        "website": fake.url(),
        "code_of_conduct": fake.url() if random.random() < 0.7 else None,
        "city": fake.city(),
        "country": fake.country(),
        "number_of_tickets": random.randint(1, 10),
        "ticket_funded": True,
        "accommodation_funded": random.random() < 0.4,
        "travel_funded": random.random() < 0.3,
        "start_date": start_date,
        "end_date": end_date,
        "deadline": deadline,
        "application_process": process.value,
        "application_link": (
            fake.url() if process is ApplicationProcess.APPLICATION_BY_ORGANIZER else None
        ),
        "data_protection_confirmation": process is ApplicationProcess.SELECTION_BY_ORGANIZER,
    }
    event = create_event(session, organizer=organizer, fields=fields)
    event.approved = approved
    return event


def _deadline_for(start_date: date) -> date:
    return start_date - timedelta(days=random.randint(3, 30))
