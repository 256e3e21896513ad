from __future__ import annotations

from datetime import date, timedelta
from types import SimpleNamespace

import pytest

from eventdesk import policy
from eventdesk.policy import ActorRole

TODAY = date(2026, 5, 1)


def _user(user_id: str = "u1", *, admin: bool = False):
    return SimpleNamespace(id=user_id, admin=admin)


def _event(**overrides):
    values = {
        "id": "e1",
        "organizer_id": "u1",
        "approved": False,
        "name": "Event",
        "description": None,
        "city": None,
        "country": None,
        "organizer_name": None,
        "organizer_email": "klaus@example.com",
        "website": None,
        "code_of_conduct": None,
        "application_link": None,
        "number_of_tickets": None,
        "ticket_funded": False,
        "accommodation_funded": False,
        "travel_funded": False,
        "data_protection_confirmation": False,
        "start_date": TODAY + timedelta(days=10),
        "end_date": TODAY + timedelta(days=11),
        "deadline": TODAY + timedelta(days=5),
        "application_process": "selection_by_travis",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def _submission(**overrides):
    raw = {
        "name": "Event",
        "start_date": "2026-06-01",
        "end_date": "2026-06-02",
        "deadline": "2026-05-20",
        "application_process": "selection_by_travis",
    }
    raw.update(overrides)
    return raw


def test_role_for():
    assert policy.role_for(None) is ActorRole.ANONYMOUS
    assert policy.role_for(_user()) is ActorRole.ORGANIZER
    assert policy.role_for(_user(admin=True)) is ActorRole.ADMIN


def test_listing_includes_last_day_and_excludes_unapproved():
    assert policy.is_listed(_event(approved=True, end_date=TODAY), TODAY)
    assert not policy.is_listed(_event(approved=True, end_date=TODAY - timedelta(days=1)), TODAY)
    assert not policy.is_listed(_event(approved=False), TODAY)
    assert policy.is_past(_event(approved=True, end_date=TODAY - timedelta(days=1)), TODAY)


def test_can_view():
    pending = _event()
    assert not policy.can_view(None, pending)
    assert policy.can_view(_user("u2"), pending)
    assert policy.can_view(_user("u1"), pending)
    assert policy.can_view(_user("u9", admin=True), pending)
    assert policy.can_view(None, _event(approved=True))


def test_can_apply_uses_day_granularity():
    assert policy.can_apply(_event(deadline=TODAY), TODAY)
    assert not policy.can_apply(_event(deadline=TODAY - timedelta(days=1)), TODAY)


@pytest.mark.parametrize(
    ("actor", "overrides", "expected"),
    [
        (None, {}, False),
        (_user("u1"), {}, True),
        (_user("u1"), {"deadline": TODAY}, True),
        (_user("u1"), {"approved": True}, False),
        (_user("u1"), {"deadline": TODAY - timedelta(days=1)}, False),
        (_user("u2"), {}, False),
        (_user("u9", admin=True), {"approved": True, "deadline": date(2000, 1, 1)}, True),
    ],
)
def test_can_edit(actor, overrides, expected):
    assert policy.can_edit(actor, _event(**overrides), TODAY) is expected


def test_ensure_can_edit_raises_with_event_id():
    with pytest.raises(policy.Unauthenticated):
        policy.ensure_can_edit(None, _event(), TODAY)
    with pytest.raises(policy.AuthorizationDenied) as excinfo:
        policy.ensure_can_edit(_user("u2"), _event(), TODAY)
    assert excinfo.value.event_id == "e1"
    assert str(excinfo.value) == "You can only edit events you organize."


def test_ensure_can_edit_tells_owner_when_editing_closed():
    with pytest.raises(policy.AuthorizationDenied) as excinfo:
        policy.ensure_can_edit(_user("u1"), _event(approved=True), TODAY)
    assert str(excinfo.value) == "You can no longer edit this event."


def test_approve_is_admin_only_and_idempotent():
    event = _event()
    with pytest.raises(policy.AuthorizationDenied):
        policy.approve(_user("u1"), event)
    assert event.approved is False

    admin = _user("u9", admin=True)
    assert policy.approve(admin, event) is True
    assert event.approved is True
    assert policy.approve(admin, event) is False


def test_mutable_fields_by_role():
    assert policy.mutable_fields(ActorRole.ANONYMOUS) == frozenset()
    assert "approved" not in policy.mutable_fields(ActorRole.ORGANIZER)
    assert "approved" in policy.mutable_fields(ActorRole.ADMIN)
    assert "id" not in policy.mutable_fields(ActorRole.ADMIN)
    assert "organizer_id" not in policy.mutable_fields(ActorRole.ADMIN)


def test_post_update_redirect():
    assert policy.post_update_redirect(_user("u9", admin=True)) == "/admin"
    assert policy.post_update_redirect(_user("u1")) == "/users/u1"


def test_confirmation_message():
    assert (
        policy.confirmation_message("Event")
        == "Thank you for submitting Event. We will review it shortly."
    )


def test_clean_submission_coerces_types():
    cleaned = policy.clean_submission(
        _submission(
            website=" example.org ",
            number_of_tickets="4",
            ticket_funded="on",
            travel_funded="0",
            organizer_email="Klaus@Example.com",
        )
    )
    assert cleaned["start_date"] == date(2026, 6, 1)
    assert cleaned["website"] == "https://example.org"
    assert cleaned["number_of_tickets"] == 4
    assert cleaned["ticket_funded"] is True
    assert cleaned["travel_funded"] is False
    assert cleaned["organizer_email"] == "klaus@example.com"
    assert "approved" not in cleaned


def test_clean_submission_ignores_approved_and_unknown_keys():
    cleaned = policy.clean_submission(_submission(approved="1", id="x", organizer_id="u2"))
    assert "approved" not in cleaned
    assert "id" not in cleaned
    assert "organizer_id" not in cleaned


def test_clean_submission_collects_all_errors():
    with pytest.raises(policy.ValidationError) as excinfo:
        policy.clean_submission(
            _submission(name="", start_date="not-a-date", number_of_tickets="0")
        )
    errors = excinfo.value.errors
    assert "Start date is not a valid date." in errors
    assert "Number of tickets must be at least 1." in errors
    assert "Name can't be blank." in errors


def test_clean_submission_rejects_dates_with_trailing_text():
    with pytest.raises(policy.ValidationError) as excinfo:
        policy.clean_submission(_submission(start_date="2026-10-29garbage"))
    assert "Start date is not a valid date." in excinfo.value.errors


def test_clean_submission_rejects_unknown_process():
    with pytest.raises(policy.ValidationError) as excinfo:
        policy.clean_submission(_submission(application_process="lottery"))
    assert "Please choose a valid application process." in excinfo.value.errors


def test_selection_by_organizer_requires_confirmation_and_drops_link():
    with pytest.raises(policy.ValidationError):
        policy.clean_submission(_submission(application_process="selection_by_organizer"))

    cleaned = policy.clean_submission(
        _submission(
            application_process="selection_by_organizer",
            data_protection_confirmation="1",
            application_link="https://example.org/apply",
        )
    )
    assert cleaned["data_protection_confirmation"] is True
    assert cleaned["application_link"] is None


def test_application_by_organizer_requires_link_and_drops_confirmation():
    with pytest.raises(policy.ValidationError) as excinfo:
        policy.clean_submission(_submission(application_process="application_by_organizer"))
    assert excinfo.value.errors == ["Please provide a link to your application form."]

    cleaned = policy.clean_submission(
        _submission(
            application_process="application_by_organizer",
            application_link="somelink.tada",
            data_protection_confirmation="1",
        )
    )
    assert cleaned["application_link"] == "https://somelink.tada"
    assert cleaned["data_protection_confirmation"] is False


def test_selection_by_travis_drops_both():
    cleaned = policy.clean_submission(
        _submission(data_protection_confirmation="1", application_link="x.org")
    )
    assert cleaned["data_protection_confirmation"] is False
    assert cleaned["application_link"] is None


def test_clean_update_filters_by_role():
    event = _event()
    organizer_changes = policy.clean_update(
        _user("u1"), event, {"name": "New", "approved": "1", "id": "other"}
    )
    assert organizer_changes == {"name": "New"}

    admin_changes = policy.clean_update(
        _user("u9", admin=True), event, {"approved": "1"}
    )
    assert admin_changes == {"approved": True}


def test_clean_update_validates_against_current_state():
    event = _event(start_date=date(2026, 6, 10), end_date=date(2026, 6, 12))
    with pytest.raises(policy.ValidationError) as excinfo:
        policy.clean_update(_user("u1"), event, {"end_date": "2026-06-01"})
    assert excinfo.value.errors == ["End date must be on or after the start date."]


def test_clean_update_switching_process_drops_irrelevant_fields():
    event = _event(
        application_process="application_by_organizer",
        application_link="https://example.org/apply",
    )
    changes = policy.clean_update(
        _user("u1"), event, {"application_process": "selection_by_travis"}
    )
    assert changes == {
        "application_process": "selection_by_travis",
        "application_link": None,
        "data_protection_confirmation": False,
    }


def test_clean_update_keeps_existing_link_when_untouched():
    event = _event(
        application_process="application_by_organizer",
        application_link="https://example.org/apply",
    )
    changes = policy.clean_update(_user("u1"), event, {"city": "Oslo"})
    assert changes == {"city": "Oslo"}
