# tests/test_calendar_service.py
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from tempo.core.calendar.contacts import decode_string_list, encode_string_list
from tempo.core.calendar.models import EventContact
from tempo.core.calendar.schemas import ContactIn, EventOut, SnapshotEvent
from tempo.core.calendar.service import CalendarService, compute_stats, filter_events
from tempo.core.calendar.sync import CalendarSyncReconciler
from tempo.core.errors import DuplicateEventError, EventNotFoundError, UserNotFoundError, ValidationError

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def ev(event_id, start, hours=1, **extra):
    data = {
        "id": event_id,
        "title": f"Event {event_id}",
        "startDate": start.isoformat(),
        "endDate": (start + timedelta(hours=hours)).isoformat(),
    }
    data.update(extra)
    return data


async def seed(session_factory, user, events):
    await CalendarSyncReconciler(session_factory).reconcile(user.id, user.external_id, events)


# ---- Defensive decoding of contact fields ----

@pytest.mark.parametrize(
    "raw, expected, structured",
    [
        ('["a@x.io", "b@x.io"]', ["a@x.io", "b@x.io"], True),
        ('"a@x.io"', ["a@x.io"], True),
        ("a@x.io", ["a@x.io"], False),
        ("", [], True),
        (None, [], True),
        ("null", [], True),
        ("[1, null, 2]", ["1", "2"], True),
    ],
)
def test_decode_string_list(raw, expected, structured):
    parsed = decode_string_list(raw)
    assert parsed.values == expected
    assert parsed.structured is structured


def test_encode_string_list_wraps_scalars():
    assert encode_string_list("a@x.io") == '["a@x.io"]'
    assert encode_string_list(None) == "[]"


# ---- Pure stats / filters ----

@pytest.mark.asyncio
async def test_stats_past_and_upcoming(session_factory, make_user, db_session):
    user = await make_user()
    await seed(session_factory, user, [
        ev("yesterday", NOW - timedelta(days=1), calendarName="Work"),
        ev("tomorrow", NOW + timedelta(days=1), calendarName="Work"),
        ev("next-week", NOW + timedelta(days=7)),
    ])

    stats = await CalendarService(db_session).compute_stats(user.external_id, now=NOW)

    assert stats.total_events == 3
    assert stats.past_events == 1
    assert stats.upcoming_events == 2
    assert stats.calendars == {"Work": 2, "Uncategorized": 1}
    assert stats.model_dump(by_alias=True)["totalEvents"] == 3


def test_event_starting_exactly_now_is_past():
    [event] = [SnapshotEvent.model_validate(ev("now", NOW))]
    out = EventOut(id=event.event_id, title=event.title, start_date=event.start_date,
                   end_date=event.end_date, is_all_day=False, user_id="u")
    stats = compute_stats([out], now=NOW)
    assert (stats.upcoming_events, stats.past_events) == (0, 1)


@pytest.mark.asyncio
async def test_list_events_filters(session_factory, make_user, db_session):
    user = await make_user()
    await seed(session_factory, user, [
        ev("early", NOW - timedelta(days=2), calendarId="home"),
        ev("inside", NOW + timedelta(hours=2), calendarId="work"),
        ev("spans-end", NOW + timedelta(days=1), hours=48, calendarId="work"),
    ])
    service = CalendarService(db_session)

    everything = await service.list_events(user.external_id)
    assert [e.id for e in everything] == ["early", "inside", "spans-end"]

    windowed = await service.list_events(user.external_id, start_date=NOW, end_date=NOW + timedelta(days=2))
    assert [e.id for e in windowed] == ["inside"]

    work = await service.list_events(user.external_id, calendar_id="work")
    assert [e.id for e in work] == ["inside", "spans-end"]

    assert filter_events(everything, calendar_id="nope") == []


@pytest.mark.asyncio
async def test_list_events_unknown_owner(db_session):
    with pytest.raises(UserNotFoundError):
        await CalendarService(db_session).list_events("ghost")


@pytest.mark.asyncio
async def test_upcoming_events_window(session_factory, make_user, db_session):
    user = await make_user()
    await seed(session_factory, user, [
        ev("past", NOW - timedelta(hours=3)),
        ev("soon", NOW + timedelta(days=2)),
        ev("far", NOW + timedelta(days=30)),
    ])
    service = CalendarService(db_session)

    assert [e.id for e in await service.upcoming_events(user.external_id, now=NOW)] == ["soon"]
    assert [e.id for e in await service.upcoming_events(user.external_id, days=60, now=NOW)] == ["soon", "far"]
    with pytest.raises(ValidationError):
        await service.upcoming_events(user.external_id, days=0, now=NOW)


# ---- Single events ----

@pytest.mark.asyncio
async def test_create_get_delete_event_with_contacts(make_user, db_session):
    user = await make_user()
    service = CalendarService(db_session)

    created = await service.create_event(
        user.external_id,
        SnapshotEvent.model_validate(ev("lunch", NOW, location="Cafe")),
        [ContactIn(id="c1", name="Sam", emails="sam@example.com", phoneNumbers=["+1", "+2"])],
    )
    assert created.id == "lunch"
    assert created.attached_contacts[0].emails == ["sam@example.com"]
    assert created.attached_contacts[0].phone_numbers == ["+1", "+2"]

    fetched = await service.get_event(user.external_id, "lunch")
    assert fetched.location == "Cafe"
    assert fetched.user_id == user.external_id
    assert [c.name for c in fetched.attached_contacts] == ["Sam"]

    await service.delete_event(user.external_id, "lunch")
    assert await db_session.scalar(select(func.count()).select_from(EventContact)) == 0
    with pytest.raises(EventNotFoundError):
        await service.get_event(user.external_id, "lunch")
    with pytest.raises(EventNotFoundError):
        await service.delete_event(user.external_id, "lunch")


@pytest.mark.asyncio
async def test_create_duplicate_event(make_user, db_session):
    user = await make_user()
    service = CalendarService(db_session)
    await service.create_event(user.external_id, SnapshotEvent.model_validate(ev("dup", NOW)))
    with pytest.raises(DuplicateEventError):
        await service.create_event(user.external_id, SnapshotEvent.model_validate(ev("dup", NOW)))


@pytest.mark.asyncio
async def test_contacts_with_legacy_plain_text(make_user, db_session):
    user = await make_user()
    service = CalendarService(db_session)
    await service.create_event(user.external_id, SnapshotEvent.model_validate(ev("legacy", NOW)),
                               [ContactIn(id="c1", name="Old")])
    # Older writers stored the raw value
    contact = (await db_session.execute(
        EventContact.__table__.select().where(EventContact.contact_id == "c1")
    )).first()
    await db_session.execute(
        EventContact.__table__.update()
        .where(EventContact.__table__.c.id == contact.id)
        .values(contact_emails="old@example.com", contact_phone_numbers="")
    )

    fetched = await service.get_event(user.external_id, "legacy")
    assert fetched.attached_contacts[0].emails == ["old@example.com"]
    assert fetched.attached_contacts[0].phone_numbers == []
