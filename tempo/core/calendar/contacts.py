# /app/tempo/core/calendar/contacts.py

from __future__ import annotations

import json
import logging
from typing import Iterable, List, NamedTuple, Optional, Sequence, Union

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import EventContact
from .schemas import ContactIn, ContactOut

log = logging.getLogger(__name__)


class StringListParse(NamedTuple):
    """Outcome of decoding a stored email/phone column."""
    values: List[str]
    # False when the raw text was not JSON and got wrapped as-is
    structured: bool


def encode_string_list(value: Union[Sequence[str], str, None]) -> str:
    if value is None:
        return "[]"
    if isinstance(value, str):
        value = [value]
    return json.dumps([str(v) for v in value])


def decode_string_list(raw: Optional[str]) -> StringListParse:
    """
    Reads back an email/phone column. Accepts a JSON list, a JSON scalar
    or plain text left behind by older writers.

    Examples:
        '["a@x.io", "b@x.io"]'  -> ["a@x.io", "b@x.io"]
        '"a@x.io"'              -> ["a@x.io"]
        'a@x.io'                -> ["a@x.io"]   (structured=False)
        '' / None               -> []
    """
    if raw is None or not raw.strip():
        return StringListParse([], True)
    try:
        parsed = json.loads(raw)
    except ValueError:
        log.debug("Contact field is not JSON, wrapping raw value: %.40s", raw)
        return StringListParse([raw], False)
    if isinstance(parsed, list):
        return StringListParse([str(v) for v in parsed if v is not None], True)
    if parsed is None or parsed == "":
        return StringListParse([], True)
    return StringListParse([str(parsed)], True)


def contact_to_out(contact: EventContact) -> ContactOut:
    return ContactOut(
        id=contact.contact_id,
        name=contact.contact_name,
        emails=decode_string_list(contact.contact_emails).values,
        phone_numbers=decode_string_list(contact.contact_phone_numbers).values,
    )


class EventContactStore:
    """Contacts attached to calendar events. Works inside the caller's transaction."""

    def __init__(self, db_session: AsyncSession):
        self.db: AsyncSession = db_session

    # ---- Public methods ----

    async def attach_all(self, event_pk: int, contacts: Iterable[ContactIn]) -> List[EventContact]:
        """
        Inserts every contact for a freshly created event. Never replaces.

        Args:
            event_pk (int): Internal id of the event.
            contacts (Iterable[ContactIn]): Contacts in the order to keep.

        Returns:
            List[EventContact]: The inserted rows.
        """
        rows = [
            EventContact(
                event_id=event_pk,
                contact_id=c.contact_id,
                contact_name=c.name,
                contact_emails=encode_string_list(c.emails),
                contact_phone_numbers=encode_string_list(c.phone_numbers),
            )
            for c in contacts
        ]
        if not rows:
            return rows
        # One flush per row keeps primary keys in insertion order
        for row in rows:
            self.db.add(row)
            await self.db.flush()
        log.debug("Attached %d contacts to event pk=%d", len(rows), event_pk)
        return rows

    async def list_by_event(self, event_pk: int) -> List[EventContact]:
        stmt = select(EventContact).where(EventContact.event_id == event_pk).order_by(EventContact.id)
        result = await self.db.scalars(stmt)
        return list(result.all())

    async def delete_by_event(self, event_pk: int) -> int:
        result = await self.db.execute(delete(EventContact).where(EventContact.event_id == event_pk))
        log.debug("Deleted %d contacts of event pk=%d", result.rowcount, event_pk)
        return result.rowcount or 0
