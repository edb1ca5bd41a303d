"""
Calendar subsystem package.

• ``CalendarEventStore`` / ``EventContactStore`` – persistence of events and attached contacts.
• ``CalendarSyncReconciler`` – full-snapshot sync (upsert + prune, one transaction).
• ``CalendarService`` – queries, stats and single-event create/delete.
"""
from __future__ import annotations

from .contacts import EventContactStore, decode_string_list
from .service import CalendarService
from .store import CalendarEventStore
from .sync import CalendarSyncReconciler, validate_snapshot

__all__: list[str] = [
    "CalendarEventStore",
    "EventContactStore",
    "CalendarService",
    "CalendarSyncReconciler",
    "decode_string_list",
    "validate_snapshot",
]
