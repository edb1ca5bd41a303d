# /app/tempo/core/users/service.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from tempo.core.errors import UserNotFoundError, ValidationError
from tempo.core.timeutils import utcnow
from tempo.core.users.models import CalendarPreference, User

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExternalProfile:
    """Profile fields as reported by the identity provider."""
    subject: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    email_verified: bool = False


class UsersService:
    """
    Async service for the user directory.
    Maps identity-provider subjects to internal numeric users.
    """
    model = User

    def __init__(self, db_session: AsyncSession):
        """
        Initializes the service with an async DB session.

        Args:
            db_session (AsyncSession): Active SQLAlchemy session. The caller commits.
        """
        self.db: AsyncSession = db_session

    async def get_by_external_id(self, external_id: str) -> Optional[User]:
        return await self.db.scalar(select(User).where(User.external_id == external_id))

    async def require_by_external_id(self, external_id: str) -> User:
        user = await self.get_by_external_id(external_id)
        if user is None:
            raise UserNotFoundError(external_id)
        return user

    async def find_or_create(self, profile: ExternalProfile, refresh_profile: bool = True) -> User:
        """
        Finds the user by identity subject or creates it. With
        ``refresh_profile`` (sign-in) the stored profile is overwritten with
        the identity provider's values; without it (every other
        authenticated request) an existing user is returned untouched, so
        local edits survive.

        A concurrent creator for the same subject is detected through the
        unique constraint; the insert is rolled back to its savepoint and
        the existing row is updated instead.

        Args:
            profile (ExternalProfile): Verified identity profile.
            refresh_profile (bool, optional): Overwrite the profile of an existing user.

        Returns:
            User: Found or created user (flushed, not committed).
        """
        log.debug("Ensuring user by subject=%s", profile.subject)
        user = await self.get_by_external_id(profile.subject)
        if user is None:
            try:
                async with self.db.begin_nested():
                    user = User(external_id=profile.subject)
                    self._apply_profile(user, profile)
                    self.db.add(user)
                log.info("Created new user: %r", user)
            except IntegrityError:
                log.info("User %s was created concurrently, updating instead", profile.subject)
                user = await self.get_by_external_id(profile.subject)
                if user is None:  # pragma: no cover - the conflicting row vanished again
                    raise
                if refresh_profile:
                    self._apply_profile(user, profile)
        elif refresh_profile:
            self._apply_profile(user, profile)
            log.debug("Refreshed profile of existing user: %r", user)
        else:
            return user
        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def update_profile(
        self,
        external_id: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None,
    ) -> User:
        """Local edit of display name and/or photo. At least one is required."""
        if display_name is None and photo_url is None:
            raise ValidationError("Nothing to update: provide displayName or photoUrl")
        user = await self.require_by_external_id(external_id)
        if display_name is not None:
            user.display_name = display_name
        if photo_url is not None:
            user.photo_url = photo_url
        user.updated_at = utcnow()
        await self.db.flush()
        await self.db.refresh(user)
        log.info("Updated profile of user %s", user.id)
        return user

    # ---- Calendar preferences ----

    async def get_calendar_preferences(self, external_id: str) -> List[str]:
        user = await self.require_by_external_id(external_id)
        result = await self.db.scalars(
            select(CalendarPreference.calendar_id)
            .where(CalendarPreference.user_id == user.id)
            .order_by(CalendarPreference.id)
        )
        return list(result.all())

    async def replace_calendar_preferences(self, external_id: str, calendar_ids: Iterable[str]) -> List[str]:
        """
        Replaces the user's selected calendars with ``calendar_ids``
        (first appearance order, duplicates and blanks dropped).

        Args:
            external_id (str): Identity subject.
            calendar_ids (Iterable[str]): New selection.

        Returns:
            List[str]: The stored selection.
        """
        user = await self.require_by_external_id(external_id)
        unique_ids: List[str] = []
        for cid in calendar_ids:
            if not isinstance(cid, str):
                raise ValidationError("calendarIds must contain strings only")
            cid = cid.strip()
            if cid and cid not in unique_ids:
                unique_ids.append(cid)

        async with self.db.begin_nested():
            await self.db.execute(delete(CalendarPreference).where(CalendarPreference.user_id == user.id))
            for cid in unique_ids:
                self.db.add(CalendarPreference(user_id=user.id, calendar_id=cid))
        log.info("Stored %d calendar preferences for user %s", len(unique_ids), user.id)
        return unique_ids

    @staticmethod
    def _apply_profile(user: User, profile: ExternalProfile) -> None:
        fresh = {
            "email": profile.email,
            "display_name": profile.display_name,
            "photo_url": profile.photo_url,
            "email_verified": bool(profile.email_verified),
        }
        changed = False
        for attr, value in fresh.items():
            if getattr(user, attr, None) != value:
                setattr(user, attr, value)
                changed = True
        # An unchanged profile must not turn a sign-in into a write.
        if changed:
            user.updated_at = utcnow()
