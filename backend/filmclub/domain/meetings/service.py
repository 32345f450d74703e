"""Meeting lifecycle: auto-start, record gating and the approved-proposal transitions."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import asyncpg

from filmclub.domain.clubs.repo import ClubRepository
from filmclub.domain.clubs.service import ClubService
from filmclub.domain.exceptions import ConflictError, NotFoundError
from filmclub.domain.meetings.models import Meeting, MeetingStatus
from filmclub.domain.meetings.repo import MeetingRepository
from filmclub.domain.proposals.outcomes import EffectResult
from filmclub.domain.proposals.payloads import (
    MeetingCompletePayload,
    MeetingSchedulePayload,
    MeetingStartPayload,
    MeetingUpdatePayload,
)
from filmclub.infra.postgres import get_pool
from filmclub.obs import metrics as obs_metrics
from filmclub.obs.logging import get_logger
from filmclub.settings import settings

logger = get_logger(__name__)


def today_in(timezone: Optional[str], *, now: Optional[datetime] = None) -> date:
    """Calendar date in ``timezone``; unknown zones fall back to the default."""
    try:
        tz = ZoneInfo(timezone or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        tz = ZoneInfo(settings.default_timezone)
    current = now.astimezone(tz) if now is not None else datetime.now(tz)
    return current.date()


class MeetingService:
    def __init__(
        self,
        repo: Optional[MeetingRepository] = None,
        clubs: Optional[ClubService] = None,
    ):
        self.repo = repo or MeetingRepository()
        self.clubs = clubs or ClubService(ClubRepository())

    async def _get_pool(self) -> asyncpg.Pool:
        return await get_pool()

    async def maybe_auto_start(self, club_id: UUID, *, conn: asyncpg.Connection) -> Optional[Meeting]:
        """Start the earliest due scheduled meeting when the club has none active."""
        if await self.repo.get_active(club_id, conn=conn) is not None:
            return None
        club = await self.clubs.repo.get_club(club_id, conn=conn)
        today = today_in(club.timezone if club else None)
        due = await self.repo.get_due_scheduled(club_id, today, conn=conn)
        if due is None:
            return None
        try:
            async with conn.transaction():
                started = await self.repo.set_status(due.id, MeetingStatus.ACTIVE, conn=conn)
        except asyncpg.UniqueViolationError:
            # A concurrent request activated another meeting first.
            return None
        obs_metrics.inc_meeting_auto_started()
        logger.info(
            "meeting_auto_started",
            extra={"event": "meeting_auto_started", "club_id": str(club_id), "meeting_id": str(started.id)},
        )
        return started

    async def list_meetings(self, club_id: UUID, actor_user_id: UUID) -> list[Meeting]:
        await self.clubs.require_member(club_id, actor_user_id)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                await self.maybe_auto_start(club_id, conn=conn)
                return await self.repo.list_for_club(club_id, conn=conn)

    async def validate_editable_for_records(
        self, club_id: UUID, meeting_id: UUID, *, conn: Optional[asyncpg.Connection] = None
    ) -> Meeting:
        """Records may only be attached to a meeting that has started."""
        if conn is None:
            pool = await self._get_pool()
            async with pool.acquire() as pooled:
                async with pooled.transaction():
                    return await self.validate_editable_for_records(club_id, meeting_id, conn=pooled)

        await self.maybe_auto_start(club_id, conn=conn)
        meeting = await self.repo.get_meeting(meeting_id, conn=conn)
        if meeting is None or meeting.club_id != club_id:
            raise NotFoundError("meeting_not_found")
        if meeting.status is MeetingStatus.SCHEDULED:
            raise ConflictError("meeting_not_started")
        return meeting

    async def _locked(self, club_id: UUID, meeting_id: UUID, conn: asyncpg.Connection) -> Optional[Meeting]:
        meeting = await self.repo.get_meeting(meeting_id, conn=conn, for_update=True)
        if meeting is None or meeting.club_id != club_id:
            return None
        return meeting

    async def apply_schedule(
        self,
        conn: asyncpg.Connection,
        *,
        proposal_id: UUID,
        club_id: UUID,
        proposer_user_id: UUID,
        payload: MeetingSchedulePayload,
    ) -> EffectResult:
        existing = await self.repo.get_by_proposal(proposal_id, conn=conn)
        if existing is not None:
            return EffectResult.applied(existing.id)
        meeting = await self.repo.insert_scheduled(
            conn=conn,
            club_id=club_id,
            proposal_id=proposal_id,
            title=payload.title or None,
            scheduled_date=payload.scheduled_date,
            created_by_user_id=proposer_user_id,
        )
        return EffectResult.applied(meeting.id)

    async def apply_update(
        self, conn: asyncpg.Connection, *, club_id: UUID, payload: MeetingUpdatePayload
    ) -> EffectResult:
        meeting = await self._locked(club_id, payload.meeting_id, conn)
        if meeting is None:
            return EffectResult.failed("meeting_not_found")
        updated = await self.repo.update_details(
            meeting.id, conn=conn, title=payload.title, scheduled_date=payload.scheduled_date
        )
        return EffectResult.applied(updated.id)

    async def apply_start(
        self, conn: asyncpg.Connection, *, club_id: UUID, payload: MeetingStartPayload
    ) -> EffectResult:
        meeting = await self._locked(club_id, payload.meeting_id, conn)
        if meeting is None:
            return EffectResult.failed("meeting_not_found")
        if meeting.status is MeetingStatus.COMPLETED:
            return EffectResult.failed("meeting_already_completed")
        if meeting.status is MeetingStatus.ACTIVE:
            return EffectResult.applied(meeting.id)
        active = await self.repo.get_active(club_id, conn=conn)
        if active is not None and active.id != meeting.id:
            return EffectResult.failed("another_meeting_active")
        started = await self.repo.set_status(meeting.id, MeetingStatus.ACTIVE, conn=conn)
        return EffectResult.applied(started.id)

    async def apply_complete(
        self, conn: asyncpg.Connection, *, club_id: UUID, payload: MeetingCompletePayload
    ) -> EffectResult:
        meeting = await self._locked(club_id, payload.meeting_id, conn)
        if meeting is None:
            return EffectResult.failed("meeting_not_found")
        if meeting.status is not MeetingStatus.ACTIVE:
            return EffectResult.failed("meeting_not_active")
        completed = await self.repo.set_status(meeting.id, MeetingStatus.COMPLETED, conn=conn)
        return EffectResult.applied(completed.id)
