from __future__ import annotations

from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import asyncpg

from filmclub.domain.meetings.models import Meeting, MeetingStatus

_COLUMNS = """
    id, club_id, title, scheduled_date, status, started_at, completed_at,
    created_by_user_id, created_at, updated_at
"""


def _map(row) -> Optional[Meeting]:
    return Meeting.model_validate(dict(row)) if row else None


class MeetingRepository:
    """Meeting rows. Every method runs on the caller's connection."""

    async def get_meeting(
        self, meeting_id: UUID, *, conn: asyncpg.Connection, for_update: bool = False
    ) -> Optional[Meeting]:
        lock = " FOR UPDATE" if for_update else ""
        row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM meetings WHERE id = $1{lock}", meeting_id)
        return _map(row)

    async def get_by_proposal(self, proposal_id: UUID, *, conn: asyncpg.Connection) -> Optional[Meeting]:
        row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM meetings WHERE proposed_change_id = $1", proposal_id)
        return _map(row)

    async def get_active(self, club_id: UUID, *, conn: asyncpg.Connection) -> Optional[Meeting]:
        row = await conn.fetchrow(
            f"SELECT {_COLUMNS} FROM meetings WHERE club_id = $1 AND status = 'active'",
            club_id,
        )
        return _map(row)

    async def get_due_scheduled(self, club_id: UUID, today: date, *, conn: asyncpg.Connection) -> Optional[Meeting]:
        row = await conn.fetchrow(
            f"""
            SELECT {_COLUMNS}
            FROM meetings
            WHERE club_id = $1 AND status = 'scheduled' AND scheduled_date <= $2
            ORDER BY scheduled_date ASC, created_at ASC
            LIMIT 1
            FOR UPDATE
            """,
            club_id,
            today,
        )
        return _map(row)

    async def list_for_club(self, club_id: UUID, *, conn: asyncpg.Connection) -> list[Meeting]:
        rows = await conn.fetch(
            f"""
            SELECT {_COLUMNS}
            FROM meetings
            WHERE club_id = $1
            ORDER BY
                CASE status WHEN 'active' THEN 0 WHEN 'scheduled' THEN 1 ELSE 2 END,
                scheduled_date ASC,
                created_at ASC
            """,
            club_id,
        )
        return [Meeting.model_validate(dict(row)) for row in rows]

    async def insert_scheduled(
        self,
        *,
        conn: asyncpg.Connection,
        club_id: UUID,
        proposal_id: Optional[UUID],
        title: Optional[str],
        scheduled_date: date,
        created_by_user_id: UUID,
    ) -> Meeting:
        row = await conn.fetchrow(
            f"""
            INSERT INTO meetings (id, club_id, proposed_change_id, title, scheduled_date, status, created_by_user_id)
            VALUES ($1, $2, $3, $4, $5, 'scheduled', $6)
            RETURNING {_COLUMNS}
            """,
            uuid4(),
            club_id,
            proposal_id,
            title,
            scheduled_date,
            created_by_user_id,
        )
        return Meeting.model_validate(dict(row))

    async def update_details(
        self,
        meeting_id: UUID,
        *,
        conn: asyncpg.Connection,
        title: Optional[str],
        scheduled_date: Optional[date],
    ) -> Meeting:
        row = await conn.fetchrow(
            f"""
            UPDATE meetings
            SET
                title = COALESCE($2, title),
                scheduled_date = COALESCE($3, scheduled_date),
                updated_at = NOW()
            WHERE id = $1
            RETURNING {_COLUMNS}
            """,
            meeting_id,
            title,
            scheduled_date,
        )
        return Meeting.model_validate(dict(row))

    async def set_status(self, meeting_id: UUID, status: MeetingStatus, *, conn: asyncpg.Connection) -> Meeting:
        row = await conn.fetchrow(
            f"""
            UPDATE meetings
            SET
                status = $2,
                started_at = CASE WHEN $2 = 'active' THEN COALESCE(started_at, NOW()) ELSE started_at END,
                completed_at = CASE WHEN $2 = 'completed' THEN COALESCE(completed_at, NOW()) ELSE completed_at END,
                updated_at = NOW()
            WHERE id = $1
            RETURNING {_COLUMNS}
            """,
            meeting_id,
            status.value,
        )
        return Meeting.model_validate(dict(row))
