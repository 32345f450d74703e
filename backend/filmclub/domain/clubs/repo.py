"""Read access to clubs and their live membership roster."""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import asyncpg

from filmclub.domain.clubs.models import ApprovalPolicy, Club, ClubMember
from filmclub.infra.postgres import get_pool
from filmclub.settings import settings


def _map_club(row) -> Club:
    return Club(
        id=row["id"],
        name=row["name"],
        approval_policy=ApprovalPolicy.from_row(row["approval_mode"], row["required_approvals"]),
        timezone=row["timezone"] or settings.default_timezone,
        created_by_user_id=row["created_by_user_id"],
        created_at=row["created_at"],
    )


def _map_member(row) -> ClubMember:
    return ClubMember(
        club_id=row["club_id"],
        user_id=row["user_id"],
        role=row["role"],
        display_name=row["display_name"],
        joined_at=row["joined_at"],
    )


class ClubRepository:
    """Club rows are owned by the membership service; this repository only reads
    them, except for the approval policy columns."""

    async def get_club(self, club_id: UUID, *, conn: Optional[asyncpg.Connection] = None) -> Optional[Club]:
        query = """
            SELECT id, name, approval_mode, required_approvals, timezone, created_by_user_id, created_at
            FROM clubs
            WHERE id = $1
        """
        if conn is not None:
            row = await conn.fetchrow(query, club_id)
        else:
            pool = await get_pool()
            async with pool.acquire() as pooled:
                row = await pooled.fetchrow(query, club_id)
        return _map_club(row) if row else None

    async def get_membership(
        self, club_id: UUID, user_id: UUID, *, conn: Optional[asyncpg.Connection] = None
    ) -> Optional[ClubMember]:
        query = """
            SELECT m.club_id, m.user_id, m.role, m.joined_at, u.display_name
            FROM club_memberships m
            INNER JOIN users u ON u.id = m.user_id
            WHERE m.club_id = $1 AND m.user_id = $2
        """
        if conn is not None:
            row = await conn.fetchrow(query, club_id, user_id)
        else:
            pool = await get_pool()
            async with pool.acquire() as pooled:
                row = await pooled.fetchrow(query, club_id, user_id)
        return _map_member(row) if row else None

    async def count_members(self, club_id: UUID, *, conn: Optional[asyncpg.Connection] = None) -> int:
        query = "SELECT COUNT(*) FROM club_memberships WHERE club_id = $1"
        if conn is not None:
            count = await conn.fetchval(query, club_id)
        else:
            pool = await get_pool()
            async with pool.acquire() as pooled:
                count = await pooled.fetchval(query, club_id)
        return int(count or 0)

    async def member_ids(
        self, club_id: UUID, user_ids: list[UUID], *, conn: asyncpg.Connection
    ) -> set[UUID]:
        """Return the subset of ``user_ids`` currently in the club."""
        if not user_ids:
            return set()
        rows = await conn.fetch(
            "SELECT user_id FROM club_memberships WHERE club_id = $1 AND user_id = ANY($2::uuid[])",
            club_id,
            list(user_ids),
        )
        return {row["user_id"] for row in rows}

    async def list_members(self, club_id: UUID, *, conn: Optional[asyncpg.Connection] = None) -> list[ClubMember]:
        query = """
            SELECT m.club_id, m.user_id, m.role, m.joined_at, u.display_name
            FROM club_memberships m
            INNER JOIN users u ON u.id = m.user_id
            WHERE m.club_id = $1
            ORDER BY m.joined_at ASC, u.display_name ASC
        """
        if conn is not None:
            rows = await conn.fetch(query, club_id)
        else:
            pool = await get_pool()
            async with pool.acquire() as pooled:
                rows = await pooled.fetch(query, club_id)
        return [_map_member(row) for row in rows]

    async def update_approval_policy(
        self, club_id: UUID, policy: ApprovalPolicy, *, conn: asyncpg.Connection
    ) -> Optional[Club]:
        row = await conn.fetchrow(
            """
            UPDATE clubs
            SET approval_mode = $2, required_approvals = $3
            WHERE id = $1
            RETURNING id, name, approval_mode, required_approvals, timezone, created_by_user_id, created_at
            """,
            club_id,
            policy.mode.value,
            policy.required_approvals if policy.mode.value == "fixed" else None,
        )
        return _map_club(row) if row else None

    async def lock_club(self, club_id: UUID, *, conn: asyncpg.Connection) -> bool:
        """Serialize policy changes against each other on the same club."""
        found = await conn.fetchval("SELECT 1 FROM clubs WHERE id = $1 FOR UPDATE", club_id)
        return bool(found)
