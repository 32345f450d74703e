from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

import asyncpg
from pydantic import ValidationError as PydanticValidationError

from filmclub.domain.clubs.models import ApprovalMode, ApprovalPolicy, Club, ClubMember
from filmclub.domain.clubs.repo import ClubRepository
from filmclub.domain.exceptions import ForbiddenError, NotFoundError, ValidationError
from filmclub.domain.proposals.policy import eligible_voter_count
from filmclub.infra.postgres import get_pool
from filmclub.obs.logging import get_logger

logger = get_logger(__name__)


def parse_policy(raw: Any) -> ApprovalPolicy:
    if isinstance(raw, ApprovalPolicy):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError("invalid_policy")
    try:
        return ApprovalPolicy.model_validate(raw)
    except PydanticValidationError as exc:
        raise ValidationError("invalid_policy") from exc


def check_policy_reachable(policy: ApprovalPolicy, member_count: int) -> None:
    """A fixed policy may not ask for more approvals than there are voters."""
    if policy.mode is ApprovalMode.FIXED:
        if (policy.required_approvals or 0) > eligible_voter_count(member_count):
            raise ValidationError("policy_fixed_exceeds_eligible_voters")


class ClubService:
    def __init__(self, repo: Optional[ClubRepository] = None):
        self.repo = repo or ClubRepository()

    async def _get_pool(self) -> asyncpg.Pool:
        return await get_pool()

    async def get_club(self, club_id: UUID, *, conn: Optional[asyncpg.Connection] = None) -> Club:
        club = await self.repo.get_club(club_id, conn=conn)
        if club is None:
            raise NotFoundError("club_not_found")
        return club

    async def require_member(
        self, club_id: UUID, user_id: UUID, *, conn: Optional[asyncpg.Connection] = None
    ) -> ClubMember:
        member = await self.repo.get_membership(club_id, user_id, conn=conn)
        if member is None:
            raise ForbiddenError("not_a_member")
        return member

    async def list_members(self, club_id: UUID, user_id: UUID) -> list[ClubMember]:
        await self.require_member(club_id, user_id)
        return await self.repo.list_members(club_id)

    async def update_approval_policy(self, club_id: UUID, actor_user_id: UUID, raw_policy: Any) -> Club:
        """Replace the club's policy.

        Proposals already pending keep their status; they are tallied under the new
        policy the next time a vote or evaluation touches them.
        """
        policy = parse_policy(raw_policy)
        pool = await self._get_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                if not await self.repo.lock_club(club_id, conn=conn):
                    raise NotFoundError("club_not_found")
                member = await self.require_member(club_id, actor_user_id, conn=conn)
                if not member.is_owner:
                    raise ForbiddenError("owner_only")
                member_count = await self.repo.count_members(club_id, conn=conn)
                check_policy_reachable(policy, member_count)
                club = await self.repo.update_approval_policy(club_id, policy, conn=conn)
        if club is None:
            raise NotFoundError("club_not_found")
        logger.info(
            "approval_policy_updated",
            extra={
                "event": "approval_policy_updated",
                "club_id": str(club_id),
                "mode": policy.mode.value,
                "required_approvals": policy.required_approvals,
            },
        )
        return club
