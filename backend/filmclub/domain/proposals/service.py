"""Proposal lifecycle: creation, voting and status evaluation.

Every mutation runs in one transaction that first locks the proposal row, so
concurrent votes on the same proposal serialize while distinct proposals never
contend. Approval runs the side effect in that same transaction; if the effect
fails the transaction rolls back and the proposal stays pending.
"""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

import asyncpg

from filmclub.domain.clubs.models import ApprovalPolicy
from filmclub.domain.clubs.repo import ClubRepository
from filmclub.domain.clubs.service import ClubService
from filmclub.domain.exceptions import ConflictError, InvalidExecutionPayload, NotFoundError, ValidationError
from filmclub.domain.meetings.service import MeetingService
from filmclub.domain.proposals import payloads, policy
from filmclub.domain.proposals.effects import SideEffectApplicator
from filmclub.domain.proposals.models import (
	HistoryItem,
	ProposalStatus,
	ProposalWithVotes,
	ProposedChange,
	RecordEntity,
	VoteDecision,
)
from filmclub.domain.proposals.repo import ProposalRepository
from filmclub.infra.postgres import get_pool
from filmclub.obs import metrics as obs_metrics
from filmclub.obs.logging import get_logger
from filmclub.settings import settings

logger = get_logger(__name__)


class ProposalService:
	def __init__(
		self,
		repo: Optional[ProposalRepository] = None,
		clubs: Optional[ClubService] = None,
		meetings: Optional[MeetingService] = None,
		applicator: Optional[SideEffectApplicator] = None,
	) -> None:
		self.repo = repo or ProposalRepository()
		self.clubs = clubs or ClubService(ClubRepository())
		self.meetings = meetings or MeetingService(clubs=self.clubs)
		self.applicator = applicator or SideEffectApplicator(meetings=self.meetings)

	async def _get_pool(self) -> asyncpg.Pool:
		return await get_pool()

	async def create_proposal(
		self,
		club_id: UUID,
		actor_user_id: UUID,
		entity: RecordEntity | str,
		payload: Any,
	) -> ProposalWithVotes:
		"""Persist a pending proposal, then evaluate it straight away.

		A proposal in a club where nobody else can vote resolves immediately, as
		does a fixed policy that can no longer be met.
		"""
		parsed = payloads.parse_payload(entity, payload)
		kind = RecordEntity(entity)
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				await self.clubs.get_club(club_id, conn=conn)
				await self.clubs.require_member(club_id, actor_user_id, conn=conn)
				meeting_id = getattr(parsed, "meeting_id", None)
				if kind.is_record and meeting_id is not None:
					await self.meetings.validate_editable_for_records(club_id, meeting_id, conn=conn)
				proposal = await self.repo.create_proposal(
					conn=conn,
					club_id=club_id,
					entity=kind,
					payload=parsed.to_json(),
					proposer_user_id=actor_user_id,
				)
		obs_metrics.inc_proposal_created(kind.value)
		logger.info(
			"proposal_created",
			extra={
				"event": "proposal_created",
				"proposal_id": str(proposal.id),
				"club_id": str(club_id),
				"entity": kind.value,
			},
		)
		return await self.evaluate(proposal.id, actor_user_id)

	async def create_food_order_proposal(
		self,
		club_id: UUID,
		actor_user_id: UUID,
		*,
		vendor: str,
		total_cost: float,
		currency: str,
		payer_user_id: UUID,
		participant_user_ids: list[UUID],
	) -> ProposalWithVotes:
		payload = {
			"vendor": (vendor or "").strip(),
			"totalCost": total_cost,
			"currency": (currency or "").strip().upper(),
			"payerUserId": str(payer_user_id),
			"participantUserIds": [str(user_id) for user_id in participant_user_ids],
		}
		return await self.create_proposal(club_id, actor_user_id, RecordEntity.FOOD_ORDER, payload)

	async def evaluate(
		self,
		proposal_id: UUID,
		actor_user_id: UUID,
		*,
		policy_override: Optional[ApprovalPolicy] = None,
	) -> ProposalWithVotes:
		pool = await self._get_pool()
		async with pool.acquire() as conn:
			async with conn.transaction():
				current = await self.repo.get_proposal(proposal_id, conn=conn, for_update=True)
				if current is None:
					raise NotFoundError("not_found")
				await self.clubs.require_member(current.club_id, actor_user_id, conn=conn)
				proposal = await self._evaluate_locked(conn, proposal_id, actor_user_id, policy_override)
				votes = await self.repo.list_votes(proposal_id, conn=conn)
		return ProposalWithVotes(proposal=proposal, votes=votes)

	async def cast_vote(
		self,
		proposal_id: UUID,
		voter_user_id: UUID,
		decision: VoteDecision | str,
	) -> ProposalWithVotes:
		decision = VoteDecision(decision)
		pool = await self._get_pool()
		try:
			async with pool.acquire() as conn:
				async with conn.transaction():
					current = await self.repo.get_proposal(proposal_id, conn=conn, for_update=True)
					if current is None:
						raise NotFoundError("not_found")
					if current.proposer_user_id == voter_user_id:
						raise ConflictError("proposer_cannot_vote")
					if current.status.is_terminal:
						raise ConflictError("already_resolved")
					await self.clubs.require_member(current.club_id, voter_user_id, conn=conn)
					if await self.repo.has_vote(proposal_id, voter_user_id, conn=conn):
						raise ConflictError("already_voted")
					await self.repo.insert_vote(
						conn=conn, proposal_id=proposal_id, voter_user_id=voter_user_id, decision=decision
					)
					proposal = await self._evaluate_locked(conn, proposal_id, voter_user_id, None)
					votes = await self.repo.list_votes(proposal_id, conn=conn)
		except ConflictError as exc:
			obs_metrics.inc_vote_reject(exc.detail)
			logger.info(
				"vote_conflict",
				extra={"event": "vote_conflict", "proposal_id": str(proposal_id), "reason": exc.detail},
			)
			raise
		obs_metrics.inc_vote(decision.value)
		return ProposalWithVotes(proposal=proposal, votes=votes)

	async def _evaluate_locked(
		self,
		conn: asyncpg.Connection,
		proposal_id: UUID,
		actor_user_id: UUID,
		policy_override: Optional[ApprovalPolicy],
	) -> ProposedChange:
		proposal = await self.repo.get_proposal(proposal_id, conn=conn, for_update=True)
		if proposal is None:
			raise NotFoundError("not_found")
		if proposal.status.is_terminal:
			return proposal

		club = await self.clubs.get_club(proposal.club_id, conn=conn)
		active_policy = policy_override or club.approval_policy
		tally = await self.repo.count_votes(proposal_id, conn=conn)
		eligible = policy.eligible_voter_count(await self.clubs.repo.count_members(proposal.club_id, conn=conn))
		target = policy.next_status(active_policy, tally, eligible)
		if target is ProposalStatus.PENDING:
			return proposal

		status = policy.transition(proposal.status, target)
		if status is ProposalStatus.APPROVED:
			result = await self.applicator.apply(conn, proposal)
			if not result.ok:
				obs_metrics.inc_side_effect_failure(proposal.entity.value, result.error or "unknown")
				logger.warning(
					"side_effect_failed",
					extra={
						"event": "side_effect_failed",
						"proposal_id": str(proposal_id),
						"entity": proposal.entity.value,
						"reason": result.error,
					},
				)
				raise InvalidExecutionPayload(result.error or "unknown")

		resolved = await self.repo.mark_resolved(proposal_id, status, conn=conn)
		if status is ProposalStatus.APPROVED:
			await self.repo.insert_commit_log(proposal_id, actor_user_id, conn=conn)
		obs_metrics.inc_proposal_resolved(proposal.entity.value, status.value)
		logger.info(
			"proposal_resolved",
			extra={
				"event": "proposal_resolved",
				"proposal_id": str(proposal_id),
				"status": status.value,
				"approvals": tally.approvals,
				"rejections": tally.rejections,
				"eligible_voters": eligible,
				"mode": active_policy.mode.value,
			},
		)
		return resolved

	async def get_proposal_with_votes(self, proposal_id: UUID, actor_user_id: UUID) -> ProposalWithVotes:
		proposal = await self.repo.get_proposal(proposal_id)
		if proposal is None:
			raise NotFoundError("not_found")
		await self.clubs.require_member(proposal.club_id, actor_user_id)
		votes = await self.repo.list_votes(proposal_id)
		return ProposalWithVotes(proposal=proposal, votes=votes)

	async def list_proposals(
		self,
		actor_user_id: UUID,
		*,
		club_id: Optional[UUID] = None,
		status: Optional[ProposalStatus | str] = None,
	) -> list[ProposedChange]:
		"""Newest first, for one club or for every club the actor belongs to."""
		if status is not None:
			try:
				status = ProposalStatus(status)
			except ValueError as exc:
				raise ValidationError("invalid_status") from exc
		if club_id is not None:
			await self.clubs.require_member(club_id, actor_user_id)
			club_ids = [club_id]
		else:
			club_ids = await self.repo.list_user_club_ids(actor_user_id)
		return await self.repo.list_proposals(club_ids, status=status)

	async def list_history(
		self, club_id: UUID, actor_user_id: UUID, *, limit: Optional[int] = None
	) -> list[HistoryItem]:
		await self.clubs.require_member(club_id, actor_user_id)
		limit = settings.history_default_limit if limit is None else int(limit)
		limit = max(1, min(limit, settings.history_max_limit))
		return await self.repo.list_history(club_id, limit=limit)
