"""Dispatch from an approved proposal to the side effect its entity kind implies."""

from __future__ import annotations

from typing import Awaitable, Callable, Optional

import asyncpg

from filmclub.domain.exceptions import ValidationError
from filmclub.domain.ledger.effects import LedgerEffects
from filmclub.domain.meetings.service import MeetingService
from filmclub.domain.proposals import payloads
from filmclub.domain.proposals.models import ProposedChange, RecordEntity
from filmclub.domain.proposals.outcomes import EffectResult

Handler = Callable[[asyncpg.Connection, ProposedChange, payloads.ProposalPayload], Awaitable[EffectResult]]


class SideEffectApplicator:
	"""Runs inside the evaluating transaction; every handler is idempotent per proposal."""

	def __init__(
		self,
		ledger: Optional[LedgerEffects] = None,
		meetings: Optional[MeetingService] = None,
	) -> None:
		self.ledger = ledger or LedgerEffects()
		self.meetings = meetings or MeetingService()
		self._handlers: dict[RecordEntity, Handler] = {
			RecordEntity.MOVIE_WATCH: self._record_only,
			RecordEntity.ATTENDANCE: self._record_only,
			RecordEntity.FOOD_ORDER: self._food_order,
			RecordEntity.DEBT_SETTLEMENT: self._debt_settlement,
			RecordEntity.MEETING_SCHEDULE: self._meeting_schedule,
			RecordEntity.MEETING_UPDATE: self._meeting_update,
			RecordEntity.MEETING_START: self._meeting_start,
			RecordEntity.MEETING_COMPLETE: self._meeting_complete,
		}
		missing = set(RecordEntity) - set(self._handlers)
		if missing:
			raise RuntimeError(f"no side-effect handler for {sorted(entity.value for entity in missing)}")

	async def apply(self, conn: asyncpg.Connection, proposal: ProposedChange) -> EffectResult:
		try:
			payload = payloads.parse_payload(proposal.entity, proposal.payload)
		except ValidationError:
			return EffectResult.failed("invalid_payload")
		return await self._handlers[proposal.entity](conn, proposal, payload)

	async def _record_only(self, conn, proposal, payload) -> EffectResult:
		# The approved proposal row itself is the record.
		return EffectResult.applied(proposal.id)

	async def _food_order(self, conn, proposal, payload) -> EffectResult:
		return await self.ledger.apply_food_order(
			conn,
			proposal_id=proposal.id,
			club_id=proposal.club_id,
			proposer_user_id=proposal.proposer_user_id,
			payload=payload,
		)

	async def _debt_settlement(self, conn, proposal, payload) -> EffectResult:
		return await self.ledger.apply_debt_settlement(
			conn, proposal_id=proposal.id, club_id=proposal.club_id, payload=payload
		)

	async def _meeting_schedule(self, conn, proposal, payload) -> EffectResult:
		return await self.meetings.apply_schedule(
			conn,
			proposal_id=proposal.id,
			club_id=proposal.club_id,
			proposer_user_id=proposal.proposer_user_id,
			payload=payload,
		)

	async def _meeting_update(self, conn, proposal, payload) -> EffectResult:
		return await self.meetings.apply_update(conn, club_id=proposal.club_id, payload=payload)

	async def _meeting_start(self, conn, proposal, payload) -> EffectResult:
		return await self.meetings.apply_start(conn, club_id=proposal.club_id, payload=payload)

	async def _meeting_complete(self, conn, proposal, payload) -> EffectResult:
		return await self.meetings.apply_complete(conn, club_id=proposal.club_id, payload=payload)
