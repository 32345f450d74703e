"""Ledger side effects of approved food order and debt settlement proposals.

Both handlers run inside the caller's transaction and are idempotent per
proposal: a food order is keyed by ``food_orders.proposed_change_id`` and a
settlement by the proposal id embedded in its ledger note.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import asyncpg

from filmclub.domain.clubs.repo import ClubRepository
from filmclub.domain.ledger import netting
from filmclub.domain.ledger.repo import FOOD_ORDER_NOTE_PREFIX, LedgerRepository, settlement_note
from filmclub.domain.proposals.outcomes import EffectResult
from filmclub.domain.proposals.payloads import DebtSettlementPayload, FoodOrderPayload
from filmclub.obs import metrics as obs_metrics


def food_order_shares(payload: FoodOrderPayload) -> list[tuple[UUID, int]]:
	"""Per-participant shares in cents, in participant order, summing to the total.

	Explicit shares are taken as given (duplicates for the same user add up);
	otherwise the total is split evenly and leftover cents go to the first
	participants.
	"""
	if payload.participant_shares:
		cents: dict[UUID, int] = {}
		for share in payload.participant_shares:
			cents[share.user_id] = cents.get(share.user_id, 0) + netting.to_cents(share.amount)
		return list(cents.items())
	participants = payload.participant_ids()
	split = netting.split_cents(netting.to_cents(payload.total_cost), len(participants))
	return list(zip(participants, split))


class LedgerEffects:
	def __init__(
		self,
		repo: Optional[LedgerRepository] = None,
		clubs: Optional[ClubRepository] = None,
	) -> None:
		self.repo = repo or LedgerRepository()
		self.clubs = clubs or ClubRepository()

	async def apply_food_order(
		self,
		conn: asyncpg.Connection,
		*,
		proposal_id: UUID,
		club_id: UUID,
		proposer_user_id: UUID,
		payload: FoodOrderPayload,
	) -> EffectResult:
		existing = await self.repo.find_food_order_for_proposal(proposal_id, conn=conn)
		if existing is not None:
			return EffectResult.applied(existing)

		participants = payload.participant_ids()
		members = await self.clubs.member_ids(club_id, [payload.payer_user_id, *participants], conn=conn)
		if payload.payer_user_id not in members:
			return EffectResult.failed("payer_not_member")
		if any(user_id not in members for user_id in participants):
			return EffectResult.failed("participant_not_member")

		shares = food_order_shares(payload)
		food_order_id = await self.repo.insert_food_order(
			conn=conn,
			proposal_id=proposal_id,
			club_id=club_id,
			vendor=payload.vendor,
			total_cost=netting.from_cents(netting.to_cents(payload.total_cost)),
			currency=payload.currency,
			payer_user_id=payload.payer_user_id,
			created_by_user_id=proposer_user_id,
			shares=[(user_id, netting.from_cents(cents)) for user_id, cents in shares],
		)

		written = 0
		for debtor_id, cents in shares:
			if debtor_id == payload.payer_user_id or cents == 0:
				continue
			await self.repo.insert_ledger_entry(
				conn=conn,
				club_id=club_id,
				food_order_id=food_order_id,
				from_user_id=debtor_id,
				to_user_id=payload.payer_user_id,
				amount=netting.from_cents(cents),
				currency=payload.currency,
				note=f"{FOOD_ORDER_NOTE_PREFIX}{payload.vendor}",
			)
			written += 1
		obs_metrics.inc_ledger_entries("food_order", written)
		return EffectResult.applied(food_order_id)

	async def apply_debt_settlement(
		self,
		conn: asyncpg.Connection,
		*,
		proposal_id: UUID,
		club_id: UUID,
		payload: DebtSettlementPayload,
	) -> EffectResult:
		existing = await self.repo.find_settlement_entry(proposal_id, conn=conn)
		if existing is not None:
			return EffectResult.applied(existing)
		cents = netting.to_cents(payload.amount)
		if payload.from_user_id == payload.to_user_id or cents <= 0:
			return EffectResult.failed("invalid_payload")

		members = await self.clubs.member_ids(club_id, [payload.from_user_id, payload.to_user_id], conn=conn)
		if payload.from_user_id not in members or payload.to_user_id not in members:
			return EffectResult.failed("participant_not_member")

		# A payment from A to B offsets what A owes B, so it is booked as B owing A.
		entry_id = await self.repo.insert_ledger_entry(
			conn=conn,
			club_id=club_id,
			from_user_id=payload.to_user_id,
			to_user_id=payload.from_user_id,
			amount=netting.from_cents(cents),
			currency=payload.currency,
			note=settlement_note(proposal_id, payload.note),
		)
		obs_metrics.inc_ledger_entries("debt_settlement")
		return EffectResult.applied(entry_id)


__all__ = ["LedgerEffects", "food_order_shares"]
