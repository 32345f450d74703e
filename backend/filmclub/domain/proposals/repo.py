"""SQL for proposed changes, their votes and the commit log."""

from __future__ import annotations

import json
from collections import defaultdict
from typing import Any, Iterable, Optional, Sequence
from uuid import UUID, uuid4

import asyncpg

from filmclub.domain.exceptions import ConflictError
from filmclub.domain.proposals.models import (
	ChangeVote,
	HistoryItem,
	HistoryVote,
	ProposalStatus,
	ProposedChange,
	RecordEntity,
	VoteDecision,
	VoteTally,
)
from filmclub.infra.postgres import get_pool

_PROPOSAL_COLUMNS = "id, club_id, entity, payload, proposer_user_id, status, created_at, resolved_at"


def _decode_payload(value: Any) -> dict[str, Any]:
	if value is None:
		return {}
	if isinstance(value, str):
		return json.loads(value)
	return dict(value)


def _map_proposal(row) -> ProposedChange:
	data = dict(row)
	data["payload"] = _decode_payload(data.get("payload"))
	return ProposedChange.model_validate(data)


class ProposalRepository:
	async def create_proposal(
		self,
		*,
		conn: asyncpg.Connection,
		club_id: UUID,
		entity: RecordEntity,
		payload: dict[str, Any],
		proposer_user_id: UUID,
	) -> ProposedChange:
		row = await conn.fetchrow(
			f"""
			INSERT INTO proposed_changes (id, club_id, entity, payload, proposer_user_id, status)
			VALUES ($1, $2, $3, $4::jsonb, $5, 'pending')
			RETURNING {_PROPOSAL_COLUMNS}
			""",
			uuid4(),
			club_id,
			entity.value,
			payload,
			proposer_user_id,
		)
		return _map_proposal(row)

	async def get_proposal(
		self,
		proposal_id: UUID,
		*,
		conn: Optional[asyncpg.Connection] = None,
		for_update: bool = False,
	) -> Optional[ProposedChange]:
		query = f"SELECT {_PROPOSAL_COLUMNS} FROM proposed_changes WHERE id = $1"
		if for_update:
			query += " FOR UPDATE"
		if conn is not None:
			row = await conn.fetchrow(query, proposal_id)
		else:
			pool = await get_pool()
			async with pool.acquire() as pooled:
				row = await pooled.fetchrow(query, proposal_id)
		return _map_proposal(row) if row else None

	async def list_proposals(
		self,
		club_ids: Sequence[UUID],
		*,
		status: Optional[ProposalStatus] = None,
	) -> list[ProposedChange]:
		if not club_ids:
			return []
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				f"""
				SELECT {_PROPOSAL_COLUMNS}
				FROM proposed_changes
				WHERE club_id = ANY($1::uuid[]) AND ($2::text IS NULL OR status = $2)
				ORDER BY created_at DESC
				""",
				list(club_ids),
				status.value if status else None,
			)
		return [_map_proposal(row) for row in rows]

	async def list_user_club_ids(self, user_id: UUID) -> list[UUID]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch("SELECT club_id FROM club_memberships WHERE user_id = $1", user_id)
		return [row["club_id"] for row in rows]

	async def list_votes(self, proposal_id: UUID, *, conn: Optional[asyncpg.Connection] = None) -> list[ChangeVote]:
		query = """
			SELECT id, proposed_change_id, voter_user_id, decision, created_at
			FROM change_votes
			WHERE proposed_change_id = $1
			ORDER BY created_at ASC
		"""
		if conn is not None:
			rows = await conn.fetch(query, proposal_id)
		else:
			pool = await get_pool()
			async with pool.acquire() as pooled:
				rows = await pooled.fetch(query, proposal_id)
		return [ChangeVote.model_validate(dict(row)) for row in rows]

	async def has_vote(self, proposal_id: UUID, voter_user_id: UUID, *, conn: asyncpg.Connection) -> bool:
		found = await conn.fetchval(
			"SELECT 1 FROM change_votes WHERE proposed_change_id = $1 AND voter_user_id = $2",
			proposal_id,
			voter_user_id,
		)
		return bool(found)

	async def insert_vote(
		self,
		*,
		conn: asyncpg.Connection,
		proposal_id: UUID,
		voter_user_id: UUID,
		decision: VoteDecision,
	) -> ChangeVote:
		try:
			# Savepoint so a lost race does not poison the surrounding transaction.
			async with conn.transaction():
				row = await conn.fetchrow(
					"""
					INSERT INTO change_votes (id, proposed_change_id, voter_user_id, decision)
					VALUES ($1, $2, $3, $4)
					RETURNING id, proposed_change_id, voter_user_id, decision, created_at
					""",
					uuid4(),
					proposal_id,
					voter_user_id,
					decision.value,
				)
		except asyncpg.UniqueViolationError as exc:
			raise ConflictError("already_voted") from exc
		return ChangeVote.model_validate(dict(row))

	async def count_votes(self, proposal_id: UUID, *, conn: asyncpg.Connection) -> VoteTally:
		row = await conn.fetchrow(
			"""
			SELECT
				COUNT(*) FILTER (WHERE decision = 'approve') AS approvals,
				COUNT(*) FILTER (WHERE decision = 'reject') AS rejections
			FROM change_votes
			WHERE proposed_change_id = $1
			""",
			proposal_id,
		)
		return VoteTally(approvals=int(row["approvals"] or 0), rejections=int(row["rejections"] or 0))

	async def mark_resolved(
		self, proposal_id: UUID, status: ProposalStatus, *, conn: asyncpg.Connection
	) -> ProposedChange:
		row = await conn.fetchrow(
			f"""
			UPDATE proposed_changes
			SET status = $2, resolved_at = NOW()
			WHERE id = $1 AND status = 'pending'
			RETURNING {_PROPOSAL_COLUMNS}
			""",
			proposal_id,
			status.value,
		)
		if row is None:
			raise ConflictError("already_resolved")
		return _map_proposal(row)

	async def insert_commit_log(
		self, proposal_id: UUID, committed_by_user_id: UUID, *, conn: asyncpg.Connection
	) -> None:
		await conn.execute(
			"""
			INSERT INTO committed_change_logs (id, proposed_change_id, committed_by_user_id)
			VALUES ($1, $2, $3)
			ON CONFLICT (proposed_change_id) DO NOTHING
			""",
			uuid4(),
			proposal_id,
			committed_by_user_id,
		)

	async def list_history(self, club_id: UUID, *, limit: int) -> list[HistoryItem]:
		pool = await get_pool()
		async with pool.acquire() as conn:
			rows = await conn.fetch(
				"""
				SELECT
					p.id AS proposal_id, p.club_id, p.entity, p.payload, p.proposer_user_id,
					proposer.display_name AS proposer_display_name,
					p.status, p.created_at, p.resolved_at,
					l.committed_at, l.committed_by_user_id,
					committer.display_name AS committed_by_display_name
				FROM proposed_changes p
				INNER JOIN users proposer ON proposer.id = p.proposer_user_id
				LEFT JOIN committed_change_logs l ON l.proposed_change_id = p.id
				LEFT JOIN users committer ON committer.id = l.committed_by_user_id
				WHERE p.club_id = $1
				ORDER BY p.created_at DESC
				LIMIT $2
				""",
				club_id,
				limit,
			)
			proposal_ids = [row["proposal_id"] for row in rows]
			vote_rows: Iterable = []
			if proposal_ids:
				vote_rows = await conn.fetch(
					"""
					SELECT v.id, v.proposed_change_id, v.voter_user_id, u.display_name AS voter_display_name,
						v.decision, v.created_at
					FROM change_votes v
					INNER JOIN users u ON u.id = v.voter_user_id
					WHERE v.proposed_change_id = ANY($1::uuid[])
					ORDER BY v.created_at ASC
					""",
					proposal_ids,
				)

		votes_by_proposal: dict[UUID, list[HistoryVote]] = defaultdict(list)
		for vote in vote_rows:
			votes_by_proposal[vote["proposed_change_id"]].append(
				HistoryVote(
					id=vote["id"],
					voter_user_id=vote["voter_user_id"],
					voter_display_name=vote["voter_display_name"],
					decision=vote["decision"],
					created_at=vote["created_at"],
				)
			)
		items: list[HistoryItem] = []
		for row in rows:
			data = dict(row)
			data["payload"] = _decode_payload(data.get("payload"))
			data["votes"] = votes_by_proposal.get(row["proposal_id"], [])
			items.append(HistoryItem.model_validate(data))
		return items
