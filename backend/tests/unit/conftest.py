"""In-memory stand-ins for the repositories and the asyncpg pool.

Every ``conn.transaction()`` snapshots the store on entry and restores it when
the block raises, so rollback behaviour is observable in unit tests.
"""

from __future__ import annotations

import copy
import dataclasses
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional
from uuid import UUID, uuid4

import pytest

from filmclub.domain.clubs.models import ApprovalMode, ApprovalPolicy, Club, ClubMember
from filmclub.domain.clubs.service import ClubService
from filmclub.domain.exceptions import ConflictError
from filmclub.domain.ledger.effects import LedgerEffects
from filmclub.domain.ledger.models import PaymentReminder
from filmclub.domain.ledger.netting import Movement
from filmclub.domain.ledger.repo import settlement_note
from filmclub.domain.ledger.service import LedgerService
from filmclub.domain.meetings.models import Meeting, MeetingStatus
from filmclub.domain.meetings.service import MeetingService
from filmclub.domain.proposals.effects import SideEffectApplicator
from filmclub.domain.proposals.models import (
	ChangeVote,
	HistoryItem,
	HistoryVote,
	ProposalStatus,
	ProposedChange,
	VoteTally,
)
from filmclub.domain.proposals.service import ProposalService
from filmclub.infra import postgres

_EPOCH = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeStore:
	_STATE = (
		"users",
		"clubs",
		"memberships",
		"proposals",
		"votes",
		"commit_logs",
		"food_orders",
		"food_order_participants",
		"ledger",
		"meetings",
		"reminders",
	)

	def __init__(self) -> None:
		self.users: dict[UUID, str] = {}
		self.clubs: dict[UUID, Club] = {}
		self.memberships: dict[tuple[UUID, UUID], ClubMember] = {}
		self.proposals: dict[UUID, ProposedChange] = {}
		self.votes: list[ChangeVote] = []
		self.commit_logs: dict[UUID, dict] = {}
		self.food_orders: dict[UUID, dict] = {}
		self.food_order_participants: list[tuple[UUID, UUID, Decimal]] = []
		self.ledger: list[dict] = []
		self.meetings: dict[UUID, Meeting] = {}
		self.reminders: list[PaymentReminder] = []
		self._tick = 0
		self.rollbacks = 0

	def now(self) -> datetime:
		self._tick += 1
		return _EPOCH + timedelta(seconds=self._tick)

	def snapshot(self) -> dict:
		return copy.deepcopy({name: getattr(self, name) for name in self._STATE})

	def restore(self, state: dict) -> None:
		for name, value in state.items():
			setattr(self, name, value)
		self.rollbacks += 1

	def add_user(self, name: str) -> UUID:
		user_id = uuid4()
		self.users[user_id] = name
		return user_id

	def add_member(self, club_id: UUID, name: str, *, role: str = "member") -> UUID:
		user_id = self.add_user(name)
		self.memberships[(club_id, user_id)] = ClubMember(
			club_id=club_id, user_id=user_id, role=role, display_name=name, joined_at=self.now()
		)
		return user_id

	def remove_member(self, club_id: UUID, user_id: UUID) -> None:
		self.memberships.pop((club_id, user_id), None)

	def add_club(
		self,
		*,
		members: int = 3,
		mode: str = "unanimous",
		required: Optional[int] = None,
		timezone_name: str = "Europe/Berlin",
	) -> tuple[UUID, list[UUID]]:
		club_id = uuid4()
		names = [f"member{index}" for index in range(members)]
		self.clubs[club_id] = Club(
			id=club_id,
			name="Friday Films",
			approval_policy=ApprovalPolicy(mode=ApprovalMode(mode), required_approvals=required),
			timezone=timezone_name,
			created_by_user_id=uuid4(),
			created_at=self.now(),
		)
		user_ids = [
			self.add_member(club_id, name, role="owner" if index == 0 else "member")
			for index, name in enumerate(names)
		]
		self.clubs[club_id] = dataclasses.replace(self.clubs[club_id], created_by_user_id=user_ids[0])
		return club_id, user_ids

	def add_meeting(self, club_id: UUID, *, scheduled: date, status: MeetingStatus = MeetingStatus.SCHEDULED) -> Meeting:
		now = self.now()
		meeting = Meeting(
			id=uuid4(),
			club_id=club_id,
			title="Movie night",
			scheduled_date=scheduled,
			status=status,
			started_at=now if status is not MeetingStatus.SCHEDULED else None,
			completed_at=now if status is MeetingStatus.COMPLETED else None,
			created_by_user_id=uuid4(),
			created_at=now,
			updated_at=now,
		)
		self.meetings[meeting.id] = meeting
		return meeting

	def add_ledger_entry(self, club_id: UUID, debtor: UUID, creditor: UUID, amount: str, currency: str = "EUR") -> None:
		self.ledger.append(
			{
				"id": uuid4(),
				"club_id": club_id,
				"food_order_id": None,
				"from_user_id": debtor,
				"to_user_id": creditor,
				"amount": Decimal(amount),
				"currency": currency,
				"note": None,
				"created_at": self.now(),
			}
		)


class _FakeTransaction:
	def __init__(self, store: FakeStore) -> None:
		self._store = store
		self._saved: Optional[dict] = None

	async def __aenter__(self):
		self._saved = self._store.snapshot()
		return None

	async def __aexit__(self, exc_type, exc, tb):
		if exc_type is not None and self._saved is not None:
			self._store.restore(self._saved)
		return False


class _FakeConnection:
	def __init__(self, store: FakeStore) -> None:
		self._store = store

	def transaction(self):
		return _FakeTransaction(self._store)


class _FakeAcquire:
	def __init__(self, conn):
		self._conn = conn

	async def __aenter__(self):
		return self._conn

	async def __aexit__(self, exc_type, exc, tb):
		return False


class _FakePool:
	def __init__(self, store: FakeStore) -> None:
		self._conn = _FakeConnection(store)

	def acquire(self):
		return _FakeAcquire(self._conn)


class FakeClubRepository:
	def __init__(self, store: FakeStore) -> None:
		self.store = store

	async def get_club(self, club_id, *, conn=None):
		return self.store.clubs.get(club_id)

	async def get_membership(self, club_id, user_id, *, conn=None):
		return self.store.memberships.get((club_id, user_id))

	async def member_ids(self, club_id, user_ids, *, conn):
		return {user_id for user_id in user_ids if (club_id, user_id) in self.store.memberships}

	async def count_members(self, club_id, *, conn=None):
		return sum(1 for (cid, _) in self.store.memberships if cid == club_id)

	async def list_members(self, club_id, *, conn=None):
		return [member for (cid, _), member in self.store.memberships.items() if cid == club_id]

	async def update_approval_policy(self, club_id, policy, *, conn):
		club = self.store.clubs.get(club_id)
		if club is None:
			return None
		updated = dataclasses.replace(club, approval_policy=policy)
		self.store.clubs[club_id] = updated
		return updated

	async def lock_club(self, club_id, *, conn):
		return club_id in self.store.clubs


class FakeProposalRepository:
	def __init__(self, store: FakeStore) -> None:
		self.store = store
		# Simulates losing the race between the existence check and the insert.
		self.hide_existing_votes = False

	async def create_proposal(self, *, conn, club_id, entity, payload, proposer_user_id):
		proposal = ProposedChange(
			id=uuid4(),
			club_id=club_id,
			entity=entity,
			payload=copy.deepcopy(payload),
			proposer_user_id=proposer_user_id,
			status=ProposalStatus.PENDING,
			created_at=self.store.now(),
		)
		self.store.proposals[proposal.id] = proposal
		return proposal

	async def get_proposal(self, proposal_id, *, conn=None, for_update=False):
		proposal = self.store.proposals.get(proposal_id)
		return proposal.model_copy() if proposal else None

	async def list_proposals(self, club_ids, *, status=None):
		items = [
			p
			for p in self.store.proposals.values()
			if p.club_id in club_ids and (status is None or p.status is status)
		]
		return sorted(items, key=lambda p: p.created_at, reverse=True)

	async def list_user_club_ids(self, user_id):
		return [cid for (cid, uid) in self.store.memberships if uid == user_id]

	async def list_votes(self, proposal_id, *, conn=None):
		votes = [v for v in self.store.votes if v.proposed_change_id == proposal_id]
		return sorted(votes, key=lambda v: v.created_at)

	async def has_vote(self, proposal_id, voter_user_id, *, conn):
		if self.hide_existing_votes:
			return False
		return any(
			v.proposed_change_id == proposal_id and v.voter_user_id == voter_user_id for v in self.store.votes
		)

	async def insert_vote(self, *, conn, proposal_id, voter_user_id, decision):
		for vote in self.store.votes:
			if vote.proposed_change_id == proposal_id and vote.voter_user_id == voter_user_id:
				raise ConflictError("already_voted")
		vote = ChangeVote(
			id=uuid4(),
			proposed_change_id=proposal_id,
			voter_user_id=voter_user_id,
			decision=decision,
			created_at=self.store.now(),
		)
		self.store.votes.append(vote)
		return vote

	async def count_votes(self, proposal_id, *, conn):
		votes = [v for v in self.store.votes if v.proposed_change_id == proposal_id]
		return VoteTally(
			approvals=sum(1 for v in votes if v.decision.value == "approve"),
			rejections=sum(1 for v in votes if v.decision.value == "reject"),
		)

	async def mark_resolved(self, proposal_id, status, *, conn):
		proposal = self.store.proposals[proposal_id]
		if proposal.status is not ProposalStatus.PENDING:
			raise ConflictError("already_resolved")
		updated = proposal.model_copy(update={"status": status, "resolved_at": self.store.now()})
		self.store.proposals[proposal_id] = updated
		return updated

	async def insert_commit_log(self, proposal_id, committed_by_user_id, *, conn):
		self.store.commit_logs.setdefault(
			proposal_id,
			{"committed_by_user_id": committed_by_user_id, "committed_at": self.store.now()},
		)

	async def list_history(self, club_id, *, limit):
		proposals = [p for p in self.store.proposals.values() if p.club_id == club_id]
		proposals.sort(key=lambda p: p.created_at, reverse=True)
		items = []
		for proposal in proposals[:limit]:
			log = self.store.commit_logs.get(proposal.id)
			votes = [
				HistoryVote(
					id=v.id,
					voter_user_id=v.voter_user_id,
					voter_display_name=self.store.users[v.voter_user_id],
					decision=v.decision,
					created_at=v.created_at,
				)
				for v in await self.list_votes(proposal.id)
			]
			items.append(
				HistoryItem(
					proposal_id=proposal.id,
					club_id=proposal.club_id,
					entity=proposal.entity,
					payload=proposal.payload,
					proposer_user_id=proposal.proposer_user_id,
					proposer_display_name=self.store.users[proposal.proposer_user_id],
					status=proposal.status,
					created_at=proposal.created_at,
					resolved_at=proposal.resolved_at,
					committed_at=log["committed_at"] if log else None,
					committed_by_user_id=log["committed_by_user_id"] if log else None,
					committed_by_display_name=self.store.users[log["committed_by_user_id"]] if log else None,
					votes=votes,
				)
			)
		return items


class FakeLedgerRepository:
	def __init__(self, store: FakeStore) -> None:
		self.store = store

	async def list_movements(self, club_id, *, currency=None, conn=None):
		totals: dict[tuple, Decimal] = {}
		for entry in self.store.ledger:
			if entry["club_id"] != club_id or (currency and entry["currency"] != currency.upper()):
				continue
			key = (entry["from_user_id"], entry["to_user_id"], entry["currency"])
			totals[key] = totals.get(key, Decimal(0)) + entry["amount"]
		return [
			Movement(from_user_id=f, to_user_id=t, currency=c, amount=amount)
			for (f, t, c), amount in totals.items()
			if amount > 0
		]

	async def find_food_order_for_proposal(self, proposal_id, *, conn):
		for order_id, order in self.store.food_orders.items():
			if order["proposal_id"] == proposal_id:
				return order_id
		return None

	async def insert_food_order(
		self, *, conn, proposal_id, club_id, vendor, total_cost, currency, payer_user_id, created_by_user_id, shares
	):
		order_id = uuid4()
		self.store.food_orders[order_id] = {
			"proposal_id": proposal_id,
			"club_id": club_id,
			"vendor": vendor,
			"total_cost": total_cost,
			"currency": currency,
			"payer_user_id": payer_user_id,
			"created_by_user_id": created_by_user_id,
		}
		for user_id, amount in shares:
			self.store.food_order_participants.append((order_id, user_id, amount))
		return order_id

	async def insert_ledger_entry(
		self, *, conn, club_id, from_user_id, to_user_id, amount, currency, note, food_order_id=None
	):
		entry_id = uuid4()
		self.store.ledger.append(
			{
				"id": entry_id,
				"club_id": club_id,
				"food_order_id": food_order_id,
				"from_user_id": from_user_id,
				"to_user_id": to_user_id,
				"amount": amount,
				"currency": currency,
				"note": note,
				"created_at": self.store.now(),
			}
		)
		return entry_id

	async def find_settlement_entry(self, proposal_id, *, conn):
		prefix = settlement_note(proposal_id)
		for entry in self.store.ledger:
			if (entry["note"] or "").startswith(prefix):
				return entry["id"]
		return None

	async def insert_payment_reminder(
		self, *, club_id, from_user_id, to_user_id, currency, outstanding_amount, reminder_amount, note, conn=None
	):
		reminder = PaymentReminder(
			id=uuid4(),
			club_id=club_id,
			from_user_id=from_user_id,
			from_display_name=self.store.users[from_user_id],
			to_user_id=to_user_id,
			to_display_name=self.store.users[to_user_id],
			currency=currency,
			outstanding_amount=outstanding_amount,
			reminder_amount=reminder_amount,
			note=note,
			created_at=self.store.now(),
		)
		self.store.reminders.append(reminder)
		return reminder

	async def list_payment_reminders(self, club_id, *, limit, offset, to_user_id=None):
		items = [
			r
			for r in self.store.reminders
			if r.club_id == club_id and (to_user_id is None or r.to_user_id == to_user_id)
		]
		items.sort(key=lambda r: r.created_at, reverse=True)
		return items[offset : offset + limit], len(items)


class FakeMeetingRepository:
	def __init__(self, store: FakeStore) -> None:
		self.store = store
		self.by_proposal: dict[UUID, UUID] = {}

	async def get_meeting(self, meeting_id, *, conn, for_update=False):
		return self.store.meetings.get(meeting_id)

	async def get_by_proposal(self, proposal_id, *, conn):
		meeting_id = self.by_proposal.get(proposal_id)
		return self.store.meetings.get(meeting_id) if meeting_id else None

	async def get_active(self, club_id, *, conn):
		for meeting in self.store.meetings.values():
			if meeting.club_id == club_id and meeting.status is MeetingStatus.ACTIVE:
				return meeting
		return None

	async def get_due_scheduled(self, club_id, today, *, conn):
		due = [
			m
			for m in self.store.meetings.values()
			if m.club_id == club_id and m.status is MeetingStatus.SCHEDULED and m.scheduled_date <= today
		]
		due.sort(key=lambda m: (m.scheduled_date, m.created_at))
		return due[0] if due else None

	async def list_for_club(self, club_id, *, conn):
		order = {MeetingStatus.ACTIVE: 0, MeetingStatus.SCHEDULED: 1, MeetingStatus.COMPLETED: 2}
		meetings = [m for m in self.store.meetings.values() if m.club_id == club_id]
		return sorted(meetings, key=lambda m: (order[m.status], m.scheduled_date, m.created_at))

	async def insert_scheduled(self, *, conn, club_id, proposal_id, title, scheduled_date, created_by_user_id):
		now = self.store.now()
		meeting = Meeting(
			id=uuid4(),
			club_id=club_id,
			title=title,
			scheduled_date=scheduled_date,
			status=MeetingStatus.SCHEDULED,
			created_by_user_id=created_by_user_id,
			created_at=now,
			updated_at=now,
		)
		self.store.meetings[meeting.id] = meeting
		if proposal_id is not None:
			self.by_proposal[proposal_id] = meeting.id
		return meeting

	async def update_details(self, meeting_id, *, conn, title, scheduled_date):
		meeting = self.store.meetings[meeting_id]
		changes = {"updated_at": self.store.now()}
		if title is not None:
			changes["title"] = title
		if scheduled_date is not None:
			changes["scheduled_date"] = scheduled_date
		updated = meeting.model_copy(update=changes)
		self.store.meetings[meeting_id] = updated
		return updated

	async def set_status(self, meeting_id, status, *, conn):
		meeting = self.store.meetings[meeting_id]
		now = self.store.now()
		changes = {"status": status, "updated_at": now}
		if status is MeetingStatus.ACTIVE and meeting.started_at is None:
			changes["started_at"] = now
		if status is MeetingStatus.COMPLETED and meeting.completed_at is None:
			changes["completed_at"] = now
		updated = meeting.model_copy(update=changes)
		self.store.meetings[meeting_id] = updated
		return updated


@dataclasses.dataclass
class Engine:
	store: FakeStore
	clubs: ClubService
	meetings: MeetingService
	ledger: LedgerService
	proposals: ProposalService
	proposal_repo: FakeProposalRepository


@pytest.fixture
def store():
	return FakeStore()


@pytest.fixture
def engine(store):
	club_repo = FakeClubRepository(store)
	ledger_repo = FakeLedgerRepository(store)
	proposal_repo = FakeProposalRepository(store)
	clubs = ClubService(club_repo)
	meetings = MeetingService(FakeMeetingRepository(store), clubs)
	applicator = SideEffectApplicator(LedgerEffects(ledger_repo, club_repo), meetings)
	postgres.set_pool(_FakePool(store))
	try:
		yield Engine(
			store=store,
			clubs=clubs,
			meetings=meetings,
			ledger=LedgerService(ledger_repo, clubs),
			proposals=ProposalService(proposal_repo, clubs, meetings, applicator),
			proposal_repo=proposal_repo,
		)
	finally:
		postgres.set_pool(None)
