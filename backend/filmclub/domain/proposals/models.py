"""Domain models for proposed changes, votes and the commit log."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class RecordEntity(str, Enum):
	MOVIE_WATCH = "movie_watch"
	FOOD_ORDER = "food_order"
	ATTENDANCE = "attendance"
	DEBT_SETTLEMENT = "debt_settlement"
	MEETING_SCHEDULE = "meeting_schedule"
	MEETING_UPDATE = "meeting_update"
	MEETING_START = "meeting_start"
	MEETING_COMPLETE = "meeting_complete"

	@property
	def is_record(self) -> bool:
		"""Record entities document what happened at a meeting."""
		return self in _RECORD_ENTITIES


_RECORD_ENTITIES = frozenset(
	{
		RecordEntity.MOVIE_WATCH,
		RecordEntity.FOOD_ORDER,
		RecordEntity.ATTENDANCE,
		RecordEntity.DEBT_SETTLEMENT,
	}
)


class ProposalStatus(str, Enum):
	PENDING = "pending"
	APPROVED = "approved"
	REJECTED = "rejected"

	@property
	def is_terminal(self) -> bool:
		return self is not ProposalStatus.PENDING


class VoteDecision(str, Enum):
	APPROVE = "approve"
	REJECT = "reject"


class ProposedChange(BaseModel):
	id: UUID
	club_id: UUID
	entity: RecordEntity
	payload: dict[str, Any]
	proposer_user_id: UUID
	status: ProposalStatus
	created_at: datetime
	resolved_at: Optional[datetime] = None

	model_config = ConfigDict(from_attributes=True)


class ChangeVote(BaseModel):
	id: UUID
	proposed_change_id: UUID
	voter_user_id: UUID
	decision: VoteDecision
	created_at: datetime

	model_config = ConfigDict(from_attributes=True)


class ProposalWithVotes(BaseModel):
	proposal: ProposedChange
	votes: list[ChangeVote] = Field(default_factory=list)


class VoteTally(BaseModel):
	approvals: int = 0
	rejections: int = 0


class HistoryVote(BaseModel):
	id: UUID
	voter_user_id: UUID
	voter_display_name: str
	decision: VoteDecision
	created_at: datetime


class HistoryItem(BaseModel):
	proposal_id: UUID
	club_id: UUID
	entity: RecordEntity
	payload: dict[str, Any]
	proposer_user_id: UUID
	proposer_display_name: str
	status: ProposalStatus
	created_at: datetime
	resolved_at: Optional[datetime] = None
	committed_at: Optional[datetime] = None
	committed_by_user_id: Optional[UUID] = None
	committed_by_display_name: Optional[str] = None
	votes: list[HistoryVote] = Field(default_factory=list)
