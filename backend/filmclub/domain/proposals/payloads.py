"""Structural validation of proposal payloads.

Each entity kind has exactly one payload model. ``parse_payload`` dispatches on
the entity and returns the typed model, so nothing downstream handles an
untyped dict. Payloads travel in camelCase JSON; the models expose snake_case
attributes.
"""

from __future__ import annotations

import math
from datetime import date
from typing import Annotated, Any, Optional, Union
from uuid import UUID

from pydantic import (
	BaseModel,
	ConfigDict,
	Field,
	StringConstraints,
	ValidationError as PydanticValidationError,
	field_validator,
	model_validator,
)
from pydantic.alias_generators import to_camel

from filmclub.domain.exceptions import ValidationError
from filmclub.domain.proposals.models import RecordEntity
from filmclub.settings import settings

NonEmptyStr = Annotated[str, StringConstraints(strict=True, strip_whitespace=True, min_length=1)]
PositiveAmount = Annotated[float, Field(gt=0, strict=True, allow_inf_nan=False)]
NonNegativeAmount = Annotated[float, Field(ge=0, strict=True, allow_inf_nan=False)]


class _Payload(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)

	def to_json(self) -> dict[str, Any]:
		return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class MovieWatchPayload(_Payload):
	title: NonEmptyStr
	watched_on: NonEmptyStr
	meeting_id: Optional[UUID] = None


class Attendee(_Payload):
	user_id: Optional[UUID] = None
	display_name: Optional[NonEmptyStr] = None

	@model_validator(mode="after")
	def _identified(self) -> "Attendee":
		if self.user_id is None and self.display_name is None:
			raise ValueError("attendee needs userId or displayName")
		return self


class AttendancePayload(_Payload):
	attendees: list[Union[NonEmptyStr, Attendee]] = Field(min_length=1)
	meeting_id: Optional[UUID] = None


class DebtSettlementPayload(_Payload):
	from_user_id: UUID
	to_user_id: UUID
	amount: PositiveAmount
	currency: NonEmptyStr
	note: Optional[Annotated[str, StringConstraints(strict=True)]] = None
	meeting_id: Optional[UUID] = None

	@field_validator("currency")
	@classmethod
	def _upper(cls, value: str) -> str:
		return value.upper()

	@model_validator(mode="after")
	def _distinct_parties(self) -> "DebtSettlementPayload":
		if self.from_user_id == self.to_user_id:
			raise ValueError("settlement parties must differ")
		return self


class FoodOrderShare(_Payload):
	user_id: UUID
	amount: NonNegativeAmount


class FoodOrderPayload(_Payload):
	vendor: NonEmptyStr
	total_cost: NonNegativeAmount
	currency: NonEmptyStr
	payer_user_id: UUID
	participant_user_ids: Optional[list[UUID]] = Field(default=None, min_length=1)
	participant_shares: Optional[list[FoodOrderShare]] = Field(default=None, min_length=1)
	meeting_id: Optional[UUID] = None

	@field_validator("currency")
	@classmethod
	def _upper(cls, value: str) -> str:
		return value.upper()

	@model_validator(mode="after")
	def _participants(self) -> "FoodOrderPayload":
		if self.participant_user_ids is None and self.participant_shares is None:
			raise ValueError("participantUserIds or participantShares required")
		if self.participant_shares is not None:
			total = math.fsum(share.amount for share in self.participant_shares)
			if abs(total - self.total_cost) > settings.share_epsilon:
				raise ValueError("participantShares must sum to totalCost")
			if self.participant_user_ids is not None and set(self.participant_user_ids) != {
				share.user_id for share in self.participant_shares
			}:
				raise ValueError("participantShares must cover exactly the participantUserIds")
		return self

	def participant_ids(self) -> list[UUID]:
		"""Distinct participants in first-seen order, from both the id list and the shares."""
		source = list(self.participant_user_ids or [])
		source.extend(share.user_id for share in self.participant_shares or [])
		return list(dict.fromkeys(source))


class MeetingSchedulePayload(_Payload):
	scheduled_date: date
	title: Optional[Annotated[str, StringConstraints(strict=True, strip_whitespace=True)]] = None


class MeetingUpdatePayload(_Payload):
	meeting_id: UUID
	scheduled_date: Optional[date] = None
	title: Optional[Annotated[str, StringConstraints(strict=True, strip_whitespace=True)]] = None

	@model_validator(mode="after")
	def _has_change(self) -> "MeetingUpdatePayload":
		if self.scheduled_date is None and self.title is None:
			raise ValueError("meeting update needs scheduledDate or title")
		return self


class MeetingStartPayload(_Payload):
	meeting_id: UUID


class MeetingCompletePayload(_Payload):
	meeting_id: UUID


ProposalPayload = Union[
	MovieWatchPayload,
	FoodOrderPayload,
	AttendancePayload,
	DebtSettlementPayload,
	MeetingSchedulePayload,
	MeetingUpdatePayload,
	MeetingStartPayload,
	MeetingCompletePayload,
]

PAYLOAD_MODELS: dict[RecordEntity, type[_Payload]] = {
	RecordEntity.MOVIE_WATCH: MovieWatchPayload,
	RecordEntity.FOOD_ORDER: FoodOrderPayload,
	RecordEntity.ATTENDANCE: AttendancePayload,
	RecordEntity.DEBT_SETTLEMENT: DebtSettlementPayload,
	RecordEntity.MEETING_SCHEDULE: MeetingSchedulePayload,
	RecordEntity.MEETING_UPDATE: MeetingUpdatePayload,
	RecordEntity.MEETING_START: MeetingStartPayload,
	RecordEntity.MEETING_COMPLETE: MeetingCompletePayload,
}

_missing_models = set(RecordEntity) - set(PAYLOAD_MODELS)
if _missing_models:
	raise RuntimeError(f"no payload model for {sorted(entity.value for entity in _missing_models)}")


def parse_payload(entity: RecordEntity | str, payload: Any) -> ProposalPayload:
	"""Validate ``payload`` for ``entity`` and return the typed model.

	Raises ``ValidationError("invalid_payload")`` on any structural mismatch.
	"""
	try:
		kind = RecordEntity(entity)
	except ValueError as exc:
		raise ValidationError("invalid_payload") from exc
	if not isinstance(payload, dict):
		raise ValidationError("invalid_payload")
	try:
		return PAYLOAD_MODELS[kind].model_validate(payload)  # type: ignore[return-value]
	except PydanticValidationError as exc:
		raise ValidationError("invalid_payload") from exc


def is_valid_payload(entity: RecordEntity | str, payload: Any) -> bool:
	try:
		parse_payload(entity, payload)
	except ValidationError:
		return False
	return True
