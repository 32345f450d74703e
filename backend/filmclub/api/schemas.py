"""Request bodies for the HTTP adapter. Entity payloads stay opaque here and are
validated by the domain layer."""

from __future__ import annotations

from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Request(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ProposalCreateRequest(_Request):
    club_id: UUID
    entity: str
    payload: dict[str, Any] = Field(default_factory=dict)


class FoodOrderCreateRequest(_Request):
    club_id: UUID
    vendor: str
    total_cost: float
    currency: str
    payer_user_id: UUID
    participant_user_ids: list[UUID] = Field(min_length=1)


class ApprovalPolicyUpdateRequest(_Request):
    mode: str
    required_approvals: Optional[Any] = None

    def as_policy(self) -> dict[str, Any]:
        raw: dict[str, Any] = {"mode": self.mode}
        if self.required_approvals is not None:
            raw["requiredApprovals"] = self.required_approvals
        return raw


class PaymentReminderCreateRequest(_Request):
    to_user_id: UUID
    currency: str
    amount: Optional[float] = None
    note: Optional[str] = None
