"""Domain models for clubs and their approval policies."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ApprovalMode(str, Enum):
    UNANIMOUS = "unanimous"
    MAJORITY = "majority"
    FIXED = "fixed"


class ApprovalPolicy(BaseModel):
    """How many approvals (or rejections) resolve a proposal in a club.

    ``required_approvals`` is only meaningful for ``fixed`` and must then be a
    positive integer.
    """

    mode: ApprovalMode
    required_approvals: Optional[int] = Field(default=None, alias="requiredApprovals", strict=True)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @model_validator(mode="after")
    def _check_fixed(self) -> "ApprovalPolicy":
        if self.mode is ApprovalMode.FIXED:
            if self.required_approvals is None or self.required_approvals < 1:
                raise ValueError("fixed policy requires a positive requiredApprovals")
        return self

    @classmethod
    def from_row(cls, mode: str, required_approvals: Optional[int]) -> "ApprovalPolicy":
        return cls(mode=ApprovalMode(mode), required_approvals=required_approvals)


@dataclass
class Club:
    id: UUID
    name: str
    approval_policy: ApprovalPolicy
    timezone: str
    created_by_user_id: UUID
    created_at: datetime


@dataclass
class ClubMember:
    club_id: UUID
    user_id: UUID
    role: str  # 'owner', 'member'
    display_name: str
    joined_at: datetime

    @property
    def is_owner(self) -> bool:
        return self.role == "owner"
