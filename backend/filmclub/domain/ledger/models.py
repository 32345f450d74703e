"""Domain models for ledger reads and payment reminders."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from filmclub.domain.ledger.netting import Balance, BalanceSummary, DebtEdge


class PaymentReminder(BaseModel):
    id: UUID
    club_id: UUID
    from_user_id: UUID
    from_display_name: str
    to_user_id: UUID
    to_display_name: str
    currency: str
    outstanding_amount: Decimal
    reminder_amount: Decimal
    note: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentReminderPage(BaseModel):
    items: list[PaymentReminder] = Field(default_factory=list)
    total: int
    limit: int
    offset: int


class BalanceOverview(BaseModel):
    balances: list[Balance]
    summary: list[BalanceSummary]
    matrix: list[DebtEdge]
