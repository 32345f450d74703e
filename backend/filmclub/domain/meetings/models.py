from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class MeetingStatus(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVE = "active"
    COMPLETED = "completed"


class Meeting(BaseModel):
    id: UUID
    club_id: UUID
    title: Optional[str] = None
    scheduled_date: date
    status: MeetingStatus
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_by_user_id: UUID
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
