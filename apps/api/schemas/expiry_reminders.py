from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class ReminderSettingsRequest(BaseModel):
    enabled: bool = True
    offsets: List[int] = Field(default_factory=lambda: [30, 15, 7, 3, 1])
    subject: str = ""
    body: str = ""


class ReminderSettingsResponse(BaseModel):
    reminder_type: str
    enabled: bool
    offsets: List[int]
    subject: str
    body: str


class CheckResultResponse(BaseModel):
    success: bool
    total_checked: int
    reminders_sent: int
    errors: int
    message: str


class SchedulerStartRequest(BaseModel):
    interval_minutes: int = Field(default=60, gt=0)
    mode: str = "interval"


class SchedulerStatusResponse(BaseModel):
    is_active: bool
    enabled: bool
    interval_minutes: int
    mode: str
    is_running: bool
    last_run_time: Optional[datetime]
    next_run_time: Optional[datetime]
    last_run_result: Optional[CheckResultResponse]
    total_runs: int


class ReminderLogResponse(BaseModel):
    id: str
    reminder_type: str
    item_id: str
    category: str
    offset_days: int
    expiry_date: str
    recipient_email: Optional[str]
    recipient_name: str
    status: str
    sent_at: str
    error_message: Optional[str]
