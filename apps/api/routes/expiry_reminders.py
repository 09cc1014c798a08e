from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request

from apps.api.reminders_scheduler import ReminderScheduler
from apps.api.schemas.expiry_reminders import (
    CheckResultResponse,
    ReminderLogResponse,
    ReminderSettingsRequest,
    ReminderSettingsResponse,
    SchedulerStartRequest,
    SchedulerStatusResponse,
)
from packages.core.reminders.dedup import ReminderLog
from packages.core.reminders.models import CheckResult, ReminderSettings
from packages.core.reminders.runner import ReminderCheckRunner
from packages.core.reminders.settings import (
    REMINDER_TYPES,
    SERVICE_EXPIRY,
    load_settings,
    save_settings,
)
from packages.core.storage.sqlite import SQLiteExpiryStore


router = APIRouter(prefix="/api/expiry-reminders", tags=["expiry-reminders"])


def _state(request: Request, name: str):
    value = getattr(request.app.state, name, None)
    if value is None:
        raise HTTPException(status_code=503, detail="reminders_not_initialized")
    return value


def _store(request: Request) -> SQLiteExpiryStore:
    return _state(request, "expiry_store")


def _runner(request: Request) -> ReminderCheckRunner:
    return _state(request, "reminder_runner")


def _scheduler(request: Request) -> ReminderScheduler:
    return _state(request, "reminder_scheduler")


def _reminder_log(request: Request) -> ReminderLog:
    return _state(request, "reminder_log")


def _reminder_type(value: str) -> str:
    if value not in REMINDER_TYPES:
        raise HTTPException(status_code=400, detail=f"Unknown reminder type: {value}")
    return value


def _settings_response(settings: ReminderSettings) -> ReminderSettingsResponse:
    return ReminderSettingsResponse(
        reminder_type=settings.reminder_type,
        enabled=settings.enabled,
        offsets=list(settings.offsets),
        subject=settings.template.subject,
        body=settings.template.body,
    )


def _result_response(result: CheckResult) -> CheckResultResponse:
    return CheckResultResponse(
        success=result.success,
        total_checked=result.total_checked,
        reminders_sent=result.reminders_sent,
        errors=result.errors,
        message=result.message,
    )


def _status_response(scheduler: ReminderScheduler) -> SchedulerStatusResponse:
    status = scheduler.get_status()
    config = scheduler.get_config()
    return SchedulerStatusResponse(
        is_active=scheduler.is_active(),
        enabled=config.enabled,
        interval_minutes=config.interval_minutes,
        mode=config.mode,
        is_running=status.is_running,
        last_run_time=status.last_run_time,
        next_run_time=status.next_run_time,
        last_run_result=(
            _result_response(status.last_run_result) if status.last_run_result else None
        ),
        total_runs=status.total_runs,
    )


@router.get("/settings", response_model=ReminderSettingsResponse)
def get_settings(
    request: Request, reminder_type: str = Query(default=SERVICE_EXPIRY)
) -> ReminderSettingsResponse:
    settings = load_settings(_store(request), _reminder_type(reminder_type))
    if settings is None:
        raise HTTPException(status_code=404, detail="Reminder settings not found")
    return _settings_response(settings)


@router.put("/settings", response_model=ReminderSettingsResponse)
def update_settings(
    request: Request,
    payload: ReminderSettingsRequest,
    reminder_type: str = Query(default=SERVICE_EXPIRY),
) -> ReminderSettingsResponse:
    reminder_type = _reminder_type(reminder_type)
    try:
        settings = save_settings(
            _store(request),
            reminder_type,
            enabled=payload.enabled,
            offsets=payload.offsets,
            subject=payload.subject,
            body=payload.body,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _settings_response(settings)


@router.post("/run", response_model=CheckResultResponse)
def run_now(request: Request) -> CheckResultResponse:
    return _result_response(_runner(request).check_and_send_reminders())


@router.get("/scheduler", response_model=SchedulerStatusResponse)
def scheduler_status(request: Request) -> SchedulerStatusResponse:
    return _status_response(_scheduler(request))


@router.post("/scheduler/start", response_model=SchedulerStatusResponse)
def start_scheduler(request: Request, payload: SchedulerStartRequest) -> SchedulerStatusResponse:
    scheduler = _scheduler(request)
    try:
        scheduler.start(payload.interval_minutes, mode=payload.mode)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return _status_response(scheduler)


@router.post("/scheduler/stop", response_model=SchedulerStatusResponse)
def stop_scheduler(request: Request) -> SchedulerStatusResponse:
    scheduler = _scheduler(request)
    scheduler.stop()
    return _status_response(scheduler)


@router.get("/logs", response_model=List[ReminderLogResponse])
def list_logs(
    request: Request,
    start: Optional[str] = None,
    end: Optional[str] = None,
    limit: int = 200,
) -> List[ReminderLogResponse]:
    try:
        entries = _reminder_log(request).list_entries(start_iso=start, end_iso=end, limit=limit)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return [
        ReminderLogResponse(
            id=entry.id,
            reminder_type=entry.reminder_type,
            item_id=entry.item_id,
            category=entry.category.value,
            offset_days=entry.offset_days,
            expiry_date=entry.expiry_date,
            recipient_email=entry.recipient_email,
            recipient_name=entry.recipient_name,
            status=entry.status.value,
            sent_at=entry.sent_at,
            error_message=entry.error_message,
        )
        for entry in entries
    ]
