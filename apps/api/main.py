from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from apps.api.config import AppConfig, load_config
from apps.api.notifications import build_dispatcher
from apps.api.observability import init_observability
from apps.api.reminders_scheduler import ReminderScheduler
from apps.api.routes.expiry_reminders import router as expiry_reminders_router
from packages.core.logging_config import configure_logging
from packages.core.reminders.dedup import ReminderLog
from packages.core.reminders.resolvers import default_resolvers
from packages.core.reminders.runner import ReminderCheckRunner
from packages.core.storage.sqlite import SQLiteExpiryStore


logger = logging.getLogger("expiry_reminders.api")

configure_logging()

init_observability()
app = FastAPI(title="Expiry Reminders API")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)
FastAPIInstrumentor.instrument_app(app)
app.include_router(expiry_reminders_router)


def build_reminder_services(config: AppConfig) -> None:
    store = SQLiteExpiryStore(db_path=config.db_path)
    reminder_log = ReminderLog(store)
    runner = ReminderCheckRunner(
        settings_store=store,
        reminder_log=reminder_log,
        dispatcher=build_dispatcher(config.email_provider),
        resolvers=default_resolvers(store),
        dispatch_delay_seconds=config.dispatch_delay_seconds,
    )
    app.state.expiry_store = store
    app.state.reminder_log = reminder_log
    app.state.reminder_runner = runner
    app.state.reminder_scheduler = ReminderScheduler(runner)


@app.on_event("startup")
def _start_reminder_scheduler() -> None:
    if getattr(app.state, "reminder_scheduler", None) is not None:
        return
    config = load_config()
    build_reminder_services(config)
    if not config.scheduler_enabled:
        logger.info("scheduler_disabled_by_config")
        return
    app.state.reminder_scheduler.start(config.interval_minutes, mode=config.scheduler_mode)


@app.on_event("shutdown")
def _stop_reminder_scheduler() -> None:
    scheduler = getattr(app.state, "reminder_scheduler", None)
    if scheduler is not None:
        scheduler.stop()
