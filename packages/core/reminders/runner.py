from __future__ import annotations

import datetime as dt
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Protocol, Set, Tuple

from opentelemetry import trace

from ..storage.base import ReminderSettingsStore
from .clock import Clock, local_now
from .dedup import ReminderLog
from .models import (
    CUSTOM_DATE_OFFSET,
    CheckResult,
    ExpiringItem,
    LogStatus,
    ReminderCategory,
    ReminderNotification,
    ReminderSettings,
)
from .resolvers import CategoryResolver
from .settings import REMINDER_TYPES, load_settings, reminder_type_for

logger = logging.getLogger("expiry_reminders.runner")
tracer = trace.get_tracer("expiry_reminders.runner")

DEFAULT_DISPATCH_DELAY_SECONDS = 0.5
DISABLED_MESSAGE = "Expiry reminders are disabled"

_ItemKey = Tuple[ReminderCategory, str]


class NotificationDispatcher(Protocol):
    def send(self, notification: ReminderNotification) -> bool:
        """Render and transmit a reminder. Returns True on success."""


@dataclass
class _Tally:
    checked: int = 0
    sent: int = 0
    errors: int = 0

    def message(self) -> str:
        return (
            f"Checked {self.checked} item(s), sent {self.sent} reminder(s), "
            f"{self.errors} error(s)"
        )


def _key(item: ExpiringItem) -> _ItemKey:
    return (item.category, item.id)


class ReminderCheckRunner:
    """Runs one reminder pass over every enabled settings group.

    Service billings and monetary dues follow the ``service_expiry``
    settings; the three document categories follow ``document_expiry``.
    Within a group a record is reminded for at most one reason per pass:
    a custom reminder date for today wins, then the record's own
    intervals, then the group's offsets.

    Holds no timer of its own; the scheduler and the manual "run now"
    endpoint both call ``check_and_send_reminders`` directly.
    """

    def __init__(
        self,
        settings_store: ReminderSettingsStore,
        reminder_log: ReminderLog,
        dispatcher: NotificationDispatcher,
        resolvers: Iterable[CategoryResolver],
        clock: Optional[Clock] = None,
        dispatch_delay_seconds: float = DEFAULT_DISPATCH_DELAY_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._settings_store = settings_store
        self._log = reminder_log
        self._dispatcher = dispatcher
        self._resolvers: List[CategoryResolver] = list(resolvers)
        self._clock = clock or local_now
        self._dispatch_delay = dispatch_delay_seconds
        self._sleep = sleep

    def check_and_send_reminders(self) -> CheckResult:
        with tracer.start_as_current_span("expiry_reminders.check") as span:
            try:
                result = self._run_pass()
            except Exception as exc:
                logger.exception("reminder_check_failed")
                result = CheckResult.failure(exc)
            span.set_attribute("total_checked", result.total_checked)
            span.set_attribute("reminders_sent", result.reminders_sent)
            span.set_attribute("errors", result.errors)
            return result

    def _enabled_groups(self) -> List[Tuple[ReminderSettings, List[CategoryResolver]]]:
        groups = []
        for reminder_type in REMINDER_TYPES:
            settings = load_settings(self._settings_store, reminder_type)
            if settings is None or not settings.enabled:
                logger.info("reminder_group_disabled reminder_type=%s", reminder_type)
                continue
            resolvers = [
                resolver
                for resolver in self._resolvers
                if reminder_type_for(resolver.category) == reminder_type
            ]
            groups.append((settings, resolvers))
        return groups

    def _run_pass(self) -> CheckResult:
        groups = self._enabled_groups()
        if not groups:
            logger.info("reminder_check_disabled")
            return CheckResult(
                success=True,
                total_checked=0,
                reminders_sent=0,
                errors=0,
                message=DISABLED_MESSAGE,
            )

        today = self._clock().date()
        tally = _Tally()
        for settings, resolvers in groups:
            self._check_group(settings, resolvers, today, tally)

        message = tally.message()
        logger.info("reminder_check_complete %s", message)
        return CheckResult(
            success=True,
            total_checked=tally.checked,
            reminders_sent=tally.sent,
            errors=tally.errors,
            message=message,
        )

    def _check_group(
        self,
        settings: ReminderSettings,
        resolvers: List[CategoryResolver],
        today: dt.date,
        tally: _Tally,
    ) -> None:
        custom_dated: List[ExpiringItem] = []
        scheduled: List[Tuple[ExpiringItem, List[int]]] = []
        for resolver in resolvers:
            custom_dated += self._query(
                resolver, "custom_dates", tally, resolver.resolve_custom_dated, today
            )
            scheduled += self._query(
                resolver, "custom_intervals", tally, resolver.resolve_custom_intervals
            )

        claimed: Set[_ItemKey] = {_key(item) for item in custom_dated}
        own_intervals: Set[_ItemKey] = {_key(item) for item, _ in scheduled}

        for offset in settings.offsets:
            target = today + dt.timedelta(days=offset)
            logger.info(
                "reminder_offset_check reminder_type=%s offset=%s target=%s",
                settings.reminder_type,
                offset,
                target.isoformat(),
            )
            for resolver in resolvers:
                items = self._query(
                    resolver, f"offset_{offset}", tally, resolver.resolve_expiring_on, target
                )
                for item in items:
                    key = _key(item)
                    if key in claimed or key in own_intervals:
                        continue
                    tally.checked += 1
                    self._process(item, offset, settings, today, tally)

        for item, intervals in scheduled:
            days_until = (item.expiry_date - today).days
            if _key(item) in claimed or days_until not in intervals:
                continue
            tally.checked += 1
            self._process(item, days_until, settings, today, tally)

        for item in custom_dated:
            tally.checked += 1
            self._process(item, CUSTOM_DATE_OFFSET, settings, today, tally)

    def _query(
        self,
        resolver: CategoryResolver,
        label: str,
        tally: _Tally,
        query: Callable[..., list],
        *args: Any,
    ) -> list:
        try:
            return query(*args)
        except Exception:
            logger.exception(
                "reminder_query_failed category=%s query=%s", resolver.category.value, label
            )
            tally.errors += 1
            return []

    def _process(
        self,
        item: ExpiringItem,
        offset: int,
        settings: ReminderSettings,
        today: dt.date,
        tally: _Tally,
    ) -> None:
        if self._log.has_reminder_been_sent(item, offset):
            logger.info(
                "reminder_already_sent category=%s item_id=%s offset=%s",
                item.category.value,
                item.id,
                offset,
            )
            return

        reminder_type = settings.reminder_type
        if not item.recipient_email:
            logger.error(
                "reminder_no_recipient category=%s item_id=%s", item.category.value, item.id
            )
            self._log.record(
                item,
                offset,
                LogStatus.FAILED,
                reminder_type,
                error_message=f"No email address found for {item.category.value} {item.id}",
            )
            tally.errors += 1
            return

        notification = ReminderNotification(
            recipients=item.recipients,
            recipient_name=item.recipient_name,
            category=item.category,
            offset_days=offset,
            days_until_expiry=(item.expiry_date - today).days,
            expiry_date=item.expiry_date,
            display_fields=dict(item.display_fields),
            template=settings.template,
        )
        error_message: Optional[str] = None
        try:
            sent = bool(self._dispatcher.send(notification))
            if not sent:
                error_message = "Email service returned false"
        except Exception as exc:
            logger.exception(
                "reminder_send_failed category=%s item_id=%s", item.category.value, item.id
            )
            sent = False
            error_message = str(exc) or exc.__class__.__name__

        if sent:
            tally.sent += 1
            self._log.record(item, offset, LogStatus.SENT, reminder_type)
            logger.info(
                "reminder_sent category=%s item_id=%s offset=%s to=%s",
                item.category.value,
                item.id,
                offset,
                item.recipient_email,
            )
        else:
            tally.errors += 1
            self._log.record(
                item, offset, LogStatus.FAILED, reminder_type, error_message=error_message
            )

        if self._dispatch_delay > 0:
            self._sleep(self._dispatch_delay)
