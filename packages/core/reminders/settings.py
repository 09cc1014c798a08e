from __future__ import annotations

import datetime as dt
import logging
from typing import Iterable, List, Optional

from ..storage.base import ReminderSettingsState, ReminderSettingsStore
from .models import MessageTemplate, ReminderCategory, ReminderSettings

logger = logging.getLogger("expiry_reminders.settings")

SERVICE_EXPIRY = "service_expiry"
DOCUMENT_EXPIRY = "document_expiry"

REMINDER_TYPES = (SERVICE_EXPIRY, DOCUMENT_EXPIRY)

DEFAULT_OFFSETS = (30, 15, 7, 3, 1)

# Monetary dues follow the service settings.
_CATEGORY_REMINDER_TYPES = {
    ReminderCategory.SERVICE: SERVICE_EXPIRY,
    ReminderCategory.MONETARY_DUE: SERVICE_EXPIRY,
    ReminderCategory.COMPANY_DOCUMENT: DOCUMENT_EXPIRY,
    ReminderCategory.INDIVIDUAL_DOCUMENT: DOCUMENT_EXPIRY,
    ReminderCategory.EMPLOYEE_DOCUMENT: DOCUMENT_EXPIRY,
}


def reminder_type_for(category: ReminderCategory) -> str:
    """Settings record that governs reminders for a category."""
    return _CATEGORY_REMINDER_TYPES[category]


def normalize_offsets(values: Iterable[object]) -> List[int]:
    """Return unique positive day offsets, largest first.

    Raises ValueError for anything that is not a positive integer.
    Booleans are rejected even though they are ints.
    """
    offsets = set()
    for value in values:
        if isinstance(value, bool):
            raise ValueError(f"invalid_offset: {value!r}")
        if isinstance(value, str):
            value = value.strip()
            if not value.isdigit():
                raise ValueError(f"invalid_offset: {value!r}")
            value = int(value)
        if not isinstance(value, int) or value <= 0:
            raise ValueError(f"invalid_offset: {value!r}")
        offsets.add(value)
    return sorted(offsets, reverse=True)


def _from_state(state: ReminderSettingsState) -> ReminderSettings:
    try:
        offsets = normalize_offsets(state.offsets)
    except ValueError:
        logger.warning(
            "settings_offsets_invalid reminder_type=%s offsets=%s",
            state.reminder_type,
            state.offsets,
        )
        offsets = [value for value in state.offsets if isinstance(value, int) and value > 0]
        offsets = sorted(set(offsets), reverse=True)
    return ReminderSettings(
        reminder_type=state.reminder_type,
        enabled=state.enabled,
        offsets=offsets,
        template=MessageTemplate(
            subject=state.subject_template or "",
            body=state.body_template or "",
        ),
    )


def load_settings(
    store: ReminderSettingsStore, reminder_type: str = SERVICE_EXPIRY
) -> Optional[ReminderSettings]:
    state = store.get_reminder_settings(reminder_type)
    if state is None:
        return None
    return _from_state(state)


def save_settings(
    store: ReminderSettingsStore,
    reminder_type: str,
    enabled: bool,
    offsets: Iterable[object],
    subject: str = "",
    body: str = "",
) -> ReminderSettings:
    normalized = normalize_offsets(offsets)
    if enabled and not normalized:
        raise ValueError("offsets_required_when_enabled")
    state = ReminderSettingsState(
        reminder_type=reminder_type,
        enabled=enabled,
        offsets=normalized,
        subject_template=subject.strip(),
        body_template=body.strip(),
        updated_at=dt.datetime.now(dt.timezone.utc).isoformat(),
    )
    store.upsert_reminder_settings(state)
    logger.info(
        "settings_saved reminder_type=%s enabled=%s offsets=%s",
        reminder_type,
        enabled,
        normalized,
    )
    return _from_state(state)
