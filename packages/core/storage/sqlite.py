from __future__ import annotations

import json
import os
import sqlite3
from contextlib import closing
from typing import Any, Dict, List, Optional

from ..reminders.models import LogStatus, ReminderCategory, ReminderLogEntry
from .base import ReminderSettingsState

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS companies (
        id TEXT PRIMARY KEY,
        company_name TEXT NOT NULL,
        email1 TEXT,
        email2 TEXT,
        phone1 TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS individuals (
        id TEXT PRIMARY KEY,
        individual_name TEXT NOT NULL,
        email1 TEXT,
        email2 TEXT,
        phone1 TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS employees (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT,
        phone TEXT,
        company_id TEXT REFERENCES companies(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS service_types (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS service_billings (
        id TEXT PRIMARY KEY,
        service_type_id TEXT REFERENCES service_types(id),
        company_id TEXT REFERENCES companies(id),
        individual_id TEXT REFERENCES individuals(id),
        service_date TEXT,
        expiry_date TEXT,
        invoice_number TEXT,
        total_amount_with_vat REAL,
        custom_reminder_dates TEXT,
        custom_reminder_intervals TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS company_documents (
        id TEXT PRIMARY KEY,
        company_id TEXT REFERENCES companies(id),
        service_id TEXT REFERENCES service_types(id),
        title TEXT NOT NULL,
        document_type TEXT,
        document_number TEXT,
        expiry_date TEXT,
        status TEXT NOT NULL DEFAULT 'active',
        custom_reminder_dates TEXT,
        custom_reminder_intervals TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS individual_documents (
        id TEXT PRIMARY KEY,
        individual_id TEXT REFERENCES individuals(id),
        title TEXT NOT NULL,
        document_type TEXT,
        document_number TEXT,
        expiry_date TEXT,
        status TEXT NOT NULL DEFAULT 'active',
        custom_reminder_dates TEXT,
        custom_reminder_intervals TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS employee_documents (
        id TEXT PRIMARY KEY,
        employee_id TEXT REFERENCES employees(id),
        service_id TEXT REFERENCES service_types(id),
        name TEXT,
        type TEXT,
        file_name TEXT,
        expiry_date TEXT,
        status TEXT NOT NULL DEFAULT 'valid',
        custom_reminder_dates TEXT,
        custom_reminder_intervals TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS dues (
        id TEXT PRIMARY KEY,
        company_id TEXT REFERENCES companies(id),
        individual_id TEXT REFERENCES individuals(id),
        service_billing_id TEXT REFERENCES service_billings(id),
        invoice_number TEXT,
        description TEXT,
        due_amount REAL NOT NULL DEFAULT 0,
        paid_amount REAL NOT NULL DEFAULT 0,
        due_date TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        custom_reminder_dates TEXT,
        custom_reminder_intervals TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS email_reminder_settings (
        reminder_type TEXT PRIMARY KEY,
        enabled INTEGER NOT NULL,
        reminder_intervals TEXT NOT NULL,
        subject_template TEXT NOT NULL DEFAULT '',
        body_template TEXT NOT NULL DEFAULT '',
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS email_reminder_logs (
        id TEXT PRIMARY KEY,
        reminder_type TEXT NOT NULL,
        category TEXT NOT NULL,
        item_id TEXT NOT NULL,
        days_before_expiry INTEGER NOT NULL,
        expiry_date TEXT NOT NULL,
        recipient_email TEXT,
        recipient_name TEXT NOT NULL,
        email_status TEXT NOT NULL,
        email_sent_at TEXT NOT NULL,
        error_message TEXT
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS email_reminder_logs_key_idx
    ON email_reminder_logs (category, item_id, days_before_expiry, email_sent_at)
    """,
)

# Nested relations are selected as "<relation>__<column>" and folded back
# into dicts by _nest().
_CATEGORY_QUERIES: Dict[str, Dict[str, str]] = {
    ReminderCategory.SERVICE.value: {
        "select": """
            SELECT sb.id, sb.service_date, sb.expiry_date, sb.invoice_number,
                   sb.total_amount_with_vat, sb.company_id, sb.individual_id,
                   sb.custom_reminder_dates, sb.custom_reminder_intervals,
                   st.name AS service_type__name,
                   c.company_name AS company__company_name, c.email1 AS company__email1,
                   c.email2 AS company__email2, c.phone1 AS company__phone1,
                   i.individual_name AS individual__individual_name,
                   i.email1 AS individual__email1, i.email2 AS individual__email2,
                   i.phone1 AS individual__phone1
            FROM service_billings sb
            LEFT JOIN service_types st ON st.id = sb.service_type_id
            LEFT JOIN companies c ON c.id = sb.company_id
            LEFT JOIN individuals i ON i.id = sb.individual_id
            WHERE sb.expiry_date IS NOT NULL
        """,
        "alias": "sb",
        "date_column": "expiry_date",
        "status_filter": "",
    },
    ReminderCategory.COMPANY_DOCUMENT.value: {
        "select": """
            SELECT d.id, d.title, d.document_type, d.document_number, d.expiry_date,
                   d.company_id, d.service_id,
                   d.custom_reminder_dates, d.custom_reminder_intervals,
                   c.company_name AS company__company_name, c.email1 AS company__email1,
                   c.email2 AS company__email2, c.phone1 AS company__phone1,
                   st.name AS service_type__name
            FROM company_documents d
            LEFT JOIN companies c ON c.id = d.company_id
            LEFT JOIN service_types st ON st.id = d.service_id
            WHERE d.expiry_date IS NOT NULL
        """,
        "alias": "d",
        "date_column": "expiry_date",
        "status_filter": "AND d.status = 'active'",
    },
    ReminderCategory.INDIVIDUAL_DOCUMENT.value: {
        "select": """
            SELECT d.id, d.title, d.document_type, d.document_number, d.expiry_date,
                   d.individual_id, d.custom_reminder_dates, d.custom_reminder_intervals,
                   i.individual_name AS individual__individual_name,
                   i.email1 AS individual__email1, i.email2 AS individual__email2,
                   i.phone1 AS individual__phone1
            FROM individual_documents d
            LEFT JOIN individuals i ON i.id = d.individual_id
            WHERE d.expiry_date IS NOT NULL
        """,
        "alias": "d",
        "date_column": "expiry_date",
        "status_filter": "AND d.status = 'active'",
    },
    ReminderCategory.EMPLOYEE_DOCUMENT.value: {
        "select": """
            SELECT d.id, d.name, d.type, d.file_name, d.expiry_date, d.employee_id,
                   d.service_id, d.status,
                   d.custom_reminder_dates, d.custom_reminder_intervals,
                   e.name AS employee__name, e.email AS employee__email,
                   e.phone AS employee__phone, e.company_id AS employee__company_id,
                   c.company_name AS employee__company__company_name,
                   c.email1 AS employee__company__email1,
                   c.email2 AS employee__company__email2,
                   c.phone1 AS employee__company__phone1,
                   st.name AS service_type__name
            FROM employee_documents d
            LEFT JOIN employees e ON e.id = d.employee_id
            LEFT JOIN companies c ON c.id = e.company_id
            LEFT JOIN service_types st ON st.id = d.service_id
            WHERE d.expiry_date IS NOT NULL
        """,
        "alias": "d",
        "date_column": "expiry_date",
        "status_filter": "AND d.status = 'valid'",
    },
    ReminderCategory.MONETARY_DUE.value: {
        "select": """
            SELECT du.id, du.invoice_number, du.description, du.due_amount,
                   du.paid_amount, du.due_date, du.status, du.company_id,
                   du.individual_id, du.custom_reminder_dates, du.custom_reminder_intervals,
                   c.company_name AS company__company_name, c.email1 AS company__email1,
                   c.email2 AS company__email2, c.phone1 AS company__phone1,
                   i.individual_name AS individual__individual_name,
                   i.email1 AS individual__email1, i.email2 AS individual__email2,
                   i.phone1 AS individual__phone1
            FROM dues du
            LEFT JOIN companies c ON c.id = du.company_id
            LEFT JOIN individuals i ON i.id = du.individual_id
            WHERE du.due_date IS NOT NULL
        """,
        "alias": "du",
        "date_column": "due_date",
        "status_filter": "AND du.status IN ('pending', 'partial')",
    },
}

_RECORD_TABLES = {
    "companies",
    "individuals",
    "employees",
    "service_types",
    "service_billings",
    "company_documents",
    "individual_documents",
    "employee_documents",
    "dues",
}

_LOG_COLUMNS = """
    id, reminder_type, category, item_id, days_before_expiry, expiry_date,
    recipient_email, recipient_name, email_status, email_sent_at, error_message
"""


def _nest(row: sqlite3.Row) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for key in row.keys():
        parts = key.split("__")
        target = result
        for part in parts[:-1]:
            target = target.setdefault(part, {})
        target[parts[-1]] = row[key]
    return {key: _drop_empty(value) for key, value in result.items()}


def _drop_empty(value: Any) -> Any:
    if not isinstance(value, dict):
        return value
    cleaned = {key: _drop_empty(inner) for key, inner in value.items()}
    if all(inner is None for inner in cleaned.values()):
        return None
    return cleaned


def _row_to_log_entry(row: sqlite3.Row) -> ReminderLogEntry:
    return ReminderLogEntry(
        id=row["id"],
        reminder_type=row["reminder_type"],
        item_id=row["item_id"],
        category=ReminderCategory(row["category"]),
        offset_days=row["days_before_expiry"],
        expiry_date=row["expiry_date"],
        recipient_email=row["recipient_email"],
        recipient_name=row["recipient_name"],
        status=LogStatus(row["email_status"]),
        sent_at=row["email_sent_at"],
        error_message=row["error_message"],
    )


class SQLiteExpiryStore:
    """Local stand-in for the hosted record store.

    Implements the settings, expiring-record and reminder-log protocols
    from ``base.py`` over one SQLite file.
    """

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        with closing(self._connect()) as conn, conn:
            for statement in _SCHEMA:
                conn.execute(statement)

    def insert_record(self, table: str, values: Dict[str, Any]) -> None:
        if table not in _RECORD_TABLES:
            raise ValueError(f"Unknown table: {table}")
        with closing(self._connect()) as conn, conn:
            columns = {row[1] for row in conn.execute(f"PRAGMA table_info({table})")}
            unknown = set(values) - columns
            if unknown:
                raise ValueError(f"Unknown columns for {table}: {sorted(unknown)}")
            names = list(values)
            placeholders = ", ".join("?" for _ in names)
            conn.execute(
                f"INSERT INTO {table} ({', '.join(names)}) VALUES ({placeholders})",
                [values[name] for name in names],
            )

    def get_reminder_settings(self, reminder_type: str) -> Optional[ReminderSettingsState]:
        with closing(self._connect()) as conn, conn:
            row = conn.execute(
                """
                SELECT reminder_type, enabled, reminder_intervals, subject_template,
                       body_template, updated_at
                FROM email_reminder_settings
                WHERE reminder_type = ?
                """,
                (reminder_type,),
            ).fetchone()
            if row is None:
                return None
            return ReminderSettingsState(
                reminder_type=row["reminder_type"],
                enabled=bool(row["enabled"]),
                offsets=json.loads(row["reminder_intervals"] or "[]"),
                subject_template=row["subject_template"] or "",
                body_template=row["body_template"] or "",
                updated_at=row["updated_at"],
            )

    def upsert_reminder_settings(self, settings: ReminderSettingsState) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                """
                INSERT INTO email_reminder_settings (
                    reminder_type, enabled, reminder_intervals, subject_template,
                    body_template, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(reminder_type) DO UPDATE SET
                    enabled = excluded.enabled,
                    reminder_intervals = excluded.reminder_intervals,
                    subject_template = excluded.subject_template,
                    body_template = excluded.body_template,
                    updated_at = excluded.updated_at
                """,
                (
                    settings.reminder_type,
                    1 if settings.enabled else 0,
                    json.dumps(list(settings.offsets)),
                    settings.subject_template,
                    settings.body_template,
                    settings.updated_at,
                ),
            )

    def _category_query(self, category: str) -> Dict[str, str]:
        try:
            return _CATEGORY_QUERIES[category]
        except KeyError:
            raise ValueError(f"Unknown category: {category}") from None

    def list_expiring(self, category: str, on_date: str) -> List[Dict[str, Any]]:
        query = self._category_query(category)
        sql = (
            f"{query['select']} {query['status_filter']} "
            f"AND {query['alias']}.{query['date_column']} = ? "
            f"ORDER BY {query['alias']}.id ASC"
        )
        with closing(self._connect()) as conn, conn:
            rows = conn.execute(sql, (on_date,)).fetchall()
            return [_nest(row) for row in rows]

    def list_custom_dated(self, category: str, on_date: str) -> List[Dict[str, Any]]:
        query = self._category_query(category)
        sql = (
            f"{query['select']} {query['status_filter']} "
            f"AND {query['alias']}.custom_reminder_dates LIKE ? "
            f"ORDER BY {query['alias']}.id ASC"
        )
        with closing(self._connect()) as conn, conn:
            rows = conn.execute(sql, (f"%{on_date}%",)).fetchall()
            return [_nest(row) for row in rows]

    def list_custom_interval(self, category: str) -> List[Dict[str, Any]]:
        query = self._category_query(category)
        column = f"{query['alias']}.custom_reminder_intervals"
        sql = (
            f"{query['select']} {query['status_filter']} "
            f"AND {column} IS NOT NULL AND TRIM({column}) != '' "
            f"ORDER BY {query['alias']}.id ASC"
        )
        with closing(self._connect()) as conn, conn:
            rows = conn.execute(sql).fetchall()
            return [_nest(row) for row in rows]

    def reminder_log_exists(
        self,
        category: str,
        item_id: str,
        offset_days: int,
        start_iso: str,
        end_iso: str,
    ) -> bool:
        with closing(self._connect()) as conn, conn:
            row = conn.execute(
                """
                SELECT 1 FROM email_reminder_logs
                WHERE category = ? AND item_id = ? AND days_before_expiry = ?
                  AND email_sent_at >= ? AND email_sent_at < ?
                LIMIT 1
                """,
                (category, item_id, offset_days, start_iso, end_iso),
            ).fetchone()
            return row is not None

    def append_reminder_log(self, entry: ReminderLogEntry) -> None:
        with closing(self._connect()) as conn, conn:
            conn.execute(
                f"""
                INSERT INTO email_reminder_logs ({_LOG_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.id,
                    entry.reminder_type,
                    entry.category.value,
                    entry.item_id,
                    entry.offset_days,
                    entry.expiry_date,
                    entry.recipient_email,
                    entry.recipient_name,
                    entry.status.value,
                    entry.sent_at,
                    entry.error_message,
                ),
            )

    def list_reminder_logs(
        self,
        start_iso: Optional[str] = None,
        end_iso: Optional[str] = None,
        limit: int = 200,
    ) -> List[ReminderLogEntry]:
        clauses = []
        params: List[Any] = []
        if start_iso:
            clauses.append("email_sent_at >= ?")
            params.append(start_iso)
        if end_iso:
            clauses.append("email_sent_at <= ?")
            params.append(end_iso)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        params.append(limit)
        with closing(self._connect()) as conn, conn:
            rows = conn.execute(
                f"""
                SELECT {_LOG_COLUMNS}
                FROM email_reminder_logs
                {where}
                ORDER BY email_sent_at DESC, rowid DESC
                LIMIT ?
                """,
                params,
            ).fetchall()
            return [_row_to_log_entry(row) for row in rows]
