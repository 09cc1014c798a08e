"""Per-category lookup of records whose expiry lands on a given day.

Rows come back from the record store loosely typed: nested relations may be
a dict, a list holding one dict, or missing. Each resolver flattens its rows
into ``ExpiringItem`` right away so the runner never sees row shapes.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional, Tuple

from ..storage.base import ExpiryRecordStore
from .models import ExpiringItem, ReminderCategory

FALLBACK_NAME = "Valued Client"


def _first(relation: Any) -> Optional[Dict[str, Any]]:
    if isinstance(relation, list):
        relation = relation[0] if relation else None
    if isinstance(relation, dict):
        return relation
    return None


def _relation(row: Dict[str, Any], *keys: str) -> Optional[Dict[str, Any]]:
    for key in keys:
        value = _first(row.get(key))
        if value is not None:
            return value
    return None


def _email(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _parse_date(value: Any) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    return dt.date.fromisoformat(str(value)[:10])


def _split_csv(value: Any) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def _custom_intervals(value: Any) -> List[int]:
    intervals = []
    for part in _split_csv(value):
        try:
            interval = int(part)
        except ValueError:
            continue
        if interval > 0 and interval not in intervals:
            intervals.append(interval)
    return intervals


class CategoryResolver:
    category: ReminderCategory

    def __init__(self, store: ExpiryRecordStore) -> None:
        self._store = store

    def resolve_expiring_on(self, on_date: dt.date) -> List[ExpiringItem]:
        rows = self._store.list_expiring(self.category.value, on_date.isoformat())
        return [self.normalize(row) for row in rows]

    def resolve_custom_dated(self, on_date: dt.date) -> List[ExpiringItem]:
        day = on_date.isoformat()
        rows = self._store.list_custom_dated(self.category.value, day)
        # Stores may match loosely (substring search); keep exact dates only.
        return [
            self.normalize(row)
            for row in rows
            if day in _split_csv(row.get("custom_reminder_dates"))
        ]

    def resolve_custom_intervals(self) -> List[Tuple[ExpiringItem, List[int]]]:
        """Items that replace the global offsets with their own intervals.

        Rows whose interval list has no usable value are left out and stay
        on the global offsets.
        """
        resolved = []
        for row in self._store.list_custom_interval(self.category.value):
            intervals = _custom_intervals(row.get("custom_reminder_intervals"))
            if intervals:
                resolved.append((self.normalize(row), intervals))
        return resolved

    def normalize(self, row: Dict[str, Any]) -> ExpiringItem:
        raise NotImplementedError

    def _item(
        self,
        row: Dict[str, Any],
        expiry_value: Any,
        email: Optional[str],
        name: Optional[str],
        secondary: Optional[str] = None,
        **display_fields: Any,
    ) -> ExpiringItem:
        return ExpiringItem(
            id=str(row["id"]),
            category=self.category,
            expiry_date=_parse_date(expiry_value),
            recipient_email=email,
            recipient_name=name or FALLBACK_NAME,
            secondary_email=secondary if email else None,
            display_fields=display_fields,
        )


class ServiceBillingResolver(CategoryResolver):
    category = ReminderCategory.SERVICE

    def normalize(self, row: Dict[str, Any]) -> ExpiringItem:
        company = _relation(row, "company", "companies")
        individual = _relation(row, "individual", "individuals")
        service_type = _relation(row, "service_type", "service_types")
        client = company or individual or {}
        company_name = company.get("company_name") if company else None
        individual_name = individual.get("individual_name") if individual else None
        return self._item(
            row,
            row.get("expiry_date"),
            email=_email(client.get("email1")),
            secondary=_email(client.get("email2")),
            name=company_name or individual_name,
            service_name=(service_type or {}).get("name") or "Service",
            invoice_number=row.get("invoice_number") or "N/A",
            total_amount=row.get("total_amount_with_vat") or 0,
            service_date=row.get("service_date"),
            company_name=company_name,
            individual_name=individual_name,
        )


class CompanyDocumentResolver(CategoryResolver):
    category = ReminderCategory.COMPANY_DOCUMENT

    def normalize(self, row: Dict[str, Any]) -> ExpiringItem:
        company = _relation(row, "company", "companies") or {}
        service_type = _relation(row, "service_type", "service_types") or {}
        return self._item(
            row,
            row.get("expiry_date"),
            email=_email(company.get("email1")),
            secondary=_email(company.get("email2")),
            name=company.get("company_name"),
            document_title=row.get("title") or "Document",
            document_type=row.get("document_type"),
            document_number=row.get("document_number"),
            company_name=company.get("company_name"),
            service_name=service_type.get("name"),
        )


class IndividualDocumentResolver(CategoryResolver):
    category = ReminderCategory.INDIVIDUAL_DOCUMENT

    def normalize(self, row: Dict[str, Any]) -> ExpiringItem:
        individual = _relation(row, "individual", "individuals") or {}
        return self._item(
            row,
            row.get("expiry_date"),
            email=_email(individual.get("email1")),
            secondary=_email(individual.get("email2")),
            name=individual.get("individual_name"),
            document_title=row.get("title") or "Document",
            document_type=row.get("document_type"),
            document_number=row.get("document_number"),
            individual_name=individual.get("individual_name"),
        )


class EmployeeDocumentResolver(CategoryResolver):
    category = ReminderCategory.EMPLOYEE_DOCUMENT

    def normalize(self, row: Dict[str, Any]) -> ExpiringItem:
        employee = _relation(row, "employee", "employees") or {}
        company = _relation(employee, "company", "companies") or {}
        service_type = _relation(row, "service_type", "service_types") or {}
        employee_email = _email(employee.get("email"))
        company_email = _email(company.get("email1"))
        return self._item(
            row,
            row.get("expiry_date"),
            email=employee_email or company_email,
            secondary=company_email,
            name=employee.get("name") or "Employee",
            document_title=row.get("name") or "Employee Document",
            document_type=row.get("type"),
            document_number=row.get("file_name"),
            employee_name=employee.get("name"),
            company_name=company.get("company_name"),
            service_name=service_type.get("name"),
        )


class MonetaryDueResolver(CategoryResolver):
    category = ReminderCategory.MONETARY_DUE

    def normalize(self, row: Dict[str, Any]) -> ExpiringItem:
        company = _relation(row, "company", "companies")
        individual = _relation(row, "individual", "individuals")
        client = company or individual or {}
        company_name = company.get("company_name") if company else None
        individual_name = individual.get("individual_name") if individual else None
        due_amount = row.get("due_amount") or 0
        paid_amount = row.get("paid_amount") or 0
        return self._item(
            row,
            row.get("due_date"),
            email=_email(client.get("email1")),
            secondary=_email(client.get("email2")),
            name=company_name or individual_name,
            due_amount=due_amount,
            paid_amount=paid_amount,
            balance=due_amount - paid_amount,
            invoice_number=row.get("invoice_number") or "N/A",
            description=row.get("description"),
            due_status=row.get("status"),
            company_name=company_name,
            individual_name=individual_name,
        )


RESOLVER_TYPES = (
    ServiceBillingResolver,
    CompanyDocumentResolver,
    IndividualDocumentResolver,
    EmployeeDocumentResolver,
    MonetaryDueResolver,
)


def default_resolvers(store: ExpiryRecordStore) -> List[CategoryResolver]:
    return [resolver_type(store) for resolver_type in RESOLVER_TYPES]
