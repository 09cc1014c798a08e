from __future__ import annotations

import datetime as dt

from fastapi.testclient import TestClient

from apps.api.main import app
from apps.api.reminders_scheduler import ReminderScheduler
from packages.core.reminders.dedup import ReminderLog
from packages.core.reminders.resolvers import default_resolvers
from packages.core.reminders.runner import ReminderCheckRunner
from packages.core.storage.sqlite import SQLiteExpiryStore


NOW = dt.datetime(2024, 6, 1, 10, 30, 0)


class FakeDispatcher:
    def __init__(self):
        self.sent = []

    def send(self, notification):
        self.sent.append(notification)
        return True


class IdleScheduler:
    def __init__(self):
        self.jobs = []

    def add_job(self, func, **kwargs):
        self.jobs.append(func)

    def start(self):
        pass

    def shutdown(self, wait=True):
        pass


def _install(monkeypatch, tmp_path):
    store = SQLiteExpiryStore(db_path=str(tmp_path / "expiry.db"))
    clock = lambda: NOW
    reminder_log = ReminderLog(store, clock=clock)
    dispatcher = FakeDispatcher()
    runner = ReminderCheckRunner(
        settings_store=store,
        reminder_log=reminder_log,
        dispatcher=dispatcher,
        resolvers=default_resolvers(store),
        clock=clock,
        dispatch_delay_seconds=0,
    )
    scheduler = ReminderScheduler(runner, clock=clock, scheduler_factory=IdleScheduler)
    monkeypatch.setattr(app.state, "expiry_store", store, raising=False)
    monkeypatch.setattr(app.state, "reminder_log", reminder_log, raising=False)
    monkeypatch.setattr(app.state, "reminder_runner", runner, raising=False)
    monkeypatch.setattr(app.state, "reminder_scheduler", scheduler, raising=False)
    return store, dispatcher


def test_settings_roundtrip_and_validation(monkeypatch, tmp_path):
    _install(monkeypatch, tmp_path)
    client = TestClient(app)

    assert client.get("/api/expiry-reminders/settings").status_code == 404

    put_resp = client.put(
        "/api/expiry-reminders/settings",
        json={"enabled": True, "offsets": [1, 7, 7, 3]},
    )
    assert put_resp.status_code == 200
    assert put_resp.json()["offsets"] == [7, 3, 1]

    get_resp = client.get("/api/expiry-reminders/settings")
    assert get_resp.json()["reminder_type"] == "service_expiry"

    bad_resp = client.put(
        "/api/expiry-reminders/settings", json={"enabled": True, "offsets": [0]}
    )
    assert bad_resp.status_code == 400


def test_document_settings_are_stored_separately(monkeypatch, tmp_path):
    _install(monkeypatch, tmp_path)
    client = TestClient(app)

    client.put("/api/expiry-reminders/settings", json={"enabled": True, "offsets": [7]})
    put_resp = client.put(
        "/api/expiry-reminders/settings",
        params={"reminder_type": "document_expiry"},
        json={"enabled": False, "offsets": [30]},
    )
    assert put_resp.json()["reminder_type"] == "document_expiry"

    service = client.get("/api/expiry-reminders/settings").json()
    documents = client.get(
        "/api/expiry-reminders/settings", params={"reminder_type": "document_expiry"}
    ).json()
    assert (service["enabled"], service["offsets"]) == (True, [7])
    assert (documents["enabled"], documents["offsets"]) == (False, [30])

    unknown = client.get("/api/expiry-reminders/settings", params={"reminder_type": "cards"})
    assert unknown.status_code == 400


def test_manual_run_and_logs(monkeypatch, tmp_path):
    store, dispatcher = _install(monkeypatch, tmp_path)
    store.insert_record(
        "companies", {"id": "co-1", "company_name": "Acme LLC", "email1": "ops@acme.test"}
    )
    store.insert_record(
        "company_documents",
        {"id": "doc-1", "company_id": "co-1", "title": "Trade License", "expiry_date": "2024-06-04"},
    )
    client = TestClient(app)
    client.put(
        "/api/expiry-reminders/settings",
        params={"reminder_type": "document_expiry"},
        json={"enabled": True, "offsets": [7, 3]},
    )

    run_resp = client.post("/api/expiry-reminders/run")
    assert run_resp.status_code == 200
    assert run_resp.json() == {
        "success": True,
        "total_checked": 1,
        "reminders_sent": 1,
        "errors": 0,
        "message": "Checked 1 item(s), sent 1 reminder(s), 0 error(s)",
    }
    assert len(dispatcher.sent) == 1

    logs_resp = client.get("/api/expiry-reminders/logs")
    assert logs_resp.status_code == 200
    logs = logs_resp.json()
    assert logs[0]["item_id"] == "doc-1"
    assert logs[0]["category"] == "company_document"
    assert logs[0]["offset_days"] == 3
    assert logs[0]["status"] == "sent"

    same_day = client.get("/api/expiry-reminders/logs", params={"end": "2024-06-01"})
    assert [log["item_id"] for log in same_day.json()] == ["doc-1"]
    day_before = client.get("/api/expiry-reminders/logs", params={"end": "2024-05-31"})
    assert day_before.json() == []
    assert client.get("/api/expiry-reminders/logs", params={"end": "2024-13-01"}).status_code == 400


def test_scheduler_start_status_stop(monkeypatch, tmp_path):
    _install(monkeypatch, tmp_path)
    client = TestClient(app)

    status = client.get("/api/expiry-reminders/scheduler").json()
    assert status["is_active"] is False
    assert status["total_runs"] == 0

    start_resp = client.post(
        "/api/expiry-reminders/scheduler/start", json={"interval_minutes": 15}
    )
    assert start_resp.status_code == 200
    started = start_resp.json()
    assert started["is_active"] is True
    assert started["interval_minutes"] == 15
    assert started["total_runs"] == 1
    assert started["last_run_result"]["message"] == "Expiry reminders are disabled"

    stop_resp = client.post("/api/expiry-reminders/scheduler/stop")
    assert stop_resp.json()["is_active"] is False
    assert stop_resp.json()["next_run_time"] is None

    bad_resp = client.post(
        "/api/expiry-reminders/scheduler/start", json={"interval_minutes": 5, "mode": "weekly"}
    )
    assert bad_resp.status_code == 400
