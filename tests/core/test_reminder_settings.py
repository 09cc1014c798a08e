import pytest

from packages.core.reminders.settings import load_settings, normalize_offsets, save_settings
from packages.core.storage.sqlite import SQLiteExpiryStore


def test_normalize_offsets_dedupes_and_sorts_descending():
    assert normalize_offsets([1, 7, "3", 7, 30]) == [30, 7, 3, 1]
    assert normalize_offsets([]) == []


@pytest.mark.parametrize("bad", [0, -3, 2.5, True, "x", None])
def test_normalize_offsets_rejects_non_positive_integers(bad):
    with pytest.raises(ValueError):
        normalize_offsets([7, bad])


def test_save_and_load_settings(tmp_path):
    store = SQLiteExpiryStore(db_path=str(tmp_path / "expiry.db"))
    assert load_settings(store, "service_expiry") is None

    saved = save_settings(
        store,
        "service_expiry",
        enabled=True,
        offsets=[3, 30, 3],
        subject="Renew {service_name}",
    )
    loaded = load_settings(store, "service_expiry")

    assert saved == loaded
    assert loaded.offsets == [30, 3]
    assert loaded.template.subject == "Renew {service_name}"
    assert loaded.template.body == ""
    assert load_settings(store, "document_expiry") is None


def test_enabled_settings_require_offsets(tmp_path):
    store = SQLiteExpiryStore(db_path=str(tmp_path / "expiry.db"))
    with pytest.raises(ValueError):
        save_settings(store, "service_expiry", enabled=True, offsets=[])

    disabled = save_settings(store, "service_expiry", enabled=False, offsets=[])
    assert disabled.enabled is False
    assert disabled.offsets == []
