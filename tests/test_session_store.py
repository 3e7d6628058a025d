import json

import pytest

from quaver_mirror.errors import StorageError
from quaver_mirror.session_store import SessionStore


def test_load_missing_file_returns_none(tmp_path):
    store = SessionStore(tmp_path / "storageState.json")
    assert store.exists() is False
    assert store.load() is None


def test_load_corrupt_file_returns_none(tmp_path):
    path = tmp_path / "storageState.json"
    path.write_text("{not json", encoding="utf-8")
    assert SessionStore(path).load() is None


def test_load_wrong_shape_returns_none(tmp_path):
    path = tmp_path / "storageState.json"
    path.write_text(json.dumps(["cookies"]), encoding="utf-8")
    assert SessionStore(path).load() is None

    path.write_text(json.dumps({"origins": []}), encoding="utf-8")
    assert SessionStore(path).load() is None


def test_save_then_load(tmp_path):
    path = tmp_path / "state" / "storageState.json"
    store = SessionStore(path)
    state = {"cookies": [{"name": "quaver_session", "value": "abc"}], "origins": []}

    store.save(state)

    assert store.load() == state
    # temp file is renamed into place
    assert not (tmp_path / "state" / "storageState.json.part").exists()


def test_save_overwrites_previous_record(tmp_path):
    store = SessionStore(tmp_path / "storageState.json")
    store.save({"cookies": [{"name": "quaver_session", "value": "old"}]})
    store.save({"cookies": [{"name": "quaver_session", "value": "new"}]})
    assert store.load()["cookies"][0]["value"] == "new"


def test_save_to_unwritable_location_raises_storage_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("a file, not a directory", encoding="utf-8")
    store = SessionStore(blocker / "storageState.json")

    with pytest.raises(StorageError):
        store.save({"cookies": []})
