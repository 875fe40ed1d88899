from __future__ import annotations

import json
from pathlib import Path

import pytest

from shardbak.backends import FolderStore, FolderStoreConfig
from shardbak.models import METADATA_SHARE_ID, SENTINEL_FINGERPRINT, FileRecord
from shardbak.state import STATE_FILENAME, CoordinatorState, StateError


def test_new_state_tracks_itself(tmp_path: Path) -> None:
    state = CoordinatorState.load(tmp_path / STATE_FILENAME)

    record = state.get_file(tmp_path / STATE_FILENAME)
    assert record == FileRecord(METADATA_SHARE_ID, SENTINEL_FINGERPRINT)
    assert not record.verifiable
    assert state.needs_setup()


def test_save_and_load_round_trip(tmp_path: Path) -> None:
    state_path = tmp_path / STATE_FILENAME
    state = CoordinatorState.load(state_path)
    state.add_folder_store(FolderStoreConfig(path=tmp_path / "one"))
    state.add_folder_store(FolderStoreConfig(path=tmp_path / "two"))
    state.upsert_file(tmp_path / "docs" / "a.txt", FileRecord("abc123", "digest"))
    state.add_dir(tmp_path / "docs")
    state.save()

    payload = json.loads(state_path.read_text())
    assert set(payload) == {"folder_stores", "files", "dirs"}
    assert payload["files"][(tmp_path / "docs" / "a.txt").as_posix()] == {"sid": "abc123", "hash": "digest"}

    loaded = CoordinatorState.load(state_path)
    assert loaded.get_file(tmp_path / "docs" / "a.txt") == FileRecord("abc123", "digest")
    assert loaded.has_dir(tmp_path / "docs")
    assert [config.path for config in loaded.backend_configs()] == [tmp_path / "one", tmp_path / "two"]
    assert not loaded.needs_setup()


def test_stores_follow_registration_order(tmp_path: Path) -> None:
    state = CoordinatorState(tmp_path / STATE_FILENAME)
    for name in ("c", "a", "b"):
        state.add_folder_store(FolderStoreConfig(path=tmp_path / name))

    stores = state.all_stores()

    assert all(isinstance(store, FolderStore) for store in stores)
    assert [store.path.name for store in stores] == ["c", "a", "b"]
    assert state.registered_backend_count == 3


def test_files_and_dirs_stay_disjoint(tmp_path: Path) -> None:
    state = CoordinatorState(tmp_path / STATE_FILENAME)
    target = tmp_path / "thing"

    state.upsert_file(target, FileRecord("sid", "hash"))
    state.add_dir(target)
    assert state.get_file(target) is None
    assert state.has_dir(target)

    state.upsert_file(target, FileRecord("sid", "hash"))
    assert not state.has_dir(target)


def test_invalid_bytes_raise_state_error(tmp_path: Path) -> None:
    with pytest.raises(StateError):
        CoordinatorState.from_bytes(b"not json", tmp_path / STATE_FILENAME)


def test_overlapping_namespaces_raise_state_error(tmp_path: Path) -> None:
    payload = json.dumps({"files": {"/x": {"sid": "a", "hash": "b"}}, "dirs": ["/x"]}).encode()

    with pytest.raises(StateError):
        CoordinatorState.from_bytes(payload, tmp_path / STATE_FILENAME)


def test_user_files_excludes_control_records(tmp_path: Path) -> None:
    state = CoordinatorState(tmp_path / STATE_FILENAME)
    state.upsert_file(tmp_path / "a.txt", FileRecord("sid", "hash"))

    assert [key for key, _ in state.user_files()] == [(tmp_path / "a.txt").as_posix()]
