from __future__ import annotations

from pathlib import Path

import pytest

from shardbak.backends import BackendError, FolderStore, FolderStoreConfig, build_store
from shardbak.models import Share


def _store(tmp_path: Path, name: str = "mirror") -> FolderStore:
    return FolderStore(FolderStoreConfig(path=tmp_path / name), staging_root=tmp_path / "staging")


def test_upload_and_delete(tmp_path: Path) -> None:
    store = _store(tmp_path)

    store.upload(Share("abc", b"piece"))
    assert (store.path / "abc").read_bytes() == b"piece"

    store.delete("abc")
    assert not (store.path / "abc").exists()
    store.delete("abc")


def test_restore_to_staging_and_clean(tmp_path: Path) -> None:
    store = _store(tmp_path)
    store.upload(Share("one", b"1"))
    store.upload(Share("two", b"2"))

    staging = store.restore_to_staging()

    assert staging.parent == tmp_path / "staging"
    assert (staging / "one").read_bytes() == b"1"
    assert (staging / "two").read_bytes() == b"2"

    store.clean()
    assert not staging.exists()


def test_restore_from_missing_folder_fails(tmp_path: Path) -> None:
    store = _store(tmp_path, "gone")

    with pytest.raises(BackendError):
        store.restore_to_staging()


def test_upload_into_blocked_folder_fails(tmp_path: Path) -> None:
    (tmp_path / "blocked").write_text("file, not folder")
    store = _store(tmp_path, "blocked")

    with pytest.raises(BackendError):
        store.upload(Share("abc", b"piece"))


def test_descriptions(tmp_path: Path) -> None:
    store = build_store(FolderStoreConfig(path=tmp_path / "usb"))

    assert isinstance(store, FolderStore)
    assert store.short_describe() == "folder:usb"
    assert str(tmp_path / "usb") in store.describe()
