from __future__ import annotations

import base64
import hashlib
from pathlib import Path

import pytest

from shardbak.filesystem import (
    atomic_write,
    ensure_parent,
    fingerprint,
    fingerprint_path,
    normalize_path,
    path_key,
    remove_path,
)


def test_fingerprint_is_urlsafe_sha256() -> None:
    expected = base64.urlsafe_b64encode(hashlib.sha256(b"hello").digest()).decode()

    assert fingerprint(b"hello") == expected
    assert fingerprint(b"hello") != fingerprint(b"hello!")


def test_fingerprint_path_matches_bytes(tmp_path: Path) -> None:
    target = tmp_path / "file.bin"
    target.write_bytes(b"\x00" * 3_000_000)

    assert fingerprint_path(target) == fingerprint(target.read_bytes())


def test_normalize_path_expands_user(fake_home: Path) -> None:
    assert normalize_path("~/docs/../notes.txt") == fake_home / "notes.txt"
    assert path_key("~/notes.txt") == (fake_home / "notes.txt").as_posix()


def test_atomic_write_creates_parents(tmp_path: Path) -> None:
    target = tmp_path / "deep" / "file.txt"

    atomic_write(target, b"data")

    assert target.read_bytes() == b"data"
    assert [child.name for child in target.parent.iterdir()] == ["file.txt"]


def test_atomic_write_refuses_directory(tmp_path: Path) -> None:
    target = tmp_path / "is-a-dir"
    (target / "child").mkdir(parents=True)

    with pytest.raises(IsADirectoryError):
        atomic_write(target, b"not written")

    assert (target / "child").is_dir()
    assert [child.name for child in tmp_path.iterdir()] == ["is-a-dir"]


def test_ensure_parent(tmp_path: Path) -> None:
    target = tmp_path / "deep" / "file.txt"
    ensure_parent(target)
    assert target.parent.exists()


def test_remove_path_directory(tmp_path: Path) -> None:
    directory = tmp_path / "dir"
    (directory / "child").mkdir(parents=True)
    (directory / "child" / "data").write_text("x")

    remove_path(directory)
    assert not directory.exists()


def test_remove_path_missing_noop(tmp_path: Path) -> None:
    missing = tmp_path / "missing"
    remove_path(missing)
