"""Filesystem helpers for shardbak."""

from __future__ import annotations

import base64
import errno
import os
import shutil
import tempfile
from hashlib import sha256
from pathlib import Path


def normalize_path(path: Path | str) -> Path:
    """Return the absolute, normalised form used as a tracking key."""

    return Path(os.path.abspath(Path(path).expanduser()))


def path_key(path: Path | str) -> str:
    return normalize_path(path).as_posix()


def fingerprint(data: bytes) -> str:
    """Return the URL-safe base64 SHA-256 digest of ``data``."""

    return base64.urlsafe_b64encode(sha256(data).digest()).decode("ascii")


def fingerprint_path(path: Path) -> str:
    hasher = sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            hasher.update(chunk)
    return base64.urlsafe_b64encode(hasher.digest()).decode("ascii")


def ensure_parent(path: Path) -> None:
    """Ensure the parent directory exists."""

    path.parent.mkdir(parents=True, exist_ok=True)


def atomic_write(destination: Path, data: bytes) -> None:
    """Write ``data`` to ``destination`` through a sibling temp file.

    An existing directory at ``destination`` is never replaced.
    """

    if destination.is_dir():
        raise IsADirectoryError(errno.EISDIR, "Is a directory", str(destination))

    ensure_parent(destination)
    fd, temp_name = tempfile.mkstemp(prefix=f".{destination.name}.shardbak-tmp-", dir=destination.parent)
    temp_path = Path(temp_name)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(temp_path, destination)
    except Exception:
        temp_path.unlink(missing_ok=True)
        raise


def remove_path(path: Path) -> None:
    """Delete ``path`` whether it is a file, directory, or symlink."""

    if not path.exists() and not path.is_symlink():
        return
    if path.is_symlink() or path.is_file():
        path.unlink()
        return
    shutil.rmtree(path)
