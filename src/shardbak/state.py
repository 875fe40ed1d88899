"""Coordinator state persistence for shardbak."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable

from pydantic import BaseModel, Field, ValidationError

from .backends import KIND_ORDER, CloudStore, FolderStoreConfig, StoreConfig, build_store
from .filesystem import ensure_parent, path_key
from .models import METADATA_SHARE_ID, RESERVED_SHARE_IDS, SENTINEL_FINGERPRINT, FileRecord

STATE_FILENAME = ".shardbak"
MIN_BACKENDS = 2


class StateError(RuntimeError):
    """Raised when persisted state cannot be decoded."""


class FileShareModel(BaseModel):
    sid: str
    hash: str = SENTINEL_FINGERPRINT


class StateDocument(BaseModel):
    """On-disk JSON layout of the coordinator state."""

    folder_stores: list[FolderStoreConfig] = Field(default_factory=list)
    files: dict[str, FileShareModel] = Field(default_factory=dict)
    dirs: list[str] = Field(default_factory=list)


class CoordinatorState:
    """Tracks backends, file records and directory markers for one root."""

    def __init__(
        self,
        path: Path,
        *,
        folder_stores: list[FolderStoreConfig] | None = None,
        files: dict[str, FileRecord] | None = None,
        dirs: set[str] | None = None,
    ) -> None:
        self.path = path
        self.folder_stores: list[FolderStoreConfig] = folder_stores or []
        self._files: dict[str, FileRecord] = files or {}
        self._dirs: set[str] = dirs or set()
        self._files.setdefault(self.metadata_key, FileRecord(METADATA_SHARE_ID, SENTINEL_FINGERPRINT))

    @property
    def root(self) -> Path:
        return self.path.parent

    @property
    def metadata_key(self) -> str:
        return path_key(self.path)

    @classmethod
    def load(cls, path: Path) -> "CoordinatorState":
        if not path.exists():
            return cls(path)
        return cls.from_bytes(path.read_bytes(), path)

    @classmethod
    def from_bytes(cls, data: bytes, path: Path) -> "CoordinatorState":
        try:
            document = StateDocument.model_validate_json(data)
        except ValidationError as exc:
            raise StateError(f"Cannot decode state for '{path}': {exc}") from exc

        files = {key: FileRecord(share_id=item.sid, fingerprint=item.hash) for key, item in document.files.items()}
        overlap = set(files) & set(document.dirs)
        if overlap:
            raise StateError(f"Paths tracked both as files and directories: {sorted(overlap)}")
        return cls(path, folder_stores=list(document.folder_stores), files=files, dirs=set(document.dirs))

    def to_bytes(self) -> bytes:
        document = StateDocument(
            folder_stores=self.folder_stores,
            files={
                key: FileShareModel(sid=record.share_id, hash=record.fingerprint)
                for key, record in sorted(self._files.items())
            },
            dirs=sorted(self._dirs),
        )
        return document.model_dump_json(indent=4).encode("utf-8")

    def save(self) -> None:
        ensure_parent(self.path)
        self.path.write_bytes(self.to_bytes())

    # ------------------------------------------------------------------
    # Backends

    def backend_configs(self) -> list[StoreConfig]:
        """Return every store configuration in fixed positional order."""

        by_kind: dict[str, list[StoreConfig]] = {"folder": list(self.folder_stores)}
        ordered: list[StoreConfig] = []
        for kind in KIND_ORDER:
            ordered.extend(by_kind.get(kind, []))
        return ordered

    @property
    def registered_backend_count(self) -> int:
        return len(self.backend_configs())

    def needs_setup(self) -> bool:
        return self.registered_backend_count < MIN_BACKENDS

    def all_stores(self, staging_root: Path | None = None) -> list[CloudStore]:
        return [build_store(config, staging_root) for config in self.backend_configs()]

    def add_folder_store(self, config: FolderStoreConfig) -> None:
        self.folder_stores.append(config)

    # ------------------------------------------------------------------
    # Records

    def get_file(self, path: Path | str) -> FileRecord | None:
        return self._files.get(path_key(path))

    def upsert_file(self, path: Path | str, record: FileRecord) -> None:
        key = path_key(path)
        self._dirs.discard(key)
        self._files[key] = record

    def remove_file(self, path: Path | str) -> None:
        self._files.pop(path_key(path), None)

    def has_dir(self, path: Path | str) -> bool:
        return path_key(path) in self._dirs

    def add_dir(self, path: Path | str) -> None:
        key = path_key(path)
        self._files.pop(key, None)
        self._dirs.add(key)

    def remove_dir(self, path: Path | str) -> None:
        self._dirs.discard(path_key(path))

    def files(self) -> Iterable[tuple[str, FileRecord]]:
        return sorted(self._files.items())

    def dirs(self) -> list[str]:
        return sorted(self._dirs)

    def user_files(self) -> list[tuple[str, FileRecord]]:
        """Tracked files excluding the reserved control files."""

        return [(key, record) for key, record in self.files() if record.share_id not in RESERVED_SHARE_IDS]
