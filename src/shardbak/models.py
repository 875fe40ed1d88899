"""Shared models and enums for shardbak."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

METADATA_SHARE_ID = ".shardbak"
IGNORE_SHARE_ID = ".shardbakignore"
SENTINEL_FINGERPRINT = ""
RESERVED_SHARE_IDS = frozenset({METADATA_SHARE_ID, IGNORE_SHARE_ID})


class Reason(str, Enum):
    """Why an entry was not processed normally."""

    NOT_ACCESSIBLE = "not_accessible"
    READ_FAILURE = "read_failure"
    WRITE_FAILURE = "write_failure"
    IGNORED_PATH = "ignored_path"
    NOT_TRACKED = "not_tracked"
    BACKEND_UPLOAD_FAILURE = "backend_upload_failure"
    BACKEND_DELETE_FAILURE = "backend_delete_failure"
    INSUFFICIENT_SHARES = "insufficient_shares"
    INTEGRITY_MISMATCH = "integrity_mismatch"
    SETUP_INCOMPLETE = "setup_incomplete"


@dataclass(frozen=True, slots=True)
class FileRecord:
    """Share identifier and content fingerprint recorded for a tracked file."""

    share_id: str
    fingerprint: str

    @property
    def verifiable(self) -> bool:
        return self.fingerprint != SENTINEL_FINGERPRINT


@dataclass(frozen=True, slots=True)
class Share:
    """One piece of a split file, addressed by its share identifier."""

    share_id: str
    data: bytes


@dataclass(frozen=True, slots=True)
class BackendFailure:
    """A single backend call that did not succeed."""

    backend: str
    reason: Reason
    message: str


class AddAction(str, Enum):
    """Outcome of an add operation for a path."""

    TRACKED = "tracked"
    UPDATED = "updated"
    DIRECTORY = "directory"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class AddResult:
    path: str
    action: AddAction
    share_id: str | None = None
    reason: Reason | None = None
    details: str | None = None
    backend_failures: tuple[BackendFailure, ...] = ()


class DeleteAction(str, Enum):
    """Outcome of a delete operation for a path."""

    DELETED = "deleted"
    DIRECTORY = "directory"
    IGNORED = "ignored"
    NOT_TRACKED = "not_tracked"


@dataclass(frozen=True, slots=True)
class DeleteResult:
    path: str
    action: DeleteAction
    share_id: str | None = None
    reason: Reason | None = None
    backend_failures: tuple[BackendFailure, ...] = ()


class RestoreAction(str, Enum):
    """Outcome of restoring a manifest entry."""

    RESTORED = "restored"
    DIRECTORY = "directory"
    SKIPPED = "skipped"
    UNRECOVERABLE = "unrecoverable"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class RestoreResult:
    path: str
    action: RestoreAction
    reason: Reason | None = None
    details: str | None = None


@dataclass(frozen=True, slots=True)
class RestoreReport:
    """Everything attempted during a restore run."""

    entries: tuple[RestoreResult, ...]
    backends: tuple[str, ...] = field(default_factory=tuple)

    def by_action(self, action: RestoreAction) -> list[RestoreResult]:
        return [entry for entry in self.entries if entry.action is action]


class StatusState(str, Enum):
    """High-level states reported by ``shardbak status``."""

    IN_SYNC = "in_sync"
    MODIFIED = "modified"
    MISSING = "missing"
    DIRECTORY = "directory"
    CONTROL = "control"


@dataclass(frozen=True, slots=True)
class StatusEntry:
    path: str
    state: StatusState
    share_id: str | None = None


@dataclass(frozen=True, slots=True)
class StatusReport:
    entries: tuple[StatusEntry, ...]
