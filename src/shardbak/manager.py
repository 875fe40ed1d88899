"""High level orchestration for shardbak operations."""

from __future__ import annotations

import logging
import stat
from pathlib import Path
from typing import Sequence

from .backends import BackendError, CloudStore, FolderStoreConfig
from .config import Config
from .filesystem import atomic_write, fingerprint, fingerprint_path, normalize_path, path_key
from .ignore import IGNORE_FILENAME, IgnoreFilter
from .models import (
    IGNORE_SHARE_ID,
    METADATA_SHARE_ID,
    RESERVED_SHARE_IDS,
    SENTINEL_FINGERPRINT,
    AddAction,
    AddResult,
    BackendFailure,
    DeleteAction,
    DeleteResult,
    FileRecord,
    Reason,
    RestoreAction,
    RestoreReport,
    RestoreResult,
    Share,
    StatusEntry,
    StatusReport,
    StatusState,
)
from .sharing import combine, create_shares, new_share_id
from .state import MIN_BACKENDS, STATE_FILENAME, CoordinatorState, StateError

logger = logging.getLogger(__name__)


class ShardbakError(RuntimeError):
    """Raised when shardbak encounters an unrecoverable state."""


class SetupIncompleteError(ShardbakError):
    """Raised when fewer backends are registered than splitting requires."""


class RestoreAbortedError(ShardbakError):
    """Raised when a restore cannot proceed for any file."""

    def __init__(self, message: str, reason: Reason | None = None) -> None:
        super().__init__(message)
        self.reason = reason


class ShardManager:
    """Coordinates add, delete and restore against the registered backends.

    Creating a manager initialises the root directory: the state file is
    loaded (or created) and the default ignore rules are written when absent.
    """

    def __init__(self, config: Config) -> None:
        self.config = config
        self.root = normalize_path(config.settings.root)
        self.staging_root = config.settings.staging_root
        self.root.mkdir(parents=True, exist_ok=True)

        self.state_path = self.root / STATE_FILENAME
        self.ignore_path = self.root / IGNORE_FILENAME
        self.ignore = IgnoreFilter(self.ignore_path)

        if not self.state_path.exists():
            logger.info("Creating new shardbak root at %s", self.root)
        try:
            self.state = CoordinatorState.load(self.state_path)
        except StateError as exc:
            raise ShardbakError(str(exc)) from exc

        try:
            self.ignore.write_defaults()
        except OSError as exc:
            logger.error("Could not write %s: %s", self.ignore_path, exc)
        if self.ignore_path.exists() and self.state.get_file(self.ignore_path) is None:
            self.state.upsert_file(
                self.ignore_path,
                FileRecord(IGNORE_SHARE_ID, fingerprint_path(self.ignore_path)),
            )
        self.state.save()

    # ------------------------------------------------------------------
    # Backends

    def register_folder_store(self, path: Path | str, *, force: bool = False) -> FolderStoreConfig:
        folder = normalize_path(path)
        if any(existing.path == folder for existing in self.state.folder_stores):
            raise ShardbakError(f"Folder store '{folder}' is already registered")
        if folder.is_relative_to(self.root):
            raise ShardbakError(f"Folder store '{folder}' must live outside the root '{self.root}'")

        tracked = self.state.user_files()
        if tracked and not force:
            raise ShardbakError(
                f"{len(tracked)} file(s) are already shared across {self.state.registered_backend_count} "
                "backend(s). Registering another backend changes the share layout; re-run with force "
                "and add every tracked path again afterwards."
            )

        try:
            folder.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ShardbakError(f"Cannot create folder store '{folder}': {exc}") from exc

        config = FolderStoreConfig(path=folder)
        self.state.add_folder_store(config)
        self.state.save()
        if tracked:
            logger.warning("Backend layout changed; re-add %d tracked file(s) to reshare them", len(tracked))
        logger.info("Registered folder store %s", folder)
        return config

    def stores(self) -> list[CloudStore]:
        """Return the backends in positional order."""

        return self.state.all_stores(self.staging_root)

    # ------------------------------------------------------------------
    # Operations

    def add(self, path: Path | str) -> list[AddResult]:
        self._require_setup()
        stores = self.stores()
        target = normalize_path(path)
        results: list[AddResult] = []

        self._add_path(target, stores, results)

        mutated = any(
            result.action in (AddAction.TRACKED, AddAction.UPDATED, AddAction.DIRECTORY) for result in results
        )
        if mutated and path_key(target) != self.state.metadata_key:
            self._persist(stores)
        return results

    def delete(self, path: Path | str) -> list[DeleteResult]:
        self._require_setup()
        stores = self.stores()
        target = normalize_path(path)
        results: list[DeleteResult] = []

        if not self.ignore.is_tracked(target):
            logger.info("Path %s is ignored; nothing deleted", target)
            results.append(
                DeleteResult(path=path_key(target), action=DeleteAction.IGNORED, reason=Reason.IGNORED_PATH)
            )
            return results

        self._delete_path(target, stores, results)

        if any(result.action in (DeleteAction.DELETED, DeleteAction.DIRECTORY) for result in results):
            self._persist(stores)
        return results

    def restore(self) -> RestoreReport:
        self._require_setup()
        stores = self.stores()
        entries: list[RestoreResult] = []

        try:
            staging = self._stage_all(stores)
            manifest = self._recover_manifest(staging)

            for dir_key in manifest.dirs():
                entries.append(self._restore_directory(dir_key))

            for key, record in manifest.files():
                if record.share_id == METADATA_SHARE_ID:
                    continue
                if record.share_id == IGNORE_SHARE_ID:
                    # ignore rules always belong to the live root
                    key = path_key(self.ignore_path)
                entries.append(self._restore_file(key, record, staging))

            self.state.save()
        finally:
            for store in stores:
                store.clean()

        restored = sum(1 for entry in entries if entry.action is RestoreAction.RESTORED)
        logger.info("Restore finished: %d of %d entries restored", restored, len(entries))
        return RestoreReport(entries=tuple(entries), backends=tuple(store.short_describe() for store in stores))

    def status(self) -> StatusReport:
        entries: list[StatusEntry] = [StatusEntry(path=key, state=StatusState.DIRECTORY) for key in self.state.dirs()]

        for key, record in self.state.files():
            if record.share_id in RESERVED_SHARE_IDS:
                entries.append(StatusEntry(path=key, state=StatusState.CONTROL, share_id=record.share_id))
                continue
            try:
                current = fingerprint_path(Path(key))
            except OSError:
                state = StatusState.MISSING
            else:
                state = StatusState.IN_SYNC if current == record.fingerprint else StatusState.MODIFIED
            entries.append(StatusEntry(path=key, state=state, share_id=record.share_id))

        entries.sort(key=lambda entry: entry.path)
        return StatusReport(entries=tuple(entries))

    # ------------------------------------------------------------------
    # Internal helpers

    def _require_setup(self) -> None:
        if self.state.needs_setup():
            raise SetupIncompleteError(
                f"{self.state.registered_backend_count} backend(s) registered; at least {MIN_BACKENDS} are required."
            )

    def _add_path(self, path: Path, stores: Sequence[CloudStore], results: list[AddResult]) -> None:
        key = path_key(path)
        if not self.ignore.is_tracked(path):
            logger.info("Path %s is ignored; no action performed", key)
            results.append(AddResult(path=key, action=AddAction.IGNORED, reason=Reason.IGNORED_PATH))
            return

        try:
            mode = path.stat().st_mode
        except OSError as exc:
            logger.warning("Cannot get file info for %s: %s", key, exc)
            results.append(
                AddResult(path=key, action=AddAction.FAILED, reason=Reason.NOT_ACCESSIBLE, details=str(exc))
            )
            return

        if stat.S_ISDIR(mode):
            try:
                children = sorted(path.iterdir())
            except OSError as exc:
                logger.warning("Cannot list directory %s: %s", key, exc)
                results.append(
                    AddResult(path=key, action=AddAction.FAILED, reason=Reason.NOT_ACCESSIBLE, details=str(exc))
                )
                return

            failures: tuple[BackendFailure, ...] = ()
            previous = self.state.get_file(path)
            if previous is not None and previous.share_id not in RESERVED_SHARE_IDS:
                logger.info("File %s became a directory; deleting share %s", key, previous.share_id)
                failures = self._delete_shares(previous.share_id, stores)
            self.state.add_dir(path)
            results.append(
                AddResult(
                    path=key,
                    action=AddAction.DIRECTORY,
                    reason=Reason.BACKEND_DELETE_FAILURE if failures else None,
                    backend_failures=failures,
                )
            )
            for child in children:
                self._add_path(child, stores, results)
            return

        if not stat.S_ISREG(mode):
            results.append(
                AddResult(
                    path=key,
                    action=AddAction.FAILED,
                    reason=Reason.NOT_ACCESSIBLE,
                    details="Not a regular file or directory",
                )
            )
            return

        results.append(self._add_file(path, stores))

    def _share_id_for(self, key: str, existing: FileRecord | None) -> str:
        if key == self.state.metadata_key:
            return METADATA_SHARE_ID
        if key == path_key(self.ignore_path):
            return IGNORE_SHARE_ID
        if existing is not None:
            return existing.share_id
        return new_share_id()

    def _add_file(self, path: Path, stores: Sequence[CloudStore]) -> AddResult:
        key = path_key(path)
        existing = self.state.get_file(path)
        share_id = self._share_id_for(key, existing)

        try:
            data = path.read_bytes()
        except OSError as exc:
            logger.warning("Cannot read file %s: %s", key, exc)
            return AddResult(path=key, action=AddAction.FAILED, reason=Reason.READ_FAILURE, details=str(exc))

        digest = SENTINEL_FINGERPRINT if share_id == METADATA_SHARE_ID else fingerprint(data)
        self.state.upsert_file(path, FileRecord(share_id=share_id, fingerprint=digest))

        failures = self._upload(create_shares(data, share_id, len(stores)), stores)
        return AddResult(
            path=key,
            action=AddAction.UPDATED if existing is not None else AddAction.TRACKED,
            share_id=share_id,
            reason=Reason.BACKEND_UPLOAD_FAILURE if failures else None,
            backend_failures=failures,
        )

    def _upload(self, shares: Sequence[Share], stores: Sequence[CloudStore]) -> tuple[BackendFailure, ...]:
        failures: list[BackendFailure] = []
        for share, store in zip(shares, stores, strict=True):
            try:
                store.upload(share)
            except BackendError as exc:
                logger.warning("Upload of %s to %s failed: %s", share.share_id, store.short_describe(), exc)
                failures.append(BackendFailure(store.short_describe(), Reason.BACKEND_UPLOAD_FAILURE, str(exc)))
        return tuple(failures)

    def _persist(self, stores: Sequence[CloudStore]) -> None:
        """Save the state locally and reshare the control files."""

        if self.ignore_path.exists():
            self._report_control(self._add_file(self.ignore_path, stores))
        self.state.save()
        self._report_control(self._add_file(self.state_path, stores))

    def _report_control(self, result: AddResult) -> None:
        if result.action is AddAction.FAILED:
            logger.error("Could not share %s: %s", result.path, result.details)
        for failure in result.backend_failures:
            logger.error("Metadata %s not stored on %s: %s", result.path, failure.backend, failure.message)

    def _delete_path(self, path: Path, stores: Sequence[CloudStore], results: list[DeleteResult]) -> None:
        key = path_key(path)
        if self.state.has_dir(path):
            self._delete_directory(key, stores, results)
            return

        record = self.state.get_file(path)
        if record is None:
            logger.info("Path %s is not tracked; cannot find share id", key)
            results.append(DeleteResult(path=key, action=DeleteAction.NOT_TRACKED, reason=Reason.NOT_TRACKED))
            return

        if record.share_id in RESERVED_SHARE_IDS:
            logger.debug("Keeping control file %s", key)
            results.append(
                DeleteResult(path=key, action=DeleteAction.IGNORED, share_id=record.share_id, reason=Reason.IGNORED_PATH)
            )
            return

        failures = self._delete_shares(record.share_id, stores)
        self.state.remove_file(path)
        results.append(
            DeleteResult(
                path=key,
                action=DeleteAction.DELETED,
                share_id=record.share_id,
                reason=Reason.BACKEND_DELETE_FAILURE if failures else None,
                backend_failures=failures,
            )
        )

    def _delete_shares(self, share_id: str, stores: Sequence[CloudStore]) -> tuple[BackendFailure, ...]:
        failures: list[BackendFailure] = []
        for store in stores:
            try:
                store.delete(share_id)
            except BackendError as exc:
                logger.warning("Delete of %s from %s failed: %s", share_id, store.short_describe(), exc)
                failures.append(BackendFailure(store.short_describe(), Reason.BACKEND_DELETE_FAILURE, str(exc)))
        return tuple(failures)

    def _delete_directory(self, key: str, stores: Sequence[CloudStore], results: list[DeleteResult]) -> None:
        prefix = key if key.endswith("/") else f"{key}/"

        for file_key, _record in self.state.files():
            if file_key.startswith(prefix):
                self._delete_path(Path(file_key), stores, results)

        for dir_key in self.state.dirs():
            if dir_key.startswith(prefix):
                self.state.remove_dir(dir_key)
                results.append(DeleteResult(path=dir_key, action=DeleteAction.DIRECTORY))

        self.state.remove_dir(key)
        results.append(DeleteResult(path=key, action=DeleteAction.DIRECTORY))

    def _stage_all(self, stores: Sequence[CloudStore]) -> list[Path]:
        staging: list[Path] = []
        for store in stores:
            try:
                staging.append(store.restore_to_staging())
            except BackendError as exc:
                logger.error("Restore failed for %s: %s", store.describe(), exc)
                raise RestoreAbortedError(f"Restore failed for {store.describe()}: {exc}") from exc
        return staging

    def _collect(self, share_id: str, staging: Sequence[Path]) -> list[bytes] | None:
        pieces: list[bytes] = []
        for location in staging:
            piece_path = location / share_id
            try:
                pieces.append(piece_path.read_bytes())
            except OSError as exc:
                logger.warning("Missing piece %s in %s: %s", share_id, location, exc)
        if len(pieces) < self.state.registered_backend_count:
            logger.warning("Could not retrieve enough shares to restore %s", share_id)
            return None
        return pieces

    def _recover_manifest(self, staging: Sequence[Path]) -> CoordinatorState:
        pieces = self._collect(METADATA_SHARE_ID, staging)
        if pieces is None:
            raise RestoreAbortedError(
                "Cannot restore the shardbak state from the backends: a metadata share is missing",
                reason=Reason.INSUFFICIENT_SHARES,
            )
        try:
            return CoordinatorState.from_bytes(combine(pieces), self.state_path)
        except (ValueError, StateError) as exc:
            raise RestoreAbortedError(f"Cannot decode the restored shardbak state: {exc}") from exc

    def _restore_directory(self, key: str) -> RestoreResult:
        try:
            Path(key).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("Cannot create directory %s: %s", key, exc)
            return RestoreResult(path=key, action=RestoreAction.FAILED, reason=Reason.WRITE_FAILURE, details=str(exc))
        self.state.add_dir(key)
        return RestoreResult(path=key, action=RestoreAction.DIRECTORY)

    def _restore_file(self, key: str, record: FileRecord, staging: Sequence[Path]) -> RestoreResult:
        pieces = self._collect(record.share_id, staging)
        if pieces is None:
            return RestoreResult(
                path=key,
                action=RestoreAction.UNRECOVERABLE,
                reason=Reason.INSUFFICIENT_SHARES,
                details=f"Not every backend holds share {record.share_id}",
            )

        try:
            candidate = combine(pieces)
        except ValueError as exc:
            logger.error("Shares for %s cannot be combined: %s", key, exc)
            return RestoreResult(
                path=key, action=RestoreAction.SKIPPED, reason=Reason.INTEGRITY_MISMATCH, details=str(exc)
            )

        if record.verifiable and fingerprint(candidate) != record.fingerprint:
            logger.error("Invalid checksum for share %s; skipping %s", record.share_id, key)
            return RestoreResult(
                path=key,
                action=RestoreAction.SKIPPED,
                reason=Reason.INTEGRITY_MISMATCH,
                details="Reconstructed content does not match the recorded fingerprint",
            )

        try:
            atomic_write(Path(key), candidate)
        except OSError as exc:
            logger.error("Error writing restored file %s: %s", key, exc)
            return RestoreResult(path=key, action=RestoreAction.FAILED, reason=Reason.WRITE_FAILURE, details=str(exc))

        self.state.upsert_file(key, record)
        return RestoreResult(path=key, action=RestoreAction.RESTORED)
