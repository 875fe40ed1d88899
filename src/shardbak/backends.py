"""Storage backends that hold one share per tracked file."""

from __future__ import annotations

import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Literal

from pydantic import BaseModel, ConfigDict

from .filesystem import atomic_write, remove_path
from .models import Share

logger = logging.getLogger(__name__)


class BackendError(RuntimeError):
    """Raised when a backend cannot complete a request."""


class CloudStore(ABC):
    """Capability set every backend kind provides to the coordinator."""

    @abstractmethod
    def upload(self, share: Share) -> None: ...

    @abstractmethod
    def delete(self, share_id: str) -> None: ...

    @abstractmethod
    def restore_to_staging(self) -> Path:
        """Download every share into a fresh local directory and return it."""

    @abstractmethod
    def clean(self) -> None:
        """Remove every staging directory this store created."""

    @abstractmethod
    def describe(self) -> str: ...

    @abstractmethod
    def short_describe(self) -> str: ...


class FolderStoreConfig(BaseModel):
    """A local directory (often a synced or mounted folder) mirroring shares."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["folder"] = "folder"
    path: Path


class FolderStore(CloudStore):
    def __init__(self, config: FolderStoreConfig, *, staging_root: Path | None = None) -> None:
        self.config = config
        self.staging_root = staging_root
        self._staged: list[Path] = []

    @property
    def path(self) -> Path:
        return self.config.path

    def upload(self, share: Share) -> None:
        try:
            self.path.mkdir(parents=True, exist_ok=True)
            atomic_write(self.path / share.share_id, share.data)
        except OSError as exc:
            raise BackendError(f"Cannot write share '{share.share_id}' to '{self.path}': {exc}") from exc
        logger.debug("Uploaded share %s to %s", share.share_id, self.short_describe())

    def delete(self, share_id: str) -> None:
        target = self.path / share_id
        try:
            target.unlink()
        except FileNotFoundError:
            logger.debug("Share %s already absent from %s", share_id, self.short_describe())
        except OSError as exc:
            raise BackendError(f"Cannot delete share '{share_id}' from '{self.path}': {exc}") from exc

    def restore_to_staging(self) -> Path:
        if not self.path.is_dir():
            raise BackendError(f"Folder store '{self.path}' is not an accessible directory")

        if self.staging_root is not None:
            self.staging_root.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix="shardbak-folder-", dir=self.staging_root))
        self._staged.append(staging)
        try:
            for child in self.path.iterdir():
                if child.is_file():
                    shutil.copy2(child, staging / child.name)
        except OSError as exc:
            raise BackendError(f"Cannot stage shares from '{self.path}': {exc}") from exc

        logger.debug("Staged %s into %s", self.short_describe(), staging)
        return staging

    def clean(self) -> None:
        while self._staged:
            remove_path(self._staged.pop())

    def describe(self) -> str:
        return f"Folder store at '{self.path}'"

    def short_describe(self) -> str:
        return f"folder:{self.path.name or self.path}"


StoreConfig = FolderStoreConfig
StoreFactory = Callable[[StoreConfig, Path | None], CloudStore]

# Positional order across kinds: local kinds first, remote kinds after.
KIND_ORDER: tuple[str, ...] = ("folder",)

_FACTORIES: dict[str, StoreFactory] = {
    "folder": lambda config, staging_root: FolderStore(config, staging_root=staging_root),
}


def build_store(config: StoreConfig, staging_root: Path | None = None) -> CloudStore:
    try:
        factory = _FACTORIES[config.kind]
    except KeyError as exc:
        raise BackendError(f"Unknown backend kind '{config.kind}'") from exc
    return factory(config, staging_root)
