"""Core package for the shardbak project."""

from .backends import BackendError, CloudStore, FolderStore, FolderStoreConfig
from .cli import app, run
from .config import Config, ConfigError, Settings, load_config
from .manager import RestoreAbortedError, SetupIncompleteError, ShardbakError, ShardManager
from .models import (
    AddAction,
    AddResult,
    DeleteAction,
    DeleteResult,
    FileRecord,
    Reason,
    RestoreAction,
    RestoreReport,
    RestoreResult,
    StatusEntry,
    StatusReport,
    StatusState,
)
from .state import CoordinatorState

__all__ = [
    "BackendError",
    "CloudStore",
    "FolderStore",
    "FolderStoreConfig",
    "Config",
    "ConfigError",
    "Settings",
    "load_config",
    "ShardManager",
    "ShardbakError",
    "SetupIncompleteError",
    "RestoreAbortedError",
    "CoordinatorState",
    "AddAction",
    "AddResult",
    "DeleteAction",
    "DeleteResult",
    "FileRecord",
    "Reason",
    "RestoreAction",
    "RestoreReport",
    "RestoreResult",
    "StatusEntry",
    "StatusReport",
    "StatusState",
    "app",
    "run",
]
