from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from shardbak.config import Config
from shardbak.manager import ShardManager


@pytest.fixture
def fake_home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("USERPROFILE", str(home))
    return home


@pytest.fixture
def make_manager(tmp_path: Path) -> Callable[..., tuple[ShardManager, list[Path]]]:
    """Build a manager with ``store_count`` folder stores under ``tmp_path``."""

    def _make(store_count: int = 2, *, root_name: str = "root") -> tuple[ShardManager, list[Path]]:
        config = Config.for_root(tmp_path / root_name, staging_root=tmp_path / "staging")
        manager = ShardManager(config)
        stores = [tmp_path / f"store{index}" for index in range(store_count)]
        for store in stores:
            manager.register_folder_store(store)
        return manager, stores

    return _make
