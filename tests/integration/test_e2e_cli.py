from __future__ import annotations

import json
import shutil
from pathlib import Path

from typer.testing import CliRunner

from shardbak.cli import app

runner = CliRunner()


def _write_config(config_dir: Path, root: Path, staging: Path) -> Path:
    config_dir.mkdir(parents=True, exist_ok=True)
    config_path = config_dir / "shardbak.toml"
    config_path.write_text(
        f"""
[settings]
root = "{root}"
staging_root = "{staging}"
"""
    )
    return config_path


def test_cli_full_cycle_on_new_machine(tmp_path: Path, fake_home: Path) -> None:
    stores = [tmp_path / "backends" / name for name in ("usb", "nas", "cloud")]
    photos = tmp_path / "photos"
    (photos / "2024").mkdir(parents=True)
    (photos / "2024" / "beach.jpg").write_bytes(b"\xff\xd8" + b"sand" * 500)
    (photos / "index.txt").write_text("beach.jpg\n")
    (photos / ".DS_Store").write_bytes(b"finder junk")

    old_config = _write_config(tmp_path / "old", tmp_path / "old-root", tmp_path / "staging")
    for store in stores:
        assert runner.invoke(app, ["store", "add", str(store), "--config", str(old_config)]).exit_code == 0

    add_result = runner.invoke(app, ["add", str(photos), "--config", str(old_config)])
    assert add_result.exit_code == 0
    assert "ignored" in add_result.stdout

    shutil.rmtree(photos)
    shutil.rmtree(tmp_path / "old-root")

    new_config = _write_config(tmp_path / "new", tmp_path / "new-root", tmp_path / "staging")
    for store in stores:
        assert runner.invoke(app, ["store", "add", str(store), "--config", str(new_config)]).exit_code == 0

    restore_result = runner.invoke(app, ["restore", "--config", str(new_config)])
    assert restore_result.exit_code == 0
    assert "Restored all files" in restore_result.stdout

    assert (photos / "2024" / "beach.jpg").read_bytes() == b"\xff\xd8" + b"sand" * 500
    assert (photos / "index.txt").read_text() == "beach.jpg\n"
    assert not (photos / ".DS_Store").exists()

    status_result = runner.invoke(app, ["status", "--config", str(new_config)])
    assert status_result.exit_code == 0
    assert "in_sync" in status_result.stdout
    assert "modified" not in status_result.stdout


def test_cli_reports_unrecoverable_file(tmp_path: Path, fake_home: Path) -> None:
    stores = [tmp_path / "backends" / name for name in ("usb", "nas")]
    notes = tmp_path / "notes"
    notes.mkdir()
    (notes / "keep.txt").write_text("keep\n")
    (notes / "lose.txt").write_text("lose\n")

    config = _write_config(tmp_path / "cfg", tmp_path / "root", tmp_path / "staging")
    for store in stores:
        runner.invoke(app, ["store", "add", str(store), "--config", str(config)])
    runner.invoke(app, ["add", str(notes), "--config", str(config)])

    state_text = (tmp_path / "root" / ".shardbak").read_text()
    assert "lose.txt" in state_text
    share_id = json.loads(state_text)["files"][(notes / "lose.txt").as_posix()]["sid"]
    (stores[0] / share_id).unlink()
    shutil.rmtree(notes)

    result = runner.invoke(app, ["restore", "--config", str(config)])

    assert result.exit_code == 0
    assert "unrecoverable" in result.stdout
    assert "were not restored" in result.stdout
    assert (notes / "keep.txt").read_text() == "keep\n"
    assert not (notes / "lose.txt").exists()
