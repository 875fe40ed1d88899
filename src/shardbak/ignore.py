"""Ignore-pattern filter backed by the ``.shardbakignore`` sidecar file."""

from __future__ import annotations

import logging
from fnmatch import fnmatchcase
from pathlib import Path

IGNORE_FILENAME = ".shardbakignore"
DEFAULT_IGNORE_RULES = (
    ".DS_Store",
    "._*",
    "Thumbs.db",
    "desktop.ini",
)

logger = logging.getLogger(__name__)


def default_rules_text() -> str:
    return "".join(f"{rule}\n" for rule in DEFAULT_IGNORE_RULES)


def is_malformed(pattern: str) -> bool:
    """Return ``True`` for globs with an unterminated character class or a
    trailing escape character."""

    trailing = len(pattern) - len(pattern.rstrip("\\"))
    if trailing % 2 == 1:
        return True

    index = pattern.find("[")
    while index != -1:
        # a ``]`` directly after ``[`` or ``[!`` is a literal member of the class
        start = index + 2 if pattern.startswith("[!", index) else index + 1
        closing = pattern.find("]", start + 1)
        if closing == -1:
            return True
        index = pattern.find("[", closing + 1)
    return False


class IgnoreFilter:
    """Decides whether a path may be tracked.

    The rules file is read on every call so edits apply immediately. When the
    file does not exist every path is trackable.
    """

    def __init__(self, rules_path: Path) -> None:
        self.rules_path = rules_path

    def is_tracked(self, path: Path | str) -> bool:
        base = Path(path).name
        try:
            with self.rules_path.open("r", encoding="utf-8") as handle:
                for line in handle:
                    pattern = line.rstrip("\r\n")
                    if not pattern:
                        continue
                    if is_malformed(pattern):
                        logger.warning("Skipping malformed ignore pattern %r in %s", pattern, self.rules_path)
                        continue
                    if fnmatchcase(base, pattern):
                        return False
        except FileNotFoundError:
            return True
        except OSError as exc:
            logger.warning("Cannot read ignore rules %s: %s", self.rules_path, exc)
            return True

        return True

    def write_defaults(self) -> bool:
        """Create the rules file with the default rule set if missing."""

        if self.rules_path.exists():
            return False
        self.rules_path.parent.mkdir(parents=True, exist_ok=True)
        self.rules_path.write_text(default_rules_text(), encoding="utf-8")
        return True
