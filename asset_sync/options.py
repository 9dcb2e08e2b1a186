"""Run options, install locations and backups for asset-sync."""

from __future__ import annotations

import os
import shutil
import sys
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional

EDITIONS = ("insiders", "stable")


class BackupStore:
    """Copies files and folders aside before they are overwritten or removed.

    Layout: <root>/<timestamp>/[<edition>/]<category>/<name>. The timestamp
    is taken on first use and shared by every backup made in the run.
    """

    def __init__(self, root: Path):
        self.root = root
        self._timestamp: Optional[str] = None

    def _dir(self, category: str, edition: Optional[str]) -> Path:
        if self._timestamp is None:
            self._timestamp = datetime.now().strftime("%Y-%m-%d_%H%M%S")
        path = self.root / self._timestamp
        if edition is not None:
            path = path / edition
        path = path / category
        path.mkdir(parents=True, exist_ok=True)
        return path

    @property
    def used(self) -> bool:
        return self._timestamp is not None

    def backup_file(self, path: Path, category: str, edition: Optional[str] = None) -> None:
        if not path.is_file():
            return
        shutil.copy2(path, self._dir(category, edition) / path.name)

    def backup_dir(self, path: Path, category: str, edition: Optional[str] = None) -> None:
        if not path.is_dir():
            return
        shutil.copytree(path, self._dir(category, edition) / path.name, dirs_exist_ok=True)


@dataclass
class SyncOptions:
    """Everything a sync operation needs to know about the current run."""

    repo_root: Path
    edition: str = "both"        # "insiders", "stable" or "both"
    exact: bool = False          # remove installed items not in the repo
    force: bool = False          # overwrite existing items
    dry_run: bool = False
    verbose: bool = False
    scope: str = "personal"      # "personal" (~/.copilot) or "project" (.github)
    home: Path = field(default_factory=Path.home)
    platform: str = sys.platform
    cwd: Path = field(default_factory=Path.cwd)
    backup_path: Optional[Path] = None
    backups: BackupStore = field(init=False)

    def __post_init__(self):
        self.backups = BackupStore(self.backup_path or self.repo_root / "backup")

    def editions(self) -> list[str]:
        if self.edition in EDITIONS:
            return [self.edition]
        return list(EDITIONS)

    def vscode_user_dir(self, edition: str) -> Path:
        folder = "Code - Insiders" if edition == "insiders" else "Code"
        if self.platform.startswith("win"):
            appdata = os.environ.get("APPDATA")
            base = Path(appdata) if appdata else self.home / "AppData" / "Roaming"
            return base / folder / "User"
        if self.platform == "darwin":
            return self.home / "Library" / "Application Support" / folder / "User"
        return self.home / ".config" / folder / "User"

    def git_root(self) -> Path:
        """Nearest ancestor of cwd holding a .git entry, else cwd."""
        for candidate in [self.cwd, *self.cwd.parents]:
            if (candidate / ".git").exists():
                return candidate
        return self.cwd

    def skills_dir(self) -> Path:
        if self.scope == "project":
            return self.git_root() / ".github" / "skills"
        return self.home / ".copilot" / "skills"

    def agents_dir(self) -> Path:
        if self.scope == "project":
            return self.git_root() / ".github" / "agents"
        return self.home / ".copilot" / "agents"

    def instructions_dir(self) -> Path:
        return self.home / ".copilot-instructions" / "instructions"


def header(text: str) -> None:
    print(f"\n=== {text} ===")
