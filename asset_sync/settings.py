"""VS Code user settings required by the synced assets."""

from __future__ import annotations

import copy
import json
import sys
from pathlib import Path
from typing import Optional

from asset_sync.jsonc import read_jsonc, write_json
from asset_sync.options import SyncOptions, header

INSTRUCTIONS_LOCATION = "$HOME/.copilot-instructions/instructions"
INSTRUCTIONS_KEY = "chat.instructionFilesLocations"

REQUIRED_SETTINGS = {
    "chat.useAgentSkills": True,
    "chat.useNestedAgentsMdFiles": True,
    "chat.customAgentInSubagent.enabled": True,
    INSTRUCTIONS_KEY: {INSTRUCTIONS_LOCATION: True},
}

_LISTED_PREFIXES = ("chat.", "github.copilot.")


def _settings_path(opts: SyncOptions, edition: str) -> Path:
    return opts.vscode_user_dir(edition) / "settings.json"


def _load(path: Path) -> Optional[dict]:
    """Read settings.json; {} if absent, None if unreadable or not an object."""
    if not path.is_file():
        return {}
    try:
        data = read_jsonc(path)
    except ValueError as e:
        print(f"Warning: cannot parse {path}: {e}", file=sys.stderr)
        return None
    return data if isinstance(data, dict) else None


def _dump(value) -> str:
    return json.dumps(value, separators=(",", ":"))


def settings_list(opts: SyncOptions) -> None:
    header("Settings")
    for edition in opts.editions():
        path = _settings_path(opts, edition)
        print(f"  [{edition}] {path}")
        if not path.is_file():
            print("    (file not found)")
            continue
        data = _load(path)
        if data is None:
            continue
        keys = sorted(k for k in data if k.lower().startswith(_LISTED_PREFIXES))
        if not keys:
            print("    (no chat/copilot settings found)")
        for key in keys:
            print(f"    {key}: {_dump(data[key])}")


def settings_update(opts: SyncOptions) -> None:
    """Set every required setting that is missing or has another value."""
    header("Settings update")
    for edition in opts.editions():
        print(f"  [{edition}]")
        path = _settings_path(opts, edition)
        data = _load(path)
        if data is None:
            continue

        changed = False
        for key, expected in REQUIRED_SETTINGS.items():
            if key in data and data[key] == expected:
                if opts.verbose:
                    print(f"    Already set: {key}")
                continue
            if opts.dry_run:
                print(f"    Would set: {key} = {_dump(expected)}")
            else:
                data[key] = copy.deepcopy(expected)
                print(f"    Set: {key} = {_dump(expected)}")
                changed = True

        if changed:
            opts.backups.backup_file(path, "settings", edition)
            write_json(path, data)


def settings_diff(opts: SyncOptions) -> bool:
    header("Settings diff")
    has_any = False
    for edition in opts.editions():
        print(f"  [{edition}]")
        path = _settings_path(opts, edition)
        if not path.is_file():
            print("    (file not found - all required settings missing)")
            has_any = True
            continue
        data = _load(path)
        if data is None:
            continue
        has_diffs = False
        for key, expected in REQUIRED_SETTINGS.items():
            if key not in data:
                print(f"    + {key} (missing)")
                has_diffs = True
            elif data[key] != expected:
                print(
                    f"    ~ {key} (differs: current={_dump(data[key])}, "
                    f"expected={_dump(expected)})"
                )
                has_diffs = True
        if not has_diffs:
            print("    (all required settings present)")
        has_any |= has_diffs
    return has_any


def ensure_instructions_setting(opts: SyncOptions) -> None:
    """Add the instructions folder to chat.instructionFilesLocations.

    Other configured locations are left in place.
    """
    for edition in opts.editions():
        path = _settings_path(opts, edition)
        data = _load(path)
        if data is None:
            continue

        locations = data.get(INSTRUCTIONS_KEY)
        if isinstance(locations, dict):
            if locations.get(INSTRUCTIONS_LOCATION) is True:
                if opts.verbose:
                    print(f"    {INSTRUCTIONS_KEY} already set in {edition}")
                continue
            locations[INSTRUCTIONS_LOCATION] = True
        else:
            data[INSTRUCTIONS_KEY] = {INSTRUCTIONS_LOCATION: True}

        if opts.dry_run:
            print(f"    Would update {INSTRUCTIONS_KEY} in {edition}")
        else:
            opts.backups.backup_file(path, "settings", edition)
            write_json(path, data)
            print(f"    Updated {INSTRUCTIONS_KEY} in {edition}")
