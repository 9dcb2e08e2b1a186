"""Discover installable assets in the source repository.

Two layouts are supported:

- marketplace: plugins/<plugin>/<kind>/...
- flat: <kind>/... at the repo root, used when there is no plugins/ folder.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from asset_sync.jsonc import read_jsonc

FLAT_PLUGIN = "(flat)"

logger = logging.getLogger("asset_sync.sources")


@dataclass(frozen=True)
class SourceAsset:
    """One skill folder or agent file in the repo."""

    plugin: str     # plugin group name, or "(flat)"
    name: str       # skill folder name, or agent file name without .agent.md
    path: Path


def _asset_name(path: Path, is_dir: bool) -> str:
    if is_dir:
        return path.name
    # "foo.v2.agent.md" -> "foo.v2"
    return path.name.removesuffix(".agent.md")


def _scan(plugin: str, asset_dir: Path, sentinel: Optional[str], pattern: Optional[str]) -> list[SourceAsset]:
    if not asset_dir.is_dir():
        return []
    if sentinel is not None:
        return [
            SourceAsset(plugin, _asset_name(d, True), d)
            for d in sorted(asset_dir.iterdir())
            if d.is_dir() and (d / sentinel).is_file()
        ]
    if pattern is not None:
        return [
            SourceAsset(plugin, _asset_name(f, False), f)
            for f in sorted(asset_dir.glob(pattern))
            if f.is_file()
        ]
    return []


def plugin_names(repo_root: Path, plugin_filter: Optional[str] = None) -> list[str]:
    """Plugin group names under plugins/, sorted case-insensitively."""
    plugins_dir = repo_root / "plugins"
    if not plugins_dir.is_dir():
        return []
    names = sorted((d.name for d in plugins_dir.iterdir() if d.is_dir()), key=str.lower)
    if plugin_filter is not None:
        names = [n for n in names if n.lower() == plugin_filter.lower()]
    return names


def find_assets(
    repo_root: Path,
    sub_dir: str,
    plugin_filter: Optional[str] = None,
    name_filter: Optional[str] = None,
    sentinel: Optional[str] = None,
    pattern: Optional[str] = None,
) -> list[SourceAsset]:
    """Find assets of one kind.

    Args:
        repo_root: Source repository root.
        sub_dir: Asset folder name ("skills", "agents").
        plugin_filter: Only this plugin (case-insensitive).
        name_filter: Only assets with this name (case-insensitive).
        sentinel: For folder assets, the file a folder must contain.
        pattern: For file assets, the glob files must match.
    """
    if (repo_root / "plugins").is_dir():
        assets: list[SourceAsset] = []
        for plugin in plugin_names(repo_root, plugin_filter):
            assets.extend(_scan(plugin, repo_root / "plugins" / plugin / sub_dir, sentinel, pattern))
    else:
        assets = _scan(FLAT_PLUGIN, repo_root / sub_dir, sentinel, pattern)

    if name_filter is not None:
        assets = [a for a in assets if a.name.lower() == name_filter.lower()]
    return assets


def find_skills(repo_root: Path, plugin_filter=None, name_filter=None) -> list[SourceAsset]:
    return find_assets(repo_root, "skills", plugin_filter, name_filter, sentinel="SKILL.md")


def find_agents(repo_root: Path, plugin_filter=None, name_filter=None) -> list[SourceAsset]:
    return find_assets(repo_root, "agents", plugin_filter, name_filter, pattern="*.agent.md")


def read_plugin_servers(repo_root: Path, plugin: str) -> tuple[dict, dict]:
    """Return (mcpServers, lspServers) from plugins/<plugin>/plugin.json.

    Missing or unreadable manifests give two empty dicts.
    """
    manifest = repo_root / "plugins" / plugin / "plugin.json"
    if not manifest.is_file():
        return {}, {}
    try:
        data = read_jsonc(manifest)
    except ValueError as e:
        print(f"Warning: cannot parse {manifest}: {e}", file=sys.stderr)
        return {}, {}
    if not isinstance(data, dict):
        return {}, {}
    mcp = data.get("mcpServers")
    lsp = data.get("lspServers")
    return (
        mcp if isinstance(mcp, dict) else {},
        lsp if isinstance(lsp, dict) else {},
    )


_gh_user_cache: dict[str, Optional[str]] = {}


def get_github_user() -> Optional[str]:
    """Authenticated gh user login, or None if gh is missing or logged out."""
    if "login" not in _gh_user_cache:
        login = None
        try:
            result = subprocess.run(
                ["gh", "api", "user", "--jq", ".login"],
                capture_output=True,
                text=True,
                timeout=30,
            )
            if result.returncode == 0 and result.stdout.strip():
                login = result.stdout.strip()
        except (subprocess.TimeoutExpired, OSError) as e:
            logger.debug("gh user lookup failed: %s", e)
        _gh_user_cache["login"] = login
    return _gh_user_cache["login"]


def resolve_duplicates(
    assets: list[SourceAsset],
    get_user: Callable[[], Optional[str]] = get_github_user,
) -> list[SourceAsset]:
    """Drop assets whose name appears in more than one plugin.

    When one of the clashing plugins is named after the current gh user, that
    personal copy is kept; otherwise every copy is skipped with a warning.
    Order of the surviving assets is preserved.
    """
    groups: dict[str, list[SourceAsset]] = {}
    for asset in assets:
        groups.setdefault(asset.name.lower(), []).append(asset)
    if all(len(g) == 1 for g in groups.values()):
        return assets

    user = get_user()
    keep: set[SourceAsset] = set()
    for group in groups.values():
        if len(group) == 1:
            keep.add(group[0])
            continue
        personal = next(
            (a for a in group if user is not None and a.plugin.lower() == user.lower()),
            None,
        )
        if personal is not None:
            keep.add(personal)
            skipped = ", ".join(a.plugin for a in group if a is not personal)
            print(
                f"  Duplicate '{personal.name}' - using personal plugin "
                f"'{personal.plugin}' (skipping: {skipped})"
            )
        else:
            plugins = ", ".join(a.plugin for a in group)
            print(
                f"  Duplicate '{group[0].name}' in plugins: {plugins} - skipping. "
                "Use --plugin to select one."
            )
    return [a for a in assets if a in keep]
