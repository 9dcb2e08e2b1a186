"""Plugin group operations: every skill, agent and MCP server of a plugin."""

from __future__ import annotations

from typing import Optional

from asset_sync.assets import AGENTS, SKILLS, asset_install, asset_uninstall
from asset_sync.mcp import diff_servers, install_servers, remove_servers
from asset_sync.options import SyncOptions, header
from asset_sync.sources import find_agents, find_skills, plugin_names, read_plugin_servers


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}{'' if count == 1 else 's'}"


def _plugins_or_warn(opts: SyncOptions, name: Optional[str]) -> list[str]:
    plugins = plugin_names(opts.repo_root, name)
    if not plugins:
        print(f"  Plugin '{name}' not found" if name else "  No plugins found")
    return plugins


def _server_detail(definition) -> str:
    if not isinstance(definition, dict):
        return "unknown"
    if definition.get("type") == "http":
        return definition.get("url") or "http"
    return definition.get("command") or "unknown"


def plugin_list(opts: SyncOptions, name: Optional[str] = None) -> None:
    plugins = _plugins_or_warn(opts, name)
    if not plugins:
        return
    header("Plugins")
    for plugin in plugins:
        print(f"  [{plugin}]")
        skills = find_skills(opts.repo_root, plugin)
        agents = find_agents(opts.repo_root, plugin)
        mcp, lsp = read_plugin_servers(opts.repo_root, plugin)

        if skills:
            print(f"    Skills ({len(skills)}):")
            for s in skills:
                print(f"      {s.name}")
        if agents:
            print(f"    Agents ({len(agents)}):")
            for a in agents:
                print(f"      {a.name}")
        if mcp:
            print(f"    MCP Servers ({len(mcp)}):")
            for srv, definition in mcp.items():
                print(f"      {srv} ({_server_detail(definition)})")
        if lsp:
            print(f"    LSP Servers ({len(lsp)}):")
            for srv, definition in lsp.items():
                command = definition.get("command") if isinstance(definition, dict) else None
                print(f"      {srv} ({command or 'unknown'})")
        if not (skills or agents or mcp or lsp):
            print("    (empty plugin)")


def plugin_install(opts: SyncOptions, name: Optional[str] = None) -> None:
    """Install skills, agents and MCP servers of one or all plugins.

    Existing items are only replaced with --force; --exact does not apply
    across plugin boundaries.
    """
    plugins = _plugins_or_warn(opts, name)
    if not plugins:
        return

    backed_up: set = set()
    for plugin in plugins:
        header(f"Plugin install: {plugin}")
        parts = []

        skills = find_skills(opts.repo_root, plugin)
        if skills:
            asset_install(SKILLS, opts, plugin, exact=False)
            parts.append(_plural(len(skills), "skill"))

        agents = find_agents(opts.repo_root, plugin)
        if agents:
            asset_install(AGENTS, opts, plugin, exact=False)
            parts.append(_plural(len(agents), "agent"))

        mcp, lsp = read_plugin_servers(opts.repo_root, plugin)
        if mcp:
            print(f"  MCP servers ({len(mcp)}):")
            merged = install_servers(mcp, opts, backed_up=backed_up)
            parts.append(_plural(merged, "MCP server"))
        if lsp:
            print(f"  LSP servers ({len(lsp)}):")
            for srv in lsp:
                print(f"    {srv} (managed via plugin install, not this CLI)")
            parts.append(_plural(len(lsp), "LSP server"))

        print()
        if parts:
            verb = "Would install" if opts.dry_run else "Installed"
            print(f"  {verb}: {', '.join(parts)}")
        else:
            print(f"  Plugin '{plugin}' has no installable assets")


def plugin_uninstall(opts: SyncOptions, name: Optional[str] = None) -> None:
    plugins = _plugins_or_warn(opts, name)
    if not plugins:
        return

    backed_up: set = set()
    for plugin in plugins:
        header(f"Plugin uninstall: {plugin}")
        if find_skills(opts.repo_root, plugin):
            asset_uninstall(SKILLS, opts, plugin)
        if find_agents(opts.repo_root, plugin):
            asset_uninstall(AGENTS, opts, plugin)
        mcp, _ = read_plugin_servers(opts.repo_root, plugin)
        if mcp:
            print("  MCP servers:")
            remove_servers(list(mcp), opts, backed_up=backed_up)


def plugin_diff(opts: SyncOptions, name: Optional[str] = None) -> bool:
    """Show which plugin assets are not installed (or differ, for MCP)."""
    plugins = _plugins_or_warn(opts, name)
    has_any = False
    for plugin in plugins:
        header(f"Plugin diff: {plugin}")
        has_diffs = False

        for kind, assets in (
            (SKILLS, find_skills(opts.repo_root, plugin)),
            (AGENTS, find_agents(opts.repo_root, plugin)),
        ):
            if not assets:
                continue
            print(f"  {kind.label}:")
            target_dir = kind.target_dir(opts)
            for asset in assets:
                if not kind.exists(target_dir / asset.path.name):
                    print(f"    + {asset.name} (not installed)")
                    has_diffs = True
                elif opts.verbose:
                    print(f"    = {asset.name}")

        mcp, lsp = read_plugin_servers(opts.repo_root, plugin)
        if mcp:
            print("  MCP Servers:")
            has_diffs |= diff_servers(mcp, opts, report_extra=False)
        if lsp:
            print("  LSP Servers:")
            for srv in lsp:
                print(f"    {srv}")

        if not has_diffs:
            print("  (no differences)")
        has_any |= has_diffs
    return has_any
