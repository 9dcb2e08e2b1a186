#!/usr/bin/env python3
"""Sync Copilot skills, agents, prompts, instructions and MCP servers
from a source repository into the local VS Code profile.

Usage:
  python -m asset_sync [global options] <category> <action> [options]

Categories: skills, agents, prompts, instructions, mcp, settings, plugin, all
"""

import argparse
import logging
import sys
from pathlib import Path

from asset_sync.assets import (
    AGENTS,
    INSTRUCTIONS,
    PROMPTS,
    SKILLS,
    asset_diff,
    asset_install,
    asset_list,
    asset_uninstall,
    files_diff,
    files_install,
    files_list,
    files_uninstall,
)
from asset_sync.mcp import mcp_diff, mcp_install, mcp_list, mcp_uninstall
from asset_sync.options import SyncOptions
from asset_sync.plugins import plugin_diff, plugin_install, plugin_list, plugin_uninstall
from asset_sync.settings import settings_diff, settings_list, settings_update
from asset_sync.sources import plugin_names, read_plugin_servers

ACTIONS = ["list", "install", "uninstall", "diff"]
SETTINGS_ACTIONS = ["list", "update", "diff"]


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------

def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="asset-sync",
        description="Sync Copilot assets from a repository into VS Code",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Existing items are skipped unless --force or --exact is given. "
               "Overwritten and removed items are backed up first.",
    )
    parser.add_argument("--repo-root", dest="repo_root", default=None, help="source repository (default: current directory)")
    parser.add_argument(
        "--edition", default="both", choices=["insiders", "stable", "both"],
        help="VS Code edition to target (default: %(default)s)",
    )
    parser.add_argument("--exact", action="store_true", default=False, help="mirror the repo: remove installed items not in the repo")
    parser.add_argument("--force", action="store_true", default=False, help="overwrite items that are already installed")
    parser.add_argument("--dry-run", dest="dry_run", action="store_true", default=False, help="show what would change without touching anything")
    parser.add_argument("--verbose", action="store_true", default=False, help="also report skipped and unchanged items")
    parser.add_argument("--backup-path", dest="backup_path", default=None, help="backup root (default: <repo-root>/backup)")

    sub = parser.add_subparsers(dest="category", metavar="category")
    sub.required = True

    skills = sub.add_parser("skills", help="skill folders (SKILL.md)")
    skills.add_argument("action", choices=ACTIONS)
    skills.add_argument("--plugin", default=None, help="only this plugin")
    skills.add_argument("--skill", dest="name", default=None, help="only this skill")
    skills.add_argument("--scope", default="personal", choices=["personal", "project"], help="install location (default: %(default)s)")

    agents = sub.add_parser("agents", help="agent files (*.agent.md)")
    agents.add_argument("action", choices=ACTIONS)
    agents.add_argument("--plugin", default=None, help="only this plugin")
    agents.add_argument("--agent", dest="name", default=None, help="only this agent")
    agents.add_argument("--scope", default="personal", choices=["personal", "project"], help="install location (default: %(default)s)")

    for name, help_text in (
        ("prompts", "prompt files (*.prompt.md)"),
        ("instructions", "instruction files (*.md)"),
        ("mcp", "MCP servers from template.mcp.json"),
    ):
        p = sub.add_parser(name, help=help_text)
        p.add_argument("action", choices=ACTIONS)

    settings = sub.add_parser("settings", help="required VS Code chat settings")
    settings.add_argument("action", choices=SETTINGS_ACTIONS)

    plugin = sub.add_parser("plugin", help="every asset of one or all plugins")
    plugin.add_argument("action", choices=ACTIONS)
    plugin.add_argument("name", nargs="?", default=None, help="plugin name (default: all plugins)")
    plugin.add_argument("--scope", default="personal", choices=["personal", "project"], help="skill/agent install location (default: %(default)s)")

    everything = sub.add_parser("all", help="every category")
    everything.add_argument("action", choices=ACTIONS)
    everything.add_argument("--scope", default="personal", choices=["personal", "project"], help="skill/agent install location (default: %(default)s)")

    return parser


# ---------------------------------------------------------------------------
# Dispatch
# ---------------------------------------------------------------------------

def _run_asset(kind, action, opts, plugin=None, name=None):
    {
        "list": asset_list,
        "install": asset_install,
        "uninstall": asset_uninstall,
        "diff": asset_diff,
    }[action](kind, opts, plugin, name)


def _run_files(cat, action, opts):
    {
        "list": files_list,
        "install": files_install,
        "uninstall": files_uninstall,
        "diff": files_diff,
    }[action](cat, opts)


def _run_mcp(action, opts, keep=()):
    if action in ("install", "diff"):
        {"install": mcp_install, "diff": mcp_diff}[action](opts, keep)
    else:
        {"list": mcp_list, "uninstall": mcp_uninstall}[action](opts)


def _run_settings(action, opts):
    {
        "list": settings_list,
        "update": settings_update,
        "diff": settings_diff,
    }[action](opts)


def _run_plugin(action, opts, name):
    {
        "list": plugin_list,
        "install": plugin_install,
        "uninstall": plugin_uninstall,
        "diff": plugin_diff,
    }[action](opts, name)


def _run_all(action, opts):
    """Run one action over every category.

    Skills, agents and plugin MCP servers go through the plugin operations,
    so --exact only prunes prompts, instructions and template MCP servers.
    Plugin MCP servers are never pruned or reported as extra by the
    template step.
    """
    plugin_servers = {
        name
        for plugin in plugin_names(opts.repo_root)
        for name in read_plugin_servers(opts.repo_root, plugin)[0]
    }
    _run_plugin(action, opts, None)
    _run_files(PROMPTS, action, opts)
    _run_files(INSTRUCTIONS, action, opts)
    _run_mcp(action, opts, plugin_servers)
    # Settings are never removed
    settings_action = {"install": "update", "uninstall": None}.get(action, action)
    if settings_action is not None:
        _run_settings(settings_action, opts)


def main(argv=None):
    args = _build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    opts = SyncOptions(
        repo_root=Path(args.repo_root).resolve() if args.repo_root else Path.cwd(),
        edition=args.edition,
        exact=args.exact,
        force=args.force,
        dry_run=args.dry_run,
        verbose=args.verbose,
        scope=getattr(args, "scope", "personal"),  # prompts, mcp, settings have none
        backup_path=Path(args.backup_path) if args.backup_path else None,
    )

    if opts.dry_run:
        print("(dry run: no changes will be made)")

    category = args.category
    if category in ("skills", "agents"):
        kind = SKILLS if category == "skills" else AGENTS
        _run_asset(kind, args.action, opts, args.plugin, args.name)
    elif category == "prompts":
        _run_files(PROMPTS, args.action, opts)
    elif category == "instructions":
        _run_files(INSTRUCTIONS, args.action, opts)
    elif category == "mcp":
        _run_mcp(args.action, opts)
    elif category == "settings":
        _run_settings(args.action, opts)
    elif category == "plugin":
        _run_plugin(args.action, opts, args.name)
    else:
        _run_all(args.action, opts)

    if opts.backups.used:
        print(f"\nBackups saved under: {opts.backups.root}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
