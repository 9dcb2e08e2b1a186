"""Merge MCP server definitions into each edition's mcp.json."""

from __future__ import annotations

import copy
import sys
from pathlib import Path
from typing import Optional

from asset_sync.jsonc import read_jsonc, write_json
from asset_sync.options import SyncOptions, header

TEMPLATE_NAME = "template.mcp.json"


def mcp_path(opts: SyncOptions, edition: str) -> Path:
    return opts.vscode_user_dir(edition) / "mcp.json"


def read_mcp_config(path: Path) -> Optional[dict]:
    """Read an mcp.json; None if missing, unparsable or not an object.

    The returned dict always has a "servers" object.
    """
    if not path.is_file():
        return None
    try:
        data = read_jsonc(path)
    except ValueError as e:
        print(f"Warning: cannot parse {path}: {e}", file=sys.stderr)
        return None
    if not isinstance(data, dict):
        return None
    if not isinstance(data.get("servers"), dict):
        data["servers"] = {}
    return data


def template_servers(opts: SyncOptions) -> Optional[dict]:
    """Servers from the repo's template.mcp.json; None if there is no template."""
    path = opts.repo_root / TEMPLATE_NAME
    if not path.is_file():
        return None
    config = read_mcp_config(path)
    return config["servers"] if config else {}


def merge_servers(user_servers: dict, servers: dict, opts: SyncOptions) -> int:
    """Add or replace servers in user_servers. Returns how many were merged."""
    for name, definition in servers.items():
        exists = name in user_servers
        user_servers[name] = copy.deepcopy(definition)
        if opts.dry_run:
            print(f"    Would {'update' if exists else 'add'}: {name}")
        elif opts.verbose:
            print(f"    {'Updated' if exists else 'Added'}: {name}")
    return len(servers)


def install_servers(
    servers: dict,
    opts: SyncOptions,
    exact: bool = False,
    backed_up: Optional[set] = None,
    keep=(),
) -> int:
    """Merge servers into mcp.json of every selected edition.

    Args:
        servers: Server name -> definition.
        opts: Run options.
        exact: Also remove user servers not in ``servers``. Names are
            matched case-sensitively, as JSON keys are.
        backed_up: Paths already backed up this run, so a file touched by
            several plugins is saved only once.
        keep: Names --exact leaves in place although not in ``servers``.

    Returns:
        Total servers merged across editions.
    """
    total = 0
    wanted = set(servers) | set(keep)
    for edition in opts.editions():
        print(f"  [{edition}]")
        path = mcp_path(opts, edition)
        config = read_mcp_config(path)
        if config is not None and not opts.dry_run:
            if backed_up is None or str(path) not in backed_up:
                opts.backups.backup_file(path, "mcp", edition)
                if backed_up is not None:
                    backed_up.add(str(path))
        if config is None:
            config = {"servers": {}}

        total += merge_servers(config["servers"], servers, opts)

        if exact:
            for name in [n for n in config["servers"] if n not in wanted]:
                del config["servers"][name]
                if opts.dry_run:
                    print(f"    Would remove (not in template): {name}")
                else:
                    print(f"    Removed (not in template): {name}")

        if not opts.dry_run:
            write_json(path, config)
            print(f"    Wrote: {path}")
    return total


def remove_servers(names, opts: SyncOptions, backed_up: Optional[set] = None) -> None:
    for edition in opts.editions():
        print(f"  [{edition}]")
        path = mcp_path(opts, edition)
        config = read_mcp_config(path)
        if config is None:
            print("    (no mcp.json)")
            continue
        if not opts.dry_run and (backed_up is None or str(path) not in backed_up):
            opts.backups.backup_file(path, "mcp", edition)
            if backed_up is not None:
                backed_up.add(str(path))

        for name in names:
            if name in config["servers"]:
                del config["servers"][name]
                print(f"    {'Would remove' if opts.dry_run else 'Removed'}: {name}")
            elif opts.verbose:
                print(f"    Not present: {name}")

        if not opts.dry_run:
            write_json(path, config)


def diff_servers(servers: dict, opts: SyncOptions, report_extra: bool = True, keep=()) -> bool:
    """Compare servers with each edition's mcp.json. Returns True on differences.

    Names in ``keep`` are not reported as extra.
    """
    has_any = False
    for edition in opts.editions():
        print(f"  [{edition}]")
        config = read_mcp_config(mcp_path(opts, edition))
        user_servers = config["servers"] if config else {}
        has_diffs = False
        for name, definition in servers.items():
            if name not in user_servers:
                print(f"    + {name} (in template, not installed)")
                has_diffs = True
            elif user_servers[name] != definition:
                print(f"    ~ {name} (config differs)")
                has_diffs = True
            elif opts.verbose:
                print(f"    = {name}")
        if report_extra:
            for name in user_servers:
                if name not in servers and name not in keep:
                    print(f"    - {name} (installed, not in template)")
                    has_diffs = True
        if not has_diffs:
            print("    (no differences)")
        has_any |= has_diffs
    return has_any


def mcp_list(opts: SyncOptions) -> None:
    header("MCP Servers")
    for edition in opts.editions():
        path = mcp_path(opts, edition)
        print(f"  [{edition}] {path}")
        config = read_mcp_config(path)
        if config is None:
            print("    (file not found)")
            continue
        if not config["servers"]:
            print("    (no servers)")
        for name, definition in config["servers"].items():
            kind = definition.get("type", "unknown") if isinstance(definition, dict) else "unknown"
            print(f"    {name} ({kind})")


def mcp_install(opts: SyncOptions, keep=()) -> None:
    header("MCP install")
    servers = template_servers(opts)
    if servers is None:
        print(f"  No {TEMPLATE_NAME} in repo")
        return
    if not servers:
        print("  No servers in template")
        return
    install_servers(servers, opts, exact=opts.exact, keep=keep)


def mcp_uninstall(opts: SyncOptions) -> None:
    header("MCP uninstall")
    servers = template_servers(opts)
    if servers is None:
        print(f"  No {TEMPLATE_NAME} in repo")
        return
    remove_servers(list(servers), opts)


def mcp_diff(opts: SyncOptions, keep=()) -> bool:
    header("MCP diff")
    servers = template_servers(opts)
    if servers is None:
        print(f"  No {TEMPLATE_NAME} in repo")
        return False
    return diff_servers(servers, opts, keep=keep)
