"""List, install, uninstall and diff folder and file assets.

Skills and agents live in a per-user (or per-project) folder shared by both
VS Code editions. Prompts are copied into each edition's profile.
Instructions go to a fixed folder that VS Code is pointed at through the
chat.instructionFilesLocations setting.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

from asset_sync.options import SyncOptions, header
from asset_sync.settings import ensure_instructions_setting
from asset_sync.sources import SourceAsset, find_agents, find_skills, resolve_duplicates


@dataclass(frozen=True)
class AssetKind:
    """A kind of plugin asset: a folder with a sentinel file, or a single file."""

    label: str                                   # "Skills"
    category: str                                # backup folder name
    find: Callable[..., list[SourceAsset]]
    target_dir: Callable[[SyncOptions], Path]
    sentinel: Optional[str] = None               # folder assets
    pattern: Optional[str] = None                # file assets

    @property
    def is_dir(self) -> bool:
        return self.sentinel is not None

    def installed(self, target_dir: Path) -> list[str]:
        if not target_dir.is_dir():
            return []
        if self.is_dir:
            return sorted(
                d.name for d in target_dir.iterdir()
                if d.is_dir() and (d / self.sentinel).is_file()
            )
        return sorted(f.name for f in target_dir.glob(self.pattern) if f.is_file())

    def exists(self, path: Path) -> bool:
        return path.is_dir() if self.is_dir else path.is_file()

    def copy(self, src: Path, dst: Path) -> None:
        if self.is_dir:
            shutil.copytree(src, dst, dirs_exist_ok=True)
        else:
            dst.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, dst)

    def backup(self, path: Path, opts: SyncOptions) -> None:
        if self.is_dir:
            opts.backups.backup_dir(path, self.category)
        else:
            opts.backups.backup_file(path, self.category)

    def remove(self, path: Path, opts: SyncOptions) -> None:
        self.backup(path, opts)
        if self.is_dir:
            shutil.rmtree(path)
        else:
            path.unlink()

    def content(self, path: Path) -> str:
        target = path / self.sentinel if self.is_dir else path
        return target.read_text(encoding="utf-8")


SKILLS = AssetKind(
    label="Skills",
    category="skills",
    find=find_skills,
    target_dir=SyncOptions.skills_dir,
    sentinel="SKILL.md",
)

AGENTS = AssetKind(
    label="Agents",
    category="agents",
    find=find_agents,
    target_dir=SyncOptions.agents_dir,
    pattern="*.agent.md",
)


def diff_sets(
    source_names: Iterable[str],
    target_names: Iterable[str],
    indent: str,
    source_content: Optional[Callable[[str], str]] = None,
    target_content: Optional[Callable[[str], str]] = None,
) -> bool:
    """Print +/-/~ lines comparing two sets of names. Returns True if any differ.

    Names compare case-insensitively. Content is compared only for names
    present on both sides, and only when both readers are given.
    """
    source = {n.lower(): n for n in source_names}
    target = {n.lower(): n for n in target_names}
    has_diffs = False
    for key, name in source.items():
        if key not in target:
            print(f"{indent}+ {name} (in repo, not installed)")
            has_diffs = True
    for key, name in target.items():
        if key not in source:
            print(f"{indent}- {name} (installed, not in repo)")
            has_diffs = True
    if source_content is not None and target_content is not None:
        for key, name in source.items():
            if key not in target:
                continue
            try:
                differs = source_content(name) != target_content(target[key])
            except OSError:
                continue
            if differs:
                print(f"{indent}~ {name} (modified)")
                has_diffs = True
    if not has_diffs:
        print(f"{indent}(no differences)")
    return has_diffs


def _sources(kind: AssetKind, opts: SyncOptions, plugin: Optional[str], name: Optional[str]):
    assets = kind.find(opts.repo_root, plugin, name)
    if plugin is None:
        assets = resolve_duplicates(assets)
    return assets


def _target_path(kind: AssetKind, opts: SyncOptions, asset: SourceAsset) -> Path:
    return kind.target_dir(opts) / asset.path.name


def asset_list(kind: AssetKind, opts: SyncOptions, plugin=None, name=None) -> None:
    header(f"{kind.label} ({opts.scope})")
    assets = _sources(kind, opts, plugin, name)
    if assets:
        print(f"  Repo {kind.label.lower()}:")
        current = None
        for asset in assets:
            if asset.plugin != current:
                print(f"    [{asset.plugin}]")
                current = asset.plugin
            print(f"      {asset.name}")
    print()

    target_dir = kind.target_dir(opts)
    installed = kind.installed(target_dir)
    if not installed:
        where = "none" if target_dir.is_dir() else f"no {kind.label.lower()} directory found"
        print(f"  Installed: ({where})")
        return
    print("  Installed:")
    for item in installed:
        print(f"    {item}")


def asset_install(kind: AssetKind, opts: SyncOptions, plugin=None, name=None, exact=None) -> int:
    """Copy assets into the target folder. Returns the number installed.

    ``exact`` overrides opts.exact for this call.
    """
    if exact is None:
        exact = opts.exact
    header(f"{kind.label} install ({opts.scope})")
    assets = _sources(kind, opts, plugin, name)
    if not assets:
        if plugin is not None:
            print(f"  No {kind.label.lower()} found for plugin '{plugin}'")
        else:
            print(f"  No {kind.label.lower()} found in repo")
        return 0

    target_dir = kind.target_dir(opts)
    if not opts.dry_run:
        target_dir.mkdir(parents=True, exist_ok=True)

    count = 0
    current = None
    for asset in assets:
        if opts.verbose and asset.plugin != current:
            print(f"  [{asset.plugin}]")
            current = asset.plugin
        dst = _target_path(kind, opts, asset)
        if kind.exists(dst):
            if not opts.force and not exact:
                if opts.verbose:
                    print(f"    Skipped (exists): {dst.name}")
                continue
            if not opts.dry_run:
                kind.backup(dst, opts)
        if opts.dry_run:
            print(f"    Would install: {dst.name}")
        else:
            kind.copy(asset.path, dst)
            print(f"    Installed: {dst.name}")
        count += 1

    if exact:
        wanted = {a.path.name.lower() for a in assets}
        for item in kind.installed(target_dir):
            if item.lower() in wanted:
                continue
            if opts.dry_run:
                print(f"  Would remove (not in repo): {item}")
            else:
                kind.remove(target_dir / item, opts)
                print(f"  Removed (not in repo): {item}")
    return count


def asset_uninstall(kind: AssetKind, opts: SyncOptions, plugin=None, name=None) -> None:
    header(f"{kind.label} uninstall ({opts.scope})")
    for asset in _sources(kind, opts, plugin, name):
        dst = _target_path(kind, opts, asset)
        if not kind.exists(dst):
            if opts.verbose:
                print(f"  Not installed: {dst.name}")
            continue
        if opts.dry_run:
            print(f"  Would remove: {dst.name}")
        else:
            kind.remove(dst, opts)
            print(f"  Removed: {dst.name}")


def asset_diff(kind: AssetKind, opts: SyncOptions, plugin=None, name=None) -> bool:
    header(f"{kind.label} diff ({opts.scope})")
    target_dir = kind.target_dir(opts)
    by_name = {a.path.name: a.path for a in _sources(kind, opts, plugin, name)}
    return diff_sets(
        by_name, kind.installed(target_dir), "  ",
        lambda n: kind.content(by_name[n]),
        lambda n: kind.content(target_dir / n),
    )


# ---------------------------------------------------------------------------
# Plain file categories (prompts, instructions)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FileCategory:
    """Loose files copied from one repo folder into one or more targets."""

    label: str
    repo_dir: str
    pattern: str
    # (edition or None, folder) pairs to install into
    targets: Callable[[SyncOptions], list[tuple[Optional[str], Path]]]

    @property
    def category(self) -> str:
        return self.label.lower()

    def source_files(self, opts: SyncOptions) -> list[Path]:
        source_dir = opts.repo_root / self.repo_dir
        if not source_dir.is_dir():
            return []
        return sorted(f for f in source_dir.glob(self.pattern) if f.is_file())


def _prompt_targets(opts: SyncOptions) -> list[tuple[Optional[str], Path]]:
    return [(ed, opts.vscode_user_dir(ed) / "prompts") for ed in opts.editions()]


def _instruction_targets(opts: SyncOptions) -> list[tuple[Optional[str], Path]]:
    return [(None, opts.instructions_dir())]


PROMPTS = FileCategory("Prompts", "prompts", "*.prompt.md", _prompt_targets)
INSTRUCTIONS = FileCategory("Instructions", "instructions", "*.md", _instruction_targets)


def _target_label(edition: Optional[str], folder: Path) -> str:
    return f"  [{edition}] {folder}" if edition else f"  Target: {folder}"


def files_list(cat: FileCategory, opts: SyncOptions) -> None:
    header(cat.label)
    for edition, folder in cat.targets(opts):
        print(_target_label(edition, folder))
        if not folder.is_dir():
            print("    (directory not found)")
            continue
        files = sorted(f.name for f in folder.glob(cat.pattern) if f.is_file())
        if not files:
            print("    (none)")
        for name in files:
            print(f"    {name}")


def sync_files(
    sources: list[Path],
    target_dir: Path,
    category: str,
    edition: Optional[str],
    opts: SyncOptions,
) -> int:
    """Copy files into target_dir honouring --force/--exact/--dry-run."""
    count = 0
    for src in sources:
        target = target_dir / src.name
        if target.is_file():
            if not opts.force and not opts.exact:
                if opts.verbose:
                    print(f"    Skipped (exists): {src.name}")
                continue
            if not opts.dry_run:
                opts.backups.backup_file(target, category, edition)
        if opts.dry_run:
            print(f"    Would install: {src.name}")
        else:
            shutil.copy2(src, target)
            print(f"    Installed: {src.name}")
        count += 1
    return count


def remove_extra_files(
    sources: list[Path],
    target_dir: Path,
    pattern: str,
    category: str,
    edition: Optional[str],
    opts: SyncOptions,
) -> None:
    if not target_dir.is_dir():
        return
    wanted = {s.name.lower() for s in sources}
    for target in sorted(target_dir.glob(pattern)):
        if not target.is_file() or target.name.lower() in wanted:
            continue
        if opts.dry_run:
            print(f"    Would remove (not in repo): {target.name}")
        else:
            opts.backups.backup_file(target, category, edition)
            target.unlink()
            print(f"    Removed (not in repo): {target.name}")


def files_install(cat: FileCategory, opts: SyncOptions) -> None:
    header(f"{cat.label} install")
    if not (opts.repo_root / cat.repo_dir).is_dir():
        print(f"  No {cat.repo_dir}/ directory in repo")
        return
    sources = cat.source_files(opts)
    if not sources and not opts.exact:
        print(f"  No {cat.pattern} files to install")
        return

    for edition, folder in cat.targets(opts):
        print(_target_label(edition, folder))
        if not opts.dry_run:
            folder.mkdir(parents=True, exist_ok=True)
        sync_files(sources, folder, cat.category, edition, opts)
        if opts.exact:
            remove_extra_files(sources, folder, cat.pattern, cat.category, edition, opts)

    if cat is INSTRUCTIONS:
        ensure_instructions_setting(opts)


def files_uninstall(cat: FileCategory, opts: SyncOptions) -> None:
    header(f"{cat.label} uninstall")
    sources = cat.source_files(opts)
    for edition, folder in cat.targets(opts):
        print(_target_label(edition, folder))
        for src in sources:
            target = folder / src.name
            if not target.is_file():
                if opts.verbose:
                    print(f"    Not installed: {src.name}")
                continue
            if opts.dry_run:
                print(f"    Would remove: {src.name}")
            else:
                opts.backups.backup_file(target, cat.category, edition)
                target.unlink()
                print(f"    Removed: {src.name}")


def files_diff(cat: FileCategory, opts: SyncOptions) -> bool:
    header(f"{cat.label} diff")
    sources = {f.name: f for f in cat.source_files(opts)}
    has_diffs = False
    for edition, folder in cat.targets(opts):
        print(_target_label(edition, folder))
        installed = (
            [f.name for f in folder.glob(cat.pattern) if f.is_file()]
            if folder.is_dir() else []
        )
        has_diffs |= diff_sets(
            sources, installed, "    ",
            lambda n: sources[n].read_text(encoding="utf-8"),
            lambda n, folder=folder: (folder / n).read_text(encoding="utf-8"),
        )
    return has_diffs
