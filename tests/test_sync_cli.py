"""Tests for the asset-sync command line."""

import json

import pytest

from asset_sync.__main__ import main
from asset_sync.jsonc import read_jsonc
from conftest import write


@pytest.fixture
def home(sync_env, monkeypatch):
    _, home, _ = sync_env
    monkeypatch.setenv("HOME", str(home))
    return home


@pytest.fixture
def repo(sync_env):
    repo, _, _ = sync_env
    write(repo / "plugins" / "tools" / "skills" / "lint" / "SKILL.md", "lint")
    write(repo / "plugins" / "tools" / "agents" / "helper.agent.md", "helper")
    write(repo / "plugins" / "tools" / "plugin.json", json.dumps({
        "mcpServers": {"srv": {"command": "srv-mcp"}},
    }))
    write(repo / "prompts" / "fix.prompt.md", "fix")
    write(repo / "instructions" / "python.md", "python")
    write(repo / "template.mcp.json", '{"servers": {"files": {"command": "files-mcp"}}}')
    return repo


def _user_dir(home):
    return home / ".config" / "Code" / "User"


class TestSyncCli:

    def test_skills_install(self, repo, home):
        assert main(["--repo-root", str(repo), "skills", "install"]) == 0
        assert (home / ".copilot" / "skills" / "lint" / "SKILL.md").is_file()

    def test_all_install(self, repo, home):
        assert main(["--repo-root", str(repo), "--edition", "stable", "all", "install"]) == 0
        user = _user_dir(home)
        assert (home / ".copilot" / "skills" / "lint" / "SKILL.md").is_file()
        assert (home / ".copilot" / "agents" / "helper.agent.md").is_file()
        assert (user / "prompts" / "fix.prompt.md").is_file()
        assert (home / ".copilot-instructions" / "instructions" / "python.md").is_file()
        assert read_jsonc(user / "settings.json")["chat.useAgentSkills"] is True

    def test_all_install_merges_plugin_mcp_servers(self, repo, home):
        assert main(["--repo-root", str(repo), "--edition", "stable", "all", "install"]) == 0
        assert read_jsonc(_user_dir(home) / "mcp.json")["servers"] == {
            "srv": {"command": "srv-mcp"},
            "files": {"command": "files-mcp"},
        }

    def test_all_install_exact_keeps_plugin_mcp_servers(self, repo, home):
        write(_user_dir(home) / "mcp.json", '{"servers": {"old": {"command": "old-mcp"}}}')
        rc = main(["--repo-root", str(repo), "--edition", "stable", "--exact", "all", "install"])
        assert rc == 0
        assert sorted(read_jsonc(_user_dir(home) / "mcp.json")["servers"]) == ["files", "srv"]

    def test_all_install_exact_keeps_user_skills(self, repo, home):
        write(home / ".copilot" / "skills" / "mine" / "SKILL.md", "mine")
        write(home / ".copilot" / "agents" / "own.agent.md", "own")
        rc = main(["--repo-root", str(repo), "--edition", "stable", "--exact", "all", "install"])
        assert rc == 0
        assert (home / ".copilot" / "skills" / "mine" / "SKILL.md").read_text() == "mine"
        assert (home / ".copilot" / "agents" / "own.agent.md").is_file()
        assert (home / ".copilot" / "skills" / "lint" / "SKILL.md").is_file()

    def test_all_diff_does_not_flag_plugin_servers(self, repo, home, capsys):
        main(["--repo-root", str(repo), "--edition", "stable", "all", "install"])
        capsys.readouterr()
        assert main(["--repo-root", str(repo), "--edition", "stable", "all", "diff"]) == 0
        assert "- srv" not in capsys.readouterr().out

    def test_plugin_install_project_scope(self, repo, home, sync_env, monkeypatch):
        _, _, work = sync_env
        (work / ".git").mkdir()
        monkeypatch.chdir(work)
        rc = main([
            "--repo-root", str(repo), "--edition", "stable",
            "plugin", "install", "--scope", "project",
        ])
        assert rc == 0
        assert (work / ".github" / "skills" / "lint" / "SKILL.md").is_file()
        assert (work / ".github" / "agents" / "helper.agent.md").is_file()
        assert not (home / ".copilot").exists()

    def test_all_project_scope(self, repo, home, sync_env, monkeypatch):
        _, _, work = sync_env
        (work / ".git").mkdir()
        monkeypatch.chdir(work)
        rc = main(["--repo-root", str(repo), "--edition", "stable", "all", "install", "--scope", "project"])
        assert rc == 0
        assert (work / ".github" / "skills" / "lint" / "SKILL.md").is_file()
        assert not (home / ".copilot" / "skills").exists()

    def test_dry_run(self, repo, home, capsys):
        assert main(["--repo-root", str(repo), "--dry-run", "all", "install"]) == 0
        assert not (home / ".copilot").exists()
        assert not (home / ".config").exists()
        assert "(dry run: no changes will be made)" in capsys.readouterr().out

    def test_backup_path_reported(self, repo, home, tmp_path, capsys):
        write(home / ".copilot" / "skills" / "lint" / "SKILL.md", "old")
        backup_root = tmp_path / "backups"
        rc = main([
            "--repo-root", str(repo), "--force", "--backup-path", str(backup_root),
            "skills", "install",
        ])
        assert rc == 0
        assert (home / ".copilot" / "skills" / "lint" / "SKILL.md").read_text() == "lint"
        assert len(list(backup_root.rglob("SKILL.md"))) == 1
        assert f"Backups saved under: {backup_root}" in capsys.readouterr().out

    def test_settings_rejects_install(self, repo, home):
        with pytest.raises(SystemExit):
            main(["--repo-root", str(repo), "settings", "install"])

    def test_category_required(self):
        with pytest.raises(SystemExit):
            main([])
