from __future__ import annotations

import tomllib
from pathlib import Path

import pytest
from typer.testing import CliRunner

from dotplan.adapters import Registry
from dotplan.cli import app
from dotplan.config import DEFAULT_CONFIG_FILENAME
from dotplan.state_manager import StateManager

runner = CliRunner()


def _write_config(directory: Path, body: str) -> Path:
    config_path = directory / DEFAULT_CONFIG_FILENAME
    config_path.write_text(body)
    return config_path


@pytest.fixture
def project(tmp_path: Path, fake_home: Path, registry: Registry, monkeypatch: pytest.MonkeyPatch) -> Path:
    monkeypatch.setattr("dotplan.cli._build_registry", lambda: registry)

    project = tmp_path / "project"
    sources = project / "dotfiles"
    sources.mkdir(parents=True)
    (sources / "nvim").mkdir()
    (sources / "nvim" / "init.lua").write_text("vim.o.number = true\n")
    (sources / "zshrc").write_text("export EDITOR=nvim\n")

    _write_config(
        project,
        f"""
[settings]
state_dir = "{project / 'state'}"

[packages.homebrew]
install = ["git"]

[programs.git]
user_name = "Jane"

[dotfiles]
source_directory = "{sources}"

[[dotfiles.links]]
name = "nvim"

[[dotfiles.links]]
name = "zshrc"
action = "copy"
target = "~/.zshrc"
""",
    )
    return project


def test_cli_apply_and_status_flow(project: Path, fake_home: Path, package_manager) -> None:
    config_path = project / DEFAULT_CONFIG_FILENAME

    apply_result = runner.invoke(app, ["apply", "--config", str(config_path)])
    assert apply_result.exit_code == 0
    assert "Configuration applied" in apply_result.stdout
    assert "nvim" in apply_result.stdout
    assert (fake_home / ".config" / "nvim").is_symlink()
    assert (fake_home / ".zshrc").read_text() == "export EDITOR=nvim\n"
    assert package_manager.installed == {"git"}

    status_result = runner.invoke(app, ["status", "--config", str(config_path)])
    assert status_result.exit_code == 0
    assert "packages (homebrew)" in status_result.stdout
    assert "zshrc" in status_result.stdout
    assert "checkpoints" in status_result.stdout

    checkpoints_result = runner.invoke(app, ["checkpoints", "--config", str(config_path)])
    assert checkpoints_result.exit_code == 0
    assert StateManager(project / "state").list_checkpoints()[0] in checkpoints_result.stdout


def test_cli_second_apply_is_up_to_date(project: Path) -> None:
    config_path = project / DEFAULT_CONFIG_FILENAME
    runner.invoke(app, ["apply", "--config", str(config_path)])

    result = runner.invoke(app, ["apply", "--config", str(config_path)])

    assert result.exit_code == 0
    assert "Everything is already up to date." in result.stdout


def test_cli_diff_before_and_after_apply(project: Path, fake_home: Path) -> None:
    config_path = project / DEFAULT_CONFIG_FILENAME

    before = runner.invoke(app, ["diff", "--config", str(config_path)])
    assert before.exit_code == 0
    assert "create" in before.stdout
    assert "install" in before.stdout
    assert not (fake_home / ".zshrc").exists()
    assert not (project / "state").exists()

    runner.invoke(app, ["apply", "--config", str(config_path)])
    after = runner.invoke(app, ["diff", "--config", str(config_path)])
    assert after.exit_code == 0
    assert "No changes." in after.stdout


def test_cli_apply_failure_rolls_back(project: Path, package_manager) -> None:
    package_manager.fail_on_install = True
    config_path = project / DEFAULT_CONFIG_FILENAME

    result = runner.invoke(app, ["apply", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Apply failed" in result.stdout
    assert "rolled back" in result.stdout
    assert StateManager(project / "state").state.package_managers == {}


def test_cli_dry_run_leaves_home_untouched(project: Path, fake_home: Path, package_manager) -> None:
    config_path = project / DEFAULT_CONFIG_FILENAME

    result = runner.invoke(app, ["apply", "--config", str(config_path), "--dry-run"])

    assert result.exit_code == 0
    assert "Dry run" in result.stdout
    assert not (fake_home / ".zshrc").exists()
    assert not (fake_home / ".config").exists()
    assert package_manager.calls == []
    assert not (project / "state" / "state.json").exists()


def test_cli_rollback_and_cleanup(project: Path, clock) -> None:
    config_path = project / DEFAULT_CONFIG_FILENAME
    state_manager = StateManager(project / "state", clock=clock)
    ids = [state_manager.create_checkpoint() for _ in range(3)]

    rollback_result = runner.invoke(app, ["rollback", ids[0], "--config", str(config_path)])
    assert rollback_result.exit_code == 0
    assert f"Recorded state restored from checkpoint {ids[0]}." in rollback_result.stdout

    cleanup_result = runner.invoke(app, ["cleanup", "--config", str(config_path), "--keep", "1"])
    assert cleanup_result.exit_code == 0
    assert "Removed 2 checkpoint(s)." in cleanup_result.stdout
    assert StateManager(project / "state").list_checkpoints() == [ids[-1]]


def test_cli_rollback_unknown_checkpoint(project: Path) -> None:
    config_path = project / DEFAULT_CONFIG_FILENAME

    result = runner.invoke(app, ["rollback", "19990101_000000", "--config", str(config_path)])

    assert result.exit_code == 1
    assert "Checkpoint not found" in result.stdout
    assert "dotplan checkpoints" in result.stdout


def test_cli_checkpoints_empty(project: Path) -> None:
    result = runner.invoke(app, ["checkpoints", "--config", str(project / DEFAULT_CONFIG_FILENAME)])

    assert result.exit_code == 0
    assert "No checkpoints recorded." in result.stdout


def test_cli_missing_config(tmp_path: Path, fake_home: Path) -> None:
    result = runner.invoke(app, ["apply", "--config", str(tmp_path / "missing.toml")])

    assert result.exit_code == 1
    assert "dotplan init" in result.stdout


def test_cli_handles_permission_error(monkeypatch: pytest.MonkeyPatch) -> None:
    class DummyEngine:
        def apply(self, *_args, **_kwargs):  # noqa: ANN001
            raise PermissionError("mocked")

    monkeypatch.setattr("dotplan.cli._load_engine", lambda *_args, **_kwargs: (DummyEngine(), None))

    result = runner.invoke(app, ["apply"])
    assert result.exit_code == 1
    assert "Permission denied" in result.stdout


def test_cli_init(tmp_path: Path, fake_home: Path) -> None:
    config_path = tmp_path / "dotplan.toml"

    result = runner.invoke(app, ["init", "--config", str(config_path)])
    assert result.exit_code == 0

    content = config_path.read_text()
    assert content.startswith("# dotplan configuration")
    data = tomllib.loads(content)
    assert data["settings"]["keep_checkpoints"] == 10
    assert data["dotfiles"]["links"] == []

    config_path.write_text("# edited\n")
    again = runner.invoke(app, ["init", "--config", str(config_path)])
    assert again.exit_code == 1
    assert "--force" in again.stdout
    assert config_path.read_text() == "# edited\n"


def test_cli_init_discovers_sources(tmp_path: Path, fake_home: Path) -> None:
    sources = tmp_path / "dotfiles"
    (sources / "nvim").mkdir(parents=True)
    (sources / "zshrc").write_text("")
    (sources / ".git").mkdir()
    config_path = tmp_path / "dotplan.toml"

    result = runner.invoke(
        app,
        ["init", "--config", str(config_path), "--source-directory", str(sources), "--discover", "--force"],
    )

    assert result.exit_code == 0
    data = tomllib.loads(config_path.read_text())
    assert data["dotfiles"]["links"] == [
        {"name": "nvim", "action": "link"},
        {"name": "zshrc", "action": "link"},
    ]
