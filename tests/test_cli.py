import logging

import pytest
from click.testing import CliRunner

import dockerupgrader.cli as cli_module


@pytest.fixture(autouse=True)
def restore_logging():
    root_level = logging.getLogger().level
    yield
    logger = logging.getLogger("dockerupgrader")
    for handler in file_handlers():
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)
    logging.getLogger().setLevel(root_level)


def fake_workflow(captured, exit_code=0):
    class FakeWorkflow:
        def __init__(self, settings):
            captured["settings"] = settings

        def run(self):
            return exit_code

    return FakeWorkflow


def file_handlers():
    return [
        handler
        for handler in logging.getLogger("dockerupgrader").handlers
        if isinstance(handler, logging.FileHandler)
    ]


def test_cli_uses_config_and_allows_cli_override(tmp_path, monkeypatch):
    config_file = tmp_path / ".docker-upgrader.yml"
    config_file.write_text(
        "package_root: /srv/config-root\n"
        "transition_strategy: repository\n"
        "drain_poll_attempts: 60\n",
        encoding="utf-8",
    )
    captured = {}
    monkeypatch.setattr(cli_module, "DockerUpgrader", fake_workflow(captured))

    result = CliRunner().invoke(
        cli_module.main,
        [
            "--config",
            str(config_file),
            "--log-file",
            str(tmp_path / "upgrade.log"),
            "upgrade",
            "--package-root",
            "/srv/cli-root",
            "--dry-run",
        ],
    )

    assert result.exit_code == 0
    settings = captured["settings"]
    assert settings.package_root == "/srv/cli-root"
    assert settings.transition_strategy == "repository"
    assert settings.drain_poll_attempts == 60
    assert settings.dry_run is True
    assert settings.log_file == str(tmp_path / "upgrade.log")


def test_cli_uses_default_config_file_when_present(tmp_path, monkeypatch):
    (tmp_path / ".docker-upgrader.yml").write_text(
        "package_root: /srv/default-root\nverbose: true\n",
        encoding="utf-8",
    )
    captured = {}
    monkeypatch.setattr(cli_module, "DockerUpgrader", fake_workflow(captured))
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(
        cli_module.main, ["--log-file", str(tmp_path / "upgrade.log"), "upgrade", "--strategy", "direct"]
    )

    assert result.exit_code == 0
    assert captured["settings"].package_root == "/srv/default-root"
    assert captured["settings"].transition_strategy == "direct"
    assert captured["settings"].verbose is True


def test_cli_propagates_workflow_exit_code(tmp_path, monkeypatch):
    captured = {}
    monkeypatch.setattr(cli_module, "DockerRollback", fake_workflow(captured, exit_code=1))
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(
        cli_module.main, ["--log-file", str(tmp_path / "rollback.log"), "rollback"]
    )

    assert result.exit_code == 1
    assert captured["settings"].log_file == str(tmp_path / "rollback.log")


def test_cli_writes_run_log_file(tmp_path, monkeypatch):
    log_file = tmp_path / "recover.log"

    class LoggingWorkflow:
        def __init__(self, settings):
            self.settings = settings

        def run(self):
            logging.getLogger("dockerupgrader").info("recovery step ran")
            return 0

    monkeypatch.setattr(cli_module, "PackageRecovery", LoggingWorkflow)
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.main, ["--log-file", str(log_file), "recover"])

    assert result.exit_code == 0
    for handler in file_handlers():
        handler.flush()
    assert "[INFO] recovery step ran" in log_file.read_text(encoding="utf-8")


def test_cli_rejects_unknown_strategy(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.main, ["upgrade", "--strategy", "yum-shell"])

    assert result.exit_code == 2
    assert "yum-shell" in result.output


def test_cli_reports_invalid_config(tmp_path, monkeypatch):
    config_file = tmp_path / "bad.yml"
    config_file.write_text("unknown_key: 1\n", encoding="utf-8")
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.main, ["--config", str(config_file), "recover"])

    assert result.exit_code == 1
    assert "Unknown configuration keys" in result.output
