import pytest

from dockerupgrader.errors import UpgraderError
from dockerupgrader.services.config_loader import ConfigLoader


def test_config_loader_loads_yaml_mapping(tmp_path):
    config_file = tmp_path / ".docker-upgrader.yml"
    config_file.write_text(
        "package_root: /srv/docker-offline\ntransition_strategy: repository\ndrain_poll_attempts: 60\n",
        encoding="utf-8",
    )

    loaded = ConfigLoader().load(str(config_file))

    assert loaded["package_root"] == "/srv/docker-offline"
    assert loaded["transition_strategy"] == "repository"
    assert loaded["drain_poll_attempts"] == 60


def test_config_loader_returns_empty_without_path():
    assert ConfigLoader().load(None) == {}


def test_config_loader_accepts_empty_file(tmp_path):
    config_file = tmp_path / ".docker-upgrader.yml"
    config_file.write_text("", encoding="utf-8")

    assert ConfigLoader().load(str(config_file)) == {}


def test_config_loader_rejects_unknown_keys(tmp_path):
    config_file = tmp_path / ".docker-upgrader.yml"
    config_file.write_text("unknown_key: true\n", encoding="utf-8")

    with pytest.raises(UpgraderError, match="Unknown configuration keys"):
        ConfigLoader().load(str(config_file))


def test_config_loader_rejects_unknown_strategy(tmp_path):
    config_file = tmp_path / ".docker-upgrader.yml"
    config_file.write_text("transition_strategy: yolo\n", encoding="utf-8")

    with pytest.raises(UpgraderError, match="transition_strategy must be one of"):
        ConfigLoader().load(str(config_file))


def test_config_loader_rejects_non_mapping(tmp_path):
    config_file = tmp_path / ".docker-upgrader.yml"
    config_file.write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(UpgraderError, match="YAML mapping"):
        ConfigLoader().load(str(config_file))


def test_config_loader_missing_file(tmp_path):
    with pytest.raises(UpgraderError, match="Config file not found"):
        ConfigLoader().load(str(tmp_path / "missing.yml"))
