import os
from datetime import datetime

import pytest

from dockerupgrader.errors import UpgraderError
from dockerupgrader.services.backup import BackupService


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


def fixed_clock(*stamp):
    return lambda: datetime(*stamp)


def test_create_dir_uses_timestamp_and_owner_only_mode(tmp_path):
    service = BackupService(str(tmp_path), DummyLogger(), now=fixed_clock(2026, 1, 2, 3, 4, 5))

    path = service.create_dir()

    assert path == str(tmp_path / "docker-backup-20260102-030405")
    assert os.stat(path).st_mode & 0o777 == 0o700


def test_create_dir_never_reuses_an_existing_backup(tmp_path):
    service = BackupService(str(tmp_path), DummyLogger(), now=fixed_clock(2026, 1, 2, 3, 4, 5))
    service.create_dir()

    with pytest.raises(UpgraderError, match="Could not create backup directory"):
        service.create_dir()


def test_save_text_skips_missing_content(tmp_path):
    service = BackupService(str(tmp_path), DummyLogger())

    assert service.save_text(str(tmp_path), "images.txt", None) is False
    assert service.save_text(str(tmp_path), "containers.txt", "CONTAINER ID\n") is True
    assert sorted(os.listdir(tmp_path)) == ["containers.txt"]


def test_save_file_copies_config(tmp_path):
    source = tmp_path / "source.toml"
    source.write_text("version = 2\n", encoding="utf-8")
    target = tmp_path / "backup"
    target.mkdir()
    service = BackupService(str(tmp_path), DummyLogger())

    assert service.save_file(str(target), str(source)) is True
    assert (target / "config.toml").read_text(encoding="utf-8") == "version = 2\n"
    assert service.save_file(str(target), str(tmp_path / "missing.toml")) is False


def test_latest_config_picks_most_recent_backup(tmp_path):
    older = tmp_path / "docker-backup-20260101-000000"
    newer = tmp_path / "docker-backup-20250101-000000"
    for directory, mtime in ((older, 1_000_000), (newer, 2_000_000)):
        directory.mkdir()
        (directory / "config.toml").write_text(directory.name, encoding="utf-8")
        os.utime(directory, (mtime, mtime))
    (tmp_path / "unrelated").mkdir()
    service = BackupService(str(tmp_path), DummyLogger())

    assert service.latest() == str(newer)
    assert service.latest_config() == str(newer / "config.toml")


def test_latest_config_without_backups(tmp_path):
    service = BackupService(str(tmp_path), DummyLogger())

    assert service.latest() is None
    assert service.latest_config() is None


def test_latest_config_when_backup_has_no_config(tmp_path):
    (tmp_path / "docker-backup-20260101-000000").mkdir()

    assert BackupService(str(tmp_path), DummyLogger()).latest_config() is None
