import pytest

from dockerupgrader.errors import UpgraderError
from dockerupgrader.services.systemd import ServiceManager


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


def build_manager(runner, sleeps=None):
    return ServiceManager(
        runner,
        DummyLogger(),
        settle_seconds=2,
        runtime_ready_seconds=5,
        poll_interval=1,
        poll_attempts=3,
        sleep=(sleeps.append if sleeps is not None else lambda _s: None),
    )


def test_is_active_requires_active_state(fake_runner):
    fake_runner.on("systemctl", "is-active", "docker", stdout="active\n")
    fake_runner.on("systemctl", "is-active", "containerd", returncode=3, stdout="inactive\n")
    manager = build_manager(fake_runner)

    assert manager.status() == {"docker": True, "containerd": False}


def test_stop_stack_stops_engine_before_runtime(fake_runner):
    sleeps = []
    manager = build_manager(fake_runner, sleeps)

    manager.stop_stack()

    assert fake_runner.calls == [
        ["systemctl", "stop", "docker", "docker.socket"],
        ["systemctl", "stop", "containerd"],
    ]
    assert sleeps == [2, 2]


def test_stop_is_not_fatal(fake_runner):
    fake_runner.on("systemctl", "stop", returncode=5)
    manager = build_manager(fake_runner)

    manager.stop_stack()

    assert len(fake_runner.calls) == 2


def test_start_stack_starts_runtime_first_and_enables(fake_runner):
    fake_runner.on("systemctl", "is-active", stdout="active\n")
    sleeps = []
    manager = build_manager(fake_runner, sleeps)

    manager.start_stack()

    starts = [cmd for cmd in fake_runner.calls if cmd[1] in ("start", "enable")]
    assert starts == [
        ["systemctl", "start", "containerd"],
        ["systemctl", "start", "docker"],
        ["systemctl", "enable", "containerd", "docker"],
    ]
    assert 5 in sleeps


def test_start_stack_can_skip_enable(fake_runner):
    fake_runner.on("systemctl", "is-active", stdout="active\n")
    manager = build_manager(fake_runner)

    manager.start_stack(enable=False)

    assert not fake_runner.called("systemctl", "enable")


def test_runtime_start_failure_points_at_journal(fake_runner):
    fake_runner.on("systemctl", "start", "containerd", returncode=1)
    manager = build_manager(fake_runner)

    with pytest.raises(UpgraderError, match="journalctl -u containerd"):
        manager.start_stack()

    assert not fake_runner.called("systemctl", "start", "docker")


def test_engine_not_active_after_start_is_fatal(fake_runner):
    fake_runner.on("systemctl", "is-active", "containerd", stdout="active\n")
    fake_runner.on("systemctl", "is-active", "docker", returncode=3, stdout="failed\n")
    manager = build_manager(fake_runner)

    with pytest.raises(UpgraderError, match="Service docker is not active"):
        manager.start_stack()

    is_active_calls = [cmd for cmd in fake_runner.calls if cmd[:3] == ["systemctl", "is-active", "docker"]]
    assert len(is_active_calls) == 3
    assert not fake_runner.called("systemctl", "enable")
