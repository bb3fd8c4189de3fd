import subprocess

import pytest

from dockerupgrader.errors import UpgraderError
from dockerupgrader.models import Settings


class FakeRunner:
    """Stands in for CommandRunner: records commands and replays canned results.

    Responses are matched on the command prefix; the most recently registered
    match wins. A response is ``(returncode, stdout)``, a callable taking the
    command and returning that tuple, or a list consumed one item per call with
    the last item repeated.
    """

    def __init__(self):
        self.calls = []
        self.responses = []

    def on(self, *prefix, returncode=0, stdout="", handler=None, sequence=None):
        if handler is not None:
            response = handler
        elif sequence is not None:
            response = list(sequence)
        else:
            response = (returncode, stdout)
        self.responses.insert(0, (tuple(prefix), response))
        return self

    def run(self, cmd, check=True, capture_output=True, timeout=None, echo=False):
        self.calls.append(list(cmd))
        returncode, stdout = 0, ""
        for prefix, response in self.responses:
            if tuple(cmd[: len(prefix)]) != prefix:
                continue
            if callable(response):
                returncode, stdout = response(list(cmd))
            elif isinstance(response, list):
                returncode, stdout = response.pop(0) if len(response) > 1 else response[0]
            else:
                returncode, stdout = response
            break

        if check and returncode != 0:
            raise UpgraderError(f"Command failed ({returncode}): {' '.join(cmd)}")
        return subprocess.CompletedProcess(cmd, returncode, stdout=stdout, stderr="")

    def called(self, *prefix) -> bool:
        return self.index(*prefix) is not None

    def index(self, *prefix):
        for position, cmd in enumerate(self.calls):
            if tuple(cmd[: len(prefix)]) == prefix:
                return position
        return None


class ScriptedOperator:
    """Answers prompts from fixed lists, falling back to each prompt's default."""

    def __init__(self, confirms=(), prompts=()):
        self.confirms = list(confirms)
        self.prompts = list(prompts)
        self.questions = []

    def confirm(self, text, default=False):
        self.questions.append(text)
        return self.confirms.pop(0) if self.confirms else default

    def prompt(self, text, default=""):
        self.questions.append(text)
        return self.prompts.pop(0) if self.prompts else default


DEFAULT_CONFIG = 'version = 3\nroot = "/var/lib/containerd"\n\n[grpc]\n  address = "/run/containerd/containerd.sock"\n'
MIGRATED_CONFIG = 'version = 3\nroot = "/var/lib/containerd"\n\n[plugins]\n'


def healthy_host() -> FakeRunner:
    runner = FakeRunner()
    runner.on("rpm", "-E", "%rhel", stdout="8\n")
    runner.on("rpm", "-q", "nvidia-container-toolkit", returncode=1, stdout="package nvidia-container-toolkit is not installed\n")
    runner.on(
        "rpm",
        "-q",
        "--queryformat",
        stdout=(
            "docker-ce 29.1.5\ndocker-ce-cli 29.1.5\ncontainerd.io 2.2.1\n"
            "docker-buildx-plugin 0.30.1\ndocker-compose-plugin 5.0.1\n"
        ),
    )
    runner.on("rpm", "-qa", stdout="docker-ce-28.5.1-1.el8.x86_64\ncontainerd.io-1.7.29-3.1.el8.x86_64\nbash-5.1\n")
    runner.on("systemctl", "is-active", stdout="active\n")
    runner.on("docker", "info", stdout="inactive||false\n")
    runner.on("docker", "version", stdout="Client: Docker Engine - Community\n Version: 28.5.1\n")
    runner.on("containerd", "--version", stdout="containerd containerd.io 1.7.29\n")
    runner.on("containerd", "config", "default", stdout=DEFAULT_CONFIG)
    runner.on("containerd", "config", "migrate", stdout=MIGRATED_CONFIG)
    runner.on("findmnt", stdout="/      ext4\n")
    return runner


@pytest.fixture
def host():
    return healthy_host()


@pytest.fixture
def make_settings(tmp_path):
    def _make(rhel_dirs=("rhel8",), **overrides) -> Settings:
        package_root = tmp_path / "docker-offline"
        for directory in rhel_dirs:
            (package_root / directory).mkdir(parents=True, exist_ok=True)
            (package_root / directory / "docker-ce-29.1.5-1.x86_64.rpm").write_text("rpm", encoding="utf-8")
        backup_root = tmp_path / "backups"
        backup_root.mkdir(exist_ok=True)
        config_path = tmp_path / "etc" / "containerd" / "config.toml"
        config_path.parent.mkdir(parents=True, exist_ok=True)

        values = {
            "package_root": str(package_root),
            "backup_root": str(backup_root),
            "containerd_config": str(config_path),
            "manifest_file": str(tmp_path / "manifest-{workflow}.json"),
            "settle_seconds": 0,
            "runtime_ready_seconds": 0,
            "service_poll_interval": 0,
            "service_poll_attempts": 2,
            "drain_poll_interval": 0,
            "drain_poll_attempts": 3,
            "reactivation_poll_interval": 0,
            "reactivation_poll_attempts": 3,
        }
        values.update(overrides)
        return Settings(**values)

    return _make


@pytest.fixture
def scripted_operator():
    return ScriptedOperator


@pytest.fixture
def fake_runner():
    return FakeRunner()
