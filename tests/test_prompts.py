import click
import pytest

from dockerupgrader.prompts import ConsoleOperator


def test_confirm_uses_given_default(monkeypatch):
    seen = {}

    def fake_confirm(text, default):
        seen["args"] = (text, default)
        return default

    monkeypatch.setattr(click, "confirm", fake_confirm)

    assert ConsoleOperator().confirm("Drain swarm node abc before upgrading?", default=True) is True
    assert seen["args"] == ("Drain swarm node abc before upgrading?", True)


def test_prompt_strips_answer(monkeypatch):
    monkeypatch.setattr(click, "prompt", lambda text, default, show_default: "  /data/containerd \n")

    assert ConsoleOperator().prompt("Enter an alternative containerd data root") == "/data/containerd"


def test_prompt_empty_answer(monkeypatch):
    monkeypatch.setattr(click, "prompt", lambda text, default, show_default: default)

    assert ConsoleOperator().prompt("Enter an alternative containerd data root") == ""


def test_abort_at_confirm_becomes_keyboard_interrupt(monkeypatch):
    def aborted(*_args, **_kwargs):
        raise click.Abort()

    monkeypatch.setattr(click, "confirm", aborted)

    with pytest.raises(KeyboardInterrupt):
        ConsoleOperator().confirm("Drain swarm node abc before upgrading?", default=True)


def test_abort_at_prompt_becomes_keyboard_interrupt(monkeypatch):
    def aborted(*_args, **_kwargs):
        raise click.Abort()

    monkeypatch.setattr(click, "prompt", aborted)

    with pytest.raises(KeyboardInterrupt):
        ConsoleOperator().prompt("Enter an alternative containerd data root")
