from typer.testing import CliRunner

import jobscout.cli as cli
from jobscout.config import Settings
from jobscout.core.orchestrator import Orchestrator
from jobscout.errors import ProviderCommunicationError
from jobscout.history import InMemoryHistoryStore

runner = CliRunner()


def _patch_orchestrator(monkeypatch, provider) -> InMemoryHistoryStore:
    history = InMemoryHistoryStore()

    def build(settings: Settings, *, registry=None, **kwargs) -> Orchestrator:
        return Orchestrator(provider=provider, registry=registry, history=history)

    monkeypatch.setattr(cli, "build_orchestrator", build)
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)
    return history


def test_chat_renders_assistant_text(monkeypatch, scripted) -> None:
    _patch_orchestrator(monkeypatch, scripted([scripted.reply("Here are ", "two roles.")]))

    result = runner.invoke(cli.app, ["chat", "find me jobs", "--usage"])

    assert result.exit_code == 0
    assert "find me jobs" in result.stdout
    assert "Here are two roles." in result.stdout
    assert "1 model call(s)" in result.stdout


def test_chat_exits_non_zero_on_provider_failure(monkeypatch, scripted) -> None:
    _patch_orchestrator(monkeypatch, scripted([ProviderCommunicationError("provider: down")]))

    result = runner.invoke(cli.app, ["chat", "hi"])

    assert result.exit_code == 1
    assert "provider: down" in result.stdout


def test_chat_rejects_bad_tool_factory(monkeypatch, scripted) -> None:
    _patch_orchestrator(monkeypatch, scripted([]))

    result = runner.invoke(cli.app, ["chat", "hi", "--tools", "not-a-factory"])

    assert result.exit_code == 1
    assert "module:attr" in result.stdout


def test_serve_runs_uvicorn(monkeypatch) -> None:
    seen: dict = {}

    def fake_run(app, **kwargs) -> None:
        seen["app"] = app
        seen.update(kwargs)

    monkeypatch.setattr(cli.uvicorn, "run", fake_run)
    monkeypatch.setattr(cli, "configure_logging", lambda **kwargs: None)
    monkeypatch.setenv("JOBSCOUT_MODEL", "openai:gpt-4o-mini")

    result = runner.invoke(cli.app, ["serve", "--port", "9000"])

    assert result.exit_code == 0
    assert seen["port"] == 9000
    assert seen["host"] == "127.0.0.1"
