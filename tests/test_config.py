from pathlib import Path

import pytest
from pydantic import ValidationError

from jobscout.config import DEFAULT_MODEL, get_settings
from jobscout.errors import InvalidModelFormatError, ModelNotConfiguredError


def test_defaults() -> None:
    settings = get_settings()

    assert settings.model == DEFAULT_MODEL
    assert settings.max_tokens == 4096
    assert settings.context_limit == 200_000
    assert settings.context_threshold == 0.95
    assert settings.fallback_summary is True


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("JOBSCOUT_MODEL", "openai:gpt-4o-mini")
    monkeypatch.setenv("JOBSCOUT_CONTEXT_THRESHOLD", "0.8")
    monkeypatch.setenv("jobscout_max_tokens", "1024")

    settings = get_settings()

    assert settings.require_model() == "openai:gpt-4o-mini"
    assert settings.context_threshold == 0.8
    assert settings.max_tokens == 1024


def test_dotenv_file_is_read(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("JOBSCOUT_CONTEXT_LIMIT=1000\n", encoding="utf-8")

    assert get_settings().context_limit == 1000


@pytest.mark.parametrize("threshold", [0.0, 1.01, -0.5])
def test_threshold_must_be_a_fraction(threshold: float) -> None:
    with pytest.raises(ValidationError):
        get_settings(context_threshold=threshold)


def test_require_model() -> None:
    with pytest.raises(ModelNotConfiguredError):
        get_settings(model=" ").require_model()
    with pytest.raises(InvalidModelFormatError):
        get_settings(model="anthropic:").require_model()


def test_system_prompt_combines_inline_and_file(tmp_path: Path) -> None:
    prompt_file = tmp_path / "prompt.md"
    prompt_file.write_text("Prefer remote roles.\n", encoding="utf-8")

    settings = get_settings(system_prompt="You help people find jobs.", system_prompt_path=prompt_file)

    assert settings.resolve_system_prompt() == "You help people find jobs.\n\nPrefer remote roles."


def test_resolve_home_creates_directory(tmp_path: Path) -> None:
    home = tmp_path / "nested" / "home"
    assert get_settings(home=home).resolve_home() == home
    assert home.is_dir()
