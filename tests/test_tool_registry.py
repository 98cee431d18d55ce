import sys
from pathlib import Path

import pytest
from pydantic import BaseModel, ValidationError

from jobscout.errors import DuplicateToolError, ToolFactoryError
from jobscout.tools.registry import CapabilityRegistry, ToolRegistry, load_registry, render_params


class SearchInput(BaseModel):
    query: str
    limit: int = 5


@pytest.mark.asyncio
async def test_registry_logs_once_for_execute(monkeypatch) -> None:
    logs: list[str] = []

    def _capture(message: str, *args: object) -> None:
        logs.append(message)

    monkeypatch.setattr("jobscout.tools.registry.logger.info", _capture)
    monkeypatch.setattr("jobscout.tools.registry.logger.exception", _capture)

    registry = ToolRegistry()

    @registry.register(name="math_add", description="add")
    def add(params: dict) -> int:
        return params["a"] + params["b"]

    result = await registry.freeze().execute("math_add", {"a": 1, "b": 2})
    assert result == 3
    assert logs.count("tool.call.start name={} {{ {} }}") == 1
    assert logs.count("tool.call.end name={} duration={:.3f}ms") == 1


@pytest.mark.asyncio
async def test_registry_logs_error_and_reraises(monkeypatch) -> None:
    logs: list[str] = []

    def _capture(message: str, *args: object) -> None:
        logs.append(message)

    monkeypatch.setattr("jobscout.tools.registry.logger.info", _capture)
    monkeypatch.setattr("jobscout.tools.registry.logger.exception", _capture)

    registry = ToolRegistry()

    @registry.register(name="broken")
    def broken(params: dict) -> None:
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError, match="boom"):
        await registry.freeze().execute("broken", {})
    assert logs.count("tool.call.error name={}") == 1
    assert logs.count("tool.call.end name={} duration={:.3f}ms") == 1


@pytest.mark.asyncio
async def test_async_handler_receives_validated_model() -> None:
    registry = ToolRegistry()

    @registry.register(name="search_jobs", description="Search job boards", model=SearchInput)
    async def search(params: SearchInput) -> list[str]:
        return [f"{params.query}:{params.limit}"]

    capabilities = registry.freeze()
    assert await capabilities.execute("search_jobs", {"query": "python"}) == ["python:5"]
    with pytest.raises(ValidationError):
        await capabilities.execute("search_jobs", {"limit": 3})


def test_schema_comes_from_input_model() -> None:
    registry = ToolRegistry()

    @registry.register(name="search_jobs", description="Search job boards", model=SearchInput)
    def search(params: SearchInput) -> list[str]:
        return []

    [schema] = registry.freeze().schemas()
    assert schema["type"] == "function"
    assert schema["function"]["name"] == "search_jobs"
    assert schema["function"]["description"] == "Search job boards"
    assert schema["function"]["parameters"]["required"] == ["query"]


def test_description_falls_back_to_docstring() -> None:
    registry = ToolRegistry()

    @registry.register(name="parse_resume")
    def parse(params: dict) -> dict:
        """Extract skills from a resume."""
        return {}

    assert registry.freeze()["parse_resume"].description == "Extract skills from a resume."


def test_duplicate_tool_name_raises_error() -> None:
    registry = ToolRegistry()
    registry.register(name="search")(lambda params: None)

    with pytest.raises(DuplicateToolError, match="Duplicate tool name: search"):
        registry.register(name="search")(lambda params: None)


def test_capability_registry_is_read_only() -> None:
    registry = ToolRegistry()
    registry.register(name="b_tool")(lambda params: None)
    registry.register(name="a_tool")(lambda params: None)
    capabilities = registry.freeze()

    assert list(capabilities) == ["b_tool", "a_tool"]
    assert [schema["function"]["name"] for schema in capabilities.schemas()] == ["a_tool", "b_tool"]
    with pytest.raises(TypeError):
        capabilities._tools["c_tool"] = capabilities["a_tool"]  # type: ignore[index]


def test_render_params_shortens_long_values() -> None:
    rendered = render_params({"query": "x" * 100, "limit": 3})
    assert rendered.startswith('query="xxx')
    assert "..." in rendered
    assert rendered.endswith("limit=3")


def test_load_registry_from_factory(tmp_path: Path, monkeypatch) -> None:
    (tmp_path / "my_tools.py").write_text(
        "from jobscout.tools.registry import ToolRegistry\n"
        "\n"
        "def build():\n"
        "    registry = ToolRegistry()\n"
        "    registry.register(name='echo')(lambda params: params)\n"
        "    return registry\n",
        encoding="utf-8",
    )
    monkeypatch.syspath_prepend(str(tmp_path))
    monkeypatch.delitem(sys.modules, "my_tools", raising=False)

    capabilities = load_registry("my_tools:build")
    assert isinstance(capabilities, CapabilityRegistry)
    assert list(capabilities) == ["echo"]


@pytest.mark.parametrize("path", ["no_colon", "missing_module_xyz:build", "jobscout.errors:JobScoutError"])
def test_load_registry_rejects_bad_factories(path: str) -> None:
    with pytest.raises(ToolFactoryError):
        load_registry(path)
