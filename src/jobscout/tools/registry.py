"""Capability registry: named tool handlers available for dispatch."""

from __future__ import annotations

import importlib
import inspect
import json
import time
from collections.abc import Callable, Iterable, Iterator, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from loguru import logger
from pydantic import BaseModel
from republic import Tool

from jobscout.errors import DuplicateToolError, ToolFactoryError

EMPTY_PARAMETERS: dict[str, Any] = {"type": "object", "properties": {}}
PARAM_PREVIEW_WIDTH = 30
ELLIPSIS = "..."


def _clip(text: str, limit: int = PARAM_PREVIEW_WIDTH) -> str:
    # Hard cut, so long tokens without whitespace are clipped too.
    if len(text) > limit:
        keep = max(limit - len(ELLIPSIS), 0)
        return f"{text[:keep]}{ELLIPSIS}"
    return text


def render_params(params: Mapping[str, Any]) -> str:
    """One-line ``key=value`` preview of tool input for logs and the console."""
    parts = []
    for key, value in params.items():
        try:
            encoded = json.dumps(value, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            encoded = repr(value)
        parts.append(f"{key}={_clip(encoded)}")
    return ", ".join(parts)


@dataclass(frozen=True)
class ToolDescriptor:
    """Tool metadata and runtime handle.

    The handler receives one parameter object: an instance of ``input_model``
    when one is declared, otherwise the raw parameter dict.
    """

    name: str
    description: str
    tool: Tool
    input_model: type[BaseModel] | None = None
    source: str = "builtin"

    def schema(self) -> dict[str, Any]:
        return self.tool.schema()

    def parse(self, params: Mapping[str, Any]) -> Any:
        if self.input_model is None:
            return dict(params)
        return self.input_model.model_validate(dict(params))


class ToolRegistry:
    """Mutable builder used at startup; ``freeze`` produces the shared registry."""

    def __init__(self) -> None:
        self._tools: dict[str, ToolDescriptor] = {}

    def add(self, descriptor: ToolDescriptor) -> None:
        if descriptor.name in self._tools:
            raise DuplicateToolError(f"Duplicate tool name: {descriptor.name}")
        self._tools[descriptor.name] = descriptor

    def register(
        self,
        *,
        name: str,
        description: str = "",
        model: type[BaseModel] | None = None,
        parameters: dict[str, Any] | None = None,
        source: str = "builtin",
    ) -> Callable[[Callable[[Any], Any]], Callable[[Any], Any]]:
        def decorator(handler: Callable[[Any], Any]) -> Callable[[Any], Any]:
            schema = model.model_json_schema() if model is not None else (parameters or dict(EMPTY_PARAMETERS))
            tool = Tool(
                name=name,
                description=description or inspect.getdoc(handler) or "",
                parameters=schema,
                handler=handler,
            )
            self.add(
                ToolDescriptor(
                    name=name,
                    description=tool.description,
                    tool=tool,
                    input_model=model,
                    source=source,
                )
            )
            return handler

        return decorator

    def freeze(self) -> CapabilityRegistry:
        return CapabilityRegistry(self._tools.values())


class CapabilityRegistry(Mapping[str, ToolDescriptor]):
    """Read-only map of tool name to descriptor, shared by all sessions."""

    def __init__(self, descriptors: Iterable[ToolDescriptor] = ()) -> None:
        tools: dict[str, ToolDescriptor] = {}
        for descriptor in descriptors:
            if descriptor.name in tools:
                raise DuplicateToolError(f"Duplicate tool name: {descriptor.name}")
            tools[descriptor.name] = descriptor
        self._tools = MappingProxyType(tools)

    def __getitem__(self, name: str) -> ToolDescriptor:
        return self._tools[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._tools)

    def __len__(self) -> int:
        return len(self._tools)

    def schemas(self) -> list[dict[str, Any]]:
        return [self._tools[name].schema() for name in sorted(self._tools)]

    async def execute(self, name: str, params: Mapping[str, Any]) -> Any:
        """Parse ``params`` and run the named handler, awaiting it if needed.

        Raises ``KeyError`` for unknown names, ``pydantic.ValidationError``
        for bad input and whatever the handler raises.
        """
        descriptor = self._tools[name]
        parsed = descriptor.parse(params)
        logger.info("tool.call.start name={} {{ {} }}", name, render_params(params))
        started = time.perf_counter()
        try:
            outcome = descriptor.tool.run(parsed)
            return await outcome if inspect.isawaitable(outcome) else outcome
        except Exception:
            logger.exception("tool.call.error name={}", name)
            raise
        finally:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.info("tool.call.end name={} duration={:.3f}ms", name, elapsed_ms)


def load_registry(path: str) -> CapabilityRegistry:
    """Import ``module:attr`` and build a registry from it.

    ``attr`` may be a ``CapabilityRegistry``, a ``ToolRegistry`` or a
    zero-argument callable returning either.
    """
    module_name, separator, attr = path.partition(":")
    if not separator or not module_name or not attr:
        raise ToolFactoryError(f"Tool factory must be module:attr, got {path!r}")
    try:
        module = importlib.import_module(module_name)
        target = getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise ToolFactoryError(f"Cannot load tool factory {path!r}: {exc!s}") from exc

    if callable(target) and not isinstance(target, (ToolRegistry, CapabilityRegistry)):
        target = target()
    if isinstance(target, ToolRegistry):
        return target.freeze()
    if isinstance(target, CapabilityRegistry):
        return target
    raise ToolFactoryError(f"Tool factory {path!r} returned {type(target).__name__}, expected a registry")
