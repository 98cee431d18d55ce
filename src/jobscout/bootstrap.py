"""Runtime bootstrap helpers."""

from __future__ import annotations

from loguru import logger

from jobscout.config import Settings
from jobscout.core.orchestrator import Orchestrator
from jobscout.core.provider import ModelProvider
from jobscout.core.session import HistoryStore
from jobscout.history import FileHistoryStore
from jobscout.integrations.republic_client import RepublicProvider
from jobscout.tools.registry import CapabilityRegistry, load_registry


def build_registry(tools: str | None) -> CapabilityRegistry:
    """Load the registry named by ``module:attr``, or an empty one."""
    if not tools:
        return CapabilityRegistry()
    registry = load_registry(tools)
    logger.info("registry.loaded factory={} tools={}", tools, ",".join(sorted(registry)))
    return registry


def build_orchestrator(
    settings: Settings,
    *,
    registry: CapabilityRegistry | None = None,
    provider: ModelProvider | None = None,
    history: HistoryStore | None = None,
) -> Orchestrator:
    """Build the orchestrator for one process.

    Missing collaborators default to the republic provider and the JSONL
    history store under ``settings.home``.
    """
    if provider is None:
        provider = RepublicProvider.from_settings(settings)
    if history is None:
        history = FileHistoryStore(settings.resolve_home())
    return Orchestrator(
        provider=provider,
        registry=registry if registry is not None else CapabilityRegistry(),
        history=history,
        system_prompt=settings.resolve_system_prompt(),
        max_tokens=settings.max_tokens,
        context_limit=settings.context_limit,
        context_threshold=settings.context_threshold,
        fallback_summary=settings.fallback_summary,
    )
