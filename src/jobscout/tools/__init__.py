"""Tool registry and dispatch-facing descriptors."""

from jobscout.tools.registry import CapabilityRegistry, ToolDescriptor, ToolRegistry, load_registry

__all__ = ["CapabilityRegistry", "ToolDescriptor", "ToolRegistry", "load_registry"]
