"""jobscout - tool-orchestration engine for a job-search assistant."""

from jobscout.core.orchestrator import Orchestrator, RunOutcome
from jobscout.core.session import ChatRequest
from jobscout.tools.registry import CapabilityRegistry, ToolRegistry

__version__ = "0.1.0"

__all__ = ["CapabilityRegistry", "ChatRequest", "Orchestrator", "RunOutcome", "ToolRegistry"]
