"""Application-level exception types for jobscout."""

from __future__ import annotations


class JobScoutError(Exception):
    """Base exception for jobscout."""


class ConfigurationError(JobScoutError):
    """Base exception for configuration and startup validation errors."""


class ModelNotConfiguredError(ConfigurationError):
    """Raised when model configuration is missing."""


class InvalidModelFormatError(ConfigurationError):
    """Raised when model format is not provider:model."""


class DuplicateToolError(ConfigurationError):
    """Raised when two tools are registered under the same name."""


class ToolFactoryError(ConfigurationError):
    """Raised when a tool factory path cannot be imported or called."""


class ProviderCommunicationError(JobScoutError):
    """Raised when the model provider cannot be reached or fails mid-stream.

    Fatal for one run: the loop stops with ``stop_error``.
    """


class ToolExecutionError(JobScoutError):
    """Raised by or on behalf of a tool handler that failed.

    Recoverable: the dispatcher turns it into a failed tool result.
    """


class MalformedToolRequest(JobScoutError):
    """Raised for tool calls naming an unknown tool or carrying bad arguments.

    Recoverable: the dispatcher turns it into a failed tool result.
    """


class StreamClosedError(JobScoutError):
    """Raised when the outbound event transport cannot accept a write."""
