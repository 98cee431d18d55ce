"""Process logging for jobscout."""

from __future__ import annotations

import sys
from contextvars import ContextVar
from typing import Any, Literal

import loguru
from loguru import logger
from rich import get_console
from rich.logging import RichHandler

LogProfile = Literal["default", "chat"]

DEFAULT_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level:<7} | {extra[session]} | {name}:{line} | {message}"
CHAT_FORMAT = "{extra[session]} {message}"

_session: ContextVar[str] = ContextVar("jobscout_session", default="-")
_active_profile: LogProfile | None = None


def current_session() -> str:
    """Id of the conversation session running in this context, or ``-``."""
    return _session.get()


def bind_session(session_id: str) -> None:
    """Tag records logged from the current task with ``session_id``."""
    _session.set(session_id)


def _patch_record(record: loguru.Record) -> None:
    record["extra"]["session"] = _session.get()


def _sink_for(profile: LogProfile) -> tuple[Any, str]:
    if profile == "chat":
        handler = RichHandler(
            console=get_console(),
            show_time=False,
            show_path=False,
            markup=False,
            rich_tracebacks=False,
        )
        return handler, CHAT_FORMAT
    return sys.stderr, DEFAULT_FORMAT


def configure_logging(*, profile: LogProfile = "default", level: str = "INFO") -> None:
    """Install the single sink for ``profile``; repeated calls for the same profile are no-ops."""
    global _active_profile
    if profile == _active_profile:
        return

    sink, log_format = _sink_for(profile)
    logger.configure(
        handlers=[
            {
                "sink": sink,
                "level": level.upper(),
                "format": log_format,
                "backtrace": False,
                "diagnose": False,
            }
        ],
        patcher=_patch_record,
    )
    _active_profile = profile
