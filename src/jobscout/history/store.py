"""Conversation history stores."""

from __future__ import annotations

import asyncio
import json
import threading
from collections import defaultdict
from collections.abc import Iterator, Sequence
from pathlib import Path
from urllib.parse import quote, unquote

from loguru import logger
from republic import TapeEntry

from jobscout.core.conversation import ConversationTurn

HISTORY_SUFFIX = ".jsonl"
MESSAGE_KIND = "message"


class InMemoryHistoryStore:
    """Process-local store, used by tests and embedders without a disk."""

    def __init__(self) -> None:
        self._sessions: dict[str, list[ConversationTurn]] = {}
        self._lock = asyncio.Lock()

    async def load_history(self, session_id: str) -> list[ConversationTurn]:
        async with self._lock:
            return list(self._sessions.get(session_id, []))

    async def append_turns(self, session_id: str, turns: Sequence[ConversationTurn]) -> None:
        async with self._lock:
            self._sessions.setdefault(session_id, []).extend(turns)

    def list_sessions(self) -> list[str]:
        return sorted(self._sessions)


def _encode(entry: TapeEntry, entry_id: int) -> str:
    record = {
        "id": entry_id,
        "kind": entry.kind,
        "payload": entry.payload,
        "meta": entry.meta,
        "date": entry.date,
    }
    return json.dumps(record, ensure_ascii=False)


def _decode(line: str) -> TapeEntry | None:
    try:
        record = json.loads(line)
    except json.JSONDecodeError:
        return None
    if not isinstance(record, dict):
        return None
    entry_id, kind, payload = record.get("id"), record.get("kind"), record.get("payload")
    if not isinstance(entry_id, int) or not isinstance(kind, str) or not isinstance(payload, dict):
        return None
    meta = record.get("meta") if isinstance(record.get("meta"), dict) else {}
    date = record.get("date")
    if isinstance(date, str):
        return TapeEntry(entry_id, kind, payload, meta, date)
    return TapeEntry(entry_id, kind, payload, meta)


def _iter_entries(path: Path) -> Iterator[TapeEntry]:
    if not path.exists():
        return
    with path.open("r", encoding="utf-8") as handle:
        for number, line in enumerate(handle, start=1):
            if not line.strip():
                continue
            entry = _decode(line)
            if entry is None:
                logger.warning("history.read.skip path={} line={}", path.name, number)
                continue
            yield entry


class FileHistoryStore:
    """Append-only JSONL store with one file per session under ``home/history``.

    Every line is a republic ``TapeEntry`` of kind ``message`` whose payload is
    one serialized turn. Entry ids keep increasing across appends.
    """

    def __init__(self, home: Path) -> None:
        self._root = (home / "history").resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)
        self._guard = threading.Lock()

    @property
    def root(self) -> Path:
        return self._root

    async def load_history(self, session_id: str) -> list[ConversationTurn]:
        return await asyncio.to_thread(self.read, session_id)

    async def append_turns(self, session_id: str, turns: Sequence[ConversationTurn]) -> None:
        await asyncio.to_thread(self.append, session_id, turns)

    def path_for(self, session_id: str) -> Path:
        return self._root / f"{quote(session_id, safe='')}{HISTORY_SUFFIX}"

    def entries(self, session_id: str) -> list[TapeEntry]:
        with self._lock_for(session_id):
            return list(_iter_entries(self.path_for(session_id)))

    def read(self, session_id: str) -> list[ConversationTurn]:
        turns: list[ConversationTurn] = []
        for entry in self.entries(session_id):
            if entry.kind != MESSAGE_KIND:
                continue
            try:
                turns.append(ConversationTurn.from_payload(entry.payload))
            except (KeyError, ValueError):
                logger.warning("history.read.skip session={} entry={} reason=invalid_turn", session_id, entry.id)
        return turns

    def append(self, session_id: str, turns: Sequence[ConversationTurn]) -> None:
        if not turns:
            return
        path = self.path_for(session_id)
        with self._lock_for(session_id):
            last_id = max((entry.id for entry in _iter_entries(path)), default=0)
            lines = [
                _encode(TapeEntry.message(turn.to_payload()), last_id + offset)
                for offset, turn in enumerate(turns, start=1)
            ]
            with path.open("a", encoding="utf-8") as handle:
                handle.write("\n".join(lines) + "\n")

    def reset(self, session_id: str) -> None:
        with self._lock_for(session_id):
            self.path_for(session_id).unlink(missing_ok=True)

    def list_sessions(self) -> list[str]:
        return sorted(unquote(path.name.removesuffix(HISTORY_SUFFIX)) for path in self._root.glob(f"*{HISTORY_SUFFIX}"))

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._guard:
            return self._locks[session_id]
