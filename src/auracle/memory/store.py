"""Persistent memory store: rolling window, recall records, and named state."""

from __future__ import annotations

import json
import re
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import quote

from loguru import logger
from rapidfuzz import fuzz, process

MEMORY_FILE_NAME = "memory.jsonl"
STATE_DIR_NAME = "state"
WORD_PATTERN = re.compile(r"[a-z0-9_/-]+")
MIN_FUZZY_QUERY_LENGTH = 3
MIN_FUZZY_SCORE = 80
MAX_FUZZY_CANDIDATES = 128


@dataclass(frozen=True)
class MemoryRecord:
    """One stored value."""

    seq: int
    key: str
    value: str
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True)
class WindowEntry:
    """One message in the rolling conversation window."""

    id: str
    content: str
    tag: str


class MemoryFile:
    """Append-only JSONL file with an offset-cached reader."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._lock = threading.Lock()
        self._read_records: list[MemoryRecord] = []
        self._read_offset = 0

    def _next_seq(self) -> int:
        if self._read_records:
            return self._read_records[-1].seq + 1
        return 1

    def _reset(self) -> None:
        self._read_records = []
        self._read_offset = 0

    def read(self) -> list[MemoryRecord]:
        with self._lock:
            return self._read_locked()

    def _read_locked(self) -> list[MemoryRecord]:
        if not self.path.exists():
            self._reset()
            return []

        file_size = self.path.stat().st_size
        if file_size < self._read_offset:
            # The file was truncated or replaced, so cached records are stale.
            self._reset()

        with self.path.open("r", encoding="utf-8") as handle:
            handle.seek(self._read_offset)
            for raw_line in handle:
                line = raw_line.strip()
                if not line:
                    continue
                try:
                    payload = json.loads(line)
                except json.JSONDecodeError:
                    continue
                record = self.record_from_payload(payload)
                if record is not None:
                    self._read_records.append(record)
            self._read_offset = handle.tell()

        return list(self._read_records)

    @staticmethod
    def record_to_payload(record: MemoryRecord) -> dict[str, object]:
        return {"seq": record.seq, "key": record.key, "value": record.value, "timestamp": record.timestamp}

    @staticmethod
    def record_from_payload(payload: object) -> MemoryRecord | None:
        if not isinstance(payload, dict):
            return None
        seq = payload.get("seq")
        key = payload.get("key")
        value = payload.get("value")
        if not isinstance(seq, int) or not isinstance(key, str) or not isinstance(value, str):
            return None
        timestamp = payload.get("timestamp", 0.0)
        return MemoryRecord(seq, key, value, float(timestamp) if isinstance(timestamp, (int, float)) else 0.0)

    def append(self, key: str, value: str) -> MemoryRecord:
        with self._lock:
            # Keep cache and offset in sync before allocating a new seq.
            self._read_locked()
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as handle:
                record = MemoryRecord(self._next_seq(), key, value)
                handle.write(json.dumps(self.record_to_payload(record), ensure_ascii=False) + "\n")
                self._read_records.append(record)
                self._read_offset = handle.tell()
        return record


class MemoryStore:
    """Conversation window plus durable recall and state, rooted at one home directory."""

    def __init__(self, home: Path, *, window_size: int = 20, recall_limit: int = 5) -> None:
        self._home = home
        self._file = MemoryFile(home / MEMORY_FILE_NAME)
        self._state_root = home / STATE_DIR_NAME
        self._window: deque[WindowEntry] = deque(maxlen=window_size)
        self._window_lock = threading.Lock()
        self._recall_limit = recall_limit

    @property
    def home(self) -> Path:
        return self._home

    def add_to_window(self, id: str, content: str, tag: str) -> None:  # noqa: A002
        with self._window_lock:
            self._window.append(WindowEntry(id=id, content=content, tag=tag))

    def window(self) -> list[WindowEntry]:
        with self._window_lock:
            return list(self._window)

    def store(self, id: str, value: str) -> None:  # noqa: A002
        record = self._file.append(id, value)
        logger.debug("memory.store key={} seq={}", id, record.seq)

    def records(self) -> list[MemoryRecord]:
        return self._file.read()

    def get(self, id: str) -> str | None:  # noqa: A002
        for record in reversed(self._file.read()):
            if record.key == id:
                return record.value
        return None

    def recall(self, query: str) -> list[str]:
        """Return up to `recall_limit` remembered snippets relevant to `query`, newest first."""
        normalized_query = query.strip().lower()
        if not normalized_query:
            return []

        results: list[str] = []
        seen: set[str] = {query.strip()}
        for candidate in self._recall_candidates():
            if candidate in seen:
                continue
            lowered = candidate.lower()
            if normalized_query in lowered or self._is_fuzzy_match(normalized_query, lowered):
                results.append(candidate)
                seen.add(candidate)
                if len(results) >= self._recall_limit:
                    break
        return results

    def _recall_candidates(self) -> list[str]:
        candidates = [record.value for record in reversed(self._file.read())]
        candidates.extend(entry.content for entry in reversed(self.window()))
        return [candidate.strip() for candidate in candidates if candidate.strip()]

    @staticmethod
    def _is_fuzzy_match(normalized_query: str, text: str) -> bool:
        if len(normalized_query) < MIN_FUZZY_QUERY_LENGTH:
            return False

        query_tokens = WORD_PATTERN.findall(normalized_query)
        if not query_tokens:
            return False
        query_phrase = " ".join(query_tokens)
        window_size = len(query_tokens)

        source_tokens = WORD_PATTERN.findall(text)
        if not source_tokens:
            return False

        candidates: list[str] = []
        for token in source_tokens:
            candidates.append(token)
            if len(candidates) >= MAX_FUZZY_CANDIDATES:
                break

        if window_size > 1:
            max_window_start = len(source_tokens) - window_size + 1
            for idx in range(max(0, max_window_start)):
                candidates.append(" ".join(source_tokens[idx : idx + window_size]))
                if len(candidates) >= MAX_FUZZY_CANDIDATES:
                    break

        best_match = process.extractOne(
            query_phrase,
            candidates,
            scorer=fuzz.WRatio,
            score_cutoff=MIN_FUZZY_SCORE,
        )
        return best_match is not None

    def save_state(self, id: str, value: Any) -> None:  # noqa: A002
        path = self._state_path(id)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_suffix(".json.tmp")
        tmp_path.write_text(json.dumps(value, ensure_ascii=False), encoding="utf-8")
        tmp_path.replace(path)

    def load_state(self, id: str, default: Any = None) -> Any:  # noqa: A002
        path = self._state_path(id)
        if not path.is_file():
            return default
        return json.loads(path.read_text(encoding="utf-8"))

    def clear_state(self, id: str) -> None:  # noqa: A002
        self._state_path(id).unlink(missing_ok=True)

    def _state_path(self, id: str) -> Path:  # noqa: A002
        return self._state_root / f"{quote(id, safe='')}.json"
