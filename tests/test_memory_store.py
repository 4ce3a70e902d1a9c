from __future__ import annotations

import json
from pathlib import Path

from auracle.memory import MemoryFile, MemoryStore


def test_memory_file_reads_incrementally(tmp_path: Path) -> None:
    memory_file = MemoryFile(tmp_path / "memory.jsonl")

    memory_file.append("a", "one")
    first = memory_file.read()
    memory_file.append("b", "two")
    second = memory_file.read()

    assert [record.seq for record in first] == [1]
    assert [(record.seq, record.key, record.value) for record in second] == [(1, "a", "one"), (2, "b", "two")]


def test_memory_file_skips_corrupt_lines(tmp_path: Path) -> None:
    path = tmp_path / "memory.jsonl"
    path.write_text(
        "\n".join([
            json.dumps({"seq": 1, "key": "a", "value": "one"}),
            "{not json",
            json.dumps({"seq": "2", "key": "b", "value": "two"}),
            json.dumps(["list"]),
        ])
        + "\n",
        encoding="utf-8",
    )

    records = MemoryFile(path).read()

    assert [(record.key, record.value, record.timestamp) for record in records] == [("a", "one", 0.0)]


def test_memory_file_resets_after_truncation(tmp_path: Path) -> None:
    path = tmp_path / "memory.jsonl"
    memory_file = MemoryFile(path)
    memory_file.append("a", "a long value that makes the file bigger")
    memory_file.read()

    path.write_text(json.dumps({"seq": 1, "key": "b", "value": "x"}) + "\n", encoding="utf-8")

    assert [record.key for record in memory_file.read()] == ["b"]


def test_store_and_get_latest_value(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path)

    store.store("task_step_0", "first")
    store.store("task_step_0", "second")

    assert store.get("task_step_0") == "second"
    assert store.get("missing") is None
    assert MemoryStore(tmp_path).get("task_step_0") == "second"


def test_window_keeps_most_recent_entries(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path, window_size=2)

    for idx in range(3):
        store.add_to_window(f"r{idx}", f"message {idx}", "user")

    assert [entry.id for entry in store.window()] == ["r1", "r2"]


def test_recall_matches_substrings_newest_first(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path)
    store.store("k1", "the parser handles fenced blocks")
    store.store("k2", "unrelated note about billing")
    store.store("k3", "Parser rewrite landed")

    assert store.recall("parser") == ["Parser rewrite landed", "the parser handles fenced blocks"]


def test_recall_tolerates_typos(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path)
    store.store("k1", "configure the retry policy for generation")

    assert store.recall("retry polcy") == ["configure the retry policy for generation"]


def test_recall_excludes_the_query_itself_and_dedupes(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path)
    store.add_to_window("r1", "fix the loop detector", "user")
    store.store("k1", "fix the loop detector")
    store.store("k2", "the loop detector threshold is three")

    assert store.recall("fix the loop detector") == ["the loop detector threshold is three"]


def test_recall_limit_and_window_entries(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path, recall_limit=2)
    store.store("k1", "deploy notes one")
    store.add_to_window("r1", "deploy notes two", "assistant")
    store.add_to_window("r2", "deploy notes three", "user")

    assert store.recall("deploy") == ["deploy notes one", "deploy notes three"]
    assert store.recall("   ") == []


def test_state_round_trip_and_clear(tmp_path: Path) -> None:
    store = MemoryStore(tmp_path)

    store.save_state("session/a b", {"step": 2, "done": ["x"]})

    assert store.load_state("session/a b") == {"step": 2, "done": ["x"]}
    assert list((tmp_path / "state").iterdir())[0].name == "session%2Fa%20b.json"

    store.clear_state("session/a b")
    store.clear_state("session/a b")
    assert store.load_state("session/a b", default="none") == "none"
