from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from ledger_projection.ledger import Block, BlockSignal, FileBlockSource, LedgerContractError


def _block(number: int) -> Block:
    return Block(number=number, timestamp=datetime(2024, 3, 1, tzinfo=timezone.utc))


def test_signal_delivers_in_subscription_order_until_closed() -> None:
    signal = BlockSignal()
    seen: list[tuple[str, int]] = []
    first = signal.subscribe(lambda block: seen.append(("first", block.number)))
    signal.subscribe(lambda block: seen.append(("second", block.number)))

    signal.emit(_block(1))
    first.close()
    first.close()
    signal.emit(_block(2))

    assert seen == [("first", 1), ("second", 1), ("second", 2)]
    assert not first.active
    assert signal.subscriber_count == 1


def test_subscription_context_manager_releases() -> None:
    signal = BlockSignal()
    with signal.subscribe(lambda block: None):
        assert signal.subscriber_count == 1
    assert signal.subscriber_count == 0


def _write_dump(path: Path, numbers: list[int]) -> None:
    lines = [
        json.dumps({"block_num": number, "timestamp": "2024-03-01T00:00:00", "transactions": [], "applied_operations": []})
        for number in numbers
    ]
    path.write_text("\n".join(lines) + "\n\n", encoding="utf-8")


def test_file_source_replays_in_file_order(tmp_path) -> None:
    dump = tmp_path / "blocks.jsonl"
    _write_dump(dump, [5, 6, 7])
    source = FileBlockSource(dump)
    seen: list[int] = []
    source.subscribe(lambda block: seen.append(block.number))

    assert source.replay() == 3
    assert seen == [5, 6, 7]

    seen.clear()
    assert source.replay(from_block=6) == 2
    assert seen == [6, 7]


def test_file_source_reports_bad_line(tmp_path) -> None:
    dump = tmp_path / "blocks.jsonl"
    dump.write_text('{"block_num": 1, "timestamp": "2024-03-01T00:00:00"}\nnot-json\n', encoding="utf-8")
    source = FileBlockSource(dump)
    with pytest.raises(LedgerContractError, match=":2:"):
        source.replay()


def test_file_source_missing_dump(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        FileBlockSource(tmp_path / "missing.jsonl").replay()
