"""Block-applied event sources.

Subscribers register explicitly and receive a handle that deregisters them.
Delivery is synchronous: ``emit`` returns only after every subscriber has
finished with the block.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Protocol

from .contracts import Block, LedgerContractError

logger = logging.getLogger("ledger_projection.ledger")

BlockCallback = Callable[[Block], None]


class BlockSubscription:
    def __init__(self, signal: "BlockSignal", callback: BlockCallback) -> None:
        self._signal = signal
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def close(self) -> None:
        if not self._active:
            return
        self._active = False
        self._signal._detach(self._callback)

    def __enter__(self) -> "BlockSubscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False


class BlockEventSource(Protocol):
    def subscribe(self, callback: BlockCallback) -> BlockSubscription:
        ...


class BlockSignal:
    """In-process block-applied signal."""

    def __init__(self) -> None:
        self._callbacks: list[BlockCallback] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._callbacks)

    def subscribe(self, callback: BlockCallback) -> BlockSubscription:
        self._callbacks.append(callback)
        return BlockSubscription(self, callback)

    def emit(self, block: Block) -> None:
        for callback in list(self._callbacks):
            callback(block)

    def _detach(self, callback: BlockCallback) -> None:
        try:
            self._callbacks.remove(callback)
        except ValueError:
            pass


class FileBlockSource(BlockSignal):
    """Replays a JSONL block dump (one block object per line) to subscribers."""

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)

    def replay(self, *, from_block: int = 0) -> int:
        if not self.path.exists():
            raise FileNotFoundError(f"block dump not found: {self.path}")
        emitted = 0
        with self.path.open("r", encoding="utf-8") as handle:
            for line_index, line in enumerate(handle):
                if not line.strip():
                    continue
                try:
                    block = Block.from_payload(json.loads(line))
                except (json.JSONDecodeError, LedgerContractError) as exc:
                    raise LedgerContractError(f"{self.path}:{line_index + 1}: {exc}") from exc
                if block.number < from_block:
                    continue
                self.emit(block)
                emitted += 1
        logger.info("Block replay finished path=%s emitted=%s", self.path, emitted)
        return emitted
