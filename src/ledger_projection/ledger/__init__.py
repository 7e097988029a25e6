"""Ledger block contracts + block-applied sources."""

from .contracts import (
    AppliedOperation,
    Block,
    LedgerContractError,
    Transaction,
    decode_operation,
    decode_result,
)
from .source import BlockEventSource, BlockSignal, BlockSubscription, FileBlockSource

__all__ = [
    "AppliedOperation",
    "Block",
    "BlockEventSource",
    "BlockSignal",
    "BlockSubscription",
    "FileBlockSource",
    "LedgerContractError",
    "Transaction",
    "decode_operation",
    "decode_result",
]
