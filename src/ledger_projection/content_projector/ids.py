"""Record identity resolution and batch correlation."""

from __future__ import annotations

from typing import Sequence, TypeVar

from ledger_projection.ledger.contracts import GenericOperationResult, ObjectIdResult, OperationResult

PENDING_PREFIX = "pending-"

T = TypeVar("T")


def resolve_object_id(result: OperationResult) -> str | None:
    """Created-object id carried directly by ``result``, else None."""
    if isinstance(result, ObjectIdResult):
        return result.object_id
    return None


def provisional_id(transaction_id: str, index: int | None = None) -> str:
    if index is None:
        return f"{PENDING_PREFIX}{transaction_id}"
    return f"{PENDING_PREFIX}{transaction_id}-{int(index)}"


def is_provisional(identifier: str) -> bool:
    return str(identifier or "").startswith(PENDING_PREFIX)


def batch_new_objects(result: OperationResult) -> tuple[str, ...]:
    if isinstance(result, GenericOperationResult):
        return result.new_objects
    return ()


def correlate(
    sub_operations: Sequence[T],
    new_ids: Sequence[str],
    transaction_id: str,
) -> list[tuple[T, str]]:
    """Pair sub-operations with created ids by position.

    Entries past the end of ``new_ids`` get ``pending-<trx>-<i>``; surplus ids
    are dropped. Pairing follows the delivered order of ``new_ids``.
    """
    pairs: list[tuple[T, str]] = []
    for index, sub_operation in enumerate(sub_operations):
        if index < len(new_ids):
            pairs.append((sub_operation, str(new_ids[index])))
        else:
            pairs.append((sub_operation, provisional_id(transaction_id, index)))
    return pairs


def is_allocation_ordered(new_ids: Sequence[str]) -> bool:
    """True when ids are strictly ascending in (space, type, instance) order."""
    keys = [_object_id_key(item) for item in new_ids]
    if any(key is None for key in keys):
        return False
    return all(left < right for left, right in zip(keys, keys[1:]))


def _object_id_key(value: str) -> tuple[int, int, int] | None:
    parts = str(value or "").split(".")
    if len(parts) != 3:
        return None
    try:
        space, type_id, instance = (int(part) for part in parts)
    except ValueError:
        return None
    return space, type_id, instance
