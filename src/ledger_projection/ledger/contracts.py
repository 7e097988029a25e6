"""Ledger block contracts consumed by projectors.

Operations and results arrive as ``[tag, body]`` pairs, the way the ledger
serializes its static variants. Each known tag decodes into its own frozen
dataclass; unknown tags decode into ``UnknownOperation`` / ``UnknownResult``
so that newer ledgers never break decoding.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence, Union


class LedgerContractError(ValueError):
    """Raised when a block, operation or result payload cannot be decoded."""


@dataclass(frozen=True)
class ContentCardCreate:
    TAG = 41

    subject_account: str
    hash: str = ""
    url: str = ""
    type: str = ""
    description: str = ""
    content_key: str = ""
    storage_data: str = ""

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "ContentCardCreate":
        return cls(
            subject_account=_required(body.get("subject_account"), "subject_account"),
            **_content_fields(body),
        )


@dataclass(frozen=True)
class ContentCardUpdate:
    TAG = 42

    subject_account: str
    hash: str = ""
    url: str = ""
    type: str = ""
    description: str = ""
    content_key: str = ""
    storage_data: str = ""
    content_id: str | None = None

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "ContentCardUpdate":
        return cls(
            subject_account=_required(body.get("subject_account"), "subject_account"),
            content_id=_optional(body.get("content_id")),
            **_content_fields(body),
        )


@dataclass(frozen=True)
class ContentCardRemove:
    TAG = 43

    subject_account: str
    content_id: str

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "ContentCardRemove":
        return cls(
            subject_account=_required(body.get("subject_account"), "subject_account"),
            content_id=_required(body.get("content_id"), "content_id"),
        )


@dataclass(frozen=True)
class PermissionCreate:
    TAG = 44

    subject_account: str
    operator_account: str
    permission_type: str = ""
    object_id: str | None = None
    content_key: str = ""

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "PermissionCreate":
        return cls(
            subject_account=_required(body.get("subject_account"), "subject_account"),
            operator_account=_required(body.get("operator_account"), "operator_account"),
            permission_type=_text(body.get("permission_type")),
            object_id=_optional(body.get("object_id")),
            content_key=_text(body.get("content_key")),
        )


@dataclass(frozen=True)
class PermissionRemove:
    TAG = 45

    subject_account: str
    permission_id: str

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "PermissionRemove":
        return cls(
            subject_account=_required(body.get("subject_account"), "subject_account"),
            permission_id=_required(body.get("permission_id"), "permission_id"),
        )


@dataclass(frozen=True)
class PermissionGrant:
    operator_account: str
    permission_type: str = ""
    object_id: str | None = None
    content_key: str = ""

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "PermissionGrant":
        if not isinstance(body, Mapping):
            raise LedgerContractError("permission grant must be a mapping")
        return cls(
            operator_account=_required(body.get("operator_account"), "operator_account"),
            permission_type=_text(body.get("permission_type")),
            object_id=_optional(body.get("object_id")),
            content_key=_text(body.get("content_key")),
        )


@dataclass(frozen=True)
class PermissionCreateMany:
    TAG = 64

    subject_account: str
    permissions: tuple[PermissionGrant, ...] = ()

    @classmethod
    def from_body(cls, body: Mapping[str, Any]) -> "PermissionCreateMany":
        raw = body.get("permissions") or []
        if not isinstance(raw, Sequence) or isinstance(raw, (str, bytes)):
            raise LedgerContractError("permissions must be a list")
        return cls(
            subject_account=_required(body.get("subject_account"), "subject_account"),
            permissions=tuple(PermissionGrant.from_body(item) for item in raw),
        )


@dataclass(frozen=True)
class UnknownOperation:
    tag: int
    body: Any = None


Operation = Union[
    ContentCardCreate,
    ContentCardUpdate,
    ContentCardRemove,
    PermissionCreate,
    PermissionRemove,
    PermissionCreateMany,
    UnknownOperation,
]

_OPERATION_DECODERS: dict[int, Callable[[Mapping[str, Any]], Operation]] = {
    ContentCardCreate.TAG: ContentCardCreate.from_body,
    ContentCardUpdate.TAG: ContentCardUpdate.from_body,
    ContentCardRemove.TAG: ContentCardRemove.from_body,
    PermissionCreate.TAG: PermissionCreate.from_body,
    PermissionRemove.TAG: PermissionRemove.from_body,
    PermissionCreateMany.TAG: PermissionCreateMany.from_body,
}


@dataclass(frozen=True)
class VoidResult:
    TAG = 0


@dataclass(frozen=True)
class ObjectIdResult:
    TAG = 1

    object_id: str


@dataclass(frozen=True)
class AssetResult:
    TAG = 2

    amount: int
    asset_id: str


@dataclass(frozen=True)
class GenericOperationResult:
    TAG = 3

    new_objects: tuple[str, ...] = ()
    updated_objects: tuple[str, ...] = ()
    removed_objects: tuple[str, ...] = ()


@dataclass(frozen=True)
class UnknownResult:
    tag: int
    body: Any = None


OperationResult = Union[VoidResult, ObjectIdResult, AssetResult, GenericOperationResult, UnknownResult]


def decode_operation(payload: Any) -> Operation:
    tag, body = _variant_pair(payload, "operation")
    decoder = _OPERATION_DECODERS.get(tag)
    if decoder is None:
        return UnknownOperation(tag=tag, body=body)
    if not isinstance(body, Mapping):
        raise LedgerContractError(f"operation {tag} body must be a mapping")
    return decoder(body)


def decode_result(payload: Any) -> OperationResult:
    if payload is None:
        return VoidResult()
    tag, body = _variant_pair(payload, "result")
    if tag == VoidResult.TAG:
        return VoidResult()
    if tag == ObjectIdResult.TAG:
        return ObjectIdResult(object_id=_required(body, "result.object_id"))
    if tag == AssetResult.TAG:
        if not isinstance(body, Mapping):
            raise LedgerContractError("asset result body must be a mapping")
        return AssetResult(
            amount=_as_int(body.get("amount"), "result.amount"),
            asset_id=_required(body.get("asset_id"), "result.asset_id"),
        )
    if tag == GenericOperationResult.TAG:
        if not isinstance(body, Mapping):
            raise LedgerContractError("generic result body must be a mapping")
        return GenericOperationResult(
            new_objects=_id_list(body.get("new_objects"), "new_objects"),
            updated_objects=_id_list(body.get("updated_objects"), "updated_objects"),
            removed_objects=_id_list(body.get("removed_objects"), "removed_objects"),
        )
    return UnknownResult(tag=tag, body=body)


@dataclass(frozen=True)
class Transaction:
    transaction_id: str

    @classmethod
    def from_payload(cls, payload: Any) -> "Transaction":
        if isinstance(payload, Mapping):
            return cls(transaction_id=_required(payload.get("transaction_id"), "transaction_id"))
        return cls(transaction_id=_required(payload, "transaction_id"))


@dataclass(frozen=True)
class AppliedOperation:
    operation: Operation
    result: OperationResult
    trx_in_block: int
    op_in_trx: int = 0

    @classmethod
    def from_payload(cls, payload: Any) -> "AppliedOperation":
        if not isinstance(payload, Mapping):
            raise LedgerContractError("applied operation must be a mapping")
        return cls(
            operation=decode_operation(payload.get("op")),
            result=decode_result(payload.get("result")),
            trx_in_block=_as_int(payload.get("trx_in_block", 0), "trx_in_block"),
            op_in_trx=_as_int(payload.get("op_in_trx", 0), "op_in_trx"),
        )


@dataclass(frozen=True)
class Block:
    number: int
    timestamp: datetime
    transactions: tuple[Transaction, ...] = ()
    applied_operations: tuple[AppliedOperation, ...] = ()

    def __post_init__(self) -> None:
        if int(self.number) < 0:
            raise LedgerContractError("block number must be >= 0")
        if self.timestamp.tzinfo is None:
            object.__setattr__(self, "timestamp", self.timestamp.replace(tzinfo=timezone.utc))

    def transaction_id_for(self, index: int) -> str:
        """Transaction id at ``index``; empty for virtual operations outside the list."""
        if 0 <= index < len(self.transactions):
            return self.transactions[index].transaction_id
        return ""

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "Block":
        if not isinstance(payload, Mapping):
            raise LedgerContractError("block must be a mapping")
        number = payload.get("block_num", payload.get("number"))
        if number is None:
            raise LedgerContractError("block_num is required")
        transactions = payload.get("transactions") or []
        applied = payload.get("applied_operations") or []
        if not isinstance(transactions, list) or not isinstance(applied, list):
            raise LedgerContractError("transactions and applied_operations must be lists")
        return cls(
            number=_as_int(number, "block_num"),
            timestamp=parse_timestamp(payload.get("timestamp")),
            transactions=tuple(Transaction.from_payload(item) for item in transactions),
            applied_operations=tuple(AppliedOperation.from_payload(item) for item in applied),
        )


def parse_timestamp(value: Any) -> datetime:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(int(value), tz=timezone.utc)
    text = str(value or "").strip()
    if not text:
        raise LedgerContractError("timestamp is required")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise LedgerContractError(f"invalid timestamp: {value}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _variant_pair(payload: Any, name: str) -> tuple[int, Any]:
    if not isinstance(payload, Sequence) or isinstance(payload, (str, bytes)) or len(payload) != 2:
        raise LedgerContractError(f"{name} must be a [tag, body] pair")
    return _as_int(payload[0], f"{name}.tag"), payload[1]


def _content_fields(body: Mapping[str, Any]) -> dict[str, str]:
    return {
        "hash": _text(body.get("hash")),
        "url": _text(body.get("url")),
        "type": _text(body.get("type")),
        "description": _text(body.get("description")),
        "content_key": _text(body.get("content_key")),
        "storage_data": _text(body.get("storage_data")),
    }


def _id_list(value: Any, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes)):
        raise LedgerContractError(f"{field_name} must be a list")
    return tuple(_required(item, field_name) for item in value)


def _as_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool):
        raise LedgerContractError(f"{field_name} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise LedgerContractError(f"{field_name} must be an integer") from exc


def _required(value: Any, field_name: str) -> str:
    text = str(value or "").strip()
    if not text:
        raise LedgerContractError(f"{field_name} is required")
    return text


def _optional(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)
