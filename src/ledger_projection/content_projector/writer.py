"""Projection writer: idempotent upserts and soft-deletes per record."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .store import CONTENT_CARDS_TABLE, PERMISSIONS_TABLE, ProjectionStore

OPERATION_CREATED = "created"
OPERATION_UPDATED = "updated"
OPERATION_REMOVED = "removed"

OPERATION_KINDS: frozenset[str] = frozenset({OPERATION_CREATED, OPERATION_UPDATED, OPERATION_REMOVED})


@dataclass(frozen=True)
class ContentCardRecord:
    id: str
    subject_account: str
    hash: str
    url: str
    type: str
    description: str
    content_key: str
    storage_data: str
    block_num: int
    block_time: datetime
    transaction_id: str
    operation_kind: str = OPERATION_CREATED
    removed: bool = False

    def __post_init__(self) -> None:
        _check_record(self.id, self.operation_kind, self.block_num)


@dataclass(frozen=True)
class PermissionRecord:
    id: str
    subject_account: str
    operator_account: str
    permission_type: str
    referenced_object_id: str
    content_key: str
    block_num: int
    block_time: datetime
    transaction_id: str
    operation_kind: str = OPERATION_CREATED
    removed: bool = False

    def __post_init__(self) -> None:
        _check_record(self.id, self.operation_kind, self.block_num)


# Conflict updates only move forward in block order, so replays of older
# blocks leave newer rows alone. Equal block numbers apply in traversal order.
_UPSERT_CONTENT_CARD = f"""
INSERT INTO {CONTENT_CARDS_TABLE}
(content_card_id, subject_account, hash, url, type, description, content_key, storage_data,
 block_num, block_time, trx_id, operation_kind, is_removed)
VALUES ({{p1}}, {{p2}}, {{p3}}, {{p4}}, {{p5}}, {{p6}}, {{p7}}, {{p8}}, {{p9}}, {{p10}}, {{p11}}, {{p12}}, {{p13}})
ON CONFLICT (content_card_id) DO UPDATE SET
    subject_account = excluded.subject_account,
    hash = excluded.hash,
    url = excluded.url,
    type = excluded.type,
    description = excluded.description,
    content_key = excluded.content_key,
    storage_data = excluded.storage_data,
    block_num = excluded.block_num,
    block_time = excluded.block_time,
    trx_id = excluded.trx_id,
    operation_kind = excluded.operation_kind
WHERE {CONTENT_CARDS_TABLE}.block_num <= excluded.block_num
"""

_UPSERT_PERMISSION = f"""
INSERT INTO {PERMISSIONS_TABLE}
(permission_id, subject_account, operator_account, permission_type, object_id, content_key,
 block_num, block_time, trx_id, operation_kind, is_removed)
VALUES ({{p1}}, {{p2}}, {{p3}}, {{p4}}, {{p5}}, {{p6}}, {{p7}}, {{p8}}, {{p9}}, {{p10}}, {{p11}})
ON CONFLICT (permission_id) DO UPDATE SET
    subject_account = excluded.subject_account,
    operator_account = excluded.operator_account,
    permission_type = excluded.permission_type,
    object_id = excluded.object_id,
    content_key = excluded.content_key,
    block_num = excluded.block_num,
    block_time = excluded.block_time,
    trx_id = excluded.trx_id,
    operation_kind = excluded.operation_kind
WHERE {PERMISSIONS_TABLE}.block_num <= excluded.block_num
"""

_SOFT_DELETE = """
UPDATE {table}
   SET is_removed = TRUE,
       block_num = {{p2}},
       block_time = {{p3}},
       operation_kind = {{p4}}
 WHERE {key} = {{p1}}
   AND block_num <= {{p2}}
"""

_REMOVE_CONTENT_CARD = _SOFT_DELETE.format(table=CONTENT_CARDS_TABLE, key="content_card_id")
_REMOVE_PERMISSION = _SOFT_DELETE.format(table=PERMISSIONS_TABLE, key="permission_id")


class ProjectionWriter:
    """Issues one write per record; storage failures propagate unchanged."""

    def __init__(self, store: ProjectionStore) -> None:
        self.store = store

    def upsert_content_card(self, record: ContentCardRecord) -> int:
        return self.store.execute(
            _UPSERT_CONTENT_CARD,
            (
                record.id,
                record.subject_account,
                record.hash,
                record.url,
                record.type,
                record.description,
                record.content_key,
                record.storage_data,
                int(record.block_num),
                self._block_time(record.block_time),
                record.transaction_id,
                record.operation_kind,
                bool(record.removed),
            ),
        )

    def upsert_permission(self, record: PermissionRecord) -> int:
        return self.store.execute(
            _UPSERT_PERMISSION,
            (
                record.id,
                record.subject_account,
                record.operator_account,
                record.permission_type,
                record.referenced_object_id,
                record.content_key,
                int(record.block_num),
                self._block_time(record.block_time),
                record.transaction_id,
                record.operation_kind,
                bool(record.removed),
            ),
        )

    def remove_content_card(self, content_card_id: str, *, block_num: int, block_time: datetime) -> int:
        return self._soft_delete(_REMOVE_CONTENT_CARD, content_card_id, block_num, block_time)

    def remove_permission(self, permission_id: str, *, block_num: int, block_time: datetime) -> int:
        return self._soft_delete(_REMOVE_PERMISSION, permission_id, block_num, block_time)

    def _soft_delete(self, sql: str, record_id: str, block_num: int, block_time: datetime) -> int:
        return self.store.execute(
            sql,
            (str(record_id), int(block_num), self._block_time(block_time), OPERATION_REMOVED),
        )

    def _block_time(self, value: datetime) -> datetime | str:
        """TIMESTAMPTZ columns take an aware datetime; SQLite stores ISO-8601 text."""
        if self.store.backend == "postgres":
            return _as_utc(value)
        return format_block_time(value)


def format_block_time(value: datetime) -> str:
    return _as_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def _check_record(record_id: Any, operation_kind: str, block_num: int) -> None:
    if not str(record_id or "").strip():
        raise ValueError("record id is required")
    if operation_kind not in OPERATION_KINDS:
        raise ValueError(f"unsupported operation kind: {operation_kind}")
    if int(block_num) < 0:
        raise ValueError("block_num must be >= 0")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
