"""Content projector: consume block-applied events and maintain the projection."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Callable

from ledger_projection.ledger.contracts import (
    AppliedOperation,
    Block,
    ContentCardCreate,
    ContentCardRemove,
    ContentCardUpdate,
    GenericOperationResult,
    PermissionCreate,
    PermissionCreateMany,
    PermissionRemove,
)
from ledger_projection.ledger.source import BlockEventSource, BlockSubscription, FileBlockSource
from ledger_projection.logging_utils import configure_logging, parse_level

from .classification import (
    CONTENT_CREATE,
    CONTENT_REMOVE,
    CONTENT_UPDATE,
    PERMISSION_CREATE,
    PERMISSION_CREATE_BATCH,
    PERMISSION_REMOVE,
    classify,
)
from .config import ProjectorConfigError, ProjectorProfile
from .ids import (
    batch_new_objects,
    correlate,
    is_allocation_ordered,
    is_provisional,
    provisional_id,
    resolve_object_id,
)
from .observability import ProjectorRunMetrics
from .store import ProjectionStore, ProjectionWriteError
from .writer import (
    OPERATION_CREATED,
    OPERATION_UPDATED,
    ContentCardRecord,
    PermissionRecord,
    ProjectionWriter,
)

logger = logging.getLogger("ledger_projection.content_projector")

_Handler = Callable[[Block, AppliedOperation, str], None]


class ContentProjector:
    def __init__(
        self,
        profile: ProjectorProfile,
        source: BlockEventSource,
        *,
        store: ProjectionStore | None = None,
    ) -> None:
        self.profile = profile
        self.source = source
        self.start_block = profile.start_block
        self.metrics = ProjectorRunMetrics(profile_id=profile.wiring.profile_id)
        self.store = store
        if self.store is None and profile.enabled:
            self.store = ProjectionStore(str(profile.wiring.storage_connection_url))
        self.writer = ProjectionWriter(self.store) if self.store is not None else None
        self._subscription: BlockSubscription | None = None
        self._handlers: dict[str, _Handler] = {
            CONTENT_CREATE: self._content_card_create,
            CONTENT_UPDATE: self._content_card_update,
            CONTENT_REMOVE: self._content_card_remove,
            PERMISSION_CREATE: self._permission_create,
            PERMISSION_CREATE_BATCH: self._permission_create_many,
            PERMISSION_REMOVE: self._permission_remove,
        }

    @property
    def enabled(self) -> bool:
        return self._subscription is not None

    def activate(self) -> None:
        """Connect, ensure schema, subscribe. Store failures abort activation."""
        if self._subscription is not None:
            return
        if not self.profile.enabled or self.store is None:
            logger.warning("Content projector disabled: no storage connection url configured")
            return
        self.store.open()
        try:
            self.store.ensure_schema()
        except Exception:
            self.store.close()
            raise
        self._subscription = self.source.subscribe(self.on_block)
        logger.info(
            "Content projector active backend=%s start_block=%s",
            self.store.backend,
            self.start_block,
        )

    def deactivate(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
            self._subscription = None
            logger.info("Content projector subscription released")
        if self.store is not None:
            self.store.close()

    def __enter__(self) -> "ContentProjector":
        self.activate()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.deactivate()
        return False

    def on_block(self, block: Block) -> None:
        try:
            self.ingest(block)
        except Exception:
            logger.exception("Content projector failed block=%s", block.number)

    def ingest(self, block: Block) -> None:
        if self.writer is None or self.store is None or not self.store.is_open:
            return
        self.metrics.bump("blocks_seen")
        if block.number < self.start_block:
            self.metrics.bump("blocks_below_start")
            return
        for applied in block.applied_operations:
            kind = classify(applied.operation)
            if kind is None:
                self.metrics.bump("operations_ignored")
                continue
            trx_id = block.transaction_id_for(applied.trx_in_block)
            self._handlers[kind](block, applied, trx_id)

    def _content_card_create(self, block: Block, applied: AppliedOperation, trx_id: str) -> None:
        op = applied.operation
        assert isinstance(op, ContentCardCreate)
        record_id = resolve_object_id(applied.result) or provisional_id(trx_id)
        record = _content_card_record(op, record_id, block, trx_id, OPERATION_CREATED)
        self._write(block, "content_card_create", record_id, lambda: self.writer.upsert_content_card(record))

    def _content_card_update(self, block: Block, applied: AppliedOperation, trx_id: str) -> None:
        op = applied.operation
        assert isinstance(op, ContentCardUpdate)
        record_id = op.content_id or resolve_object_id(applied.result) or provisional_id(trx_id)
        record = _content_card_record(op, record_id, block, trx_id, OPERATION_UPDATED)
        self._write(block, "content_card_update", record_id, lambda: self.writer.upsert_content_card(record))

    def _content_card_remove(self, block: Block, applied: AppliedOperation, trx_id: str) -> None:
        op = applied.operation
        assert isinstance(op, ContentCardRemove)
        self._write(
            block,
            "content_card_remove",
            op.content_id,
            lambda: self.writer.remove_content_card(
                op.content_id, block_num=block.number, block_time=block.timestamp
            ),
        )

    def _permission_create(self, block: Block, applied: AppliedOperation, trx_id: str) -> None:
        op = applied.operation
        assert isinstance(op, PermissionCreate)
        record_id = resolve_object_id(applied.result) or provisional_id(trx_id)
        record = PermissionRecord(
            id=record_id,
            subject_account=op.subject_account,
            operator_account=op.operator_account,
            permission_type=op.permission_type,
            referenced_object_id=op.object_id or "",
            content_key=op.content_key,
            block_num=block.number,
            block_time=block.timestamp,
            transaction_id=trx_id,
            operation_kind=OPERATION_CREATED,
        )
        self._write(block, "permission_create", record_id, lambda: self.writer.upsert_permission(record))

    def _permission_create_many(self, block: Block, applied: AppliedOperation, trx_id: str) -> None:
        op = applied.operation
        assert isinstance(op, PermissionCreateMany)
        new_ids = batch_new_objects(applied.result)
        if isinstance(applied.result, GenericOperationResult) and not is_allocation_ordered(new_ids):
            logger.warning(
                "permission_create_many new_objects not in allocation order block=%s trx=%s ids=%s",
                block.number,
                trx_id,
                list(new_ids),
            )
        if len(new_ids) != len(op.permissions):
            logger.warning(
                "permission_create_many id count mismatch block=%s trx=%s permissions=%s new_objects=%s",
                block.number,
                trx_id,
                len(op.permissions),
                len(new_ids),
            )
        for grant, record_id in correlate(op.permissions, new_ids, trx_id):
            record = PermissionRecord(
                id=record_id,
                subject_account=op.subject_account,
                operator_account=grant.operator_account,
                permission_type=grant.permission_type,
                referenced_object_id=grant.object_id or "",
                content_key=grant.content_key,
                block_num=block.number,
                block_time=block.timestamp,
                transaction_id=trx_id,
                operation_kind=OPERATION_CREATED,
            )
            self._write(
                block,
                "permission_create_many",
                record_id,
                lambda record=record: self.writer.upsert_permission(record),
            )

    def _permission_remove(self, block: Block, applied: AppliedOperation, trx_id: str) -> None:
        op = applied.operation
        assert isinstance(op, PermissionRemove)
        self._write(
            block,
            "permission_remove",
            op.permission_id,
            lambda: self.writer.remove_permission(
                op.permission_id, block_num=block.number, block_time=block.timestamp
            ),
        )

    def _write(self, block: Block, label: str, record_id: str, write: Callable[[], int]) -> None:
        try:
            affected = write()
        except ProjectionWriteError as exc:
            self.metrics.bump("writes_failed")
            logger.error("Failed to index %s block=%s id=%s error=%s", label, block.number, record_id, exc)
            return
        if affected == 0:
            self.metrics.bump("writes_noop")
            level = logging.WARNING if label.endswith("_remove") else logging.DEBUG
            logger.log(level, "Indexed %s affected no rows block=%s id=%s", label, block.number, record_id)
            return
        self.metrics.bump("writes_applied")
        if is_provisional(record_id):
            logger.warning("Indexed %s under provisional id block=%s id=%s", label, block.number, record_id)
            return
        logger.debug("Indexed %s block=%s id=%s", label, block.number, record_id)


def _content_card_record(
    op: ContentCardCreate | ContentCardUpdate,
    record_id: str,
    block: Block,
    trx_id: str,
    operation_kind: str,
) -> ContentCardRecord:
    return ContentCardRecord(
        id=record_id,
        subject_account=op.subject_account,
        hash=op.hash,
        url=op.url,
        type=op.type,
        description=op.description,
        content_key=op.content_key,
        storage_data=op.storage_data,
        block_num=block.number,
        block_time=block.timestamp,
        transaction_id=trx_id,
        operation_kind=operation_kind,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Content projector (content cards + permissions)")
    parser.add_argument("--profile", help="Path to content projector profile YAML")
    parser.add_argument("--storage-connection-url", help="Projection store URL (postgresql://... or sqlite path)")
    parser.add_argument("--start-block", help="Ignore blocks numbered below this (default: 0)")
    parser.add_argument("--blocks", help="JSONL block dump to replay")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-path", help="Also write logs to this file")
    args = parser.parse_args()

    configure_logging(level=parse_level(args.log_level), log_path=args.log_path)
    if args.profile:
        profile = ProjectorProfile.load(Path(args.profile)).with_overrides(
            storage_connection_url=args.storage_connection_url,
            start_block=args.start_block,
            block_source_path=args.blocks,
        )
    else:
        profile = ProjectorProfile.from_options(
            storage_connection_url=args.storage_connection_url,
            start_block=args.start_block,
            block_source_path=args.blocks,
        )

    if not profile.enabled:
        logger.warning("Content projector disabled (no storage connection url configured)")
        return
    if not profile.wiring.block_source_path:
        parser.error("--blocks (or wiring.block_source.path) is required")
    if profile.wiring.block_source_kind != "file":
        raise ProjectorConfigError(f"unsupported block source kind: {profile.wiring.block_source_kind}")

    source = FileBlockSource(Path(profile.wiring.block_source_path))
    with ContentProjector(profile, source) as projector:
        source.replay()
        logger.info("Content projector run summary=%s", projector.metrics.snapshot())


if __name__ == "__main__":
    main()
