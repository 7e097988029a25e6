"""Content projection store (SQLite/Postgres).

One owned connection per store, opened at activation and closed at
shutdown. Every write is a single parameterized statement committed on its
own; a failed statement is rolled back and surfaced as ProjectionWriteError.
"""

from __future__ import annotations

import logging
import re
import sqlite3
from pathlib import Path
from typing import Any

import psycopg

from ledger_projection.postgres_runtime import is_connection_closed, is_postgres_dsn, open_postgres_connection

logger = logging.getLogger("ledger_projection.content_projector.store")

CONTENT_CARDS_TABLE = "indexer_content_cards"
PERMISSIONS_TABLE = "indexer_permissions"


class ProjectionStoreError(RuntimeError):
    """Raised when the projection store cannot be opened or initialized."""


class ProjectionWriteError(ProjectionStoreError):
    """Raised when a single projection write fails."""


# Postgres stores block times as TIMESTAMPTZ; SQLite keeps ISO-8601 UTC text.
_COLUMN_TYPES: dict[str, dict[str, str]] = {
    "sqlite": {"timestamp": "TEXT", "now": "CURRENT_TIMESTAMP"},
    "postgres": {"timestamp": "TIMESTAMPTZ", "now": "now()"},
}

_SCHEMA_STATEMENTS: tuple[str, ...] = (
    f"""
    CREATE TABLE IF NOT EXISTS {CONTENT_CARDS_TABLE} (
        content_card_id TEXT PRIMARY KEY,
        subject_account TEXT NOT NULL,
        hash TEXT,
        url TEXT,
        type TEXT,
        description TEXT,
        content_key TEXT,
        storage_data TEXT,
        block_num BIGINT NOT NULL,
        block_time {{timestamp}} NOT NULL,
        trx_id TEXT,
        operation_kind TEXT NOT NULL,
        is_removed BOOLEAN NOT NULL DEFAULT FALSE,
        created_at {{timestamp}} NOT NULL DEFAULT {{now}}
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_cc_subject ON {CONTENT_CARDS_TABLE}(subject_account)",
    f"CREATE INDEX IF NOT EXISTS idx_cc_block_time ON {CONTENT_CARDS_TABLE}(block_time DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_cc_type ON {CONTENT_CARDS_TABLE}(type)",
    f"CREATE INDEX IF NOT EXISTS idx_cc_is_removed ON {CONTENT_CARDS_TABLE}(is_removed)",
    f"""
    CREATE TABLE IF NOT EXISTS {PERMISSIONS_TABLE} (
        permission_id TEXT PRIMARY KEY,
        subject_account TEXT NOT NULL,
        operator_account TEXT NOT NULL,
        permission_type TEXT,
        object_id TEXT,
        content_key TEXT,
        block_num BIGINT NOT NULL,
        block_time {{timestamp}} NOT NULL,
        trx_id TEXT,
        operation_kind TEXT NOT NULL,
        is_removed BOOLEAN NOT NULL DEFAULT FALSE,
        created_at {{timestamp}} NOT NULL DEFAULT {{now}}
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_perm_subject ON {PERMISSIONS_TABLE}(subject_account)",
    f"CREATE INDEX IF NOT EXISTS idx_perm_operator ON {PERMISSIONS_TABLE}(operator_account)",
    f"CREATE INDEX IF NOT EXISTS idx_perm_object ON {PERMISSIONS_TABLE}(object_id)",
    f"CREATE INDEX IF NOT EXISTS idx_perm_block_time ON {PERMISSIONS_TABLE}(block_time DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_perm_is_removed ON {PERMISSIONS_TABLE}(is_removed)",
)


class ProjectionStore:
    """Storage port: ensure schema + execute one write, report the outcome."""

    def __init__(self, locator: str) -> None:
        self.locator = str(locator or "").strip()
        if not self.locator:
            raise ValueError("projection store locator is required")
        self.backend = "postgres" if is_postgres_dsn(self.locator) else "sqlite"
        self._conn: Any = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> "ProjectionStore":
        if self._conn is not None:
            return self
        try:
            if self.backend == "postgres":
                self._conn = open_postgres_connection(self.locator)
            else:
                path = Path(_sqlite_path(self.locator))
                path.parent.mkdir(parents=True, exist_ok=True)
                self._conn = sqlite3.connect(str(path))
        except (OSError, sqlite3.Error, psycopg.Error) as exc:
            raise ProjectionStoreError(f"projection store connection failed: {exc}") from exc
        logger.info("Projection store connected backend=%s", self.backend)
        return self

    def close(self) -> None:
        conn = self._conn
        self._conn = None
        if conn is None:
            return
        try:
            conn.close()
        except (sqlite3.Error, psycopg.Error) as exc:
            logger.warning("Projection store close failed: %s", exc)

    def __enter__(self) -> "ProjectionStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

    def ensure_schema(self) -> None:
        conn = self._require_conn()
        try:
            for statement in schema_statements(self.backend):
                conn.execute(statement)
            conn.commit()
        except (sqlite3.Error, psycopg.Error) as exc:
            self._rollback()
            raise ProjectionStoreError(f"projection schema creation failed: {exc}") from exc
        logger.info("Projection tables created/verified backend=%s", self.backend)

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> int:
        """Run one parameterized write and commit it; returns affected rows."""
        conn = self._require_conn()
        rendered, ordered = self._sql_with_params(sql, params)
        try:
            cursor = conn.execute(rendered, ordered)
            rowcount = int(cursor.rowcount if cursor.rowcount is not None else 0)
            conn.commit()
        # ValueError covers driver encoding failures such as UnicodeEncodeError.
        except (sqlite3.Error, psycopg.Error, ValueError, OverflowError) as exc:
            self._rollback()
            raise ProjectionWriteError(str(exc).strip() or exc.__class__.__name__) from exc
        return max(rowcount, 0)

    def _require_conn(self) -> Any:
        if self._conn is None:
            raise ProjectionStoreError("projection store is not open")
        if self.backend == "postgres" and is_connection_closed(self._conn):
            raise ProjectionWriteError("postgres connection is closed")
        return self._conn

    def _rollback(self) -> None:
        try:
            self._conn.rollback()
        except (sqlite3.Error, psycopg.Error) as exc:
            logger.warning("Projection store rollback failed: %s", exc)

    def _sql_with_params(self, sql: str, params: tuple[Any, ...]) -> tuple[str, tuple[Any, ...]]:
        return _sql(sql, self.backend), _ordered_params(sql, params)


def schema_statements(backend: str) -> list[str]:
    try:
        types = _COLUMN_TYPES[backend]
    except KeyError as exc:
        raise ValueError(f"unsupported backend: {backend}") from exc
    return [statement.format(**types) for statement in _SCHEMA_STATEMENTS]


_PLACEHOLDER_PATTERN = re.compile(r"\{p(\d+)\}")


def _sql(sql: str, backend: str) -> str:
    if backend == "sqlite":
        return _PLACEHOLDER_PATTERN.sub("?", sql)
    if backend == "postgres":
        return _PLACEHOLDER_PATTERN.sub("%s", sql)
    raise ValueError(f"unsupported backend: {backend}")


def _ordered_params(sql: str, params: tuple[Any, ...]) -> tuple[Any, ...]:
    if not params:
        return tuple()
    ordered: list[Any] = []
    for token in _PLACEHOLDER_PATTERN.findall(sql):
        idx = int(token) - 1
        if idx < 0 or idx >= len(params):
            raise ValueError(f"placeholder index out of range: p{token}")
        ordered.append(params[idx])
    return tuple(ordered)


def _sqlite_path(locator: str) -> str:
    text = str(locator or "").strip()
    if text.startswith("sqlite:///"):
        return text[len("sqlite:///") :]
    if text.startswith("sqlite://"):
        return text[len("sqlite://") :]
    return text
