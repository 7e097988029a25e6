"""Owned Postgres connection helpers."""

from __future__ import annotations

import time
from typing import Any

import psycopg


def is_postgres_dsn(value: str | None) -> bool:
    if not value:
        return False
    return value.startswith("postgres://") or value.startswith("postgresql://")


def open_postgres_connection(
    dsn: str,
    *,
    retries: int = 3,
    backoff_seconds: float = 0.05,
    **connect_kwargs: Any,
) -> psycopg.Connection[Any]:
    """Open a single Postgres connection, retrying transient connect failures."""
    dsn = str(dsn or "").strip()
    attempts = max(1, int(retries))
    last_error: Exception | None = None
    for attempt in range(attempts):
        try:
            return psycopg.connect(dsn, **connect_kwargs)
        except psycopg.OperationalError as exc:
            last_error = exc
            if attempt >= (attempts - 1):
                break
            time.sleep(backoff_seconds * (2**attempt))
    if last_error is not None:
        raise last_error
    raise psycopg.OperationalError("postgres connection attempt failed")


def is_connection_closed(connection: Any) -> bool:
    if bool(getattr(connection, "closed", False)):
        return True
    if bool(getattr(connection, "broken", False)):
        return True
    return False
