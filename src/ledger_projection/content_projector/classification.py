"""Operation classification for content projection."""

from __future__ import annotations

from ledger_projection.ledger.contracts import (
    ContentCardCreate,
    ContentCardRemove,
    ContentCardUpdate,
    Operation,
    PermissionCreate,
    PermissionCreateMany,
    PermissionRemove,
)

CONTENT_CREATE = "content-create"
CONTENT_UPDATE = "content-update"
CONTENT_REMOVE = "content-remove"
PERMISSION_CREATE = "permission-create"
PERMISSION_CREATE_BATCH = "permission-create-batch"
PERMISSION_REMOVE = "permission-remove"

HANDLER_KINDS: frozenset[str] = frozenset(
    {
        CONTENT_CREATE,
        CONTENT_UPDATE,
        CONTENT_REMOVE,
        PERMISSION_CREATE,
        PERMISSION_CREATE_BATCH,
        PERMISSION_REMOVE,
    }
)

_KIND_BY_TYPE: dict[type, str] = {
    ContentCardCreate: CONTENT_CREATE,
    ContentCardUpdate: CONTENT_UPDATE,
    ContentCardRemove: CONTENT_REMOVE,
    PermissionCreate: PERMISSION_CREATE,
    PermissionCreateMany: PERMISSION_CREATE_BATCH,
    PermissionRemove: PERMISSION_REMOVE,
}


def classify(operation: Operation) -> str | None:
    """Handler kind for ``operation``; None for operations this projector skips."""
    return _KIND_BY_TYPE.get(type(operation))
