"""Content projector configuration loader (profiles + CLI options)."""

from __future__ import annotations

from dataclasses import dataclass, replace
import os
import re
from pathlib import Path
from typing import Any

import yaml

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")

STORAGE_URL_ENV = "CONTENT_PROJECTOR_STORAGE_URL"
START_BLOCK_ENV = "CONTENT_PROJECTOR_START_BLOCK"


class ProjectorConfigError(ValueError):
    """Raised when projector configuration values are invalid."""


def _resolve_env(value: Any) -> Any:
    if not value or not isinstance(value, str):
        return value
    match = _ENV_PATTERN.fullmatch(value.strip())
    if match:
        return os.getenv(match.group(1)) or ""
    return value


def _resolve_ref(value: str | None, *, base_dir: Path) -> str | None:
    if not value:
        return value
    resolved = Path(value)
    if not resolved.is_absolute():
        if not resolved.exists():
            resolved = base_dir / value
    return str(resolved)


def parse_start_block(value: Any) -> int:
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ProjectorConfigError("start_block must be an unsigned integer")
    try:
        parsed = int(value)
    except (TypeError, ValueError) as exc:
        raise ProjectorConfigError(f"start_block must be an unsigned integer: {value!r}") from exc
    if parsed < 0:
        raise ProjectorConfigError(f"start_block must be >= 0: {parsed}")
    return parsed


@dataclass(frozen=True)
class ProjectorWiring:
    profile_id: str
    storage_connection_url: str | None
    start_block: int = 0
    block_source_kind: str = "file"
    block_source_path: str | None = None


@dataclass(frozen=True)
class ProjectorProfile:
    wiring: ProjectorWiring

    @property
    def enabled(self) -> bool:
        return bool(self.wiring.storage_connection_url)

    @property
    def start_block(self) -> int:
        return self.wiring.start_block

    @classmethod
    def load(cls, path: Path) -> "ProjectorProfile":
        try:
            data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        except (OSError, yaml.YAMLError) as exc:
            raise ProjectorConfigError(f"unable to read profile {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ProjectorConfigError(f"profile {path} must be a mapping")
        if "content_projector" in data:
            data = data["content_projector"] or {}
        wiring = data.get("wiring") or {}
        block_source = wiring.get("block_source") or {}

        profile_id = data.get("profile_id") or wiring.get("profile_id") or "local"
        storage_connection_url = _resolve_env(wiring.get("storage_connection_url"))
        if not storage_connection_url:
            storage_connection_url = os.getenv(STORAGE_URL_ENV) or None
        start_block_raw = _resolve_env(wiring.get("start_block"))
        if start_block_raw in (None, ""):
            start_block_raw = os.getenv(START_BLOCK_ENV)
        block_source_kind = str(block_source.get("kind") or "file").strip().lower()
        block_source_path = _resolve_ref(_resolve_env(block_source.get("path")), base_dir=Path(path).parent)

        return cls(
            wiring=ProjectorWiring(
                profile_id=str(profile_id),
                storage_connection_url=_optional_url(storage_connection_url),
                start_block=parse_start_block(start_block_raw),
                block_source_kind=block_source_kind,
                block_source_path=block_source_path or None,
            )
        )

    @classmethod
    def from_options(
        cls,
        *,
        storage_connection_url: str | None = None,
        start_block: Any = None,
        block_source_path: str | None = None,
        profile_id: str = "cli",
    ) -> "ProjectorProfile":
        url = storage_connection_url or os.getenv(STORAGE_URL_ENV) or None
        if start_block is None:
            start_block = os.getenv(START_BLOCK_ENV)
        return cls(
            wiring=ProjectorWiring(
                profile_id=profile_id,
                storage_connection_url=_optional_url(url),
                start_block=parse_start_block(start_block),
                block_source_path=block_source_path,
            )
        )

    def with_overrides(
        self,
        *,
        storage_connection_url: str | None = None,
        start_block: Any = None,
        block_source_path: str | None = None,
    ) -> "ProjectorProfile":
        wiring = self.wiring
        if storage_connection_url:
            wiring = replace(wiring, storage_connection_url=_optional_url(storage_connection_url))
        if start_block is not None:
            wiring = replace(wiring, start_block=parse_start_block(start_block))
        if block_source_path:
            wiring = replace(wiring, block_source_path=block_source_path)
        return replace(self, wiring=wiring)


def _optional_url(value: Any) -> str | None:
    text = str(value or "").strip()
    return text or None
