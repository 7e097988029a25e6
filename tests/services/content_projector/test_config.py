from __future__ import annotations

from pathlib import Path

import pytest

from ledger_projection.content_projector.config import (
    START_BLOCK_ENV,
    STORAGE_URL_ENV,
    ProjectorConfigError,
    ProjectorProfile,
    parse_start_block,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch) -> None:
    monkeypatch.delenv(STORAGE_URL_ENV, raising=False)
    monkeypatch.delenv(START_BLOCK_ENV, raising=False)


def _write_profile(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_load_profile_resolves_env_and_relative_paths(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("PROJECTION_DSN", "postgresql://indexer@localhost/projection")
    profile_path = _write_profile(
        tmp_path / "local.yaml",
        """
content_projector:
  profile_id: local
  wiring:
    storage_connection_url: ${PROJECTION_DSN}
    start_block: 1500
    block_source:
      kind: file
      path: dumps/blocks.jsonl
""",
    )
    profile = ProjectorProfile.load(profile_path)

    assert profile.enabled
    assert profile.wiring.profile_id == "local"
    assert profile.wiring.storage_connection_url == "postgresql://indexer@localhost/projection"
    assert profile.start_block == 1500
    assert profile.wiring.block_source_kind == "file"
    assert profile.wiring.block_source_path == str(tmp_path / "dumps/blocks.jsonl")


def test_unset_env_reference_disables_projector(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("PROJECTION_DSN", raising=False)
    profile_path = _write_profile(
        tmp_path / "local.yaml",
        "wiring:\n  storage_connection_url: ${PROJECTION_DSN}\n",
    )
    profile = ProjectorProfile.load(profile_path)
    assert not profile.enabled
    assert profile.start_block == 0


def test_env_fallbacks_apply_when_profile_is_silent(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv(STORAGE_URL_ENV, str(tmp_path / "projection.db"))
    monkeypatch.setenv(START_BLOCK_ENV, "42")
    profile = ProjectorProfile.load(_write_profile(tmp_path / "empty.yaml", "profile_id: dev\n"))
    assert profile.enabled
    assert profile.start_block == 42
    assert ProjectorProfile.from_options().start_block == 42


def test_overrides_take_precedence(tmp_path) -> None:
    profile = ProjectorProfile.load(
        _write_profile(tmp_path / "p.yaml", "wiring:\n  storage_connection_url: a.db\n  start_block: 5\n")
    )
    overridden = profile.with_overrides(storage_connection_url="b.db", start_block="7", block_source_path="x.jsonl")
    assert overridden.wiring.storage_connection_url == "b.db"
    assert overridden.start_block == 7
    assert overridden.wiring.block_source_path == "x.jsonl"
    assert profile.with_overrides() == profile


@pytest.mark.parametrize("value", [-1, "-3", "abc", True, 1.5j])
def test_invalid_start_block_is_rejected(value) -> None:
    with pytest.raises(ProjectorConfigError):
        parse_start_block(value)


def test_start_block_defaults_to_zero() -> None:
    assert parse_start_block(None) == 0
    assert parse_start_block("") == 0
    assert parse_start_block("12") == 12


def test_unreadable_profile_is_a_config_error(tmp_path) -> None:
    with pytest.raises(ProjectorConfigError):
        ProjectorProfile.load(tmp_path / "missing.yaml")
    with pytest.raises(ProjectorConfigError):
        ProjectorProfile.load(_write_profile(tmp_path / "list.yaml", "- a\n- b\n"))
