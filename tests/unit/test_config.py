"""Tests for chronicle config loader and credential resolution."""

from __future__ import annotations

import warnings
from pathlib import Path

import pytest
import yaml

from chronicle.config import (
    BOT_TOKEN_ENV,
    USER_TOKEN_ENV,
    ChronicleConfig,
    ConfigError,
    load_config,
    resolve_auth,
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _write_yaml(path: Path, data: dict) -> None:
    path.write_text(yaml.dump(data), encoding="utf-8")


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("CHRONICLE_DB_PATH", "CHRONICLE_CONCURRENCY"):
        monkeypatch.delenv(name, raising=False)


def _load(tmp_path: Path, global_cfg: Path | None = None) -> ChronicleConfig:
    return load_config(
        project_dir=tmp_path,
        global_config_path=global_cfg or tmp_path / "nonexistent" / "config.yaml",
    )


# ---------------------------------------------------------------------------
# Defaults with no config files present
# ---------------------------------------------------------------------------


def test_load_config_defaults_no_files(tmp_path: Path) -> None:
    cfg = _load(tmp_path)

    assert cfg.storage.path == "chronicle.db"
    assert cfg.importer.concurrency == 2
    assert cfg.importer.page_size == 100
    assert cfg.importer.rate_limit_ms == 1000
    assert cfg.importer.include_threads is True
    assert cfg.importer.guilds == []
    assert cfg.query.top_k == 5
    assert cfg.query.context_window == 6
    assert cfg.query.search_limit == 25


def test_load_config_global_empty_file(tmp_path: Path) -> None:
    """Empty or comment-only global config → defaults (no crash)."""
    global_cfg = tmp_path / "config.yaml"
    global_cfg.write_text("# nothing here\n", encoding="utf-8")

    cfg = _load(tmp_path, global_cfg)
    assert cfg.importer.concurrency == 2


# ---------------------------------------------------------------------------
# Layering
# ---------------------------------------------------------------------------


def test_load_config_global_overrides_defaults(tmp_path: Path) -> None:
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"importer": {"rate_limit_ms": 250}})

    cfg = _load(tmp_path, global_cfg)
    assert cfg.importer.rate_limit_ms == 250
    assert cfg.importer.concurrency == 2


def test_load_config_project_partial_override(tmp_path: Path) -> None:
    """Per-project can override a single field; global values for other fields survive."""
    global_cfg = tmp_path / "global.yaml"
    _write_yaml(global_cfg, {"query": {"top_k": 20, "context_window": 10}})
    _write_yaml(tmp_path / "chronicle.yaml", {"query": {"top_k": 3}})

    cfg = _load(tmp_path, global_cfg)
    assert cfg.query.top_k == 3
    assert cfg.query.context_window == 10


def test_load_config_filters_accept_scalars(tmp_path: Path) -> None:
    _write_yaml(
        tmp_path / "chronicle.yaml",
        {"importer": {"guilds": "Acme", "channels": ["general", 1234]}},
    )
    cfg = _load(tmp_path)
    assert cfg.importer.guilds == ["Acme"]
    assert cfg.importer.channels == ["general", "1234"]


def test_load_config_storage_path(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "chronicle.yaml", {"storage": {"path": "archive/discord.db"}})
    assert _load(tmp_path).storage.path == "archive/discord.db"


# ---------------------------------------------------------------------------
# Secrets and unknown keys
# ---------------------------------------------------------------------------


@pytest.mark.parametrize("key", ["token", "bot_token", "api_key", "password"])
def test_global_config_rejects_secrets(tmp_path: Path, key: str) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"importer": {key: "xyz"}})

    with pytest.raises(ConfigError, match=key):
        _load(tmp_path, global_cfg)


def test_non_secret_keys_are_allowed(tmp_path: Path) -> None:
    global_cfg = tmp_path / "config.yaml"
    _write_yaml(global_cfg, {"importer": {"page_size": 50, "rate_limit_ms": 10}})
    cfg = _load(tmp_path, global_cfg)
    assert cfg.importer.page_size == 50


def test_unknown_top_level_key_warns(tmp_path: Path) -> None:
    """Unknown top-level key in config emits UserWarning (not error)."""
    _write_yaml(tmp_path / "chronicle.yaml", {"unknown_section": {"foo": "bar"}})

    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        cfg = _load(tmp_path)

    assert any("unknown_section" in str(w.message) for w in caught)
    assert cfg.query.top_k == 5


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    "importer",
    [{"concurrency": 0}, {"page_size": 0}, {"page_size": 101}, {"rate_limit_ms": -1}],
)
def test_out_of_range_importer_settings(tmp_path: Path, importer: dict) -> None:
    _write_yaml(tmp_path / "chronicle.yaml", {"importer": importer})
    with pytest.raises(ConfigError):
        _load(tmp_path)


@pytest.mark.parametrize(
    "data, key",
    [
        ({"importer": {"concurrency": "two"}}, "importer.concurrency"),
        ({"importer": {"page_size": None}}, "importer.page_size"),
        ({"importer": {"rate_limit_ms": True}}, "importer.rate_limit_ms"),
        ({"importer": {"include_threads": "sometimes"}}, "importer.include_threads"),
        ({"query": {"top_k": [5]}}, "query.top_k"),
        ({"query": "fast"}, "query"),
    ],
)
def test_wrongly_typed_settings_raise_config_error(tmp_path: Path, data: dict, key: str) -> None:
    _write_yaml(tmp_path / "chronicle.yaml", data)
    with pytest.raises(ConfigError, match=key):
        _load(tmp_path)


@pytest.mark.parametrize(
    "value, expected",
    [("false", False), ("No", False), ("0", False), (0, False), ("true", True), ("yes", True)],
)
def test_include_threads_accepts_boolean_words(tmp_path: Path, value, expected: bool) -> None:
    _write_yaml(tmp_path / "chronicle.yaml", {"importer": {"include_threads": value}})
    assert _load(tmp_path).importer.include_threads is expected


def test_numeric_strings_are_accepted(tmp_path: Path) -> None:
    _write_yaml(tmp_path / "chronicle.yaml", {"importer": {"concurrency": "3"}, "query": {"top_k": "7"}})
    cfg = _load(tmp_path)
    assert (cfg.importer.concurrency, cfg.query.top_k) == (3, 7)


# ---------------------------------------------------------------------------
# Environment variable overrides
# ---------------------------------------------------------------------------


def test_env_overrides_beat_files(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    _write_yaml(
        tmp_path / "chronicle.yaml",
        {"storage": {"path": "file.db"}, "importer": {"concurrency": 4}},
    )
    monkeypatch.setenv("CHRONICLE_DB_PATH", "/data/env.db")
    monkeypatch.setenv("CHRONICLE_CONCURRENCY", "8")

    cfg = _load(tmp_path)
    assert cfg.storage.path == "/data/env.db"
    assert cfg.importer.concurrency == 8


def test_env_concurrency_must_be_integer(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHRONICLE_CONCURRENCY", "lots")
    with pytest.raises(ConfigError, match="CHRONICLE_CONCURRENCY"):
        _load(tmp_path)


def test_env_concurrency_is_validated(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("CHRONICLE_CONCURRENCY", "0")
    with pytest.raises(ConfigError):
        _load(tmp_path)


# ---------------------------------------------------------------------------
# Credentials
# ---------------------------------------------------------------------------


def test_resolve_auth_prefers_bot_token() -> None:
    auth = resolve_auth({BOT_TOKEN_ENV: "bot-secret", USER_TOKEN_ENV: "user-secret"})
    assert auth.mode == "bot"
    assert auth.token == "bot-secret"


def test_resolve_auth_user_token() -> None:
    auth = resolve_auth({USER_TOKEN_ENV: " user-secret "})
    assert auth.mode == "user"
    assert auth.token == "user-secret"


def test_resolve_auth_blank_bot_token_falls_through() -> None:
    auth = resolve_auth({BOT_TOKEN_ENV: "  ", USER_TOKEN_ENV: "u"})
    assert auth.mode == "user"


def test_resolve_auth_missing() -> None:
    with pytest.raises(ConfigError, match=BOT_TOKEN_ENV):
        resolve_auth({})


def test_resolve_auth_reads_process_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(BOT_TOKEN_ENV, "from-env")
    assert resolve_auth().token == "from-env"


def test_auth_repr_masks_token() -> None:
    auth = resolve_auth({BOT_TOKEN_ENV: "very-secret-token"})
    assert "very-secret-token" not in repr(auth)
