"""Chronicle configuration loader.

Priority (high → low):
  1. CLI flags           (handled at call site, not in this module)
  2. Environment variables  (CHRONICLE_DB_PATH, CHRONICLE_CONCURRENCY)
  3. Per-project chronicle.yaml  (working directory)
  4. Global ~/.chronicle/config.yaml  (defaults only, no tokens)
  5. Hardcoded defaults

Discord tokens are only ever read from the environment.
All YAML reads use yaml.safe_load(), never yaml.load().
"""

from __future__ import annotations

import os
import re
import warnings
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chronicle.db.connection import DEFAULT_DB_PATH
from chronicle.sources.base import MAX_PAGE_SIZE

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_GLOBAL_CONFIG_DIR: Path = Path.home() / ".chronicle"
_GLOBAL_CONFIG_PATH: Path = _GLOBAL_CONFIG_DIR / "config.yaml"
_PROJECT_CONFIG_NAME: str = "chronicle.yaml"

BOT_TOKEN_ENV = "DISCORD_BOT_TOKEN"
USER_TOKEN_ENV = "DISCORD_USER_TOKEN"

# Key names that look like credentials; forbidden in global config.
# Does not match legitimate keys like page_size or rate_limit_ms.
_SECRET_KEY_RE: re.Pattern[str] = re.compile(
    r"api[_\-]?(?:key|secret)"
    r"|_token$"
    r"|^token$"
    r"|_secret$"
    r"|^secret$"
    r"|passw(?:ord|d)"
    r"|credential",
    re.IGNORECASE,
)

_KNOWN_SECTIONS: frozenset[str] = frozenset(["storage", "importer", "query"])


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class ConfigError(ValueError):
    """Raised when configuration or credentials are missing or invalid."""


# ---------------------------------------------------------------------------
# Data model
# ---------------------------------------------------------------------------


@dataclass
class StorageCfg:
    """Corpus location (chronicle.yaml: storage:)."""

    path: str = DEFAULT_DB_PATH


@dataclass
class ImporterCfg:
    """History import settings (chronicle.yaml: importer:).

    Attributes:
        concurrency: Channels backfilled at once.
        page_size: Messages per request, 1-100.
        rate_limit_ms: Minimum spacing between two Discord API calls.
        include_threads: Also backfill active and archived threads.
        guilds: Guild ids or names to import; empty imports all.
        channels: Channel ids or names to import; empty imports all.
    """

    concurrency: int = 2
    page_size: int = MAX_PAGE_SIZE
    rate_limit_ms: int = 1000
    include_threads: bool = True
    guilds: list[str] = field(default_factory=list)
    channels: list[str] = field(default_factory=list)


@dataclass
class QueryCfg:
    """Query defaults (chronicle.yaml: query:)."""

    top_k: int = 5
    context_window: int = 6
    search_limit: int = 25
    recent_limit: int = 50
    user_limit: int = 50


@dataclass
class ChronicleConfig:
    """Root configuration object, built by load_config() from merged YAML layers."""

    storage: StorageCfg = field(default_factory=StorageCfg)
    importer: ImporterCfg = field(default_factory=ImporterCfg)
    query: QueryCfg = field(default_factory=QueryCfg)


@dataclass
class AuthConfig:
    """Resolved Discord credentials.

    Attributes:
        mode: ``bot`` or ``user``.
        token: Raw token, never logged.
    """

    mode: str
    token: str

    def __repr__(self) -> str:
        return f"AuthConfig(mode={self.mode!r}, token='***')"


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def _check_no_secrets(data: dict[str, Any], source: Path) -> None:
    """Raise ConfigError if *data* contains any token-like key names."""

    def _scan(obj: Any, path: str) -> None:
        if isinstance(obj, dict):
            for k, v in obj.items():
                full = f"{path}.{k}" if path else k
                if _SECRET_KEY_RE.search(str(k)):
                    raise ConfigError(
                        f"Global config '{source}' contains a forbidden key '{full}'.\n"
                        f"  Tokens must be set via environment variables, not config files.\n"
                        f"  Remove '{full}' from {source.name} and use:\n"
                        f"    export {BOT_TOKEN_ENV}=<value>"
                    )
                _scan(v, full)

    _scan(data, "")


def _warn_unknown_keys(data: dict[str, Any], source: Path) -> None:
    """Emit a UserWarning for unrecognised top-level keys."""
    for key in data:
        if key not in _KNOWN_SECTIONS:
            warnings.warn(
                f"Unknown config key '{key}' in '{source}', ignored.",
                UserWarning,
                stacklevel=4,
            )


def _validate(cfg: ChronicleConfig) -> None:
    imp = cfg.importer
    if imp.concurrency < 1:
        raise ConfigError(f"importer.concurrency must be >= 1, got {imp.concurrency}")
    if not 1 <= imp.page_size <= MAX_PAGE_SIZE:
        raise ConfigError(
            f"importer.page_size must be between 1 and {MAX_PAGE_SIZE}, got {imp.page_size}"
        )
    if imp.rate_limit_ms < 0:
        raise ConfigError(f"importer.rate_limit_ms must be >= 0, got {imp.rate_limit_ms}")


# ---------------------------------------------------------------------------
# Merge + build
# ---------------------------------------------------------------------------


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Return a new dict that is *base* deep-merged with *override*."""
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _str_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, (str, int)):
        return [str(value)]
    return [str(v) for v in value]


_TRUE_WORDS = {"true", "yes", "on", "1"}
_FALSE_WORDS = {"false", "no", "off", "0"}


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data[name] or {}
    if not isinstance(section, dict):
        raise ConfigError(f"'{name}' must be a mapping, got {section!r}")
    return section


def _int_setting(section: str, raw: dict[str, Any], key: str, default: int) -> int:
    value = raw.get(key, default)
    if isinstance(value, bool):
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{section}.{key} must be an integer, got {value!r}") from exc


def _bool_setting(section: str, raw: dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key, default)
    if isinstance(value, bool):
        return value
    word = str(value).strip().lower()
    if word in _TRUE_WORDS:
        return True
    if word in _FALSE_WORDS:
        return False
    raise ConfigError(f"{section}.{key} must be true or false, got {value!r}")


def _cfg_from_dict(data: dict[str, Any]) -> ChronicleConfig:
    """Build a *ChronicleConfig* from a merged raw YAML dict."""
    cfg = ChronicleConfig()

    if "storage" in data:
        s = _section(data, "storage")
        cfg.storage = StorageCfg(path=str(s.get("path", cfg.storage.path)))

    if "importer" in data:
        i = _section(data, "importer")
        d = cfg.importer
        cfg.importer = ImporterCfg(
            concurrency=_int_setting("importer", i, "concurrency", d.concurrency),
            page_size=_int_setting("importer", i, "page_size", d.page_size),
            rate_limit_ms=_int_setting("importer", i, "rate_limit_ms", d.rate_limit_ms),
            include_threads=_bool_setting("importer", i, "include_threads", d.include_threads),
            guilds=_str_list(i.get("guilds")),
            channels=_str_list(i.get("channels")),
        )

    if "query" in data:
        q = _section(data, "query")
        d = cfg.query
        cfg.query = QueryCfg(
            top_k=_int_setting("query", q, "top_k", d.top_k),
            context_window=_int_setting("query", q, "context_window", d.context_window),
            search_limit=_int_setting("query", q, "search_limit", d.search_limit),
            recent_limit=_int_setting("query", q, "recent_limit", d.recent_limit),
            user_limit=_int_setting("query", q, "user_limit", d.user_limit),
        )

    return cfg


def _apply_env_overrides(cfg: ChronicleConfig) -> ChronicleConfig:
    """Apply CHRONICLE_* environment variable overrides (layer 2)."""
    if path := os.environ.get("CHRONICLE_DB_PATH"):
        cfg.storage.path = path
    if concurrency := os.environ.get("CHRONICLE_CONCURRENCY"):
        try:
            cfg.importer.concurrency = int(concurrency)
        except ValueError as exc:
            raise ConfigError(
                f"CHRONICLE_CONCURRENCY must be an integer, got '{concurrency}'"
            ) from exc
    return cfg


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(
    project_dir: Path | None = None,
    *,
    global_config_path: Path | None = None,
) -> ChronicleConfig:
    """Load and return a merged *ChronicleConfig*.

    Applies layers in order: global → per-project → env vars.
    CLI flag overrides must be applied by the caller after this function.

    Args:
        project_dir: Directory to search for *chronicle.yaml*. Defaults to CWD.
        global_config_path: Override the global config path (for testing).

    Raises:
        ConfigError: If global config contains token-like fields, or a
            setting has the wrong type or is out of range.
    """
    global_path = global_config_path if global_config_path is not None else _GLOBAL_CONFIG_PATH
    search_dir = project_dir if project_dir is not None else Path.cwd()

    merged: dict[str, Any] = {}

    if global_path.exists():
        raw_global = yaml.safe_load(global_path.read_text(encoding="utf-8")) or {}
        _check_no_secrets(raw_global, global_path)
        _warn_unknown_keys(raw_global, global_path)
        merged = _deep_merge(merged, raw_global)

    project_cfg_path = search_dir / _PROJECT_CONFIG_NAME
    if project_cfg_path.exists():
        raw_project = yaml.safe_load(project_cfg_path.read_text(encoding="utf-8")) or {}
        _warn_unknown_keys(raw_project, project_cfg_path)
        merged = _deep_merge(merged, raw_project)

    cfg = _apply_env_overrides(_cfg_from_dict(merged))
    _validate(cfg)
    return cfg


def resolve_auth(env: dict[str, str] | None = None) -> AuthConfig:
    """Pick Discord credentials from the environment; a bot token wins.

    Raises:
        ConfigError: If neither token variable is set.
    """
    source = os.environ if env is None else env
    if token := source.get(BOT_TOKEN_ENV, "").strip():
        return AuthConfig(mode="bot", token=token)
    if token := source.get(USER_TOKEN_ENV, "").strip():
        return AuthConfig(mode="user", token=token)
    raise ConfigError(
        "No Discord credentials found.\n"
        f"  Set {BOT_TOKEN_ENV} (recommended) or {USER_TOKEN_ENV}:\n"
        f"    export {BOT_TOKEN_ENV}=<token>"
    )
