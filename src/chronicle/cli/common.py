"""Helpers shared by the CLI commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import typer
from rich.console import Console

from chronicle.cli.errors import err_config, err_no_db
from chronicle.config import ChronicleConfig, ConfigError, load_config
from chronicle.db import Repository, open_repository
from chronicle.query.retriever import display_name

console = Console()


def load_cfg() -> ChronicleConfig:
    """Load layered config, or print the problem and exit 1."""
    try:
        return load_config()
    except ConfigError as exc:
        console.print(err_config(str(exc)))
        raise typer.Exit(1) from exc


def db_path(db: Path | None, cfg: ChronicleConfig) -> Path:
    return db if db is not None else Path(cfg.storage.path)


def open_repo(path: Path, *, create: bool = False) -> Repository:
    """Open the corpus; read-only commands refuse to create a new file."""
    if not create and not path.exists():
        console.print(err_no_db(str(path)))
        raise typer.Exit(1)
    return open_repository(path)


def echo_json(data: Any) -> None:
    """Plain JSON on stdout, for scripts and agents."""
    typer.echo(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def author(row: dict[str, Any]) -> str:
    return display_name(row) or "?"


def short_time(value: str | None) -> str:
    """``2024-01-02T03:04:05+00:00`` → ``2024-01-02 03:04``."""
    if not value:
        return ""
    return value.replace("T", " ")[:16]
