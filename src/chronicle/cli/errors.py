"""Chronicle rich error messages, each with the exact fix.

Every error shown to the user must contain:
  1. What went wrong (clear cause)
  2. The exact action the user should take to fix it

Usage:
    from chronicle.cli.errors import err_no_db
    console.print(err_no_db("chronicle.db"))
    raise typer.Exit(1)
"""

from __future__ import annotations

from rich.markup import escape

from chronicle.config import BOT_TOKEN_ENV, USER_TOKEN_ENV


def err_no_token() -> str:
    """Neither token variable is set."""
    return (
        "[red]Error:[/] No Discord credentials found.\n"
        f"  Set:  export {BOT_TOKEN_ENV}=<bot token>\n"
        f"  (or {USER_TOKEN_ENV} for a user account)"
    )


def err_user_token_unsupported() -> str:
    """Only a user-account token is set; the discord.py client needs a bot token."""
    return (
        f"[red]Error:[/] {USER_TOKEN_ENV} is set but user-account tokens are not supported.\n"
        "  Create a bot, invite it to the server, then:\n"
        f"  Set:  export {BOT_TOKEN_ENV}=<bot token>"
    )


def err_no_db(db_path: str) -> str:
    """No corpus file at *db_path*."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  chronicle import   (or pass --db PATH)"
    )


def err_config(message: str) -> str:
    """Configuration could not be loaded."""
    return (
        f"[red]Error:[/] Invalid configuration.\n"
        f"  {escape(message)}\n"
        "  Fix chronicle.yaml (or ~/.chronicle/config.yaml) and retry."
    )


def err_discord(reason: str) -> str:
    """Discord rejected the token, denied a request or could not be reached."""
    return (
        f"[red]Error:[/] Discord request failed: {reason}\n"
        f"  Check that {BOT_TOKEN_ENV} holds a valid, unrevoked token and that the bot\n"
        "  was invited with the View Channels and Read Message History permissions."
    )


def err_bad_option(name: str, value: object, expected: str) -> str:
    """A numeric CLI option is out of range."""
    return (
        f"[red]Error:[/] Invalid value for {name}: {value!r}.\n"
        f"  Expected {expected}."
    )
