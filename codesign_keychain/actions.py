"""Runner integration: step outputs, saved state and annotations."""

import os
import uuid
from typing import Optional

import click


def is_github_actions() -> bool:
    """Check if running inside a GitHub Actions job."""
    return os.getenv("GITHUB_ACTIONS") == "true"


def append_to_env_file(env_var: str, name: str, value: str) -> bool:
    """
    Append name=value to the runner file named by env_var.

    Uses the heredoc delimiter form so values may contain newlines.

    Args:
        env_var: GITHUB_OUTPUT or GITHUB_STATE
        name: Key to write
        value: Value to write

    Returns:
        True if written, False if env_var is not set
    """
    file_path = os.getenv(env_var)
    if not file_path:
        return False

    delimiter = f"ghadelimiter_{uuid.uuid4()}"
    if delimiter in name or delimiter in value:
        raise ValueError("Value contains the generated delimiter")

    with open(file_path, "a", encoding="utf-8") as f:
        f.write(f"{name}<<{delimiter}\n{value}\n{delimiter}\n")
    return True


def set_output(name: str, value: str) -> None:
    """Set a step output, or print it when not running in GitHub Actions."""
    if not append_to_env_file("GITHUB_OUTPUT", name, value):
        click.echo(f"{name}={value}")


def get_state(name: str) -> Optional[str]:
    """
    Read a value saved by the main step of this action (STATE_<name>).

    Returns:
        The saved value, possibly empty, or None if nothing was saved
    """
    return os.getenv(f"STATE_{name}")


def mask(value: str) -> None:
    """Ask the runner to redact value from all later log output."""
    if value and is_github_actions():
        click.echo(f"::add-mask::{value}")


def warning(message: str) -> None:
    """Emit a warning annotation."""
    if is_github_actions():
        click.echo(f"::warning::{_escape(message)}")
    else:
        click.echo(f"⚠️  {message}", err=True)


def error(message: str) -> None:
    """Emit an error annotation."""
    if is_github_actions():
        click.echo(f"::error::{_escape(message)}")
    else:
        click.echo(f"❌ {message}", err=True)


def _escape(message: str) -> str:
    """Escape workflow command data."""
    return message.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")
