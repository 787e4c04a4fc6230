"""Emit GitHub Actions workflow commands for pipeline diagnostics.

Annotations go to stderr so they never mix with machine-readable stdout such
as the ``plan`` command's JSON payload.
"""

from __future__ import annotations

import contextlib
import sys
import typing as typ

__all__ = ["error", "group", "notice", "progress", "warning"]


def _escape_data(value: str) -> str:
    return value.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def _escape_property(value: str) -> str:
    return _escape_data(value).replace(":", "%3A").replace(",", "%2C")


def _command(name: str, message: str, title: str | None) -> str:
    properties = f" title={_escape_property(title)}" if title else ""
    return f"::{name}{properties}::{_escape_data(message)}"


def error(message: str, *, title: str | None = None) -> None:
    """Print an ``::error::`` annotation.

    Examples
    --------
    >>> error("Binary not found", title="Staging Failure")  # doctest: +SKIP
    ::error title=Staging Failure::Binary not found
    """
    print(_command("error", message, title), file=sys.stderr)


def warning(message: str, *, title: str | None = None) -> None:
    """Print a ``::warning::`` annotation."""
    print(_command("warning", message, title), file=sys.stderr)


def notice(message: str, *, title: str | None = None) -> None:
    """Print a ``::notice::`` annotation."""
    print(_command("notice", message, title), file=sys.stderr)


def progress(target: str, message: str) -> None:
    """Print a plain progress line prefixed with ``target``."""
    print(f"[{target}] {message}", flush=True)


@contextlib.contextmanager
def group(name: str) -> typ.Iterator[None]:
    """Fold everything printed inside the block into a log group."""
    print(f"::group::{name}", flush=True)
    try:
        yield
    finally:
        print("::endgroup::", flush=True)
