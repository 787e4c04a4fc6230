"""Helpers for writing GitHub Actions outputs."""

from __future__ import annotations

import uuid
from collections.abc import Mapping, Sequence
from pathlib import Path

__all__ = ["escape_output_value", "write_github_output"]


def escape_output_value(value: Path | str) -> str:
    """Escape workflow output values per GitHub recommendations.

    Examples
    --------
    >>> escape_output_value("a%b")
    'a%25b'
    """
    text = value.as_posix() if isinstance(value, Path) else str(value)
    return text.replace("%", "%25").replace("\r", "%0D").replace("\n", "%0A")


def write_github_output(
    file: Path, values: Mapping[str, str | Path | Sequence[str]]
) -> None:
    """Append ``values`` to the GitHub Actions output ``file``.

    Parameters
    ----------
    file:
        Path to the GitHub Actions output file (typically ``GITHUB_OUTPUT``).
    values:
        Mapping of output keys to values. Sequence values are written with
        GitHub's multiline delimiter syntax, one item per line.
    """

    file.parent.mkdir(parents=True, exist_ok=True)
    with file.open("a", encoding="utf-8") as handle:
        for key, value in values.items():
            if isinstance(value, Sequence) and not isinstance(value, str):
                delimiter = f"EOF_{uuid.uuid4().hex}"
                handle.write(f"{key}<<{delimiter}\n")
                handle.write("\n".join(value))
                handle.write(f"\n{delimiter}\n")
            else:
                handle.write(f"{key}={escape_output_value(value)}\n")
