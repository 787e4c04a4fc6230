"""Environment helpers shared by the pipeline commands."""

from __future__ import annotations

import os
from pathlib import Path

__all__ = ["optional_env_path", "resolve_workspace"]


def optional_env_path(name: str) -> Path | None:
    """Return ``Path`` value for ``name`` or ``None`` when unset or empty.

    Parameters
    ----------
    name:
        Name of the environment variable to fetch.
    """
    value = os.environ.get(name)
    return Path(value) if value else None


def resolve_workspace(workspace: Path | None = None) -> Path:
    """Return the workspace root used by the pipeline.

    Precedence is the explicit ``workspace`` argument, then
    ``GITHUB_WORKSPACE``, then the current working directory.

    Examples
    --------
    >>> resolve_workspace(Path("/tmp/ws"))
    PosixPath('/tmp/ws')
    """
    if workspace is not None:
        return Path(workspace)
    return optional_env_path("GITHUB_WORKSPACE") or Path.cwd()
