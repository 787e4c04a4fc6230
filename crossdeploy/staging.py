"""Stage compiled binaries under target-qualified names.

The compiled binary is moved from Cargo's output directory to
``<dist_dir>/<project>-<target>[.exe]`` so every matrix job produces a
uniquely named artifact.
"""

from __future__ import annotations

import dataclasses
import hashlib
import shutil
import stat
import typing as typ
from pathlib import Path

from .errors import StagingFailure
from .workflow_commands import progress

if typ.TYPE_CHECKING:
    from .config import PipelineConfig
    from .matrix import JobSpec

__all__ = ["ArtifactRef", "artifact_name", "stage_artifact", "write_checksum"]

WINDOWS_SUFFIX = ".exe"


def artifact_name(project_name: str, target: str, *, is_windows: bool) -> str:
    """Return the published name for ``project_name`` built for ``target``.

    Examples
    --------
    >>> artifact_name("fj-host", "x86_64-unknown-linux-gnu", is_windows=False)
    'fj-host-x86_64-unknown-linux-gnu'
    >>> artifact_name("fj-host", "x86_64-pc-windows-msvc", is_windows=True)
    'fj-host-x86_64-pc-windows-msvc.exe'
    """
    suffix = WINDOWS_SUFFIX if is_windows else ""
    return f"{project_name}-{target}{suffix}"


@dataclasses.dataclass(frozen=True, slots=True)
class ArtifactRef:
    """Staged binary awaiting publication.

    Attributes
    ----------
    project_name : str
        Project the binary belongs to.
    target_triple : str
        Target the binary was compiled for.
    local_path : Path
        Location of the staged binary.
    is_windows : bool
        ``True`` when the binary was built on a Windows host.
    checksum : str | None
        Hex digest written alongside the binary, if any.
    """

    project_name: str
    target_triple: str
    local_path: Path
    is_windows: bool
    checksum: str | None = None

    @property
    def name(self) -> str:
        """Artifact name, ``<project>-<target>`` with ``.exe`` on Windows."""
        return artifact_name(
            self.project_name, self.target_triple, is_windows=self.is_windows
        )


def stage_artifact(job: JobSpec, config: PipelineConfig) -> ArtifactRef:
    """Move the compiled binary for ``job`` to its target-qualified name.

    Re-running on an already staged job is deterministic: when the compiled
    binary is still present it overwrites the staged copy, and when only the
    staged copy remains it is reused untouched.

    Parameters
    ----------
    job : JobSpec
        Job whose binary should be staged.
    config : PipelineConfig
        Pipeline configuration providing the project name and directories.

    Returns
    -------
    ArtifactRef
        Reference to the staged binary.

    Raises
    ------
    StagingFailure
        Raised when neither the compiled nor a previously staged binary
        exists, or the filesystem refuses the move.
    """
    target = job.target_triple
    is_windows = job.host_os.is_windows
    suffix = WINDOWS_SUFFIX if is_windows else ""
    source = config.build_dir(target) / f"{config.project_name}{suffix}"
    destination = config.staging_dir() / artifact_name(
        config.project_name, target, is_windows=is_windows
    )

    try:
        if source.is_file():
            destination.parent.mkdir(parents=True, exist_ok=True)
            if destination.exists():
                destination.unlink()
            shutil.move(source, destination)
            progress(target, f"staged '{source}' -> '{destination}'")
        elif destination.is_file():
            progress(target, f"already staged at '{destination}'")
        else:
            message = f"Binary not found at {source}"
            raise StagingFailure(target, message)

        if not is_windows:
            _make_executable(destination)
        digest = (
            write_checksum(destination, config.checksum_algorithm)
            if config.checksum_algorithm
            else None
        )
    except OSError as exc:
        message = f"Could not stage {source} as {destination}: {exc}"
        raise StagingFailure(target, message) from exc

    return ArtifactRef(
        project_name=config.project_name,
        target_triple=target,
        local_path=destination,
        is_windows=is_windows,
        checksum=digest,
    )


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


def write_checksum(path: Path, algorithm: str) -> str:
    """Write the checksum sidecar for ``path`` using ``algorithm``.

    Parameters
    ----------
    path:
        Path to the file whose contents should be hashed.
    algorithm:
        Hashing algorithm name supported by :mod:`hashlib` (for example
        ``"sha256"``).

    Returns
    -------
    str
        Hex digest generated for ``path`` using ``algorithm``.
    """

    hasher = hashlib.new(algorithm)
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(8192), b""):
            hasher.update(chunk)
    digest = hasher.hexdigest()
    checksum_path = path.with_name(f"{path.name}.{algorithm}")
    checksum_path.write_text(f"{digest}  {path.name}\n", encoding="utf-8")
    return digest
