"""Publish staged artifacts under their target-qualified names.

Two backends are provided: a directory store that mirrors the per-artifact
upload of a CI host, and a GitHub release uploader driven through the ``gh``
CLI.

Examples
--------
Publish into a local store::

    publisher = DirectoryPublisher(Path("artifacts"))
    location = publisher.publish(artifact)
"""

from __future__ import annotations

import shutil
import typing as typ
from pathlib import Path

from plumbum import local
from plumbum.commands import CommandNotFound, ProcessExecutionError

from .config import ConflictPolicy
from .errors import ConfigError, PublishFailure
from .workflow_commands import progress

if typ.TYPE_CHECKING:
    from .config import PipelineConfig
    from .staging import ArtifactRef

__all__ = [
    "ArtifactPublisher",
    "DirectoryPublisher",
    "GitHubReleasePublisher",
    "make_publisher",
]


class ArtifactPublisher(typ.Protocol):
    """Store a staged artifact and return where it now lives."""

    def publish(self, artifact: ArtifactRef) -> str: ...


def _require_non_empty(artifact: ArtifactRef) -> None:
    path = artifact.local_path
    if not path.is_file():
        message = f"Staged artifact {path} does not exist"
        raise PublishFailure(artifact.target_triple, message)
    if path.stat().st_size <= 0:
        message = f"Artefact {path} is empty"
        raise PublishFailure(artifact.target_triple, message)


class DirectoryPublisher:
    """Copy artifacts into ``store_dir`` keyed by :attr:`ArtifactRef.name`."""

    def __init__(
        self, store_dir: Path, on_conflict: ConflictPolicy = ConflictPolicy.OVERWRITE
    ) -> None:
        self.store_dir = store_dir
        self.on_conflict = on_conflict

    def publish(self, artifact: ArtifactRef) -> str:
        """Copy ``artifact`` into the store, preserving its mode bits.

        Raises
        ------
        PublishFailure
            Raised when the artifact is missing or empty, the name is taken
            under :attr:`ConflictPolicy.ERROR`, or the copy fails.
        """
        _require_non_empty(artifact)
        destination = self.store_dir / artifact.name
        if destination.exists() and self.on_conflict is ConflictPolicy.ERROR:
            message = f"Artifact {artifact.name} already published at {destination}"
            raise PublishFailure(artifact.target_triple, message)
        try:
            self.store_dir.mkdir(parents=True, exist_ok=True)
            tmp = destination.with_name(f".{destination.name}.tmp")
            shutil.copy2(artifact.local_path, tmp)
            tmp.replace(destination)
        except OSError as exc:
            message = f"Could not publish {artifact.local_path}: {exc}"
            raise PublishFailure(artifact.target_triple, message) from exc
        progress(artifact.target_triple, f"published {artifact.name} -> {destination}")
        return destination.as_posix()


class GitHubReleasePublisher:
    """Upload artifacts to a GitHub release with ``gh release upload``."""

    def __init__(
        self,
        release_tag: str,
        on_conflict: ConflictPolicy = ConflictPolicy.OVERWRITE,
        *,
        dry_run: bool = False,
        machine: typ.Any = local,
    ) -> None:
        self.release_tag = release_tag
        self.on_conflict = on_conflict
        self.dry_run = dry_run
        self._machine = machine

    def upload_arguments(self, artifact: ArtifactRef) -> list[str]:
        """Return the ``gh`` arguments uploading ``artifact``.

        Examples
        --------
        >>> publisher.upload_arguments(artifact)  # doctest: +SKIP
        ['release', 'upload', 'v1.2.3', 'fj-host-x86_64-apple-darwin#fj-host-x86_64-apple-darwin', '--clobber']
        """
        descriptor = f"{artifact.local_path.as_posix()}#{artifact.name}"
        arguments = ["release", "upload", self.release_tag, descriptor]
        if self.on_conflict is ConflictPolicy.OVERWRITE:
            arguments.append("--clobber")
        return arguments

    def publish(self, artifact: ArtifactRef) -> str:
        """Upload ``artifact`` to :attr:`release_tag`.

        Raises
        ------
        PublishFailure
            Raised when ``gh`` is unavailable or exits unsuccessfully.
        """
        _require_non_empty(artifact)
        arguments = self.upload_arguments(artifact)
        location = f"{self.release_tag}/{artifact.name}"
        if self.dry_run:
            print(f"[dry-run] gh {' '.join(arguments)}")
            return location
        try:
            self._machine["gh"][tuple(arguments)]()
        except CommandNotFound as exc:
            message = f"Required executable not found: {exc.program}"
            raise PublishFailure(artifact.target_triple, message) from exc
        except ProcessExecutionError as exc:
            message = (
                f"gh release upload exited with status {exc.retcode}: "
                f"{(exc.stderr or '').strip()}"
            )
            raise PublishFailure(artifact.target_triple, message) from exc
        progress(artifact.target_triple, f"uploaded {artifact.name} to {self.release_tag}")
        return location


def make_publisher(config: PipelineConfig) -> ArtifactPublisher:
    """Return the publisher selected by ``config.publish``."""
    settings = config.publish
    if settings.backend == "directory":
        return DirectoryPublisher(
            config.workspace / settings.store_dir, settings.on_conflict
        )
    if settings.backend == "github-release":
        if not settings.release_tag:
            message = "github-release publishing requires a release_tag"
            raise ConfigError(message)
        return GitHubReleasePublisher(
            settings.release_tag, settings.on_conflict, dry_run=settings.dry_run
        )
    message = f"Unknown publish backend: {settings.backend}"
    raise ConfigError(message)
