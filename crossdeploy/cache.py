"""Per-target build cache for Cargo output directories.

Layout::

    <cache root>/
      <target triple>/
        <key>.tar.gz
        <key>.manifest.json

The key hashes everything that invalidates a build: the target, the
toolchain channel and compiler, the profile and the contents of
``Cargo.toml`` and ``Cargo.lock``. Cache problems never fail a job; they are
reported through :class:`CacheHit` and :class:`CacheSave`.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import tarfile
import typing as typ
from pathlib import Path

if typ.TYPE_CHECKING:
    from .config import PipelineConfig
    from .matrix import JobSpec
    from .toolchain import Toolchain

__all__ = ["BuildCache", "CacheHit", "CacheSave"]

KEY_FILES = ("Cargo.toml", "Cargo.lock")


@dataclasses.dataclass(frozen=True, slots=True)
class CacheHit:
    """Outcome of :meth:`BuildCache.restore`."""

    hit: bool
    key: str
    reason: str


@dataclasses.dataclass(frozen=True, slots=True)
class CacheSave:
    """Outcome of :meth:`BuildCache.save`."""

    saved: bool
    key: str
    reason: str


def _sha256_file(path: Path) -> str:
    hasher = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


class BuildCache:
    """File-based cache of ``target/<triple>/<profile>`` directories."""

    def __init__(self, config: PipelineConfig, root: Path | None = None) -> None:
        self._config = config
        self.root = root or config.workspace / config.cache.dir
        self.keep = config.cache.keep

    def manifest(self, job: JobSpec, toolchain: Toolchain) -> dict[str, typ.Any]:
        """Return the inputs hashed into the cache key for ``job``."""
        workspace = self._config.workspace
        files = {
            name: _sha256_file(workspace / name)
            for name in KEY_FILES
            if (workspace / name).is_file()
        }
        return {
            "target": job.target_triple,
            "channel": toolchain.channel,
            "compiler": toolchain.compiler,
            "profile": self._config.profile,
            "files": files,
        }

    def key(self, job: JobSpec, toolchain: Toolchain) -> str:
        """Return the cache key for ``job`` built with ``toolchain``."""
        payload = json.dumps(self.manifest(job, toolchain), sort_keys=True)
        return hashlib.sha256(payload.encode("utf-8")).hexdigest()

    def _archive(self, target: str, key: str) -> Path:
        return self.root / target / f"{key}.tar.gz"

    def restore(self, job: JobSpec, toolchain: Toolchain) -> CacheHit:
        """Extract the cached build directory for ``job`` into the workspace."""
        key = self.key(job, toolchain)
        archive = self._archive(job.target_triple, key)
        if not archive.is_file():
            return CacheHit(hit=False, key=key, reason="cache miss")
        try:
            with tarfile.open(archive, mode="r:gz") as tar:
                tar.extractall(self._config.workspace, filter="data")
        except (OSError, tarfile.TarError) as exc:
            return CacheHit(hit=False, key=key, reason=f"restore failed: {exc}")
        return CacheHit(hit=True, key=key, reason="cache hit")

    def save(self, job: JobSpec, toolchain: Toolchain) -> CacheSave:
        """Archive the build directory for ``job`` and prune old archives."""
        manifest = self.manifest(job, toolchain)
        key = self.key(job, toolchain)
        build_dir = self._config.build_dir(job.target_triple)
        if not build_dir.is_dir():
            return CacheSave(saved=False, key=key, reason=f"nothing to cache at {build_dir}")

        archive = self._archive(job.target_triple, key)
        tmp = archive.with_name(f"{archive.name}.tmp")
        try:
            archive.parent.mkdir(parents=True, exist_ok=True)
            with tarfile.open(tmp, mode="w:gz") as tar:
                tar.add(
                    build_dir,
                    arcname=build_dir.relative_to(self._config.workspace).as_posix(),
                )
            tmp.replace(archive)
            archive.with_name(f"{key}.manifest.json").write_text(
                json.dumps(manifest, sort_keys=True, indent=2), encoding="utf-8"
            )
        except (OSError, tarfile.TarError) as exc:
            return CacheSave(saved=False, key=key, reason=f"save failed: {exc}")
        finally:
            tmp.unlink(missing_ok=True)

        self.prune(job.target_triple)
        return CacheSave(saved=True, key=key, reason="saved")

    def prune(self, target: str) -> None:
        """Keep only the newest :attr:`keep` archives for ``target``."""
        directory = self.root / target
        archives = sorted(
            directory.glob("*.tar.gz"),
            key=lambda path: path.stat().st_mtime_ns,
            reverse=True,
        )
        for archive in archives[self.keep :]:
            key = archive.name.removesuffix(".tar.gz")
            archive.unlink(missing_ok=True)
            (directory / f"{key}.manifest.json").unlink(missing_ok=True)
