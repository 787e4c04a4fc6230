"""Tests for the per-target build cache."""

from __future__ import annotations

import dataclasses
import os
from pathlib import Path

from crossdeploy.cache import BuildCache
from crossdeploy.config import CacheSettings, PipelineConfig
from crossdeploy.matrix import HostOS, JobSpec
from crossdeploy.toolchain import Toolchain
from pipeline_test_helpers import write_build_output

JOB = JobSpec("x86_64-unknown-linux-gnu", HostOS.LINUX)
TOOLCHAIN = Toolchain("stable", JOB.target_triple, "cargo")


def test_key_is_stable(config: PipelineConfig) -> None:
    """The same inputs should always produce the same key."""
    cache = BuildCache(config)

    assert cache.key(JOB, TOOLCHAIN) == cache.key(JOB, TOOLCHAIN)


def test_key_changes_with_lockfile(config: PipelineConfig, workspace: Path) -> None:
    """Editing ``Cargo.lock`` should invalidate the cache."""
    cache = BuildCache(config)
    (workspace / "Cargo.lock").write_text("version = 3\n", encoding="utf-8")
    before = cache.key(JOB, TOOLCHAIN)

    (workspace / "Cargo.lock").write_text("version = 4\n", encoding="utf-8")

    assert cache.key(JOB, TOOLCHAIN) != before


def test_key_changes_with_compiler(config: PipelineConfig) -> None:
    """Native and emulated builds should not share archives."""
    cache = BuildCache(config)
    crossed = dataclasses.replace(TOOLCHAIN, compiler="cross")

    assert cache.key(JOB, TOOLCHAIN) != cache.key(JOB, crossed)


def test_restore_miss_when_empty(config: PipelineConfig) -> None:
    """An empty cache should report a miss."""
    hit = BuildCache(config).restore(JOB, TOOLCHAIN)

    assert not hit.hit
    assert hit.reason == "cache miss"


def test_save_then_restore_round_trip(config: PipelineConfig) -> None:
    """A saved build directory should come back after it was removed."""
    binary = write_build_output(config, JOB.target_triple, payload=b"cached")
    cache = BuildCache(config)

    saved = cache.save(JOB, TOOLCHAIN)
    binary.unlink()
    hit = cache.restore(JOB, TOOLCHAIN)

    assert saved.saved, saved.reason
    assert hit.hit, hit.reason
    assert binary.read_bytes() == b"cached"
    manifest = cache.root / JOB.target_triple / f"{saved.key}.manifest.json"
    assert manifest.is_file(), "a manifest should be written next to the archive"


def test_save_without_build_dir(config: PipelineConfig) -> None:
    """Nothing is archived when the build produced no directory."""
    saved = BuildCache(config).save(JOB, TOOLCHAIN)

    assert not saved.saved
    assert saved.reason.startswith("nothing to cache")


def test_prune_keeps_newest_archives(config: PipelineConfig, tmp_path: Path) -> None:
    """Only the newest ``keep`` archives per target should survive."""
    config = dataclasses.replace(config, cache=CacheSettings(keep=2))
    cache = BuildCache(config, root=tmp_path / "cache")
    directory = cache.root / JOB.target_triple
    directory.mkdir(parents=True)
    for index in range(4):
        archive = directory / f"key{index}.tar.gz"
        archive.write_bytes(b"x")
        (directory / f"key{index}.manifest.json").write_text("{}", encoding="utf-8")
        os.utime(archive, ns=(index * 1_000_000_000, index * 1_000_000_000))

    cache.prune(JOB.target_triple)

    assert sorted(path.name for path in directory.glob("*.tar.gz")) == [
        "key2.tar.gz",
        "key3.tar.gz",
    ]
    assert not (directory / "key0.manifest.json").exists()
