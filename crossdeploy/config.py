"""Configuration models and loader for the deployment pipeline.

This module provides immutable dataclasses and a loader function for parsing
the TOML pipeline configuration that names the project, the trigger branch,
the build matrix, and the cache and publish settings.

Usage
-----
Load the pipeline configuration and expand its matrix::

    from pathlib import Path
    from crossdeploy.config import load_config

    config = load_config(Path(".github/crossdeploy.toml"))
    for job in config.jobs():
        print(job.target_triple, job.host_os.value)
"""

from __future__ import annotations

import dataclasses
import enum
import hashlib
import types
import typing as typ
from pathlib import Path

import tomllib

from .environment import resolve_workspace
from .errors import ConfigError
from .matrix import HostOS, JobSpec, MatrixRow, expand_matrix

__all__ = [
    "CacheSettings",
    "ConflictPolicy",
    "PipelineConfig",
    "PublishSettings",
    "load_config",
]

PUBLISH_BACKENDS = frozenset({"directory", "github-release"})
_DISABLED_CHECKSUM = frozenset({"", "none", "off"})


class ConflictPolicy(enum.Enum):
    """Behaviour when an artifact with the same name was already published."""

    OVERWRITE = "overwrite"
    ERROR = "error"


@dataclasses.dataclass(frozen=True, slots=True)
class CacheSettings:
    """Build cache settings.

    Attributes
    ----------
    enabled : bool
        When ``False`` no cache is restored or saved.
    dir : str
        Cache root relative to the workspace.
    keep : int
        Number of archives retained per target.
    """

    enabled: bool = True
    dir: str = ".crossdeploy/cache"
    keep: int = 3


@dataclasses.dataclass(frozen=True, slots=True)
class PublishSettings:
    """Artifact publication settings.

    Attributes
    ----------
    backend : str
        ``"directory"`` or ``"github-release"``.
    store_dir : str
        Destination directory for the ``directory`` backend, relative to the
        workspace.
    on_conflict : ConflictPolicy
        What to do when the artifact name is already present.
    release_tag : str | None
        Release receiving uploads for the ``github-release`` backend.
    dry_run : bool
        Print uploads without performing them (``github-release`` only).
    """

    backend: str = "directory"
    store_dir: str = "artifacts"
    on_conflict: ConflictPolicy = ConflictPolicy.OVERWRITE
    release_tag: str | None = None
    dry_run: bool = False


@dataclasses.dataclass(frozen=True, slots=True)
class PipelineConfig:
    """Pipeline-wide configuration shared by every component.

    Parameters
    ----------
    workspace : Path
        Checkout root the jobs build in.
    project_name : str
        Binary name; also the prefix of every published artifact.
    branch : str
        Branch whose pushes trigger the pipeline.
    matrix : tuple[MatrixRow, ...]
        Declared matrix rows in configuration order.
    profile : str, default="release"
        Cargo profile used for compilation.
    toolchain : str, default="stable"
        Rust toolchain channel installed for every target.
    toolchain_profile : str, default="minimal"
        ``rustup`` installation profile.
    dist_dir : str, default="."
        Directory beneath :attr:`workspace` receiving staged binaries.
    checksum_algorithm : str | None, default="sha256"
        Algorithm for checksum sidecars; ``None`` disables them.
    max_workers : int | None, optional
        Upper bound on concurrently running jobs.
    env : Mapping[str, str]
        Extra environment for compiler invocations.
    cache : CacheSettings
        Build cache settings.
    publish : PublishSettings
        Artifact publication settings.

    Examples
    --------
    >>> config = PipelineConfig(  # doctest: +SKIP
    ...     workspace=Path("/tmp/workspace"),
    ...     project_name="fj-host",
    ...     branch="main",
    ...     matrix=(MatrixRow("x86_64-unknown-linux-gnu", "ubuntu-latest"),),
    ... )
    >>> config.build_dir("x86_64-unknown-linux-gnu")  # doctest: +SKIP
    PosixPath('/tmp/workspace/target/x86_64-unknown-linux-gnu/release')
    """

    workspace: Path
    project_name: str
    branch: str
    matrix: tuple[MatrixRow, ...]
    profile: str = "release"
    toolchain: str = "stable"
    toolchain_profile: str = "minimal"
    dist_dir: str = "."
    checksum_algorithm: str | None = "sha256"
    max_workers: int | None = None
    env: typ.Mapping[str, str] = dataclasses.field(
        default_factory=lambda: types.MappingProxyType({})
    )
    cache: CacheSettings = CacheSettings()
    publish: PublishSettings = PublishSettings()

    def jobs(self) -> list[JobSpec]:
        """Return the expanded job list for :attr:`matrix`."""
        return expand_matrix(self.matrix)

    def staging_dir(self) -> Path:
        """Return the absolute directory receiving staged binaries."""
        return self.workspace / self.dist_dir

    def build_dir(self, target: str) -> Path:
        """Return Cargo's output directory for ``target`` and :attr:`profile`."""
        profile_dir = "debug" if self.profile == "dev" else self.profile
        return self.workspace / "target" / target / profile_dir


def load_config(config_file: Path, workspace: Path | None = None) -> PipelineConfig:
    """Load the pipeline configuration from ``config_file``.

    Parameters
    ----------
    config_file : Path
        Path to the TOML document describing the pipeline.
    workspace : Path | None, optional
        Checkout root; defaults to ``GITHUB_WORKSPACE`` or the current
        directory.

    Returns
    -------
    PipelineConfig
        Immutable configuration ready for the job runner.

    Raises
    ------
    FileNotFoundError
        Raised when the configuration file is absent at ``config_file``.
    ConfigError
        Raised when required configuration keys are missing or invalid.
    """
    config_file = Path(config_file)
    if not config_file.is_file():
        message = f"Configuration file not found at {config_file}"
        raise FileNotFoundError(message)

    data = _load_toml(config_file)
    root = resolve_workspace(workspace)
    common = _table(data, "common", config_file)
    _require_keys(common, {"branch"}, "common", config_file)

    def common_string(key: str, default: str) -> str:
        return _string(common, key, "common", config_file, default=default)

    return PipelineConfig(
        workspace=root,
        project_name=_project_name(common, root, config_file),
        branch=_string(common, "branch", "common", config_file),
        matrix=_make_matrix(data, config_file),
        profile=common_string("profile", "release"),
        toolchain=common_string("toolchain", "stable"),
        toolchain_profile=common_string("toolchain_profile", "minimal"),
        dist_dir=common_string("dist_dir", "."),
        checksum_algorithm=_validate_checksum(
            common.get("checksum_algorithm", "sha256"), config_file
        ),
        max_workers=_max_workers(common.get("max_workers"), config_file),
        env=_make_env(data, config_file),
        cache=_make_cache(data, config_file),
        publish=_make_publish(data, config_file),
    )


def _load_toml(path: Path) -> dict[str, typ.Any]:
    try:
        with path.open("rb") as handle:
            return tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        message = f"Invalid TOML in {path}: {exc}"
        raise ConfigError(message) from exc


def _table(
    data: dict[str, typ.Any], key: str, config_path: Path, *, required: bool = True
) -> dict[str, typ.Any]:
    if key not in data:
        if required:
            message = f"Missing configuration key in {config_path}: '{key}'"
            raise ConfigError(message)
        return {}
    section = data[key]
    if not isinstance(section, dict):
        message = f"[{key}] must be a table in {config_path}"
        raise ConfigError(message)
    return section


def _require_keys(
    section: dict[str, typ.Any], keys: set[str], label: str, config_path: Path
) -> None:
    """Ensure ``section`` defines ``keys``."""
    if missing := sorted(key for key in keys if key not in section):
        joined = ", ".join(missing)
        message = (
            "Missing required key(s) "
            f"{joined} in [{label}] section of {config_path}"
        )
        raise ConfigError(message)


def _string(
    section: dict[str, typ.Any],
    key: str,
    label: str,
    config_path: Path,
    *,
    default: str | None = None,
) -> str:
    """Return ``section[key]`` as a stripped, non-empty string.

    ``default`` is returned when the key is absent; without one the key is
    required.
    """
    if key not in section and default is not None:
        return default
    value = section[key]
    if not isinstance(value, str) or not value.strip():
        message = f"'{key}' in [{label}] of {config_path} must be a non-empty string"
        raise ConfigError(message)
    return value.strip()


def _optional_string(
    section: dict[str, typ.Any], key: str, label: str, config_path: Path
) -> str | None:
    if key not in section:
        return None
    return _string(section, key, label, config_path)


def _bool(
    section: dict[str, typ.Any],
    key: str,
    label: str,
    config_path: Path,
    *,
    default: bool,
) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        message = f"'{key}' in [{label}] of {config_path} must be true or false"
        raise ConfigError(message)
    return value


def _project_name(common: dict[str, typ.Any], workspace: Path, config_path: Path) -> str:
    """Return ``project_name`` or fall back to ``[package].name`` in ``Cargo.toml``."""
    if "project_name" in common:
        return _string(common, "project_name", "common", config_path)

    manifest_path = workspace / "Cargo.toml"
    fallback = f"no project_name in [common] of {config_path}"
    if not manifest_path.is_file():
        message = f"{fallback} and no Cargo.toml at {manifest_path}"
        raise ConfigError(message)
    try:
        with manifest_path.open("rb") as handle:
            manifest = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        message = f"{fallback} and {manifest_path} is not valid TOML: {exc}"
        raise ConfigError(message) from exc

    package = manifest.get("package")
    name = package.get("name") if isinstance(package, dict) else None
    if not isinstance(name, str) or not name.strip():
        message = f"{fallback} and {manifest_path} has no [package].name"
        raise ConfigError(message)
    return name.strip()


def _validate_checksum(name: object, config_path: Path) -> str | None:
    if not isinstance(name, str):
        message = f"checksum_algorithm in {config_path} must be a string"
        raise ConfigError(message)
    algorithm = name.strip().lower()
    if algorithm in _DISABLED_CHECKSUM:
        return None
    supported = {item.lower() for item in hashlib.algorithms_guaranteed}
    if algorithm not in supported:
        message = f"Unsupported checksum algorithm: {algorithm}"
        raise ConfigError(message)
    return algorithm


def _positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _max_workers(value: object, config_path: Path) -> int | None:
    if value is None:
        return None
    if not _positive_int(value):
        message = f"max_workers in {config_path} must be a positive integer"
        raise ConfigError(message)
    return typ.cast(int, value)


def _make_matrix(data: dict[str, typ.Any], config_path: Path) -> tuple[MatrixRow, ...]:
    entries = _table(data, "matrix", config_path).get("include", [])
    if not isinstance(entries, list) or not entries:
        message = f"No matrix rows configured in {config_path}"
        raise ConfigError(message)
    rows: list[MatrixRow] = []
    seen: dict[str, int] = {}
    for index, entry in enumerate(entries, start=1):
        if not isinstance(entry, dict):
            message = (
                "Matrix entries must be tables of key/value pairs "
                f"(entry #{index} in {config_path})"
            )
            raise ConfigError(message)
        label = f"matrix.include #{index}"
        _require_keys(entry, {"target", "os"}, label, config_path)
        target = _string(entry, "target", label, config_path)
        runs_on = _string(entry, "os", label, config_path)
        cross = _bool(entry, "cross", label, config_path, default=False)
        if target in seen:
            # Jobs share target/<triple> and the staged name, so targets are unique.
            message = (
                f"Duplicate target {target} in matrix.include #{seen[target]} "
                f"and #{index} of {config_path}"
            )
            raise ConfigError(message)
        seen[target] = index
        HostOS.parse(runs_on)
        rows.append(MatrixRow(target=target, os=runs_on, cross=cross))
    return tuple(rows)


def _make_env(data: dict[str, typ.Any], config_path: Path) -> typ.Mapping[str, str]:
    env = _table(data, "env", config_path, required=False)
    return types.MappingProxyType({str(key): str(value) for key, value in env.items()})


def _make_cache(data: dict[str, typ.Any], config_path: Path) -> CacheSettings:
    section = _table(data, "cache", config_path, required=False)
    keep = section.get("keep", 3)
    if not _positive_int(keep):
        message = f"[cache] keep in {config_path} must be a positive integer"
        raise ConfigError(message)
    return CacheSettings(
        enabled=_bool(section, "enabled", "cache", config_path, default=True),
        dir=_string(section, "dir", "cache", config_path, default=".crossdeploy/cache"),
        keep=keep,
    )


def _make_publish(data: dict[str, typ.Any], config_path: Path) -> PublishSettings:
    section = _table(data, "publish", config_path, required=False)
    backend = _string(section, "backend", "publish", config_path, default="directory")
    if backend not in PUBLISH_BACKENDS:
        message = f"Unknown publish backend {backend!r} in {config_path}"
        raise ConfigError(message)
    policy = _string(section, "on_conflict", "publish", config_path, default="overwrite")
    try:
        on_conflict = ConflictPolicy(policy)
    except ValueError as exc:
        message = f"Unknown on_conflict policy in {config_path}: {exc}"
        raise ConfigError(message) from exc
    release_tag = _optional_string(section, "release_tag", "publish", config_path)
    if backend == "github-release" and not release_tag:
        message = f"[publish] release_tag is required for github-release in {config_path}"
        raise ConfigError(message)
    return PublishSettings(
        backend=backend,
        store_dir=_string(section, "store_dir", "publish", config_path, default="artifacts"),
        on_conflict=on_conflict,
        release_tag=release_tag,
        dry_run=_bool(section, "dry_run", "publish", config_path, default=False),
    )
