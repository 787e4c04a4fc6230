"""Matrix expansion from declarative rows to independent job specs.

Usage
-----
Expand rows loaded from the pipeline configuration::

    from crossdeploy.matrix import MatrixRow, expand_matrix

    jobs = expand_matrix(
        [MatrixRow("x86_64-unknown-linux-gnu", "ubuntu-latest", cross=False)]
    )
    print(jobs[0].host_os)
"""

from __future__ import annotations

import dataclasses
import enum
import sys
import typing as typ

from .errors import ConfigError

__all__ = [
    "HostOS",
    "JobSpec",
    "MatrixRow",
    "expand_matrix",
    "matrix_payload",
    "select_jobs",
]


class HostOS(enum.Enum):
    """Operating system of the host that runs a job."""

    LINUX = "linux"
    MACOS = "macos"
    WINDOWS = "windows"

    @classmethod
    def parse(cls, value: str) -> HostOS:
        """Return the host OS named by ``value``.

        ``value`` may be a bare name or a runner label such as
        ``ubuntu-latest`` or ``macOS-14``.

        Examples
        --------
        >>> HostOS.parse("ubuntu-latest")
        <HostOS.LINUX: 'linux'>
        >>> HostOS.parse("macOS-latest")
        <HostOS.MACOS: 'macos'>
        """
        label = value.strip().lower()
        family = label.split("-", 1)[0]
        if family in _LABEL_FAMILIES:
            return _LABEL_FAMILIES[family]
        message = f"Unknown host OS: {value!r}"
        raise ConfigError(message)

    @classmethod
    def current(cls) -> HostOS:
        """Return the host OS of the running interpreter."""
        if sys.platform.startswith("win"):
            return cls.WINDOWS
        if sys.platform == "darwin":
            return cls.MACOS
        return cls.LINUX

    @property
    def runner_label(self) -> str:
        """Default GitHub-hosted runner label for this OS."""
        return f"{_RUNNER_PREFIXES[self]}-latest"

    @property
    def is_windows(self) -> bool:
        return self is HostOS.WINDOWS


_LABEL_FAMILIES: dict[str, HostOS] = {
    "linux": HostOS.LINUX,
    "ubuntu": HostOS.LINUX,
    "macos": HostOS.MACOS,
    "darwin": HostOS.MACOS,
    "windows": HostOS.WINDOWS,
    "win": HostOS.WINDOWS,
}

_RUNNER_PREFIXES: dict[HostOS, str] = {
    HostOS.LINUX: "ubuntu",
    HostOS.MACOS: "macos",
    HostOS.WINDOWS: "windows",
}


@dataclasses.dataclass(frozen=True, slots=True)
class MatrixRow:
    """Single row of the build matrix as written in the configuration."""

    target: str
    os: str
    cross: bool = False


@dataclasses.dataclass(frozen=True, slots=True)
class JobSpec:
    """Immutable description of one matrix job.

    Attributes
    ----------
    target_triple : str
        Compilation target, for example ``"aarch64-unknown-linux-musl"``.
    host_os : HostOS
        Operating system of the host that builds the target.
    use_cross : bool
        When ``True`` compilation is delegated to the emulation layer.
    runs_on : str
        Runner label the row was declared with.
    """

    target_triple: str
    host_os: HostOS
    use_cross: bool = False
    runs_on: str = ""

    @property
    def runner_label(self) -> str:
        return self.runs_on or self.host_os.runner_label


def expand_matrix(rows: typ.Iterable[MatrixRow]) -> list[JobSpec]:
    """Return one :class:`JobSpec` per row of ``rows``, preserving order.

    Raises
    ------
    ConfigError
        Raised when a row has an empty target triple or an unknown host OS.

    Examples
    --------
    >>> [job.target_triple for job in expand_matrix(
    ...     [MatrixRow("x86_64-pc-windows-msvc", "windows-latest")]
    ... )]
    ['x86_64-pc-windows-msvc']
    """
    jobs: list[JobSpec] = []
    for index, row in enumerate(rows, start=1):
        target = row.target.strip()
        if not target:
            message = f"Matrix row #{index} has an empty target triple"
            raise ConfigError(message)
        jobs.append(
            JobSpec(
                target_triple=target,
                host_os=HostOS.parse(row.os),
                use_cross=bool(row.cross),
                runs_on=row.os,
            )
        )
    return jobs


def select_jobs(
    jobs: typ.Iterable[JobSpec],
    *,
    targets: typ.Collection[str] = (),
    host: HostOS | None = None,
) -> list[JobSpec]:
    """Filter ``jobs`` down to ``targets`` and/or those built on ``host``.

    Raises
    ------
    ConfigError
        Raised when ``targets`` names a triple absent from ``jobs``.
    """
    jobs = list(jobs)
    if unknown := sorted(set(targets) - {job.target_triple for job in jobs}):
        message = f"Unknown target(s) requested: {', '.join(unknown)}"
        raise ConfigError(message)
    return [
        job
        for job in jobs
        if (not targets or job.target_triple in targets)
        and (host is None or job.host_os is host)
    ]


def matrix_payload(jobs: typ.Iterable[JobSpec]) -> dict[str, list[dict[str, typ.Any]]]:
    """Render ``jobs`` as a GitHub ``strategy.matrix`` include list."""
    return {
        "include": [
            {
                "target": job.target_triple,
                "os": job.runner_label,
                "cross": job.use_cross,
            }
            for job in jobs
        ]
    }
