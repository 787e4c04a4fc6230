"""Toolchain acquisition for matrix jobs."""

from __future__ import annotations

import dataclasses
import threading
import typing as typ

from plumbum import local
from plumbum.commands import CommandNotFound, ProcessExecutionError

from .errors import ToolchainAcquisitionFailure
from .workflow_commands import progress

if typ.TYPE_CHECKING:
    from .config import PipelineConfig
    from .matrix import JobSpec

__all__ = ["RustupToolchainProvider", "Toolchain", "ToolchainProvider"]


@dataclasses.dataclass(frozen=True, slots=True)
class Toolchain:
    """Toolchain ready to compile a target.

    Attributes
    ----------
    channel : str
        Installed toolchain channel, for example ``"stable"``.
    target : str
        Target triple whose standard library is installed.
    compiler : str
        Executable that performs the build: ``"cargo"`` or ``"cross"``.
    """

    channel: str
    target: str
    compiler: str


class ToolchainProvider(typ.Protocol):
    """Acquire the toolchain needed by a job."""

    def acquire(self, job: JobSpec) -> Toolchain: ...


class RustupToolchainProvider:
    """Install toolchains through ``rustup``.

    Mirrors ``actions-rs/toolchain`` with ``override: true``: the channel is
    installed with the configured profile and target, then pinned for the
    workspace. ``rustup`` calls are serialised because concurrent installs
    into the same ``RUSTUP_HOME`` race.
    """

    _lock = threading.Lock()

    def __init__(self, config: PipelineConfig, machine: typ.Any = local) -> None:
        self._config = config
        self._machine = machine

    def install_arguments(self, target: str) -> list[str]:
        """Return the ``rustup`` arguments installing ``target``.

        Examples
        --------
        >>> provider.install_arguments("x86_64-apple-darwin")  # doctest: +SKIP
        ['toolchain', 'install', 'stable', '--profile', 'minimal', '--target',
         'x86_64-apple-darwin']
        """
        return [
            "toolchain",
            "install",
            self._config.toolchain,
            "--profile",
            self._config.toolchain_profile,
            "--target",
            target,
        ]

    def override_arguments(self) -> list[str]:
        """Return the ``rustup`` arguments pinning the channel for the workspace."""
        return [
            "override",
            "set",
            self._config.toolchain,
            "--path",
            self._config.workspace.as_posix(),
        ]

    def acquire(self, job: JobSpec) -> Toolchain:
        """Install the toolchain for ``job`` and return its description.

        Raises
        ------
        ToolchainAcquisitionFailure
            Raised when ``rustup`` (or ``cross`` for cross jobs) is missing or
            exits unsuccessfully.
        """
        target = job.target_triple
        try:
            rustup = self._machine["rustup"]
            with self._lock:
                progress(target, f"installing {self._config.toolchain} toolchain")
                rustup[tuple(self.install_arguments(target))].run()
                rustup[tuple(self.override_arguments())].run()
            compiler = "cargo"
            if job.use_cross:
                self._machine.which("cross")
                compiler = "cross"
        except CommandNotFound as exc:
            message = f"Required executable not found: {exc.program}"
            raise ToolchainAcquisitionFailure(target, message) from exc
        except ProcessExecutionError as exc:
            message = (
                f"rustup exited with status {exc.retcode} while installing "
                f"{self._config.toolchain} for {target}"
            )
            raise ToolchainAcquisitionFailure(target, message) from exc
        return Toolchain(channel=self._config.toolchain, target=target, compiler=compiler)
