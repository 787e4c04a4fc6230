"""Compiler invocation for matrix jobs."""

from __future__ import annotations

import typing as typ
from pathlib import Path

from plumbum import local
from plumbum.commands import CommandNotFound

from .errors import CompilationFailure
from .workflow_commands import progress

if typ.TYPE_CHECKING:
    from .config import PipelineConfig
    from .matrix import JobSpec
    from .toolchain import Toolchain

__all__ = ["CargoCompiler", "Compiler", "build_arguments", "compiler_program"]

OUTPUT_TAIL = 4000


class Compiler(typ.Protocol):
    """Compile a job's target and return Cargo's output directory."""

    def compile(self, job: JobSpec, toolchain: Toolchain) -> Path: ...


def compiler_program(job: JobSpec) -> str:
    """Return the executable that builds ``job``.

    Cross jobs run through the ``cross`` emulation layer instead of the
    native ``cargo``.

    Examples
    --------
    >>> from crossdeploy.matrix import HostOS, JobSpec
    >>> compiler_program(JobSpec("aarch64-unknown-linux-musl", HostOS.LINUX, True))
    'cross'
    """
    return "cross" if job.use_cross else "cargo"


def build_arguments(target: str, profile: str = "release") -> list[str]:
    """Return the build arguments for ``target`` under ``profile``.

    Examples
    --------
    >>> build_arguments("x86_64-apple-darwin")
    ['build', '--release', '--target', 'x86_64-apple-darwin']
    >>> build_arguments("x86_64-apple-darwin", "dist")
    ['build', '--profile', 'dist', '--target', 'x86_64-apple-darwin']
    """
    profile_args = ["--release"] if profile == "release" else ["--profile", profile]
    return ["build", *profile_args, "--target", target]


class CargoCompiler:
    """Run ``cargo build`` (or ``cross build``) through plumbum."""

    def __init__(self, config: PipelineConfig, machine: typ.Any = local) -> None:
        self._config = config
        self._machine = machine

    def compile(self, job: JobSpec, toolchain: Toolchain) -> Path:
        """Build ``job`` and return the directory holding its binary.

        Raises
        ------
        CompilationFailure
            Raised when the compiler is missing or exits with a non-zero
            status. Failures are not retried.
        """
        target = job.target_triple
        program = toolchain.compiler or compiler_program(job)
        arguments = build_arguments(target, self._config.profile)
        try:
            command = self._machine[program]
        except CommandNotFound as exc:
            message = f"Compiler executable not found: {exc.program}"
            raise CompilationFailure(target, message) from exc

        progress(target, f"{program} {' '.join(arguments)}")
        bound = command[tuple(arguments)]
        if self._config.env:
            bound = bound.with_env(**self._config.env)
        retcode, stdout, stderr = bound.run(
            retcode=None, cwd=self._config.workspace
        )
        if retcode != 0:
            message = f"{program} build for {target} exited with status {retcode}"
            raise CompilationFailure(
                target,
                message,
                exit_code=retcode,
                output=(stderr or stdout or "")[-OUTPUT_TAIL:],
            )
        return self._config.build_dir(target)
