"""Shared helpers for the pipeline test suites."""

from __future__ import annotations

import threading
import typing as typ
from pathlib import Path

from plumbum.commands import CommandNotFound, ProcessExecutionError

from crossdeploy.config import PipelineConfig
from crossdeploy.errors import CompilationFailure, ToolchainAcquisitionFailure
from crossdeploy.matrix import JobSpec, MatrixRow
from crossdeploy.toolchain import Toolchain

__all__ = [
    "FakeCompiler",
    "FakeMachine",
    "FakeToolchains",
    "RecordingPublisher",
    "decode_output_file",
    "make_config",
    "write_build_output",
]

PROJECT = "fj-host"

DEFAULT_ROWS = (
    MatrixRow("x86_64-unknown-linux-gnu", "ubuntu-latest", cross=False),
    MatrixRow("aarch64-unknown-linux-musl", "ubuntu-latest", cross=True),
    MatrixRow("x86_64-pc-windows-msvc", "windows-latest", cross=False),
)


def make_config(workspace: Path, **overrides: typ.Any) -> PipelineConfig:
    """Return a configuration rooted at ``workspace`` with test defaults."""

    values: dict[str, typ.Any] = {
        "workspace": workspace,
        "project_name": PROJECT,
        "branch": "main",
        "matrix": DEFAULT_ROWS,
    }
    values.update(overrides)
    return PipelineConfig(**values)


def write_build_output(
    config: PipelineConfig, target: str, *, windows: bool = False, payload: bytes = b"binary"
) -> Path:
    """Create the binary Cargo would leave behind for ``target``."""

    suffix = ".exe" if windows else ""
    path = config.build_dir(target) / f"{config.project_name}{suffix}"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    return path


def decode_output_file(path: Path) -> dict[str, str]:
    """Parse GitHub output records written with ``write_github_output``.

    Parameters
    ----------
    path : Path
        Path to the output file containing GitHub workflow output records.

    Returns
    -------
    dict[str, str]
        Mapping of output keys to their decoded string values.
    """

    lines = path.read_text(encoding="utf-8").splitlines()
    values: dict[str, str] = {}
    index = 0
    while index < len(lines):
        line = lines[index]
        if "<<" in line:
            key, delimiter = line.split("<<", 1)
            index += 1
            buffer: list[str] = []
            while index < len(lines) and lines[index] != delimiter:
                buffer.append(lines[index])
                index += 1
            values[key] = "\n".join(buffer)
            index += 1  # Skip the delimiter terminator.
            continue
        if "=" in line:
            key, value = line.split("=", 1)
            decoded = (
                value.replace("%0A", "\n")
                .replace("%0D", "\r")
                .replace("%25", "%")
            )
            values[key] = decoded
        index += 1
    return values


class FakeCommand:
    """Stand-in for a plumbum command that records invocations."""

    def __init__(
        self,
        machine: FakeMachine,
        program: str,
        args: tuple[str, ...] = (),
        env: dict[str, str] | None = None,
    ) -> None:
        self.machine = machine
        self.program = program
        self.args = args
        self.env = env or {}

    def __getitem__(self, args: str | tuple[str, ...]) -> FakeCommand:
        extra = args if isinstance(args, tuple) else (args,)
        return FakeCommand(self.machine, self.program, self.args + extra, self.env)

    def with_env(self, **env: str) -> FakeCommand:
        return FakeCommand(self.machine, self.program, self.args, self.env | env)

    def run(self, retcode: int | None = 0, **kwargs: object) -> tuple[int, str, str]:
        self.machine.calls.append(
            {"program": self.program, "args": list(self.args), "env": self.env, **kwargs}
        )
        code, stdout, stderr = self.machine.results.get(self.program, (0, "", ""))
        if retcode is not None and code != retcode:
            raise ProcessExecutionError([self.program, *self.args], code, stdout, stderr)
        return code, stdout, stderr

    def __call__(self) -> str:
        return self.run()[1]


class FakeMachine:
    """Stand-in for ``plumbum.local`` with a configurable set of programs."""

    def __init__(
        self,
        available: typ.Iterable[str] = ("rustup", "cargo", "cross", "gh"),
        results: dict[str, tuple[int, str, str]] | None = None,
    ) -> None:
        self.available = set(available)
        self.results = results or {}
        self.calls: list[dict[str, typ.Any]] = []

    def __getitem__(self, program: str) -> FakeCommand:
        self.which(program)
        return FakeCommand(self, program)

    def which(self, program: str) -> str:
        if program not in self.available:
            raise CommandNotFound(program, [])
        return f"/usr/bin/{program}"

    def programs(self) -> list[str]:
        return [call["program"] for call in self.calls]


class FakeToolchains:
    """Toolchain provider that succeeds unless told to fail for a target."""

    def __init__(self, failing: typ.Collection[str] = ()) -> None:
        self.failing = set(failing)
        self.acquired: list[str] = []

    def acquire(self, job: JobSpec) -> Toolchain:
        if job.target_triple in self.failing:
            raise ToolchainAcquisitionFailure(job.target_triple, "rustup exploded")
        self.acquired.append(job.target_triple)
        return Toolchain("stable", job.target_triple, "cross" if job.use_cross else "cargo")


class FakeCompiler:
    """Compiler that writes the expected binary instead of running cargo."""

    def __init__(
        self,
        config: PipelineConfig,
        *,
        failing: typ.Collection[str] = (),
        silent: typ.Collection[str] = (),
    ) -> None:
        self.config = config
        self.failing = set(failing)
        self.silent = set(silent)
        self.compiled: list[tuple[str, str]] = []
        self._lock = threading.Lock()

    def compile(self, job: JobSpec, toolchain: Toolchain) -> Path:
        target = job.target_triple
        with self._lock:
            self.compiled.append((target, toolchain.compiler))
        if target in self.failing:
            raise CompilationFailure(target, "cargo build failed", exit_code=101)
        if target not in self.silent:
            write_build_output(self.config, target, windows=job.host_os.is_windows)
        return self.config.build_dir(target)


class RecordingPublisher:
    """Publisher that records artifact names without storing anything."""

    def __init__(self) -> None:
        self.published: list[str] = []
        self._lock = threading.Lock()

    def publish(self, artifact: typ.Any) -> str:
        with self._lock:
            self.published.append(artifact.name)
        return f"memory://{artifact.name}"
