"""Per-job state machine driving toolchain, compile, stage and publish.

Each job walks ``Pending → ToolchainReady → Compiled → Staged → Published →
Done``; any :class:`~crossdeploy.errors.JobFailure` moves it to the terminal
``Failed`` state instead, as does any unexpected exception. Failures are
reported, never retried.
"""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from .errors import JobFailure
from .staging import stage_artifact
from .workflow_commands import error, progress, warning

if typ.TYPE_CHECKING:
    from .cache import BuildCache
    from .compiler import Compiler
    from .config import PipelineConfig
    from .matrix import JobSpec
    from .publisher import ArtifactPublisher
    from .staging import ArtifactRef
    from .toolchain import Toolchain, ToolchainProvider

__all__ = ["JobResult", "JobRunner", "JobState"]


class JobState(enum.Enum):
    """Lifecycle state of a matrix job."""

    PENDING = "pending"
    TOOLCHAIN_READY = "toolchain-ready"
    COMPILED = "compiled"
    STAGED = "staged"
    PUBLISHED = "published"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in {JobState.DONE, JobState.FAILED}


_NEXT_STATE: dict[JobState, JobState] = {
    JobState.PENDING: JobState.TOOLCHAIN_READY,
    JobState.TOOLCHAIN_READY: JobState.COMPILED,
    JobState.COMPILED: JobState.STAGED,
    JobState.STAGED: JobState.PUBLISHED,
    JobState.PUBLISHED: JobState.DONE,
}


@dataclasses.dataclass(slots=True)
class JobResult:
    """Outcome of running one job.

    Attributes
    ----------
    spec : JobSpec
        Job that was run.
    state : JobState
        Current state; terminal once :meth:`JobRunner.run` returns.
    history : list[JobState]
        Every state the job entered, in order.
    artifact : ArtifactRef | None
        Staged artifact, present once the job reached ``Staged``.
    published_as : str | None
        Location reported by the publisher.
    error : Exception | None
        Failure that moved the job to ``Failed``.
    """

    spec: JobSpec
    state: JobState = JobState.PENDING
    history: list[JobState] = dataclasses.field(
        default_factory=lambda: [JobState.PENDING]
    )
    artifact: ArtifactRef | None = None
    published_as: str | None = None
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is JobState.DONE

    def advance(self, state: JobState) -> None:
        """Move to ``state``, rejecting transitions the lifecycle forbids."""
        if self.state.is_terminal:
            message = f"Job {self.spec.target_triple} already finished as {self.state.value}"
            raise RuntimeError(message)
        if state is not JobState.FAILED and _NEXT_STATE[self.state] is not state:
            message = (
                f"Illegal transition for {self.spec.target_triple}: "
                f"{self.state.value} -> {state.value}"
            )
            raise RuntimeError(message)
        self.state = state
        self.history.append(state)

    def fail(self, exc: Exception) -> None:
        self.error = exc
        self.advance(JobState.FAILED)


class JobRunner:
    """Run jobs against injected toolchain, compiler and publisher.

    Parameters
    ----------
    config : PipelineConfig
        Pipeline-wide configuration.
    toolchains : ToolchainProvider
        Acquires the toolchain for each target.
    compiler : Compiler
        Builds each target.
    publisher : ArtifactPublisher
        Stores staged artifacts.
    cache : BuildCache | None, optional
        Restores and saves build outputs around compilation.
    """

    def __init__(
        self,
        config: PipelineConfig,
        *,
        toolchains: ToolchainProvider,
        compiler: Compiler,
        publisher: ArtifactPublisher,
        cache: BuildCache | None = None,
    ) -> None:
        self.config = config
        self.toolchains = toolchains
        self.compiler = compiler
        self.publisher = publisher
        self.cache = cache

    def run(self, job: JobSpec) -> JobResult:
        """Run ``job`` to a terminal state and return its result."""
        result = JobResult(spec=job)
        target = job.target_triple
        try:
            toolchain = self.toolchains.acquire(job)
            result.advance(JobState.TOOLCHAIN_READY)

            self._restore_cache(job, toolchain)
            self.compiler.compile(job, toolchain)
            result.advance(JobState.COMPILED)
            self._save_cache(job, toolchain)

            result.artifact = stage_artifact(job, self.config)
            result.advance(JobState.STAGED)

            result.published_as = self.publisher.publish(result.artifact)
            result.advance(JobState.PUBLISHED)
            result.advance(JobState.DONE)
        except JobFailure as exc:
            error(f"{target}: {exc}", title=exc.title)
            result.fail(exc)
            return result
        except Exception as exc:  # noqa: BLE001 - a crashing job fails alone.
            error(f"{target}: {exc}", title="Job Crashed")
            result.fail(exc)
            return result

        progress(target, f"done ({result.artifact.name})")
        return result

    def _restore_cache(self, job: JobSpec, toolchain: Toolchain) -> None:
        if self.cache is None:
            return
        hit = self.cache.restore(job, toolchain)
        if hit.reason.startswith("restore failed"):
            warning(f"{job.target_triple}: {hit.reason}", title="Cache")
        else:
            progress(job.target_triple, f"cache: {hit.reason} ({hit.key[:12]})")

    def _save_cache(self, job: JobSpec, toolchain: Toolchain) -> None:
        if self.cache is None:
            return
        saved = self.cache.save(job, toolchain)
        if saved.saved:
            progress(job.target_triple, f"cache: saved ({saved.key[:12]})")
        else:
            warning(f"{job.target_triple}: cache {saved.reason}", title="Cache")
