"""Fan matrix jobs out over a thread pool and fan their results back in."""

from __future__ import annotations

import dataclasses
import typing as typ
from concurrent.futures import ThreadPoolExecutor, as_completed

from .runner import JobResult
from .workflow_commands import error

if typ.TYPE_CHECKING:
    from .config import PipelineConfig
    from .matrix import JobSpec
    from .runner import JobRunner

__all__ = ["PipelineResult", "run_pipeline", "should_trigger"]

TRIGGER_EVENT = "push"


@dataclasses.dataclass(frozen=True, slots=True)
class PipelineResult:
    """Aggregated outcome of every job, in matrix order."""

    results: tuple[JobResult, ...]

    @property
    def succeeded(self) -> bool:
        """``True`` when every job reached ``Done``."""
        return all(result.succeeded for result in self.results)

    @property
    def failed(self) -> list[JobResult]:
        return [result for result in self.results if not result.succeeded]

    def summary(self) -> dict[str, str]:
        """Return ``target -> final state`` for reporting."""
        return {
            result.spec.target_triple: result.state.value for result in self.results
        }


def should_trigger(config: PipelineConfig, event_name: str, ref: str) -> bool:
    """Return ``True`` when ``event_name`` on ``ref`` should start the pipeline.

    Examples
    --------
    >>> should_trigger(config, "push", "refs/heads/main")  # doctest: +SKIP
    True
    >>> should_trigger(config, "pull_request", "refs/heads/main")  # doctest: +SKIP
    False
    """
    if event_name != TRIGGER_EVENT:
        return False
    return ref in {config.branch, f"refs/heads/{config.branch}"}


def run_pipeline(
    jobs: typ.Iterable[JobSpec],
    runner: JobRunner,
    *,
    max_workers: int | None = None,
) -> PipelineResult:
    """Run every job in ``jobs`` in parallel and aggregate their results.

    Jobs share no state, so they are all submitted at once. One job failing
    never stops the others; the pipeline fails when any job failed.

    Parameters
    ----------
    jobs : Iterable[JobSpec]
        Expanded matrix jobs.
    runner : JobRunner
        Runner executing a single job.
    max_workers : int | None, optional
        Thread pool size; defaults to the executor's own default.

    Returns
    -------
    PipelineResult
        Job results in the order of ``jobs``.
    """
    jobs = list(jobs)
    results: dict[int, JobResult] = {}
    if not jobs:
        return PipelineResult(())

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        futures = {pool.submit(runner.run, job): index for index, job in enumerate(jobs)}
        for future in as_completed(futures):
            index = futures[future]
            try:
                results[index] = future.result()
            except Exception as exc:  # noqa: BLE001 - a crashing job fails alone.
                job = jobs[index]
                error(f"{job.target_triple}: {exc}", title="Job Crashed")
                crashed = JobResult(spec=job)
                crashed.fail(exc)
                results[index] = crashed

    return PipelineResult(tuple(results[index] for index in range(len(jobs))))

