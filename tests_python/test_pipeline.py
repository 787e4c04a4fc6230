"""Tests for fanning jobs out and aggregating their results."""

from __future__ import annotations

import dataclasses

import pytest

from crossdeploy.config import PipelineConfig
from crossdeploy.matrix import JobSpec
from crossdeploy.pipeline import run_pipeline, should_trigger
from crossdeploy.runner import JobResult, JobRunner, JobState
from pipeline_test_helpers import FakeCompiler, FakeToolchains, RecordingPublisher


def _runner(config: PipelineConfig, *, failing: set[str] | None = None) -> JobRunner:
    return JobRunner(
        config,
        toolchains=FakeToolchains(),
        compiler=FakeCompiler(config, failing=failing or set()),
        publisher=RecordingPublisher(),
    )


class _CrashingRunner:
    def __init__(self, inner: JobRunner, crash_on: str) -> None:
        self.inner = inner
        self.crash_on = crash_on

    def run(self, job: JobSpec) -> JobResult:
        if job.target_triple == self.crash_on:
            message = "unexpected"
            raise ValueError(message)
        return self.inner.run(job)


def test_all_jobs_succeed(config: PipelineConfig) -> None:
    """Every job should publish a distinctly named artifact."""
    result = run_pipeline(config.jobs(), _runner(config))

    assert result.succeeded
    names = [job.artifact.name for job in result.results if job.artifact]
    assert len(names) == len(set(names)) == 3, "artifact names must be unique"


def test_results_follow_matrix_order(config: PipelineConfig) -> None:
    """Results should be reported in matrix order regardless of completion."""
    result = run_pipeline(config.jobs(), _runner(config), max_workers=3)

    assert [job.spec.target_triple for job in result.results] == [
        row.target for row in config.matrix
    ]


def test_one_failure_fails_the_pipeline(config: PipelineConfig) -> None:
    """A single failed job should fail the run without stopping the others."""
    failing = {"aarch64-unknown-linux-musl"}

    result = run_pipeline(config.jobs(), _runner(config, failing=failing))

    assert not result.succeeded
    assert [job.spec.target_triple for job in result.failed] == sorted(failing)
    assert result.summary() == {
        "x86_64-unknown-linux-gnu": "done",
        "aarch64-unknown-linux-musl": "failed",
        "x86_64-pc-windows-msvc": "done",
    }


def test_crashing_job_fails_alone(
    config: PipelineConfig, capsys: pytest.CaptureFixture[str]
) -> None:
    """An unexpected exception should fail only the job that raised it."""
    runner = _CrashingRunner(_runner(config), "x86_64-pc-windows-msvc")

    result = run_pipeline(config.jobs(), runner)  # type: ignore[arg-type]

    states = [job.state for job in result.results]
    assert states == [JobState.DONE, JobState.DONE, JobState.FAILED]
    assert isinstance(result.results[2].error, ValueError)
    assert "::error title=Job Crashed::" in capsys.readouterr().err


def test_empty_matrix_succeeds_trivially(config: PipelineConfig) -> None:
    """No jobs means nothing failed."""
    result = run_pipeline([], _runner(config))

    assert result.results == ()
    assert result.succeeded


@pytest.mark.parametrize(
    ("event", "ref", "expected"),
    [
        ("push", "refs/heads/main", True),
        ("push", "main", True),
        ("push", "refs/heads/develop", False),
        ("push", "refs/tags/v1.0.0", False),
        ("pull_request", "refs/heads/main", False),
        ("workflow_dispatch", "refs/heads/main", False),
    ],
)
def test_should_trigger(config: PipelineConfig, event: str, ref: str, expected: bool) -> None:
    """Only pushes to the configured branch should start the pipeline."""
    assert should_trigger(config, event, ref) is expected


def test_should_trigger_uses_configured_branch(config: PipelineConfig) -> None:
    """The trigger branch should come from the configuration."""
    config = dataclasses.replace(config, branch="release")

    assert should_trigger(config, "push", "refs/heads/release")
    assert not should_trigger(config, "push", "refs/heads/main")
