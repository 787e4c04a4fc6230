"""Command-line entry point for the deployment pipeline.

Examples
--------
Emit the build matrix for a GitHub workflow, then run this host's share of
it locally::

    crossdeploy plan .github/crossdeploy.toml
    crossdeploy run .github/crossdeploy.toml --target x86_64-unknown-linux-gnu
"""

from __future__ import annotations

import json
import typing as typ
from pathlib import Path

from cyclopts import App, Parameter

from .cache import BuildCache
from .compiler import CargoCompiler
from .config import PipelineConfig, load_config
from .environment import optional_env_path
from .errors import ConfigError, StagingFailure
from .github_output import write_github_output
from .matrix import HostOS, JobSpec, matrix_payload, select_jobs
from .pipeline import PipelineResult, run_pipeline, should_trigger
from .publisher import make_publisher
from .runner import JobRunner
from .staging import stage_artifact
from .toolchain import RustupToolchainProvider
from .workflow_commands import error, group, notice

app = App(
    name="crossdeploy",
    help="Cross-compile a build matrix and publish one binary per target.",
)


def _load(config_file: Path, workspace: Path | None) -> tuple[PipelineConfig, list[JobSpec]]:
    try:
        config = load_config(Path(config_file), workspace)
        return config, config.jobs()
    except (FileNotFoundError, ConfigError) as exc:
        error(str(exc), title="Configuration Error")
        raise SystemExit(1) from exc


def build_runner(config: PipelineConfig, *, use_cache: bool = True) -> JobRunner:
    """Return a runner wired to ``rustup``, ``cargo``/``cross`` and the publisher."""
    cache = BuildCache(config) if use_cache and config.cache.enabled else None
    return JobRunner(
        config,
        toolchains=RustupToolchainProvider(config),
        compiler=CargoCompiler(config),
        publisher=make_publisher(config),
        cache=cache,
    )


def _report(result: PipelineResult) -> None:
    with group("Results"):
        for result_job in result.results:
            line = f"  {result_job.spec.target_triple}: {result_job.state.value.upper()}"
            if result_job.published_as:
                line += f" -> {result_job.published_as}"
            print(line)


def _export_outputs(result: PipelineResult) -> None:
    github_output = optional_env_path("GITHUB_OUTPUT")
    if github_output is None:
        return
    published = {
        job.artifact.name: job.published_as
        for job in result.results
        if job.artifact is not None and job.published_as is not None
    }
    values: dict[str, str] = {"artefact_map": json.dumps(dict(sorted(published.items())))}
    if len(result.results) == 1 and (artifact := result.results[0].artifact):
        values["artifact_name"] = artifact.name
        values["artifact_path"] = artifact.local_path.as_posix()
    write_github_output(github_output, values)


@app.command
def plan(config_file: Path, *, workspace: Path | None = None) -> None:
    """Print the expanded build matrix as a GitHub ``strategy.matrix``.

    Parameters
    ----------
    config_file:
        Path to the pipeline TOML configuration.
    workspace:
        Checkout root; defaults to ``GITHUB_WORKSPACE`` or the current
        directory.
    """
    _config, jobs = _load(config_file, workspace)
    payload = json.dumps(matrix_payload(jobs))
    print(payload)
    if (github_output := optional_env_path("GITHUB_OUTPUT")) is not None:
        write_github_output(github_output, {"matrix": payload})


@app.command
def run(
    config_file: Path,
    *,
    workspace: Path | None = None,
    target: list[str] | None = None,
    all_hosts: bool = False,
    workers: int | None = None,
    event: typ.Annotated[str | None, Parameter(env_var="GITHUB_EVENT_NAME")] = None,
    ref: typ.Annotated[str | None, Parameter(env_var="GITHUB_REF")] = None,
    cache: bool = True,
) -> None:
    """Build, stage and publish the selected matrix jobs.

    Parameters
    ----------
    config_file:
        Path to the pipeline TOML configuration.
    workspace:
        Checkout root; defaults to ``GITHUB_WORKSPACE`` or the current
        directory.
    target:
        Run only these target triples. Without it, the jobs whose host OS
        matches this machine are run.
    all_hosts:
        Run every job regardless of its host OS.
    workers:
        Maximum number of jobs running at once.
    event:
        Triggering event name; when given, only pushes to the configured
        branch run the pipeline.
    ref:
        Triggering git ref, for example ``refs/heads/main``.
    cache:
        Restore and save the build cache.
    """
    config, jobs = _load(config_file, workspace)

    if event is not None and not should_trigger(config, event, ref or ""):
        notice(
            f"Skipping: '{event}' on '{ref}' does not match pushes to '{config.branch}'"
        )
        return

    host = None if (all_hosts or target) else HostOS.current()
    try:
        selected = select_jobs(jobs, targets=target or (), host=host)
    except ConfigError as exc:
        error(str(exc), title="Configuration Error")
        raise SystemExit(1) from exc
    if not selected:
        notice("No matrix jobs selected for this host")
        return

    runner = build_runner(config, use_cache=cache)
    result = run_pipeline(selected, runner, max_workers=workers or config.max_workers)
    _report(result)
    _export_outputs(result)
    if not result.succeeded:
        raise SystemExit(1)


@app.command
def stage(config_file: Path, target: str, *, workspace: Path | None = None) -> None:
    """Stage an already compiled binary for ``target``.

    Parameters
    ----------
    config_file:
        Path to the pipeline TOML configuration.
    target:
        Target triple whose binary should be renamed.
    workspace:
        Checkout root; defaults to ``GITHUB_WORKSPACE`` or the current
        directory.
    """
    config, jobs = _load(config_file, workspace)
    try:
        (job,) = select_jobs(jobs, targets=[target])
        artifact = stage_artifact(job, config)
    except ConfigError as exc:
        error(str(exc), title="Configuration Error")
        raise SystemExit(1) from exc
    except StagingFailure as exc:
        error(str(exc), title=exc.title)
        raise SystemExit(1) from exc

    print(artifact.local_path.as_posix())
    if (github_output := optional_env_path("GITHUB_OUTPUT")) is not None:
        write_github_output(
            github_output,
            {
                "artifact_name": artifact.name,
                "artifact_path": artifact.local_path,
            },
        )


def main() -> None:
    app()


if __name__ == "__main__":
    main()
