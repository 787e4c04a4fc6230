"""Exception hierarchy for the deployment pipeline."""

from __future__ import annotations

__all__ = [
    "CompilationFailure",
    "ConfigError",
    "JobFailure",
    "PipelineError",
    "PublishFailure",
    "StagingFailure",
    "ToolchainAcquisitionFailure",
]


class PipelineError(RuntimeError):
    """Raised when the pipeline cannot continue."""


class ConfigError(PipelineError):
    """Raised when the pipeline configuration is malformed."""


class JobFailure(PipelineError):
    """Raised when a single matrix job fails.

    Parameters
    ----------
    target : str
        Target triple of the job that failed.
    message : str
        Human readable description of the failure.
    """

    title = "Job Failure"

    def __init__(self, target: str, message: str) -> None:
        super().__init__(message)
        self.target = target


class ToolchainAcquisitionFailure(JobFailure):
    """Raised when the toolchain for a target cannot be installed."""

    title = "Toolchain Failure"


class CompilationFailure(JobFailure):
    """Raised when the compiler exits unsuccessfully."""

    title = "Compilation Failure"

    def __init__(
        self,
        target: str,
        message: str,
        *,
        exit_code: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(target, message)
        self.exit_code = exit_code
        self.output = output


class StagingFailure(JobFailure):
    """Raised when the compiled binary cannot be staged."""

    title = "Staging Failure"


class PublishFailure(JobFailure):
    """Raised when a staged artifact cannot be published."""

    title = "Publish Failure"
