"""Public interface for the cross-compilation deployment pipeline."""

from .config import CacheSettings, ConflictPolicy, PipelineConfig, PublishSettings, load_config
from .errors import (
    CompilationFailure,
    ConfigError,
    JobFailure,
    PipelineError,
    PublishFailure,
    StagingFailure,
    ToolchainAcquisitionFailure,
)
from .matrix import HostOS, JobSpec, MatrixRow, expand_matrix, matrix_payload, select_jobs
from .pipeline import PipelineResult, run_pipeline, should_trigger
from .publisher import DirectoryPublisher, GitHubReleasePublisher, make_publisher
from .runner import JobResult, JobRunner, JobState
from .staging import ArtifactRef, artifact_name, stage_artifact

__all__ = [
    "ArtifactRef",
    "CacheSettings",
    "CompilationFailure",
    "ConfigError",
    "ConflictPolicy",
    "DirectoryPublisher",
    "GitHubReleasePublisher",
    "HostOS",
    "JobFailure",
    "JobResult",
    "JobRunner",
    "JobSpec",
    "JobState",
    "MatrixRow",
    "PipelineConfig",
    "PipelineError",
    "PipelineResult",
    "PublishFailure",
    "PublishSettings",
    "StagingFailure",
    "ToolchainAcquisitionFailure",
    "artifact_name",
    "expand_matrix",
    "load_config",
    "make_publisher",
    "matrix_payload",
    "run_pipeline",
    "select_jobs",
    "should_trigger",
    "stage_artifact",
]
