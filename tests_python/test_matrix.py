"""Tests for matrix expansion and job selection."""

from __future__ import annotations

import pytest

from crossdeploy.errors import ConfigError
from crossdeploy.matrix import (
    HostOS,
    JobSpec,
    MatrixRow,
    expand_matrix,
    matrix_payload,
    select_jobs,
)

ROWS = [
    MatrixRow("x86_64-unknown-linux-gnu", "ubuntu-latest", cross=False),
    MatrixRow("x86_64-unknown-linux-musl", "ubuntu-latest", cross=True),
    MatrixRow("aarch64-unknown-linux-musl", "ubuntu-latest", cross=True),
    MatrixRow("x86_64-apple-darwin", "macOS-latest", cross=False),
    MatrixRow("aarch64-apple-darwin", "macOS-latest", cross=False),
    MatrixRow("x86_64-pc-windows-msvc", "windows-latest", cross=False),
]


@pytest.mark.parametrize(
    ("label", "expected"),
    [
        ("ubuntu-latest", HostOS.LINUX),
        ("ubuntu-22.04", HostOS.LINUX),
        ("linux", HostOS.LINUX),
        ("macOS-latest", HostOS.MACOS),
        ("macos-14", HostOS.MACOS),
        ("darwin", HostOS.MACOS),
        ("windows-latest", HostOS.WINDOWS),
        ("Windows-2022", HostOS.WINDOWS),
    ],
)
def test_host_os_parses_runner_labels(label: str, expected: HostOS) -> None:
    """Runner labels should resolve to their operating system family."""
    assert HostOS.parse(label) is expected


def test_host_os_rejects_unknown_labels() -> None:
    """Unknown runner labels should surface a configuration error."""
    with pytest.raises(ConfigError, match="Unknown host OS"):
        HostOS.parse("solaris-11")


def test_expand_matrix_preserves_order_and_count() -> None:
    """Every row should become exactly one job, in declaration order."""
    jobs = expand_matrix(ROWS)

    assert [job.target_triple for job in jobs] == [row.target for row in ROWS]
    assert len(jobs) == len(ROWS), "expected one job per matrix row"


def test_expand_matrix_copies_cross_and_host() -> None:
    """Each job should inherit its row's emulation flag and host OS."""
    jobs = expand_matrix(ROWS)

    cross_jobs = {job.target_triple for job in jobs if job.use_cross}
    assert cross_jobs == {"x86_64-unknown-linux-musl", "aarch64-unknown-linux-musl"}
    assert jobs[3].host_os is HostOS.MACOS
    assert jobs[5].host_os.is_windows
    assert jobs[0].runs_on == "ubuntu-latest"


def test_expand_matrix_empty_rows_produce_no_jobs() -> None:
    """An empty matrix should expand to an empty job list."""
    assert expand_matrix([]) == []


def test_expand_matrix_rejects_blank_target() -> None:
    """A row without a target triple cannot become a job."""
    with pytest.raises(ConfigError, match="empty target triple"):
        expand_matrix([MatrixRow("  ", "ubuntu-latest")])


def test_select_jobs_filters_by_host() -> None:
    """Only jobs built on the requested host should be selected."""
    jobs = expand_matrix(ROWS)

    selected = select_jobs(jobs, host=HostOS.MACOS)

    assert [job.target_triple for job in selected] == [
        "x86_64-apple-darwin",
        "aarch64-apple-darwin",
    ]


def test_select_jobs_filters_by_target() -> None:
    """Explicit targets should be selected regardless of host."""
    jobs = expand_matrix(ROWS)

    selected = select_jobs(jobs, targets=["x86_64-pc-windows-msvc"])

    assert [job.target_triple for job in selected] == ["x86_64-pc-windows-msvc"]


def test_select_jobs_rejects_unknown_targets() -> None:
    """Requesting a target missing from the matrix is a configuration error."""
    jobs = expand_matrix(ROWS)

    with pytest.raises(ConfigError, match="riscv64gc-unknown-linux-gnu"):
        select_jobs(jobs, targets=["riscv64gc-unknown-linux-gnu"])


def test_matrix_payload_renders_include_list() -> None:
    """The payload should be usable as a GitHub ``strategy.matrix``."""
    payload = matrix_payload(expand_matrix(ROWS[:2]))

    assert payload == {
        "include": [
            {"target": "x86_64-unknown-linux-gnu", "os": "ubuntu-latest", "cross": False},
            {"target": "x86_64-unknown-linux-musl", "os": "ubuntu-latest", "cross": True},
        ]
    }


def test_runner_label_falls_back_to_host_default() -> None:
    """Jobs built without a runner label should use the host's default."""
    job = JobSpec("x86_64-apple-darwin", HostOS.MACOS)

    assert job.runner_label == "macos-latest"
