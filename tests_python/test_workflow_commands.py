"""Tests for workflow command annotations and GitHub output files."""

from __future__ import annotations

from pathlib import Path

import pytest

from crossdeploy.github_output import escape_output_value, write_github_output
from crossdeploy.workflow_commands import error, group, notice, progress, warning
from pipeline_test_helpers import decode_output_file


def test_error_annotation_goes_to_stderr(capsys: pytest.CaptureFixture[str]) -> None:
    """Errors should be emitted as ``::error::`` lines on stderr."""
    error("Binary not found", title="Staging Failure")

    captured = capsys.readouterr()
    assert captured.err == "::error title=Staging Failure::Binary not found\n"
    assert captured.out == ""


def test_annotations_escape_newlines(capsys: pytest.CaptureFixture[str]) -> None:
    """Multi-line messages must stay on one workflow command line."""
    warning("first\nsecond 100%", title="a:b,c")

    assert capsys.readouterr().err == (
        "::warning title=a%3Ab%2Cc::first%0Asecond 100%25\n"
    )


def test_notice_without_title(capsys: pytest.CaptureFixture[str]) -> None:
    """Titles are optional."""
    notice("nothing to do")

    assert capsys.readouterr().err == "::notice::nothing to do\n"


def test_progress_prefixes_target(capsys: pytest.CaptureFixture[str]) -> None:
    """Progress lines should name the job they belong to."""
    progress("x86_64-apple-darwin", "compiling")

    assert capsys.readouterr().out == "[x86_64-apple-darwin] compiling\n"


def test_group_wraps_output(capsys: pytest.CaptureFixture[str]) -> None:
    """Groups should be closed even when the block raises."""
    with pytest.raises(ValueError, match="boom"), group("build"):
        print("inside")
        message = "boom"
        raise ValueError(message)

    assert capsys.readouterr().out == "::group::build\ninside\n::endgroup::\n"


def test_escape_output_value_handles_paths() -> None:
    """Paths should be rendered in POSIX form."""
    assert escape_output_value(Path("dist") / "a%b") == "dist/a%25b"


def test_write_github_output_round_trips(tmp_path: Path) -> None:
    """Scalar and multi-line values should decode to their originals."""
    output = tmp_path / "out" / "github_output"

    write_github_output(
        output,
        {
            "artifact_name": "fj-host-x86_64-unknown-linux-gnu",
            "note": "line one\nline two",
            "artifacts": ["a", "b"],
        },
    )
    write_github_output(output, {"appended": "yes"})

    assert decode_output_file(output) == {
        "artifact_name": "fj-host-x86_64-unknown-linux-gnu",
        "note": "line one\nline two",
        "artifacts": "a\nb",
        "appended": "yes",
    }
