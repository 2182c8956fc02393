"""Tests for command-line argument parsing."""

import sys
from pathlib import Path

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from azdo_mcp.cli import parse_args


def test_parse_args_with_valid_arguments(monkeypatch):
    """Verify CLI parsing reads every option when all are provided."""
    monkeypatch.setattr(
        sys,
        "argv",
        [
            "azdo-mcp-server",
            "--org-url",
            "https://dev.azure.com/my-org",
            "--project",
            "my-project",
            "--repository",
            "my-repo",
            "--api-version",
            "7.0",
            "--timeout",
            "45",
            "--log-level",
            "debug",
        ],
    )

    args = parse_args()

    assert args.org_url == "https://dev.azure.com/my-org"
    assert args.project == "my-project"
    assert args.repository == "my-repo"
    assert args.api_version == "7.0"
    assert args.timeout == 45
    assert args.log_level == "DEBUG"


def test_parse_args_without_options_defers_to_environment():
    """Verify omitted options are None so environment variables can apply."""
    args = parse_args([])

    assert args.org_url is None
    assert args.project is None
    assert args.repository is None
    assert args.api_version is None
    assert args.timeout is None
    assert args.log_level == "INFO"


@pytest.mark.parametrize("value", ["0", "-1", "soon"])
def test_parse_args_with_invalid_timeout_fails_validation(value):
    """Verify CLI parsing exits with an error when --timeout is not a positive integer."""
    with pytest.raises(SystemExit):
        parse_args(["--timeout", value])


def test_parse_args_with_unknown_log_level_fails_validation():
    """Verify CLI parsing rejects unsupported log levels."""
    with pytest.raises(SystemExit):
        parse_args(["--log-level", "chatty"])
