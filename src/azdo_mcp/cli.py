"""Command-line argument parsing for the Azure DevOps MCP server."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


def _positive_int(value: str) -> int:
    """Parse and validate a positive integer CLI value.

    Args:
        value: Raw command-line argument value.

    Returns:
        The validated positive integer.

    Raises:
        argparse.ArgumentTypeError: If value is not a positive integer.
    """
    try:
        parsed = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError("must be an integer") from exc

    if parsed <= 0:
        raise argparse.ArgumentTypeError("must be greater than 0")

    return parsed


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments for the MCP server.

    Every option is optional; anything omitted falls back to the matching
    ``AZURE_DEVOPS_*`` environment variable. The PAT is only read from the
    environment so it never appears in a process listing.
    """
    parser = argparse.ArgumentParser(
        prog="azdo-mcp-server",
        description=(
            "Model Context Protocol server exposing Azure DevOps repositories, "
            "pull requests, work items, pipelines and wikis over stdio."
        ),
    )

    parser.add_argument(
        "--org-url",
        help="Azure DevOps organization URL or name (default: $AZURE_DEVOPS_ORG_URL).",
    )
    parser.add_argument(
        "--project",
        help="Default project used when a tool call names none (default: $AZURE_DEVOPS_DEFAULT_PROJECT).",
    )
    parser.add_argument(
        "--repository",
        help="Default repository name or ID (default: $AZURE_DEVOPS_DEFAULT_REPOSITORY).",
    )
    parser.add_argument(
        "--api-version",
        help="Azure DevOps REST API version (default: $AZURE_DEVOPS_API_VERSION or 7.1).",
    )
    parser.add_argument(
        "--timeout",
        type=_positive_int,
        default=None,
        help="Per-request timeout in seconds (default: $AZURE_DEVOPS_TIMEOUT or 30).",
    )
    parser.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default="INFO",
        help="Logging level for messages written to stderr (default: INFO).",
    )

    return parser.parse_args(argv)
