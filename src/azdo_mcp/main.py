"""Entry point for the Azure DevOps MCP server."""

from __future__ import annotations

import asyncio
import logging
import sys
from typing import Optional, Sequence

from .ado_client import AdoClient
from .cli import parse_args
from .config import load_config
from .errors import ApiError, AuthenticationError, ConfigurationError
from .server import serve
from .tools import AzdoTools

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_UNEXPECTED = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4


def configure_logging(level: str) -> None:
    # stdout carries the MCP protocol, so logs must go to stderr.
    logging.basicConfig(
        stream=sys.stderr,
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        force=True,
    )


def run_server(argv: Optional[Sequence[str]] = None) -> int:
    """Load configuration, build the tool set and serve until stdin closes.

    Returns:
        Process exit code. 0 for a clean shutdown, 2 for configuration errors,
        3 for authentication errors, 4 for Azure DevOps API errors and 1 for
        anything unexpected.
    """
    try:
        args = parse_args(argv)
        configure_logging(args.log_level)

        config = load_config(
            organization_url=args.org_url,
            default_project=args.project,
            default_repository=args.repository,
            api_version=args.api_version,
            timeout_seconds=args.timeout,
        )
        logger.info(
            "Loaded configuration",
            extra={
                "organization": config.organization,
                "default_project": config.default_project,
                "default_repository": config.default_repository,
            },
        )

        client = AdoClient(config=config)
        tools = AzdoTools(client, config)
        asyncio.run(serve(tools))
        return EXIT_OK
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_CONFIGURATION
    except AuthenticationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_AUTHENTICATION
    except ApiError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return EXIT_API
    except KeyboardInterrupt:
        return EXIT_OK
    except Exception as exc:
        logger.exception("Unexpected error")
        print(f"ERROR: Unexpected error: {exc}", file=sys.stderr)
        return EXIT_UNEXPECTED


def main(argv: Optional[Sequence[str]] = None) -> int:
    return run_server(argv)


if __name__ == "__main__":
    raise SystemExit(main())
