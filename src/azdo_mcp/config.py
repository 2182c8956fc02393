"""Configuration parsing and validation for the Azure DevOps MCP server."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional
from urllib.parse import urlparse

from .errors import AuthenticationError, ConfigurationError

DEFAULT_API_VERSION = "7.1"
DEFAULT_TIMEOUT_SECONDS = 30
DEFAULT_LINK_TIMEOUT_SECONDS = 15


@dataclass(frozen=True)
class Config:
    """Validated runtime settings, read once at process start."""

    organization_url: str
    pat: str
    default_project: Optional[str] = None
    default_repository: Optional[str] = None
    api_version: str = DEFAULT_API_VERSION
    timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS
    link_timeout_seconds: int = DEFAULT_LINK_TIMEOUT_SECONDS

    @property
    def organization(self) -> str:
        """Organization name taken from the last path segment of the URL."""
        path = urlparse(self.organization_url).path.strip("/")
        if path:
            return path.split("/")[-1]
        # Legacy https://<org>.visualstudio.com URLs carry the name in the host.
        host = urlparse(self.organization_url).hostname or ""
        return host.split(".")[0]


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


def normalize_organization_url(value: str) -> str:
    """Expand a bare organization name and drop any trailing slash."""
    value = value.strip().rstrip("/")
    if not value.lower().startswith(("http://", "https://")):
        return f"https://dev.azure.com/{value}"
    return value


def _parse_timeout(raw: Optional[str], name: str) -> int:
    if raw is None:
        return DEFAULT_TIMEOUT_SECONDS
    try:
        parsed = int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"Invalid value for '{name}': expected an integer.") from exc
    if parsed <= 0:
        raise ConfigurationError(f"Invalid value for '{name}': expected an integer greater than 0.")
    return parsed


def load_config(
    organization_url: Optional[str] = None,
    default_project: Optional[str] = None,
    default_repository: Optional[str] = None,
    api_version: Optional[str] = None,
    timeout_seconds: Optional[int] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    """Build and validate application configuration.

    Explicit arguments (usually command-line flags) take precedence over the
    ``AZURE_DEVOPS_*`` environment variables.

    Args:
        organization_url: Organization URL or bare organization name.
        default_project: Project used when a tool call names none.
        default_repository: Repository used when a tool call names none.
        api_version: REST API version sent with every request.
        timeout_seconds: Per-request timeout in seconds.
        environ: Environment mapping; defaults to ``os.environ``.

    Returns:
        A validated ``Config`` instance.

    Raises:
        ConfigurationError: If the organization is missing or the timeout is invalid.
        AuthenticationError: If ``AZURE_DEVOPS_PAT`` is not configured.
    """
    env = os.environ if environ is None else environ

    org = _clean(organization_url) or _clean(env.get("AZURE_DEVOPS_ORG_URL"))
    if not org:
        raise ConfigurationError(
            "Missing Azure DevOps organization. "
            "Set 'AZURE_DEVOPS_ORG_URL' or pass --org-url."
        )

    pat = (env.get("AZURE_DEVOPS_PAT") or "").strip()
    if not pat:
        raise AuthenticationError(
            "Missing required Azure DevOps Personal Access Token. "
            "Set the 'AZURE_DEVOPS_PAT' environment variable before starting the server."
        )

    if timeout_seconds is None:
        timeout = _parse_timeout(_clean(env.get("AZURE_DEVOPS_TIMEOUT")), "AZURE_DEVOPS_TIMEOUT")
    elif timeout_seconds <= 0:
        raise ConfigurationError("Invalid value for 'timeout': expected an integer greater than 0.")
    else:
        timeout = timeout_seconds

    return Config(
        organization_url=normalize_organization_url(org),
        pat=pat,
        default_project=_clean(default_project) or _clean(env.get("AZURE_DEVOPS_DEFAULT_PROJECT")),
        default_repository=(
            _clean(default_repository) or _clean(env.get("AZURE_DEVOPS_DEFAULT_REPOSITORY"))
        ),
        api_version=(
            _clean(api_version) or _clean(env.get("AZURE_DEVOPS_API_VERSION")) or DEFAULT_API_VERSION
        ),
        timeout_seconds=timeout,
        link_timeout_seconds=min(DEFAULT_LINK_TIMEOUT_SECONDS, timeout),
    )
