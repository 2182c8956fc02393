"""Azure DevOps REST API client for the MCP tools."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple
from urllib.parse import quote

import requests
from requests.auth import HTTPBasicAuth

from . import payloads
from .config import Config
from .errors import (
    ApiConnectionError,
    ApiError,
    ApiTimeoutError,
    InvalidRequestError,
    NotFoundError,
    UnauthorizedError,
)
from .models import (
    ChangeEntry,
    CodeSearchResult,
    CommentThread,
    Commit,
    GitBranch,
    Pipeline,
    PipelineRun,
    PullRequest,
    Repository,
    Reviewer,
    Wiki,
    WikiPage,
    WorkItem,
    WorkItemRef,
)

logger = logging.getLogger(__name__)

JsonPatch = List[Dict[str, Any]]

_JSON_PATCH_CONTENT_TYPE = "application/json-patch+json"


class AdoClient:
    """Small, typed client for the Azure DevOps Git, Work Item, Pipeline, Wiki and Search APIs.

    Every call is bounded by a timeout and is attempted exactly once. Failures
    are raised as ``ApiError`` subclasses so callers can tell a missing entity
    apart from a rejected credential or a timeout.
    """

    _SEARCH_HOST = "https://almsearch.dev.azure.com"
    _WORK_ITEM_BATCH_SIZE = 200

    def __init__(self, config: Config, session: Optional[requests.Session] = None) -> None:
        """Initialize an authenticated Azure DevOps API client.

        Args:
            config: Validated runtime configuration including organization URL and PAT.
            session: Optional pre-built session, mainly for tests.
        """
        self._config = config
        self._timeout_seconds = config.timeout_seconds
        self._base_url = config.organization_url.rstrip("/")

        self._session = session or requests.Session()
        self._session.auth = HTTPBasicAuth("", config.pat)
        self._session.headers.update({"Accept": "application/json"})

    @property
    def organization_url(self) -> str:
        return self._base_url

    def _build_url(self, path: str, project: Optional[str] = None) -> str:
        """Build a fully qualified API URL from a path below ``_apis``."""
        if project:
            return f"{self._base_url}/{quote(project, safe='')}/_apis/{path.lstrip('/')}"
        return f"{self._base_url}/_apis/{path.lstrip('/')}"

    def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> requests.Response:
        """Execute a single request and map failures onto typed errors.

        Raises:
            ApiTimeoutError: If the call exceeds its timeout.
            ApiConnectionError: If the host cannot be reached.
            NotFoundError, UnauthorizedError, InvalidRequestError, ApiError:
                For HTTP 404, 401/403, 400 and any other status >= 400.
        """
        query = dict(params or {})
        query.setdefault("api-version", self._config.api_version)
        effective_timeout = timeout if timeout is not None else self._timeout_seconds

        try:
            response = self._session.request(
                method,
                url,
                params=query,
                json=body,
                headers=headers,
                timeout=effective_timeout,
            )
        except requests.Timeout as exc:
            raise ApiTimeoutError(
                f"Azure DevOps request timed out after {effective_timeout}s: {method} {url}"
            ) from exc
        except requests.ConnectionError as exc:
            raise ApiConnectionError(f"Could not connect to Azure DevOps: {method} {url}") from exc
        except requests.RequestException as exc:
            raise ApiError(f"Azure DevOps request failed: {method} {url}") from exc

        status_code = response.status_code
        if status_code < 400:
            return response

        message = f"{method} {url} returned {status_code} - {self._error_message(response)}"
        if status_code == 404:
            raise NotFoundError(f"Azure DevOps entity not found: {message}", status_code)
        if status_code in (401, 403):
            raise UnauthorizedError(f"Azure DevOps request was not authorized: {message}", status_code)
        if status_code == 400:
            raise InvalidRequestError(f"Azure DevOps rejected the request: {message}", status_code)
        raise ApiError(f"Azure DevOps API request failed: {message}", status_code)

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            payload = response.json()
        except ValueError:
            return response.text
        if isinstance(payload, dict) and payload.get("message"):
            return str(payload["message"])
        return response.text

    def _request_json(
        self,
        method: str,
        path: str,
        project: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        url: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], requests.Response]:
        target = url or self._build_url(path, project)
        response = self._send(method, target, params=params, body=body, headers=headers, timeout=timeout)

        try:
            payload = response.json()
        except ValueError as exc:
            # A rejected PAT often yields a 203 sign-in page instead of a 401.
            raise ApiError(f"Azure DevOps API returned invalid JSON: {method} {target}") from exc

        if not isinstance(payload, dict):
            raise ApiError(f"Azure DevOps API returned unexpected payload shape: {method} {target}")

        return payload, response

    def _get_json(
        self,
        path: str,
        project: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload, _ = self._request_json("GET", path, project=project, params=params)
        return payload

    def _get_values(
        self,
        path: str,
        project: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        return list(self._get_json(path, project=project, params=params).get("value") or [])

    # Repositories

    def list_repositories(self, project: Optional[str] = None) -> List[Repository]:
        """List repositories in a project, or in the whole organization when ``project`` is None."""
        return [
            payloads.repository_from_payload(item)
            for item in self._get_values("git/repositories", project=project)
            if item.get("id")
        ]

    def get_repository(self, project: str, repository: str) -> Repository:
        """Get a repository by GUID (Azure DevOps also accepts the name here)."""
        payload = self._get_json(f"git/repositories/{quote(repository, safe='')}", project=project)
        return payloads.repository_from_payload(payload)

    def list_branches(self, project: str, repository_id: str) -> List[GitBranch]:
        items = self._get_values(
            f"git/repositories/{repository_id}/refs",
            project=project,
            params={"filter": "heads/"},
        )
        return [payloads.branch_from_payload(item) for item in items]

    # Pull requests

    def list_pull_requests(
        self,
        project: str,
        repository_id: Optional[str] = None,
        status: str = "active",
        creator_id: Optional[str] = None,
        reviewer_id: Optional[str] = None,
        top: int = 10,
        skip: int = 0,
    ) -> List[PullRequest]:
        """List pull requests for one repository, or across the project when no repository is given."""
        params: Dict[str, Any] = {
            "searchCriteria.status": status,
            "$top": top,
            "$skip": skip,
        }
        if creator_id:
            params["searchCriteria.creatorId"] = creator_id
        if reviewer_id:
            params["searchCriteria.reviewerId"] = reviewer_id

        path = f"git/repositories/{repository_id}/pullrequests" if repository_id else "git/pullrequests"
        return [payloads.pull_request_from_payload(item) for item in self._get_values(path, project, params)]

    def get_pull_request(self, project: str, repository_id: str, pull_request_id: int) -> PullRequest:
        payload = self._get_json(
            f"git/repositories/{repository_id}/pullRequests/{pull_request_id}",
            project=project,
        )
        return payloads.pull_request_from_payload(payload)

    def list_pull_request_reviewers(
        self, project: str, repository_id: str, pull_request_id: int
    ) -> List[Reviewer]:
        items = self._get_values(
            f"git/repositories/{repository_id}/pullRequests/{pull_request_id}/reviewers",
            project=project,
        )
        return [payloads.reviewer_from_payload(item) for item in items]

    def list_pull_request_commits(
        self, project: str, repository_id: str, pull_request_id: int
    ) -> List[Commit]:
        items = self._get_values(
            f"git/repositories/{repository_id}/pullRequests/{pull_request_id}/commits",
            project=project,
        )
        return [payloads.commit_from_payload(item) for item in items]

    def list_pull_request_work_items(
        self, project: str, repository_id: str, pull_request_id: int
    ) -> List[WorkItemRef]:
        items = self._get_values(
            f"git/repositories/{repository_id}/pullRequests/{pull_request_id}/workitems",
            project=project,
        )
        return [payloads.work_item_ref_from_payload(item) for item in items]

    def list_pull_request_threads(
        self, project: str, repository_id: str, pull_request_id: int
    ) -> List[CommentThread]:
        items = self._get_values(
            f"git/repositories/{repository_id}/pullRequests/{pull_request_id}/threads",
            project=project,
        )
        return [payloads.thread_from_payload(item) for item in items]

    def list_pull_request_changes(
        self,
        project: str,
        repository_id: str,
        pull_request_id: int,
        top: int = 100,
        skip: int = 0,
    ) -> List[ChangeEntry]:
        """List file changes of the latest pull request iteration, in backend order."""
        iterations = self._get_values(
            f"git/repositories/{repository_id}/pullRequests/{pull_request_id}/iterations",
            project=project,
        )
        if not iterations:
            return []

        latest = max(int(iteration.get("id") or 0) for iteration in iterations)
        payload = self._get_json(
            f"git/repositories/{repository_id}/pullRequests/{pull_request_id}/iterations/{latest}/changes",
            project=project,
            params={"$top": top, "$skip": skip},
        )
        return payloads.change_entries_from_payload(payload)

    def create_pull_request(self, project: str, repository_id: str, body: Dict[str, Any]) -> PullRequest:
        payload, _ = self._request_json(
            "POST",
            f"git/repositories/{repository_id}/pullrequests",
            project=project,
            body=body,
        )
        return payloads.pull_request_from_payload(payload)

    def add_pull_request_reviewer(
        self, project: str, repository_id: str, pull_request_id: int, reviewer_id: str
    ) -> Reviewer:
        payload, _ = self._request_json(
            "PUT",
            f"git/repositories/{repository_id}/pullRequests/{pull_request_id}/reviewers/{quote(reviewer_id, safe='')}",
            project=project,
            body={"vote": 0},
        )
        return payloads.reviewer_from_payload(payload)

    # Work items

    def get_work_item(
        self,
        work_item_id: int,
        project: Optional[str] = None,
        include_relations: bool = False,
        timeout: Optional[float] = None,
    ) -> WorkItem:
        params = {"$expand": "relations"} if include_relations else None
        payload, _ = self._request_json(
            "GET",
            f"wit/workitems/{work_item_id}",
            project=project,
            params=params,
            timeout=timeout,
        )
        return payloads.work_item_from_payload(payload)

    def get_work_items(self, work_item_ids: Iterable[int], project: Optional[str] = None) -> List[WorkItem]:
        """Batch-fetch work items by id, preserving the order of ``work_item_ids``."""
        ids = list(work_item_ids)
        work_items: List[WorkItem] = []
        for offset in range(0, len(ids), self._WORK_ITEM_BATCH_SIZE):
            batch = ids[offset:offset + self._WORK_ITEM_BATCH_SIZE]
            items = self._get_values(
                "wit/workitems",
                project=project,
                params={"ids": ",".join(str(work_item_id) for work_item_id in batch)},
            )
            work_items.extend(payloads.work_item_from_payload(item) for item in items)
        return work_items

    def create_work_item(
        self,
        project: str,
        work_item_type: str,
        patch: JsonPatch,
        timeout: Optional[float] = None,
    ) -> WorkItem:
        payload, _ = self._request_json(
            "POST",
            f"wit/workitems/${quote(work_item_type, safe='')}",
            project=project,
            body=patch,
            headers={"Content-Type": _JSON_PATCH_CONTENT_TYPE},
            timeout=timeout,
        )
        return payloads.work_item_from_payload(payload)

    def update_work_item(
        self,
        work_item_id: int,
        patch: JsonPatch,
        project: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> WorkItem:
        payload, _ = self._request_json(
            "PATCH",
            f"wit/workitems/{work_item_id}",
            project=project,
            body=patch,
            headers={"Content-Type": _JSON_PATCH_CONTENT_TYPE},
            timeout=timeout,
        )
        return payloads.work_item_from_payload(payload)

    # Pipelines

    def get_pipeline(self, project: str, pipeline_id: int) -> Pipeline:
        return payloads.pipeline_from_payload(self._get_json(f"pipelines/{pipeline_id}", project=project))

    def list_pipeline_runs(self, project: str, pipeline_id: int) -> List[PipelineRun]:
        """List runs of a pipeline, most recent first as returned by Azure DevOps."""
        items = self._get_values(f"pipelines/{pipeline_id}/runs", project=project)
        return [payloads.pipeline_run_from_payload(item) for item in items]

    def run_pipeline(self, project: str, pipeline_id: int, body: Dict[str, Any]) -> PipelineRun:
        payload, _ = self._request_json("POST", f"pipelines/{pipeline_id}/runs", project=project, body=body)
        return payloads.pipeline_run_from_payload(payload)

    def get_file_content(
        self,
        project: str,
        repository_id: str,
        path: str,
        version: Optional[str] = None,
    ) -> str:
        """Return the raw text of a repository file."""
        params: Dict[str, Any] = {"path": path, "includeContent": "true"}
        if version:
            params["versionDescriptor.version"] = version
            params["versionDescriptor.versionType"] = "branch"
        payload = self._get_json(f"git/repositories/{repository_id}/items", project=project, params=params)
        return str(payload.get("content") or "")

    # Wikis

    def list_wikis(self, project: str) -> List[Wiki]:
        return [payloads.wiki_from_payload(item) for item in self._get_values("wiki/wikis", project=project)]

    def get_wiki(self, project: str, wiki_identifier: str) -> Wiki:
        payload = self._get_json(f"wiki/wikis/{quote(wiki_identifier, safe='')}", project=project)
        return payloads.wiki_from_payload(payload)

    def create_wiki(self, project: str, body: Dict[str, Any]) -> Wiki:
        payload, _ = self._request_json("POST", "wiki/wikis", project=project, body=body)
        return payloads.wiki_from_payload(payload)

    def get_wiki_page(self, project: str, wiki_id: str, path: str) -> WikiPage:
        payload, response = self._request_json(
            "GET",
            f"wiki/wikis/{quote(wiki_id, safe='')}/pages",
            project=project,
            params={"path": path, "includeContent": "true"},
        )
        return payloads.wiki_page_from_payload(payload, etag=response.headers.get("ETag"))

    def create_or_update_wiki_page(
        self,
        project: str,
        wiki_id: str,
        path: str,
        content: str,
        version: Optional[str] = None,
    ) -> WikiPage:
        """Create a wiki page, or update it when ``version`` (the page ETag) is given."""
        headers = {"If-Match": version} if version else None
        payload, response = self._request_json(
            "PUT",
            f"wiki/wikis/{quote(wiki_id, safe='')}/pages",
            project=project,
            params={"path": path},
            body={"content": content},
            headers=headers,
        )
        return payloads.wiki_page_from_payload(payload, etag=response.headers.get("ETag"))

    # Code search

    def search_code(self, project: Optional[str], body: Dict[str, Any]) -> Tuple[int, List[CodeSearchResult]]:
        """Run a code search and return ``(total_count, results)``."""
        scope = f"/{quote(project, safe='')}" if project else ""
        url = f"{self._SEARCH_HOST}/{self._config.organization}{scope}/_apis/search/codesearchresults"
        payload, _ = self._request_json("POST", "", body=body, url=url)
        results = [payloads.code_search_result_from_payload(item) for item in payload.get("results") or []]
        return int(payload.get("count") or 0), results
