"""Tests for Azure DevOps API client behavior with mocked HTTP."""

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from azdo_mcp.ado_client import AdoClient
from azdo_mcp.config import Config
from azdo_mcp.errors import (
    ApiConnectionError,
    ApiError,
    ApiTimeoutError,
    InvalidRequestError,
    NotFoundError,
    UnauthorizedError,
)
from azdo_mcp.models import ChangeType


def _build_client() -> AdoClient:
    config = Config(
        organization_url="https://dev.azure.com/org",
        pat="pat-token",
        default_project="proj",
    )
    return AdoClient(config=config)


def _response(status_code: int, payload=None, text: str = "", headers: dict | None = None):
    response = Mock()
    response.status_code = status_code
    response.text = text
    response.headers = headers or {}
    response.json.return_value = payload if payload is not None else {}
    return response


def _repo_item(repo_id: str, name: str) -> dict:
    return {
        "id": repo_id,
        "name": name,
        "project": {"id": "proj-id", "name": "proj"},
        "defaultBranch": "refs/heads/main",
        "webUrl": f"https://dev.azure.com/org/proj/_git/{name}",
    }


def test_client_uses_basic_auth_with_empty_username():
    """Verify the PAT is sent through HTTP basic auth with an empty username."""
    client = _build_client()

    assert client._session.auth.username == ""
    assert client._session.auth.password == "pat-token"
    assert client._session.headers["Accept"] == "application/json"


def test_list_repositories_sends_api_version_and_timeout():
    """Verify list_repositories builds the project URL and adds api-version and timeout."""
    client = _build_client()
    client._session.request = Mock(
        return_value=_response(200, {"value": [_repo_item("1", "Repo-One"), _repo_item("2", "Repo-Two")]})
    )

    repositories = client.list_repositories("proj")

    assert [repo.name for repo in repositories] == ["Repo-One", "Repo-Two"]
    assert repositories[0].projectName == "proj"
    args, kwargs = client._session.request.call_args
    assert args == ("GET", "https://dev.azure.com/org/proj/_apis/git/repositories")
    assert kwargs["params"]["api-version"] == "7.1"
    assert kwargs["timeout"] == 30


def test_list_repositories_without_project_uses_organization_scope():
    """Verify an absent project lists repositories across the organization."""
    client = _build_client()
    client._session.request = Mock(return_value=_response(200, {"value": []}))

    client.list_repositories(None)

    args, _ = client._session.request.call_args
    assert args[1] == "https://dev.azure.com/org/_apis/git/repositories"


def test_list_values_treats_null_value_as_empty():
    """Verify a listing payload with a null value array yields no items."""
    client = _build_client()
    client._session.request = Mock(return_value=_response(200, {"count": 0, "value": None}))

    assert client.list_repositories("proj") == []


@pytest.mark.parametrize(
    "status_code, error_type",
    [
        (404, NotFoundError),
        (401, UnauthorizedError),
        (403, UnauthorizedError),
        (400, InvalidRequestError),
    ],
)
def test_http_errors_map_to_typed_errors(status_code, error_type):
    """Verify HTTP failure statuses raise the matching ApiError subclass."""
    client = _build_client()
    client._session.request = Mock(return_value=_response(status_code, {"message": "nope"}))

    with pytest.raises(error_type) as exc_info:
        client.get_repository("proj", "missing")

    assert exc_info.value.status_code == status_code
    assert "nope" in str(exc_info.value)


def test_server_error_raises_plain_api_error():
    """Verify other failure statuses raise a plain ApiError that is not a lookup error."""
    client = _build_client()
    client._session.request = Mock(return_value=_response(500, text="boom"))

    with pytest.raises(ApiError) as exc_info:
        client.get_repository("proj", "repo")

    assert not isinstance(exc_info.value, (NotFoundError, InvalidRequestError))
    assert exc_info.value.status_code == 500


def test_timeout_raises_api_timeout_error_without_retry():
    """Verify a request timeout is raised once as ApiTimeoutError."""
    client = _build_client()
    client._session.request = Mock(side_effect=requests.Timeout("slow"))

    with pytest.raises(ApiTimeoutError):
        client.get_pipeline("proj", 7)

    assert client._session.request.call_count == 1


def test_connection_error_raises_api_connection_error():
    """Verify connection failures are raised as ApiConnectionError."""
    client = _build_client()
    client._session.request = Mock(side_effect=requests.ConnectionError("down"))

    with pytest.raises(ApiConnectionError):
        client.list_repositories("proj")


def test_invalid_json_raises_api_error():
    """Verify a non-JSON success body raises ApiError."""
    client = _build_client()
    response = _response(203, text="<html>sign in</html>")
    response.json.side_effect = ValueError("no json")
    client._session.request = Mock(return_value=response)

    with pytest.raises(ApiError):
        client.list_repositories("proj")


def test_list_pull_requests_without_repository_uses_project_endpoint():
    """Verify listing without a repository queries the project-wide pull request endpoint."""
    client = _build_client()
    client._session.request = Mock(
        return_value=_response(200, {"value": [{"pullRequestId": 5, "title": "Fix", "status": "active"}]})
    )

    pull_requests = client.list_pull_requests("proj", status="completed", creator_id="me", top=3, skip=1)

    assert pull_requests[0].pullRequestId == 5
    args, kwargs = client._session.request.call_args
    assert args[1] == "https://dev.azure.com/org/proj/_apis/git/pullrequests"
    assert kwargs["params"]["searchCriteria.status"] == "completed"
    assert kwargs["params"]["searchCriteria.creatorId"] == "me"
    assert kwargs["params"]["$top"] == 3
    assert kwargs["params"]["$skip"] == 1
    assert "searchCriteria.reviewerId" not in kwargs["params"]


def test_list_pull_request_changes_uses_latest_iteration():
    """Verify changes are read from the highest-numbered iteration."""
    client = _build_client()
    iterations = _response(200, {"value": [{"id": 1}, {"id": 3}, {"id": 2}]})
    changes = _response(
        200,
        {
            "changeEntries": [
                {"item": {"path": "/a.py"}, "changeType": "add"},
                {"item": {"path": "/b.py"}, "changeType": "edit, rename"},
            ]
        },
    )
    client._session.request = Mock(side_effect=[iterations, changes])

    entries = client.list_pull_request_changes("proj", "repo-id", 9)

    assert [(entry.path, entry.changeType) for entry in entries] == [
        ("/a.py", ChangeType.ADD),
        ("/b.py", ChangeType.EDIT),
    ]
    args, kwargs = client._session.request.call_args
    assert args[1].endswith("/pullRequests/9/iterations/3/changes")
    assert kwargs["params"]["$top"] == 100


def test_list_pull_request_changes_without_iterations_returns_empty():
    """Verify a pull request with no iterations yields no changes and no second call."""
    client = _build_client()
    client._session.request = Mock(return_value=_response(200, {"value": []}))

    assert client.list_pull_request_changes("proj", "repo-id", 9) == []
    assert client._session.request.call_count == 1


def test_get_work_item_with_relations_expands_relations():
    """Verify include_relations requests the relations expansion."""
    client = _build_client()
    client._session.request = Mock(
        return_value=_response(200, {"id": 12, "fields": {"System.Title": "Task"}, "relations": []})
    )

    work_item = client.get_work_item(12, project="proj", include_relations=True)

    assert work_item.id == 12
    _, kwargs = client._session.request.call_args
    assert kwargs["params"]["$expand"] == "relations"


def test_get_work_items_batches_ids():
    """Verify batch fetches split ids into groups of at most 200."""
    client = _build_client()
    client._session.request = Mock(
        side_effect=[
            _response(200, {"value": [{"id": 1}]}),
            _response(200, {"value": [{"id": 201}]}),
        ]
    )

    work_items = client.get_work_items(range(1, 251), project="proj")

    assert [item.id for item in work_items] == [1, 201]
    first_ids = client._session.request.call_args_list[0].kwargs["params"]["ids"].split(",")
    second_ids = client._session.request.call_args_list[1].kwargs["params"]["ids"].split(",")
    assert len(first_ids) == 200
    assert len(second_ids) == 50


def test_create_work_item_sends_json_patch_with_timeout():
    """Verify creation posts a JSON-patch document with the per-call timeout."""
    client = _build_client()
    client._session.request = Mock(return_value=_response(200, {"id": 99, "fields": {"System.Title": "New"}}))
    patch_doc = [{"op": "add", "path": "/fields/System.Title", "value": "New"}]

    work_item = client.create_work_item("proj", "User Story", patch_doc, timeout=15)

    assert work_item.id == 99
    args, kwargs = client._session.request.call_args
    assert args == ("POST", "https://dev.azure.com/org/proj/_apis/wit/workitems/$User%20Story")
    assert kwargs["json"] == patch_doc
    assert kwargs["headers"] == {"Content-Type": "application/json-patch+json"}
    assert kwargs["timeout"] == 15


def test_get_file_content_returns_raw_text():
    """Verify file content is returned as text with the requested path."""
    client = _build_client()
    client._session.request = Mock(return_value=_response(200, {"path": "/azure-pipelines.yml", "content": "trigger: none"}))

    content = client.get_file_content("proj", "repo-id", "/azure-pipelines.yml")

    assert content == "trigger: none"
    _, kwargs = client._session.request.call_args
    assert kwargs["params"]["path"] == "/azure-pipelines.yml"
    assert kwargs["params"]["includeContent"] == "true"


def test_create_or_update_wiki_page_sends_if_match_for_updates():
    """Verify updating a page sends a PUT with the page version as If-Match."""
    client = _build_client()
    client._session.request = Mock(
        return_value=_response(200, {"path": "/Home", "id": 4}, headers={"ETag": '"v2"'})
    )

    page = client.create_or_update_wiki_page("proj", "wiki-id", "/Home", "# Hi", version='"v1"')

    assert page.eTag == '"v2"'
    args, kwargs = client._session.request.call_args
    assert args[0] == "PUT"
    assert kwargs["headers"] == {"If-Match": '"v1"'}
    assert kwargs["json"] == {"content": "# Hi"}
    assert kwargs["params"]["path"] == "/Home"


def test_search_code_posts_to_search_host():
    """Verify code search targets the search host with the organization and project."""
    client = _build_client()
    client._session.request = Mock(
        return_value=_response(
            200,
            {
                "count": 1,
                "results": [
                    {
                        "fileName": "app.py",
                        "path": "/src/app.py",
                        "repository": {"name": "Repo"},
                        "versions": [{"branchName": "main"}],
                        "matches": {"content": [{"lineNumber": 3, "line": "import os"}]},
                    }
                ],
            },
        )
    )

    total, results = client.search_code("proj", {"searchText": "os"})

    assert total == 1
    assert results[0].branch == "main"
    assert results[0].matches[0].lineNumber == 3
    args, _ = client._session.request.call_args
    assert args == ("POST", "https://almsearch.dev.azure.com/org/proj/_apis/search/codesearchresults")
