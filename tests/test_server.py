"""Tests for the MCP server boundary and tool response conversion."""

import asyncio
import json
import sys
from pathlib import Path
from unittest.mock import Mock

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from mcp.shared.memory import create_connected_server_and_client_session
from mcp.types import EmbeddedResource, TextContent

from azdo_mcp.ado_client import AdoClient
from azdo_mcp.config import Config
from azdo_mcp.models import Repository
from azdo_mcp.server import build_server, to_content
from azdo_mcp.tools import AzdoTools, ToolResource, ToolResponse


def test_to_content_text_only():
    """Verify a plain response becomes a single text block."""
    content = to_content(ToolResponse(text="# Report"))

    assert len(content) == 1
    assert isinstance(content[0], TextContent)
    assert content[0].text == "# Report"


def test_to_content_with_resource_embeds_json():
    """Verify a response resource is embedded as JSON text."""
    response = ToolResponse(
        text='Created wiki "Docs" (Project Wiki)',
        resource=ToolResource(uri="https://dev.azure.com/org/proj/_wiki/wikis/Docs", data={"id": "w1"}),
    )

    content = to_content(response)

    assert len(content) == 2
    assert isinstance(content[1], EmbeddedResource)
    assert content[1].resource.mimeType == "application/json"
    assert json.loads(content[1].resource.text) == {"id": "w1"}


def _build_tools() -> tuple[AzdoTools, Mock]:
    config = Config(organization_url="https://dev.azure.com/org", pat="pat-token", default_project="proj")
    client = Mock(spec=AdoClient)
    client.organization_url = "https://dev.azure.com/org"
    return AzdoTools(client, config), client


def _call_tool(tools: AzdoTools, name: str, arguments: dict):
    async def run():
        async with create_connected_server_and_client_session(build_server(tools)) as session:
            return await session.call_tool(name, arguments)

    return asyncio.run(run())


def test_call_tool_invalid_arguments_report_error_prefix():
    """Verify schema violations reach the tool layer and come back as an error payload."""
    tools, client = _build_tools()

    result = _call_tool(tools, "get_pull_request", {"pullRequestId": "abc"})

    assert result.isError
    assert result.content[0].text.startswith("Error: Invalid arguments")
    client.get_pull_request.assert_not_called()


def test_call_tool_failure_sets_is_error():
    """Verify a failing tool is reported to the client with isError set."""
    tools, client = _build_tools()
    client.get_work_item.side_effect = RuntimeError("boom")

    result = _call_tool(tools, "get_work_item", {"workItemId": 5})

    assert result.isError
    assert result.content[0].text == "Error: boom"


def test_call_tool_success_is_not_error():
    """Verify a successful tool call returns its report without isError."""
    tools, client = _build_tools()
    client.list_repositories.return_value = [Repository(id="id-a", name="Alpha", projectId="proj-id")]

    result = _call_tool(tools, "list_repositories", {})

    assert not result.isError
    assert "Alpha" in result.content[0].text
