"""MCP stdio server exposing the Azure DevOps tools."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Union

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import CallToolResult, EmbeddedResource, TextContent, TextResourceContents, Tool

from .tools import AzdoTools, ToolResponse

logger = logging.getLogger(__name__)

SERVER_NAME = "azdo-mcp-server"

Content = Union[TextContent, EmbeddedResource]


def to_content(response: ToolResponse) -> List[Content]:
    """Convert a tool response into MCP content blocks."""
    content: List[Content] = [TextContent(type="text", text=response.text)]
    if response.resource is not None:
        content.append(
            EmbeddedResource(
                type="resource",
                resource=TextResourceContents(
                    uri=response.resource.uri,
                    mimeType=response.resource.mime_type,
                    text=json.dumps(response.resource.data),
                ),
            )
        )
    return content


def build_server(tools: AzdoTools) -> Server:
    server = Server(SERVER_NAME)

    @server.list_tools()
    async def handle_list_tools() -> List[Tool]:
        return [
            Tool(name=spec.name, description=spec.description, inputSchema=spec.input_schema)
            for spec in tools.specs
        ]

    # Arguments are validated by AzdoTools.invoke.
    @server.call_tool(validate_input=False)
    async def handle_call_tool(name: str, arguments: Optional[Dict[str, Any]]) -> CallToolResult:
        response = await asyncio.to_thread(tools.invoke, name, arguments or {})
        return CallToolResult(content=to_content(response), isError=response.is_error)

    return server


async def serve(tools: AzdoTools) -> None:
    """Run the server over stdin/stdout until the client disconnects."""
    server = build_server(tools)
    logger.info("Starting MCP server", extra={"tools": len(tools.specs)})
    async with stdio_server() as (read_stream, write_stream):
        await server.run(read_stream, write_stream, server.create_initialization_options())
