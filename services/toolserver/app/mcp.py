from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, List

import mcp.types as types
from mcp.server.lowlevel import Server
from mcp.server.lowlevel.helper_types import ReadResourceContents
from mcp.shared.exceptions import McpError
from pydantic import AnyUrl

from libs.core.models import ToolInvocation, ToolResult
from libs.core.tool_registry import ToolNotFoundError
from libs.framework.tool_runtime import ToolGateway
from libs.tools.project_tools import read_project_config
from libs.tools.workspace import workspace_root as resolve_workspace_root

SERVER_NAME = "task-tool-gateway"
SERVER_VERSION = "1.0.0"
PROJECT_CONFIG_URI = "file://project_config.md"
MARKDOWN_MIME_TYPE = "text/markdown"


def to_call_tool_result(result: ToolResult) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=item.text) for item in result.content],
        isError=result.is_error,
    )


def create_mcp_server(
    gateway: ToolGateway, logger: Any, workspace_root: Path | None = None
) -> Server:
    server: Server = Server(SERVER_NAME, version=SERVER_VERSION)
    root = workspace_root or resolve_workspace_root()

    @server.list_tools()
    async def list_tools() -> List[types.Tool]:
        return [
            types.Tool(name=spec.name, description=spec.description, inputSchema=spec.input_schema)
            for spec in gateway.list_tools()
        ]

    async def call_tool(request: types.CallToolRequest) -> types.ServerResult:
        invocation = ToolInvocation(name=request.params.name, arguments=request.params.arguments)
        try:
            result = await gateway.dispatch(invocation)
        except ToolNotFoundError as exc:
            logger.error("mcp_unknown_tool", tool=exc.name)
            raise McpError(types.ErrorData(code=types.METHOD_NOT_FOUND, message=str(exc))) from exc
        return types.ServerResult(to_call_tool_result(result))

    @server.list_resources()
    async def list_resources() -> List[types.Resource]:
        return [
            types.Resource(
                uri=PROJECT_CONFIG_URI,
                name="Project config",
                description="Core project configuration",
                mimeType=MARKDOWN_MIME_TYPE,
            )
        ]

    @server.read_resource()
    async def read_resource(uri: AnyUrl) -> Iterable[ReadResourceContents]:
        logger.info("mcp_resource_read", uri=str(uri))
        if str(uri).rstrip("/") != PROJECT_CONFIG_URI:
            raise McpError(
                types.ErrorData(code=types.INVALID_PARAMS, message=f"Unknown resource: {uri}")
            )
        try:
            content = read_project_config(root)
        except (OSError, ValueError) as exc:
            logger.error("mcp_resource_unavailable", uri=str(uri), error=str(exc))
            raise McpError(
                types.ErrorData(
                    code=types.INTERNAL_ERROR, message="Could not read project config file"
                )
            ) from exc
        return [ReadResourceContents(content=content, mime_type=MARKDOWN_MIME_TYPE)]

    # Registered directly so the SDK's own input validation and error folding
    # stay out of the way of the gateway.
    server.request_handlers[types.CallToolRequest] = call_tool
    logger.info("mcp_server_created", tools=len(gateway.list_tools()))
    return server
