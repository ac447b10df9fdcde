"""MCP server setup for the OpenAPI tool adapter."""

from __future__ import annotations

import logging
from typing import Annotated, Any, Callable, List

import httpx
from fastmcp import FastMCP
from fastmcp.tools import Tool, ToolResult
from pydantic import Field
from pydantic.json_schema import SkipJsonSchema
from starlette.requests import Request
from starlette.responses import JSONResponse

from .config import Settings
from .executors import RestExecutor, RetryPolicy
from .models import ToolSpec
from .openapi import OpenAPILoader
from .tool_registry import ToolRegistry

logger = logging.getLogger(__name__)


class OperationTool(Tool):
    """A FastMCP tool backed by one API operation."""

    handler: Annotated[SkipJsonSchema[Callable[..., Any]], Field(exclude=True)]

    @classmethod
    def from_spec(cls, spec: ToolSpec) -> "OperationTool":
        return cls(
            name=spec.name,
            title=spec.title,
            description=spec.description,
            parameters=spec.input_schema,
            handler=spec.call_handler,
        )

    async def run(self, arguments: dict[str, Any]) -> ToolResult:
        result = await self.handler(arguments)
        return ToolResult(content=result.text, is_error=result.is_error)


async def build_server(
    settings: Settings, http_client: httpx.AsyncClient
) -> tuple[FastMCP, object | None]:
    """Load the API document and build the MCP server around it.

    The caller owns `http_client` and closes it once the server stops.
    """
    loader = OpenAPILoader(timeout_seconds=settings.api_doc_timeout_seconds)
    document = await loader.load(settings.api_doc_location)
    logger.info("Loaded API document: %s %s", document.title, document.version)

    executor = RestExecutor(
        http_client,
        RetryPolicy(
            max_retries=settings.api_max_retries,
            retry_delay_ms=settings.api_retry_delay_ms,
            read_timeout_ms=settings.api_read_timeout_ms,
        ),
        authorization=settings.api_authorization,
    )
    registry = ToolRegistry(
        executor,
        optimize_schema=settings.optimize_schema,
        server_index=settings.api_server_index,
        host_url=settings.api_host_url,
    )
    tools = registry.assemble(document)
    if not tools:
        logger.warning(
            "No tool specifications found for API document: %s", settings.api_doc_location
        )

    mcp = FastMCP(
        settings.mcp_server_name,
        instructions=_instructions(document.title),
        version=settings.mcp_server_version,
        on_duplicate="replace",
    )
    register_tools(mcp, tools)
    _attach_healthcheck(mcp)
    app = _get_http_app(mcp, settings)
    return mcp, app


def register_tools(mcp: FastMCP, tools: List[ToolSpec]) -> None:
    for spec in tools:
        mcp.add_tool(OperationTool.from_spec(spec))
        logger.info("Registered tool: %s", spec.name)


def _attach_healthcheck(mcp: FastMCP) -> None:
    @mcp.custom_route("/health", methods=["GET"])
    async def healthcheck(_request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok"})


def _instructions(title: str) -> str:
    return (
        f"Tools generated from the {title or 'REST'} API description. "
        "Each tool calls one API operation and returns the raw response body."
    )


def _get_http_app(mcp: FastMCP, settings: Settings):  # type: ignore[no-untyped-def]
    transport = settings.mcp_transport.lower()
    if transport == "http":
        app = mcp.http_app(
            path=settings.mcp_path,
            transport="http",
            stateless_http=True,
            json_response=True,
        )
    elif transport in {"streamable-http", "streamablehttp"}:
        app = mcp.http_app(
            path=settings.mcp_path,
            transport="streamable-http",
            stateless_http=True,
            json_response=True,
        )
    elif transport == "sse":
        app = mcp.http_app(path=settings.mcp_path, transport="sse")
    else:
        return None
    _attach_cors(app)
    return app


def _attach_cors(app) -> None:  # type: ignore[no-untyped-def]
    from starlette.middleware.cors import CORSMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
