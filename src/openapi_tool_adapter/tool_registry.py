"""Tool registry: turns every API operation into an MCP tool spec."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlsplit

from .executors import RestExecutor
from .models import ApiDocument, ApiOperation, CallHandler, RequestShape, ToolCallResult, ToolSpec
from .translator import SchemaTranslationError, SchemaTranslator


logger = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(
        self,
        executor: RestExecutor,
        optimize_schema: bool = True,
        server_index: int = 0,
        host_url: Optional[str] = None,
        translator: Optional[SchemaTranslator] = None,
    ) -> None:
        self.executor = executor
        self.optimize_schema = optimize_schema
        self.server_index = server_index
        self.host_url = host_url
        self.translator = translator or SchemaTranslator()

    def assemble(self, document: ApiDocument) -> List[ToolSpec]:
        logger.info("Creating tool specifications for: %s", document.title or "API document")

        if not document.servers and not (self.host_url or "").strip():
            logger.warning("API document has no servers and no host override; no tools built")
            return []

        server_url = resolve_server_url(document.servers, self.server_index, self.host_url)
        logger.info("Resolved server URL: %s", server_url)

        tools: List[ToolSpec] = []
        for operation in document.operations:
            if not (operation.operation_id or "").strip():
                logger.warning(
                    "Skipping operation with missing operationId for API Path: %s, method: %s",
                    operation.path,
                    operation.method,
                )
                continue
            try:
                tools.append(self._build_tool(document, operation, server_url))
            except SchemaTranslationError as exc:
                logger.error(
                    "Error creating tool specification for API Path: %s, method: %s, error: %s",
                    operation.path,
                    operation.method,
                    exc,
                )
            except Exception:
                logger.exception(
                    "Unexpected error creating tool specification for API Path: %s, method: %s",
                    operation.path,
                    operation.method,
                )

        logger.info("Found %s tools", len(tools))
        return tools

    def _build_tool(
        self, document: ApiDocument, operation: ApiOperation, server_url: str
    ) -> ToolSpec:
        name = operation.operation_id or ""
        logger.info("Creating tool for operation: %s", name)
        schema, schema_json, shape = self.translator.build_input_schema(
            document, operation, self.optimize_schema
        )

        title = (operation.summary or "").strip() or (
            f"API call to {operation.method} {operation.path}"
        )
        description = (operation.description or "").strip() or title

        return ToolSpec(
            name=name,
            title=title,
            description=description,
            input_schema=schema,
            input_schema_json=schema_json,
            call_handler=self._call_handler(name, operation, server_url, shape),
            shape=shape,
        )

    def _call_handler(
        self, name: str, operation: ApiOperation, server_url: str, shape: RequestShape
    ) -> CallHandler:
        async def handler(arguments: Dict[str, Any]) -> ToolCallResult:
            try:
                result = await self.executor.execute(operation, server_url, arguments, shape)
            except Exception as exc:
                logger.error("Error executing API call for tool: %s, error: %s", name, exc)
                return ToolCallResult(
                    text=f"Error executing API call for tool: {name}, error: {exc}",
                    is_error=True,
                )
            logger.debug("API call successful for tool: %s", name)
            return ToolCallResult(text=result)

        return handler


def resolve_server_url(
    servers: Sequence[str], server_index: int = 0, host_url: Optional[str] = None
) -> str:
    server_url = ""
    if servers:
        index = max(0, min(server_index, len(servers) - 1))
        logger.debug("Using server index: %s of %s", index, list(servers))
        server_url = servers[index]

    host_url = (host_url or "").strip()
    if not host_url:
        return server_url

    host_url = host_url.rstrip("/")
    parts = urlsplit(server_url)
    if parts.scheme and parts.netloc:
        server_url = parts.path
    if not server_url:
        return host_url
    if server_url.startswith("/"):
        return host_url + server_url
    return host_url + "/" + server_url
