"""OpenAPI / Swagger document loader and operation parser."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import httpx
import yaml

from .models import ApiDocument, ApiOperation, ParameterDecl, RequestBodyDecl


logger = logging.getLogger(__name__)

HTTP_METHODS = ("get", "put", "post", "delete", "options", "head", "patch", "trace")

SCHEMAS_REF_PREFIX = "#/components/schemas/"
PARAMETERS_REF_PREFIX = "#/components/parameters/"
REQUEST_BODIES_REF_PREFIX = "#/components/requestBodies/"

_SERVER_VARIABLE = re.compile(r"\{([^{}]+)\}")


class DocumentLoadError(Exception):
    pass


class OpenAPILoader:
    def __init__(self, timeout_seconds: float = 30) -> None:
        self.timeout_seconds = timeout_seconds

    async def load(self, location: str) -> ApiDocument:
        raw = await self.load_spec(location)
        return self.parse_document(raw)

    async def load_spec(self, location: str) -> Dict[str, Any]:
        if not location:
            raise DocumentLoadError("No API document location configured")

        if location.startswith(("http://", "https://")):
            text = await self._fetch(location)
        else:
            path = Path(location[len("file://"):] if location.startswith("file://") else location)
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                raise DocumentLoadError(f"Cannot read API document {location}: {exc}") from exc

        data = self._parse_text(text, location)
        if self._is_swagger2(data):
            logger.info("Converting Swagger 2.0 document: %s", location)
            data = convert_swagger2(data)
        return data

    async def _fetch(self, url: str) -> str:
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.get(url)
        except httpx.HTTPError as exc:
            raise DocumentLoadError(f"Failed to fetch API document {url}: {exc}") from exc
        if response.status_code != 200:
            logger.warning("Failed to fetch API document: %s (%s)", url, response.status_code)
            raise DocumentLoadError(
                f"Failed to fetch API document {url}: HTTP {response.status_code}"
            )
        return response.text

    def _parse_text(self, text: str, location: str) -> Dict[str, Any]:
        try:
            data = json.loads(text)
        except ValueError:
            try:
                data = yaml.safe_load(text)
            except yaml.YAMLError as exc:
                raise DocumentLoadError(f"API document {location} is neither JSON nor YAML") from exc
        if not isinstance(data, dict) or not ("openapi" in data or "swagger" in data):
            raise DocumentLoadError(f"API document {location} is not an OpenAPI/Swagger document")
        return data

    def _is_swagger2(self, data: Dict[str, Any]) -> bool:
        return str(data.get("swagger", "")).startswith("2")

    def parse_document(self, spec: Dict[str, Any]) -> ApiDocument:
        info = spec.get("info") or {}
        components = spec.get("components") or {}
        operations: List[ApiOperation] = []

        for path, path_item in (spec.get("paths") or {}).items():
            path_item = path_item or {}
            shared_parameters = path_item.get("parameters") or []
            for method in HTTP_METHODS:
                operation = path_item.get(method)
                if operation is None:
                    continue
                operations.append(
                    self._parse_operation(spec, method, path, operation, shared_parameters)
                )

        return ApiDocument(
            title=str(info.get("title") or ""),
            version=str(info.get("version") or ""),
            servers=tuple(self._server_urls(spec)),
            operations=tuple(operations),
            component_schemas=dict(components.get("schemas") or {}),
        )

    def _parse_operation(
        self,
        spec: Dict[str, Any],
        method: str,
        path: str,
        operation: Dict[str, Any],
        shared_parameters: List[Dict[str, Any]],
    ) -> ApiOperation:
        merged: Dict[Tuple[str, str], ParameterDecl] = {}
        for raw in [*shared_parameters, *(operation.get("parameters") or [])]:
            parameter = self._parse_parameter(spec, raw)
            if parameter is None:
                continue
            # operation-level declarations override path-level ones
            merged[(parameter.name, parameter.location)] = parameter

        return ApiOperation(
            operation_id=operation.get("operationId"),
            method=method.upper(),
            path=path,
            parameters=tuple(merged.values()),
            request_body=self._parse_request_body(spec, operation.get("requestBody")),
            summary=operation.get("summary"),
            description=operation.get("description"),
        )

    def _parse_parameter(
        self, spec: Dict[str, Any], raw: Dict[str, Any]
    ) -> Optional[ParameterDecl]:
        if "$ref" in raw:
            resolved = resolve_component(spec, raw["$ref"], PARAMETERS_REF_PREFIX)
            if resolved is None:
                logger.warning("Unresolved parameter reference: %s", raw["$ref"])
                return None
            raw = resolved
        name = raw.get("name")
        if not name:
            logger.warning("Skipping parameter without a name: %s", raw)
            return None
        return ParameterDecl(
            name=name,
            location=raw.get("in", ""),
            required=bool(raw.get("required", False)),
            schema=raw.get("schema") or {},
            description=raw.get("description"),
        )

    def _parse_request_body(
        self, spec: Dict[str, Any], raw: Optional[Dict[str, Any]]
    ) -> Optional[RequestBodyDecl]:
        if not raw:
            return None
        if "$ref" in raw:
            resolved = resolve_component(spec, raw["$ref"], REQUEST_BODIES_REF_PREFIX)
            if resolved is None:
                logger.warning("Unresolved request body reference: %s", raw["$ref"])
                return None
            raw = resolved

        content = raw.get("content") or {}
        media_type = _pick_json_media_type(content)
        if media_type is None:
            logger.debug("Request body has no JSON media type: %s", list(content))
            return None
        return RequestBodyDecl(
            content_schema=(content.get(media_type) or {}).get("schema"),
            required=bool(raw.get("required", False)),
            media_type=media_type,
        )

    def _server_urls(self, spec: Dict[str, Any]) -> List[str]:
        urls: List[str] = []
        for server in spec.get("servers") or []:
            if not isinstance(server, dict) or not server.get("url"):
                continue
            urls.append(_expand_server_variables(server["url"], server.get("variables") or {}))
        return urls


def resolve_component(spec: Dict[str, Any], ref: str, prefix: str) -> Optional[Dict[str, Any]]:
    if not ref.startswith(prefix):
        return None
    section = prefix[len("#/components/"):].rstrip("/")
    table = (spec.get("components") or {}).get(section) or {}
    return table.get(ref[len(prefix):])


def _pick_json_media_type(content: Dict[str, Any]) -> Optional[str]:
    if "application/json" in content:
        return "application/json"
    for media_type in content:
        if "json" in media_type:
            return media_type
    return None


def _expand_server_variables(url: str, variables: Dict[str, Any]) -> str:
    def substitute(match: re.Match[str]) -> str:
        variable = variables.get(match.group(1)) or {}
        default = variable.get("default")
        return str(default) if default is not None else match.group(0)

    return _SERVER_VARIABLE.sub(substitute, url)


def convert_swagger2(spec: Dict[str, Any]) -> Dict[str, Any]:
    """Rewrite a Swagger 2.0 document into the OpenAPI 3 shape used here."""
    spec = _rewrite_refs(spec)
    consumes = spec.get("consumes") or ["application/json"]

    converted: Dict[str, Any] = {
        "openapi": "3.0.0",
        "info": spec.get("info") or {},
        "servers": _swagger2_servers(spec),
        "components": {
            "schemas": spec.get("definitions") or {},
            "parameters": {
                name: _swagger2_parameter(parameter)
                for name, parameter in (spec.get("parameters") or {}).items()
                if parameter.get("in") != "body"
            },
        },
        "paths": {},
    }

    for path, path_item in (spec.get("paths") or {}).items():
        path_item = path_item or {}
        new_item: Dict[str, Any] = {}
        if path_item.get("parameters"):
            new_item["parameters"] = [
                _swagger2_parameter(p) for p in path_item["parameters"] if p.get("in") != "body"
            ]
        for method in HTTP_METHODS:
            operation = path_item.get(method)
            if operation is None:
                continue
            new_operation = {
                key: value
                for key, value in operation.items()
                if key not in {"parameters", "consumes", "produces"}
            }
            parameters = []
            for parameter in operation.get("parameters") or []:
                if parameter.get("in") == "body":
                    media_type = (operation.get("consumes") or consumes)[0]
                    new_operation["requestBody"] = {
                        "required": bool(parameter.get("required", False)),
                        "description": parameter.get("description"),
                        "content": {media_type: {"schema": parameter.get("schema") or {}}},
                    }
                else:
                    parameters.append(_swagger2_parameter(parameter))
            if parameters:
                new_operation["parameters"] = parameters
            new_item[method] = new_operation
        converted["paths"][path] = new_item

    return converted


def _swagger2_servers(spec: Dict[str, Any]) -> List[Dict[str, str]]:
    base_path = spec.get("basePath") or ""
    host = spec.get("host")
    if not host:
        return [{"url": base_path or "/"}]
    schemes = spec.get("schemes") or ["https"]
    return [{"url": f"{scheme}://{host}{base_path}"} for scheme in schemes]


_SCHEMA_KEYS = ("type", "format", "items", "enum", "default", "collectionFormat")


def _swagger2_parameter(parameter: Dict[str, Any]) -> Dict[str, Any]:
    if "$ref" in parameter:
        return parameter
    converted = {key: value for key, value in parameter.items() if key not in _SCHEMA_KEYS}
    converted["schema"] = {
        key: parameter[key] for key in _SCHEMA_KEYS if key in parameter and key != "collectionFormat"
    }
    return converted


def _rewrite_refs(node: Any) -> Any:
    if isinstance(node, dict):
        rewritten = {}
        for key, value in node.items():
            if key == "$ref" and isinstance(value, str):
                value = value.replace("#/definitions/", SCHEMAS_REF_PREFIX).replace(
                    "#/parameters/", PARAMETERS_REF_PREFIX
                )
            rewritten[key] = _rewrite_refs(value)
        return rewritten
    if isinstance(node, list):
        return [_rewrite_refs(item) for item in node]
    return node
