"""Execution layer that turns tool invocations back into REST calls."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple
from urllib.parse import quote, urlencode

import httpx

from .logging import redact_headers, redact_payload
from .models import HEADER, PATH, QUERY, ApiOperation, ParameterLayout, RequestShape
from .translator import HEADERS, PARAMETERS, QUERIES, REQUEST_BODY

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

# RFC 3986 pchar sub-delims that may stay literal inside a path segment
_PATH_SAFE = "!$&'()*+,;=:@"


class ExecutionError(IOError):
    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        attempts: int = 0,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.url = url
        self.attempts = attempts
        self.status_code = status_code


class InvalidArgumentsError(ValueError):
    pass


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    retry_delay_ms: int = 1000
    read_timeout_ms: int = 10000


def create_http_client(
    connect_timeout_ms: int,
    read_timeout_ms: int,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    timeout = httpx.Timeout(read_timeout_ms / 1000, connect=connect_timeout_ms / 1000)
    return httpx.AsyncClient(timeout=timeout, transport=transport)


class RestExecutor:
    def __init__(
        self,
        client: httpx.AsyncClient,
        policy: Optional[RetryPolicy] = None,
        authorization: Optional[str] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.policy = policy or RetryPolicy()
        self.authorization = authorization
        self._sleep = sleep
        self._timeout = httpx.Timeout(
            self.policy.read_timeout_ms / 1000, connect=client.timeout.connect
        )

    async def execute(
        self,
        operation: ApiOperation,
        server_url: str,
        arguments: Optional[Mapping[str, Any]],
        shape: RequestShape,
    ) -> str:
        arguments = arguments or {}
        logger.info(
            "Executing %s %s%s arguments=%s",
            operation.method,
            server_url,
            operation.path,
            redact_payload(arguments),
        )

        body = self._encode_body(arguments, shape)
        path_values, query_values, header_values = self._collect_parameters(
            operation, arguments, shape
        )
        headers = self._build_headers(header_values)
        url = build_url(server_url, operation.path, path_values, query_values)

        try:
            response_body = await self._send_with_retries(operation.method, url, headers, body)
        except ExecutionError as exc:
            logger.error("Error executing API call: %s", exc)
            raise
        logger.info("API call successful. For url: %s", url)
        logger.debug("API call successful. for url: %s Response: %s", url, response_body)
        return response_body

    def _encode_body(self, arguments: Mapping[str, Any], shape: RequestShape) -> Optional[str]:
        if not shape.has_request_body:
            return None
        value = arguments.get(REQUEST_BODY)
        if value is None:
            return None
        try:
            return json.dumps(_drop_nulls(value))
        except (TypeError, ValueError) as exc:
            raise InvalidArgumentsError(f"requestBody is not JSON serializable: {exc}") from exc

    def _source_maps(
        self, arguments: Mapping[str, Any], shape: RequestShape
    ) -> Tuple[Mapping[str, Any], Mapping[str, Any], Mapping[str, Any]]:
        layout = shape.layout
        if layout is ParameterLayout.SINGLE_FLAT_NESTED:
            shared = _sub_mapping(arguments, PARAMETERS)
            return shared, shared, shared
        if layout is ParameterLayout.SINGLE_FLAT_ROOT:
            return arguments, arguments, arguments
        if shape.has_parameters:
            return (
                _sub_mapping(arguments, PARAMETERS),
                _sub_mapping(arguments, QUERIES),
                _sub_mapping(arguments, HEADERS),
            )
        return {}, {}, {}

    def _collect_parameters(
        self, operation: ApiOperation, arguments: Mapping[str, Any], shape: RequestShape
    ) -> Tuple[Dict[str, str], Dict[str, str], Dict[str, str]]:
        sources = dict(zip((PATH, QUERY, HEADER), self._source_maps(arguments, shape)))
        collected: Dict[str, Dict[str, str]] = {PATH: {}, QUERY: {}, HEADER: {}}

        for parameter in operation.parameters:
            source = sources.get(parameter.location)
            if source is None:
                logger.warning(
                    "Parameter : %s in : %s is not supported", parameter.name, parameter.location
                )
                continue
            value = source.get(parameter.name)
            if value is not None:
                collected[parameter.location][parameter.name] = stringify(value)

        logger.debug("Resolved API path parameters: %s", collected[PATH])
        logger.debug("Resolved API query parameters: %s", collected[QUERY])
        logger.debug("Resolved API header parameters: %s", redact_headers(collected[HEADER]))
        return collected[PATH], collected[QUERY], collected[HEADER]

    def _build_headers(self, header_values: Dict[str, str]) -> Dict[str, str]:
        headers = dict(header_values)
        if self.authorization and not _has_header(headers, "Authorization"):
            headers["Authorization"] = self.authorization
            logger.debug("Added Authorization header.")
        for name in ("Accept", "Content-Type"):
            for existing in [key for key in headers if key.lower() == name.lower()]:
                del headers[existing]
            headers[name] = JSON_CONTENT_TYPE
        return headers

    async def _send_with_retries(
        self, method: str, url: str, headers: Dict[str, str], body: Optional[str]
    ) -> str:
        max_retries = self.policy.max_retries
        status_code: Optional[int] = None
        attempt = 0

        while attempt < max_retries:
            attempt += 1
            logger.debug("Attempt %s of %s for %s %s", attempt, max_retries, method, url)
            request = self.client.build_request(
                method, url, headers=headers, content=body, timeout=self._timeout
            )
            try:
                response = await self.client.send(request)
            except httpx.TimeoutException as exc:
                logger.error("Timeout occurred. Attempt %s of %s: %s", attempt, max_retries, exc)
            except httpx.RequestError as exc:
                logger.error("Connection failed: Attempt %s of %s: %s", attempt, max_retries, exc)
            else:
                status_code = response.status_code
                if status_code == 200:
                    return response.text
                if 500 <= status_code < 600:
                    logger.error("Server error (%s) from %s", status_code, url)
                else:
                    logger.error("Non-retriable HTTP error code: %s from %s", status_code, url)
                    logger.debug("Response body: %s", response.text)
                    raise ExecutionError(
                        f"Request to {url} failed with non-retriable HTTP status "
                        f"{status_code} after {attempt} attempts.",
                        url=url,
                        attempts=attempt,
                        status_code=status_code,
                    )

            if attempt < max_retries:
                await self._sleep(self.policy.retry_delay_ms / 1000)

        logger.error("Failed to fetch data from %s after %s attempts.", url, attempt)
        raise ExecutionError(
            f"Failed to fetch data from {url} after {attempt} attempts.",
            url=url,
            attempts=attempt,
            status_code=status_code,
        )


def build_url(
    server_url: str,
    path_template: str,
    path_values: Mapping[str, str],
    query_values: Mapping[str, str],
) -> str:
    resolved_path = path_template
    for name, value in path_values.items():
        resolved_path = resolved_path.replace("{" + name + "}", quote(value, safe=_PATH_SAFE))
    logger.debug("Resolved path: %s", resolved_path)

    url = server_url.rstrip("/") + resolved_path
    if query_values:
        url += "?" + urlencode(list(query_values.items()))
    return url


def stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(stringify(item) for item in value)
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)


def _sub_mapping(arguments: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = arguments.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InvalidArgumentsError(f"'{key}' must be an object, got {type(value).__name__}")
    return value


def _has_header(headers: Mapping[str, str], name: str) -> bool:
    return any(key.lower() == name.lower() for key in headers)


def _drop_nulls(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _drop_nulls(item) for key, item in value.items() if item is not None}
    if isinstance(value, list):
        return [_drop_nulls(item) for item in value]
    return value
