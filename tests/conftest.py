"""Shared fixtures: a small pet store document and a recording HTTP transport."""

from __future__ import annotations

import copy
from typing import Any, Callable, Dict, List

import httpx
import pytest

from openapi_tool_adapter.executors import RestExecutor, RetryPolicy
from openapi_tool_adapter.openapi import OpenAPILoader


PETSTORE: Dict[str, Any] = {
    "openapi": "3.0.3",
    "info": {"title": "Pet Store", "version": "1.0.0"},
    "servers": [{"url": "https://petstore.example.com/v1"}, {"url": "/v2"}],
    "paths": {
        "/pets": {
            "get": {
                "operationId": "listPets",
                "summary": "List pets",
                "parameters": [
                    {"name": "limit", "in": "query", "schema": {"type": "integer", "format": "int32"}},
                    {
                        "name": "tags",
                        "in": "query",
                        "description": "Tags to filter by",
                        "schema": {"type": "array", "items": {"type": "string"}},
                    },
                    {"name": "X-Request-Id", "in": "header", "schema": {"type": "string"}},
                ],
            },
            "post": {
                "operationId": "createPet",
                "description": "Create a pet in the store",
                "requestBody": {
                    "required": True,
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/NewPet"}}},
                },
            },
        },
        "/pets/{petId}": {
            "parameters": [
                {"name": "petId", "in": "path", "required": True, "schema": {"type": "string"}},
            ],
            "get": {"operationId": "getPet"},
            "put": {
                "operationId": "updatePet",
                "parameters": [
                    {"name": "dryRun", "in": "query", "schema": {"type": "boolean", "default": False}},
                ],
                "requestBody": {
                    "content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}},
                },
            },
            "delete": {
                "parameters": [{"name": "force", "in": "query", "schema": {"type": "boolean"}}],
            },
        },
        "/stores/{id}/pets/{id}": {
            "get": {
                "operationId": "getStorePet",
                "parameters": [
                    {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}},
                    {"name": "id", "in": "query", "schema": {"type": "string"}},
                    {"name": "session", "in": "cookie", "schema": {"type": "string"}},
                ],
            }
        },
    },
    "components": {
        "schemas": {
            "NewPet": {
                "type": "object",
                "required": ["name"],
                "properties": {
                    "name": {"type": "string", "description": "Pet name"},
                    "status": {"type": "string", "enum": ["available", "sold"], "default": "available"},
                    "tags": {"type": "array", "items": {"$ref": "#/components/schemas/Tag"}},
                },
            },
            "Pet": {
                "allOf": [
                    {"$ref": "#/components/schemas/NewPet"},
                    {"type": "object", "required": ["id"], "properties": {"id": {"type": "integer"}}},
                ]
            },
            "Tag": {"type": "object", "properties": {"label": {"type": "string"}}},
        }
    },
}


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def petstore_spec() -> Dict[str, Any]:
    return copy.deepcopy(PETSTORE)


@pytest.fixture
def petstore(petstore_spec):
    return OpenAPILoader().parse_document(petstore_spec)


def find_operation(document, operation_id):
    return next(op for op in document.operations if op.operation_id == operation_id)


class RecordingTransport(httpx.MockTransport):
    """Mock transport that answers from a script and records every request."""

    def __init__(self, *responses: Any) -> None:
        self.requests: List[httpx.Request] = []
        self._responses = list(responses)
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        step = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(step, Exception):
            raise step
        if isinstance(step, httpx.Response):
            return step
        return httpx.Response(step, text=f"status {step}")


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def make_executor() -> Callable[..., tuple]:
    def factory(*responses: Any, authorization=None, max_retries=3, retry_delay_ms=50):
        transport = RecordingTransport(*responses)
        client = httpx.AsyncClient(transport=transport)
        sleeper = SleepRecorder()
        executor = RestExecutor(
            client,
            RetryPolicy(max_retries=max_retries, retry_delay_ms=retry_delay_ms, read_timeout_ms=500),
            authorization=authorization,
            sleep=sleeper,
        )
        return executor, transport, sleeper

    return factory
