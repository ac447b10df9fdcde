"""Internal models for API documents and tool definitions."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple


PATH = "path"
QUERY = "query"
HEADER = "header"


@dataclass(frozen=True)
class ParameterDecl:
    name: str
    location: str
    required: bool = False
    schema: Dict[str, Any] = field(default_factory=dict)
    description: Optional[str] = None


@dataclass(frozen=True)
class RequestBodyDecl:
    content_schema: Optional[Dict[str, Any]]
    required: bool = False
    media_type: str = "application/json"


@dataclass(frozen=True)
class ApiOperation:
    operation_id: Optional[str]
    method: str
    path: str
    parameters: Tuple[ParameterDecl, ...] = ()
    request_body: Optional[RequestBodyDecl] = None
    summary: Optional[str] = None
    description: Optional[str] = None


@dataclass(frozen=True)
class ApiDocument:
    title: str
    version: str
    servers: Tuple[str, ...]
    operations: Tuple[ApiOperation, ...]
    component_schemas: Dict[str, Dict[str, Any]] = field(default_factory=dict)


class ParameterLayout(enum.Enum):
    """Where parameter values live in a tool's input schema."""

    SINGLE_FLAT_ROOT = "single_flat_root"
    SINGLE_FLAT_NESTED = "single_flat_nested"
    THREE_WAY_SEPARATE = "three_way_separate"


def choose_layout(
    has_request_body: bool, is_unique_parameters: bool, optimize_schema: bool
) -> ParameterLayout:
    """Decide how path/query/header parameters are grouped.

    Both the schema translator and the call executor go through this function,
    so an input schema and the decoding of its payload can never disagree.
    """
    if is_unique_parameters and optimize_schema:
        if has_request_body:
            return ParameterLayout.SINGLE_FLAT_NESTED
        return ParameterLayout.SINGLE_FLAT_ROOT
    return ParameterLayout.THREE_WAY_SEPARATE


@dataclass(frozen=True)
class RequestShape:
    has_request_body: bool
    has_parameters: bool
    is_unique_parameters: bool
    optimize_schema: bool = True

    @property
    def layout(self) -> ParameterLayout:
        return choose_layout(
            self.has_request_body, self.is_unique_parameters, self.optimize_schema
        )


@dataclass(frozen=True)
class ToolCallResult:
    text: str
    is_error: bool = False


CallHandler = Callable[[Dict[str, Any]], Awaitable[ToolCallResult]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    title: str
    description: str
    input_schema: Dict[str, Any]
    input_schema_json: str
    call_handler: CallHandler
    shape: RequestShape
