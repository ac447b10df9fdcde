"""Translate OpenAPI operations into MCP tool input schemas."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from .models import (
    HEADER,
    PATH,
    QUERY,
    ApiDocument,
    ApiOperation,
    ParameterDecl,
    ParameterLayout,
    RequestShape,
    choose_layout,
)
from .openapi import SCHEMAS_REF_PREFIX
from .schema import ArrayNode, ObjectNode, PrimitiveNode, SchemaNode


logger = logging.getLogger(__name__)

REQUEST_BODY = "requestBody"
PARAMETERS = "parameters"
QUERIES = "queries"
HEADERS = "headers"

ARRAY_NOTE = "array. comma separated values"


class SchemaTranslationError(Exception):
    pass


class SchemaTranslator:
    def build(
        self, document: ApiDocument, operation: ApiOperation, optimize_schema: bool = True
    ) -> Tuple[ObjectNode, RequestShape]:
        logger.info("Building input schema for operation: %s", operation.operation_id)
        root = ObjectNode()

        has_request_body = False
        body = operation.request_body
        if body is not None and body.content_schema is not None:
            body_node = self.translate(document, body.content_schema)
            if body_node is not None:
                root.add_property(REQUEST_BODY, body_node, required=body.required)
                has_request_body = True
                logger.debug(
                    "Request body added (required=%s) for operation: %s",
                    body.required,
                    operation.operation_id,
                )

        parameters = operation.parameters
        has_parameters = bool(parameters)
        names = [parameter.name for parameter in parameters]
        is_unique_parameters = len(set(names)) == len(names)
        shape = RequestShape(
            has_request_body=has_request_body,
            has_parameters=has_parameters,
            is_unique_parameters=is_unique_parameters,
            optimize_schema=optimize_schema,
        )
        if has_parameters:
            self._add_parameters(document, root, parameters, shape.layout)

        return root, shape

    def build_input_schema(
        self, document: ApiDocument, operation: ApiOperation, optimize_schema: bool = True
    ) -> Tuple[Dict[str, Any], str, RequestShape]:
        root, shape = self.build(document, operation, optimize_schema)
        schema = root.to_dict()
        try:
            schema_json = json.dumps(schema)
        except (TypeError, ValueError) as exc:
            raise SchemaTranslationError(
                f"Error generating input schema for {operation.operation_id}: {exc}"
            ) from exc
        logger.debug("Generated schema JSON: %s", schema_json)
        return schema, schema_json, shape

    def _add_parameters(
        self,
        document: ApiDocument,
        root: ObjectNode,
        parameters: Tuple[ParameterDecl, ...],
        layout: ParameterLayout,
    ) -> None:
        if layout is ParameterLayout.SINGLE_FLAT_ROOT:
            containers = {PATH: root, QUERY: root, HEADER: root}
        elif layout is ParameterLayout.SINGLE_FLAT_NESTED:
            shared = ObjectNode()
            containers = {PATH: shared, QUERY: shared, HEADER: shared}
        else:
            containers = {PATH: ObjectNode(), QUERY: ObjectNode(), HEADER: ObjectNode()}

        for parameter in parameters:
            container = containers.get(parameter.location)
            if container is None:
                logger.warning(
                    "Unsupported parameter in: %s for parameter: %s",
                    parameter.location,
                    parameter.name,
                )
                continue
            container.add_property(
                parameter.name,
                self._parameter_leaf(document, parameter),
                required=parameter.required,
            )

        if layout is ParameterLayout.SINGLE_FLAT_NESTED:
            if not containers[PATH].is_empty():
                root.add_property(PARAMETERS, containers[PATH], required=True)
        elif layout is ParameterLayout.THREE_WAY_SEPARATE:
            for location, key in ((PATH, PARAMETERS), (QUERY, QUERIES), (HEADER, HEADERS)):
                if not containers[location].is_empty():
                    root.add_property(key, containers[location], required=True)

    def _parameter_leaf(self, document: ApiDocument, parameter: ParameterDecl) -> PrimitiveNode:
        schema = parameter.schema if isinstance(parameter.schema, dict) else {}
        if "$ref" in schema:
            schema = resolve_schema_ref(document, schema["$ref"]) or {}
        schema_type = _declared_type(schema) or "string"
        description = parameter.description or schema.get("description")

        if schema_type != "array":
            leaf = PrimitiveNode(type=schema_type)
            leaf.copy_metadata(schema)
            leaf.description = description
            return leaf

        leaf = PrimitiveNode(
            type="string",
            description=f"{description} ({ARRAY_NOTE})" if description else ARRAY_NOTE,
        )
        default = schema.get("default")
        if isinstance(default, list):
            leaf.default = ",".join(str(item) for item in default)
        elif default is not None:
            leaf.default = default
        return leaf

    def translate(
        self,
        document: ApiDocument,
        schema: Optional[Dict[str, Any]],
        seen_refs: FrozenSet[str] = frozenset(),
    ) -> Optional[SchemaNode]:
        if not isinstance(schema, dict):
            # OpenAPI 3.1 boolean schemas carry no type information
            return None

        ref = schema.get("$ref")
        if ref is not None:
            if ref in seen_refs:
                logger.warning("Recursive schema reference skipped: %s", ref)
                return None
            node = self.translate(document, resolve_schema_ref(document, ref), seen_refs | {ref})
            if node is not None:
                node.copy_metadata(schema)
            return node

        if "allOf" in schema:
            node = self._merge_all_of(document, schema, seen_refs)
        elif _declared_type(schema) == "object" or "properties" in schema:
            node = ObjectNode()
            self._add_properties(document, node, schema, seen_refs)
        elif _declared_type(schema) == "array":
            node = ArrayNode(items=self.translate(document, schema.get("items"), seen_refs))
        else:
            node = PrimitiveNode(type=_declared_type(schema))

        node.copy_metadata(schema)
        return node

    def _add_properties(
        self,
        document: ApiDocument,
        node: ObjectNode,
        schema: Dict[str, Any],
        seen_refs: FrozenSet[str],
    ) -> None:
        for name, child in (schema.get("properties") or {}).items():
            child_node = self.translate(document, child, seen_refs)
            if child_node is None:
                logger.debug("Property %s resolved to nothing, skipped", name)
                continue
            node.add_property(name, child_node)
        node.require(schema.get("required"))

    def _merge_all_of(
        self, document: ApiDocument, schema: Dict[str, Any], seen_refs: FrozenSet[str]
    ) -> ObjectNode:
        merged = ObjectNode()
        for part in schema.get("allOf") or []:
            part_node = self.translate(document, part, seen_refs)
            if isinstance(part_node, ObjectNode):
                merged.properties.update(part_node.properties)
                merged.require(part_node.required)
                if part_node.description and merged.description is None:
                    merged.description = part_node.description
        self._add_properties(document, merged, schema, seen_refs)
        return merged


def resolve_schema_ref(document: ApiDocument, ref: str) -> Optional[Dict[str, Any]]:
    logger.debug("Resolving component schema for ref: %s", ref)
    if not ref.startswith(SCHEMAS_REF_PREFIX):
        logger.warning("Invalid or non-component schema ref: %s", ref)
        return None
    name = ref[len(SCHEMAS_REF_PREFIX):]
    schema = document.component_schemas.get(name)
    if schema is None:
        logger.warning("Component schema not found for name: %s", name)
    return schema


def _declared_type(schema: Dict[str, Any]) -> Optional[str]:
    schema_type = schema.get("type")
    if isinstance(schema_type, list):
        # OpenAPI 3.1 allows ["string", "null"]
        types: List[str] = [t for t in schema_type if t != "null"]
        return types[0] if types else None
    return schema_type
