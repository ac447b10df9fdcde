"""Tool input schema nodes.

A translated schema is a tree of three node kinds. Every kind carries the same
pass-through metadata (description, format, enum, default); only objects and
arrays have children.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class _Node:
    description: Optional[str] = None
    format: Optional[str] = None
    enum: Optional[List[Any]] = None
    default: Any = None

    def copy_metadata(self, schema: Dict[str, Any]) -> None:
        if schema.get("description") is not None:
            self.description = schema["description"]
        if schema.get("format") is not None:
            self.format = schema["format"]
        if schema.get("enum") is not None:
            self.enum = list(schema["enum"])
        if schema.get("default") is not None:
            self.default = schema["default"]

    def _metadata(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.description is not None:
            data["description"] = self.description
        if self.format is not None:
            data["format"] = self.format
        if self.enum is not None:
            data["enum"] = self.enum
        if self.default is not None:
            data["default"] = self.default
        return data


@dataclass
class PrimitiveNode(_Node):
    type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.type is not None:
            data["type"] = self.type
        data.update(self._metadata())
        return data


@dataclass
class ObjectNode(_Node):
    properties: Dict[str, "SchemaNode"] = field(default_factory=dict)
    required: List[str] = field(default_factory=list)

    def add_property(self, name: str, node: "SchemaNode", required: bool = False) -> None:
        self.properties[name] = node
        if required:
            self.require([name])

    def require(self, names: Optional[List[str]]) -> None:
        if not isinstance(names, (list, tuple)):
            return
        for name in names:
            if name in self.properties and name not in self.required:
                self.required.append(name)

    def is_empty(self) -> bool:
        return not self.properties

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "type": "object",
            "properties": {name: node.to_dict() for name, node in self.properties.items()},
        }
        if self.required:
            data["required"] = list(self.required)
        data.update(self._metadata())
        return data


@dataclass
class ArrayNode(_Node):
    items: Optional["SchemaNode"] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": "array"}
        if self.items is not None:
            data["items"] = self.items.to_dict()
        data.update(self._metadata())
        return data


SchemaNode = Union[PrimitiveNode, ObjectNode, ArrayNode]
