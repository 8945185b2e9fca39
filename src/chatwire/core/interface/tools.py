"""Build tool definitions from pydantic models.

The model's JSON schema becomes the tool's ``parameters``.  Schemas are
flattened the way function-calling APIs expect them: nested models are
inlined in place of ``$ref``, ``$schema``/``title``/``$defs`` are removed
and ``Optional[X]`` fields are rendered as plain ``X``.
"""

from __future__ import annotations

import copy
from functools import lru_cache
from typing import Any

from pydantic import BaseModel
from pydantic.json_schema import GenerateJsonSchema, JsonSchemaValue
from pydantic_core import core_schema

from chatwire.core.errors import ConstructionError
from chatwire.core.interface.models import ToolDefinition

_REF_PREFIX = "#/$defs/"


class _ToolSchemaGenerator(GenerateJsonSchema):
    def nullable_schema(self, schema: core_schema.NullableSchema) -> JsonSchemaValue:
        return self.generate_inner(schema["schema"])

    def default_schema(self, schema: core_schema.WithDefaultSchema) -> JsonSchemaValue:
        json_schema = super().default_schema(schema)
        if "default" in json_schema and json_schema["default"] is None:
            del json_schema["default"]
        return json_schema

    def field_title_should_be_set(self, schema: Any) -> bool:
        return False


def tool_from_model(name: str, description: str | None, model_cls: type[BaseModel]) -> ToolDefinition:
    """Return a ``ToolDefinition`` whose parameters are *model_cls*'s schema.

    Raises ``ConstructionError`` if the schema root is not an object.
    """
    return ToolDefinition(name=name, description=description, parameters=parameters_schema(model_cls))


def parameters_schema(model_cls: type[BaseModel]) -> dict[str, Any]:
    """The flattened parameters schema for *model_cls* (a fresh copy per call)."""
    return copy.deepcopy(_schema_for(model_cls))


@lru_cache(maxsize=None)
def _schema_for(model_cls: type[BaseModel]) -> dict[str, Any]:
    schema = model_cls.model_json_schema(schema_generator=_ToolSchemaGenerator)
    if schema.get("type") != "object":
        msg = f"Tool parameters for {model_cls.__name__} must be a JSON object schema"
        raise ConstructionError(msg)

    defs = schema.pop("$defs", {})
    schema.pop("$schema", None)
    schema.pop("title", None)
    return _inline(schema, defs, ())


def _inline(node: Any, defs: dict[str, Any], seen: tuple[str, ...]) -> Any:
    """Replace every ``$ref`` under *node* by the definition it points to."""
    if isinstance(node, list):
        return [_inline(item, defs, seen) for item in node]
    if not isinstance(node, dict):
        return node

    ref = node.get("$ref")
    if isinstance(ref, str) and ref.startswith(_REF_PREFIX):
        key = ref[len(_REF_PREFIX) :]
        if key in seen:
            msg = f"Recursive model {key!r} cannot be inlined into a tool schema"
            raise ConstructionError(msg)
        target = {k: v for k, v in defs[key].items() if k != "title"}
        merged = {**target, **{k: v for k, v in node.items() if k != "$ref"}}
        return _inline(merged, defs, (*seen, key))

    return {key: _inline(value, defs, seen) for key, value in node.items()}
