"""Tests for building tool definitions from pydantic models."""

from __future__ import annotations

import pytest
from pydantic import BaseModel, RootModel

from chatwire.core.errors import ConstructionError
from chatwire.core.interface.tools import parameters_schema, tool_from_model


class Location(BaseModel):
    city: str
    country: str = "FR"


class Search(BaseModel):
    location: Location
    limit: int = 10
    note: str | None = None


class Node(BaseModel):
    name: str
    children: list[Node] = []


class Tree(BaseModel):
    root: Node


class TestParametersSchema:
    def test_flattened_schema(self) -> None:
        assert parameters_schema(Search) == {
            "type": "object",
            "properties": {
                "location": {
                    "type": "object",
                    "properties": {
                        "city": {"type": "string"},
                        "country": {"default": "FR", "type": "string"},
                    },
                    "required": ["city"],
                },
                "limit": {"default": 10, "type": "integer"},
                "note": {"type": "string"},
            },
            "required": ["location"],
        }

    def test_no_refs_or_titles(self) -> None:
        text = str(parameters_schema(Search))
        assert "$ref" not in text
        assert "$defs" not in text
        assert "title" not in text

    def test_returns_a_copy(self) -> None:
        first = parameters_schema(Search)
        first["properties"].clear()
        assert parameters_schema(Search)["properties"]

    def test_recursive_model(self) -> None:
        with pytest.raises(ConstructionError, match="Recursive"):
            parameters_schema(Tree)

    def test_non_object_root(self) -> None:
        with pytest.raises(ConstructionError, match="JSON object"):
            parameters_schema(RootModel[int])


class TestToolFromModel:
    def test_definition(self) -> None:
        tool = tool_from_model("search", "Search places", Search)
        assert tool.name == "search"
        assert tool.description == "Search places"
        assert tool.parameters == parameters_schema(Search)
