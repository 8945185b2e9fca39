"""Wire schema primitives: tag tables, tagged unions and decode modes.

Every provider shape in :mod:`chatwire.core.wire` is built from the helpers
here.  A discriminated union is declared from an explicit ``{tag: model}``
table so the literal tag strings a provider puts on the wire are a plain,
reviewable constant::

    CONTENT_PART_TAGS: TagTable = {"text": TextPart, "image_url": ImageURLPart}
    ContentPart = tagged_union("type", CONTENT_PART_TAGS)

Decoding goes through :func:`decode`, which turns pydantic validation
failures into :class:`~chatwire.core.errors.SchemaError` values carrying a
dotted path into the original payload.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Any, ClassVar, TypeVar, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Discriminator,
    Tag,
    TypeAdapter,
    ValidationError,
)
from pydantic_core import PydanticCustomError

from chatwire.core.errors import (
    InvalidFieldError,
    SchemaError,
    SchemaErrorGroup,
    UnknownVariantError,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

TagTable = Mapping[str, type[BaseModel]]
"""Maps a discriminator value to the model it selects."""

_UNKNOWN_VARIANT = "unknown_variant"
_MISSING_TAG = "missing_tag"


class WireModel(BaseModel):
    """Base for every provider wire type.

    Unmodelled provider fields are kept (``extra="allow"``) so a value
    decoded from one provider re-encodes to the same JSON.  Fields listed in
    ``wire_tags`` are always emitted, even when the value was built in code
    and the tag came from the field default.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    wire_tags: ClassVar[tuple[str, ...]] = ()

    def model_post_init(self, context: Any, /) -> None:
        for name in self.wire_tags:
            self.__pydantic_fields_set__.add(name)

    def to_wire(self) -> dict[str, Any]:
        """Encode to the exact JSON object the provider expects."""
        return self.model_dump(mode="json", by_alias=True, exclude_unset=True)


# ---------------------------------------------------------------------------
# Union builders
# ---------------------------------------------------------------------------


def tagged_union(tag_field: str, table: TagTable) -> Any:
    """Build a union selected by the value of *tag_field*.

    Unknown tag values fail with ``unknown_variant`` instead of falling
    back to some other member.
    """

    def tag_of(value: Any) -> Any:
        if isinstance(value, dict):
            return value.get(tag_field)
        return getattr(value, tag_field, None)

    def check(value: Any) -> Any:
        if isinstance(value, dict):
            tag = value.get(tag_field)
            if tag is None:
                raise PydanticCustomError(
                    _MISSING_TAG,
                    "missing discriminator {field}",
                    {"field": tag_field},
                )
            if not isinstance(tag, str) or tag not in table:
                raise PydanticCustomError(
                    _UNKNOWN_VARIANT,
                    "unknown {field} {tag!r}",
                    {"field": tag_field, "tag": tag},
                )
        return value

    if len(table) == 1:
        (only,) = table.values()
        return Annotated[only, BeforeValidator(check)]

    members = tuple(Annotated[model, Tag(tag)] for tag, model in table.items())
    return Annotated[Union[members], Discriminator(tag_of), BeforeValidator(check)]  # noqa: UP007


def keyed_union(table: TagTable, *, label: str) -> Any:
    """Build a union selected by which single member key is present.

    Used for shapes such as Gemini parts where ``{"text": ...}`` and
    ``{"functionCall": ...}`` carry no explicit type field.
    """

    def present(value: Mapping[str, Any]) -> list[str]:
        return [key for key in table if key in value]

    def tag_of(value: Any) -> Any:
        if isinstance(value, dict):
            keys = present(value)
            return keys[0] if len(keys) == 1 else None
        for key, model in table.items():
            if isinstance(value, model):
                return key
        return None

    def check(value: Any) -> Any:
        if not isinstance(value, dict):
            return value
        keys = present(value)
        if len(keys) == 1:
            return value
        if keys:
            raise PydanticCustomError(
                "ambiguous_variant",
                "{label} carries several members: {keys}",
                {"label": label, "keys": ", ".join(keys)},
            )
        if not value:
            raise PydanticCustomError(_MISSING_TAG, "empty {field}", {"field": label})
        raise PydanticCustomError(
            _UNKNOWN_VARIANT,
            "unknown {field} {tag!r}",
            {"field": label, "tag": next(iter(value))},
        )

    members = tuple(Annotated[model, Tag(key)] for key, model in table.items())
    return Annotated[Union[members], Discriminator(tag_of), BeforeValidator(check)]  # noqa: UP007


def text_or_parts(part: Any) -> Any:
    """``str`` or a list of *part*, chosen by the JSON type of the value."""

    def tag_of(value: Any) -> str:
        return "str" if isinstance(value, str) else "list"

    return Annotated[
        Union[Annotated[str, Tag("str")], Annotated[list[part], Tag("list")]],  # noqa: UP007
        Discriminator(tag_of),
    ]


def one_or_many(item: Any) -> Any:
    """A single *item* or a list of them, preserved as given."""

    def tag_of(value: Any) -> str:
        return "many" if isinstance(value, (list, tuple)) else "one"

    return Annotated[
        Union[Annotated[item, Tag("one")], Annotated[list[item], Tag("many")]],  # noqa: UP007
        Discriminator(tag_of),
    ]


def as_list(value: Any) -> list[Any]:
    """Normalise a :func:`one_or_many` value to a list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------


class DecodeMode(str, Enum):
    """How many schema errors a decode reports."""

    FAIL_FAST = "fail_fast"
    COLLECT = "collect"


@dataclass
class DecodeReport:
    """Outcome of :func:`decode_batch`.

    ``values`` is index-aligned with the input; entries that failed are
    ``None`` and their errors are listed under the same index in ``errors``.
    """

    values: list[Any] = field(default_factory=list)
    errors: dict[int, list[SchemaError]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors


def decode(
    target: type[M] | TypeAdapter[Any],
    payload: Any,
    mode: DecodeMode = DecodeMode.FAIL_FAST,
) -> Any:
    """Decode *payload* into *target*, a wire model class or a ``TypeAdapter``.

    Raises the first :class:`SchemaError` in ``FAIL_FAST`` mode, or one
    :class:`SchemaErrorGroup` holding every problem in ``COLLECT`` mode.
    """
    try:
        if isinstance(target, TypeAdapter):
            return target.validate_python(payload)
        return target.model_validate(payload)
    except ValidationError as exc:
        errors = schema_errors(exc, payload)
        logger.debug("Decode of %s failed with %d error(s)", exc.title, len(errors))
        if mode is DecodeMode.COLLECT:
            msg = f"{len(errors)} schema error(s) decoding {exc.title}"
            raise SchemaErrorGroup(msg, errors) from exc
        raise errors[0] from exc


def decode_batch(
    target: type[M] | TypeAdapter[Any],
    payloads: Iterable[Any],
    mode: DecodeMode = DecodeMode.COLLECT,
) -> DecodeReport:
    """Decode independent payloads so one bad item never aborts its siblings.

    In ``FAIL_FAST`` mode only the first error of each item is kept.
    """
    report = DecodeReport()
    for index, payload in enumerate(payloads):
        try:
            report.values.append(decode(target, payload, mode))
        except SchemaErrorGroup as group:
            report.values.append(None)
            report.errors[index] = list(group.exceptions)
        except SchemaError as exc:
            report.values.append(None)
            report.errors[index] = [exc]
    return report


def schema_errors(exc: ValidationError, payload: Any) -> list[SchemaError]:
    """Translate a pydantic ``ValidationError`` into schema errors.

    Errors are de-duplicated by path; unknown-variant errors come first.
    """
    found: dict[tuple[str, str], SchemaError] = {}
    for err in exc.errors(include_url=False):
        error = _translate(err, payload)
        key = (type(error).__name__, error.path)
        found.setdefault(key, error)
    return sorted(found.values(), key=lambda e: not isinstance(e, UnknownVariantError))


def _translate(err: Mapping[str, Any], payload: Any) -> SchemaError:
    loc = tuple(err.get("loc", ()))
    kind = err.get("type", "")
    ctx = err.get("ctx") or {}

    if kind == _UNKNOWN_VARIANT:
        path, node = _walk(payload, loc)
        return UnknownVariantError(ctx.get("field", "type"), ctx.get("tag"), path, node)

    if kind == _MISSING_TAG:
        path, _ = _walk(payload, loc)
        return InvalidFieldError(_join(path, ctx.get("field", "")), err.get("msg", ""))

    if kind == "missing" and loc:
        path, _ = _walk(payload, loc[:-1])
        return InvalidFieldError(_join(path, loc[-1]), "field required")

    path, _ = _walk(payload, loc)
    return InvalidFieldError(path, err.get("msg", ""))


def _walk(payload: Any, loc: tuple[Any, ...]) -> tuple[str, Any]:
    """Follow *loc* through *payload*, skipping union branch labels.

    Pydantic inserts tag names and branch labels into ``loc``; only segments
    that address a real key or index are kept in the resulting path.
    """
    path = ""
    node = payload
    for segment in loc:
        if isinstance(segment, int) and isinstance(node, list) and 0 <= segment < len(node):
            node = node[segment]
            path += f"[{segment}]"
        elif isinstance(segment, str) and isinstance(node, dict) and segment in node:
            node = node[segment]
            path = _join(path, segment)
    return path, node


def _join(path: str, segment: Any) -> str:
    if isinstance(segment, int):
        return f"{path}[{segment}]"
    if not segment:
        return path
    return f"{path}.{segment}" if path else str(segment)


def encode(value: Any) -> Any:
    """Encode a wire value (model, list of models or plain JSON) to JSON."""
    if isinstance(value, WireModel):
        return value.to_wire()
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_unset=True)
    if isinstance(value, (list, tuple)):
        return [encode(item) for item in value]
    return value


def adapter(tp: Any) -> TypeAdapter[Any]:
    """Return a ``TypeAdapter`` for a union type built by this module."""
    return TypeAdapter(tp)


__all__ = [
    "DecodeMode",
    "DecodeReport",
    "TagTable",
    "WireModel",
    "adapter",
    "as_list",
    "decode",
    "decode_batch",
    "encode",
    "keyed_union",
    "one_or_many",
    "schema_errors",
    "tagged_union",
    "text_or_parts",
]
