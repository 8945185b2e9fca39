"""Error taxonomy for the wire, canonical, transcoding and streaming layers.

Every error carries the structured context needed to log or report it
(field path, discriminator tag, tool-call index, response id) so callers
never have to re-derive it from the raw payload.
"""

from __future__ import annotations

from typing import Any


class ChatwireError(Exception):
    """Base error for everything raised by chatwire."""

    def to_dict(self) -> dict[str, Any]:
        """Return a JSON-friendly description of the error."""
        return {"error": type(self).__name__, "message": str(self)}


# ---------------------------------------------------------------------------
# Schema errors: malformed or unrecognised wire payloads
# ---------------------------------------------------------------------------


class SchemaError(ChatwireError):
    """A wire payload could not be decoded."""

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["path"] = self.path
        return result


class UnknownVariantError(SchemaError):
    """A discriminator carried a value outside the known variant table."""

    def __init__(self, tag: str, value: Any, path: str = "", raw: Any = None) -> None:
        self.tag = tag
        self.value = value
        self.raw = raw
        where = f" at {path}" if path else ""
        super().__init__(f"Unknown {tag} {value!r}{where}", path)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["tag"] = self.tag
        result["value"] = self.value
        return result


class InvalidFieldError(SchemaError):
    """A recognised variant had a missing or ill-typed required field."""

    def __init__(self, path: str, detail: str = "") -> None:
        self.detail = detail
        msg = f"Invalid field: {path or '<root>'}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg, path)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["detail"] = self.detail
        return result


class SchemaErrorGroup(ExceptionGroup[SchemaError]):
    """All schema errors found in one payload (collect-all decode mode)."""

    def derive(self, excs: Any) -> SchemaErrorGroup:  # type: ignore[override]
        return SchemaErrorGroup(self.message, excs)


# ---------------------------------------------------------------------------
# Transcode errors: constructs a target provider cannot express
# ---------------------------------------------------------------------------


class TranscodeError(ChatwireError):
    """Base error for cross-provider translation failures."""


class UnrepresentableError(TranscodeError):
    """The canonical value uses a construct the target shape cannot express."""

    def __init__(self, construct: str, reason: str, target: str = "") -> None:
        self.construct = construct
        self.reason = reason
        self.target = target
        prefix = f"{target}: " if target else ""
        super().__init__(f"{prefix}cannot represent {construct}: {reason}")

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result.update(construct=self.construct, reason=self.reason, target=self.target)
        return result


class UnsupportedPairError(TranscodeError):
    """No transcoder is registered for the requested ordered provider pair."""

    def __init__(self, source: str, target: str) -> None:
        self.source = source
        self.target = target
        super().__init__(f"No transcoder registered for {source} -> {target}")


# ---------------------------------------------------------------------------
# Stream errors: chunk delivery protocol violations
# ---------------------------------------------------------------------------


class StreamError(ChatwireError):
    """A streaming chunk was delivered out of protocol."""

    def __init__(self, message: str, response_id: str | None = None) -> None:
        self.response_id = response_id
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["response_id"] = self.response_id
        return result


class AlreadyClosedError(StreamError):
    """A chunk arrived for a response whose terminal chunk was already seen."""

    def __init__(self, response_id: str) -> None:
        super().__init__(f"Stream already closed: {response_id}", response_id)


class StreamAbandonedError(StreamError):
    """A chunk arrived for a response the caller abandoned."""

    def __init__(self, response_id: str) -> None:
        super().__init__(f"Stream was abandoned: {response_id}", response_id)


class UnknownStreamError(StreamError):
    """The caller referenced a response id the assembler never saw."""

    def __init__(self, response_id: str) -> None:
        super().__init__(f"Unknown stream: {response_id}", response_id)


class StreamNotClosedError(StreamError):
    """The caller asked for a result before the terminal chunk arrived."""

    def __init__(self, response_id: str) -> None:
        super().__init__(f"Stream is still open: {response_id}", response_id)


class MissingResponseIdError(StreamError):
    """A chunk carries no response id and the caller supplied none."""

    def __init__(self, event: str) -> None:
        self.event = event
        super().__init__(f"No response id for {event!r} chunk")


class ProviderStreamError(StreamError):
    """The provider reported an error inside the event stream."""

    def __init__(self, error_type: str, message: str, response_id: str | None = None) -> None:
        self.error_type = error_type
        self.detail = message
        super().__init__(f"Provider stream error: {error_type}: {message}", response_id)


# ---------------------------------------------------------------------------
# Construction errors: canonical invariants violated at build time
# ---------------------------------------------------------------------------


class ConstructionError(ChatwireError):
    """A canonical value violated an invariant while being constructed."""


class DuplicateToolNameError(ConstructionError):
    """Two tool definitions in one request share a name."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Duplicate tool name: {name}")


class RoleContentError(ConstructionError):
    """A message role cannot carry the given content kind."""

    def __init__(self, role: str, part_kind: str) -> None:
        self.role = role
        self.part_kind = part_kind
        super().__init__(f"Role {role!r} cannot carry {part_kind!r} content")


class DanglingToolResultError(ConstructionError):
    """A tool result references a call id no earlier tool call emitted."""

    def __init__(self, call_id: str) -> None:
        self.call_id = call_id
        super().__init__(f"Tool result references unknown call id: {call_id}")


class UnknownToolChoiceError(ConstructionError):
    """``tool_choice`` names a tool that is not defined in the request."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"tool_choice references undefined tool: {name}")
