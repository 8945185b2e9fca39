"""Transpiler protocol: converts between the canonical model and one wire shape.

Each provider (OpenAI, Claude, Gemini) has a concrete transpiler that
decodes its wire JSON into canonical values and encodes canonical values
back.  For values decoded by the same transpiler the round trip is exact;
hints recorded on decode select the original formatting on encode.
"""

import logging
from typing import Any, Protocol

from chatwire.core.errors import UnrepresentableError
from chatwire.core.interface.capabilities import ProviderCapabilities
from chatwire.core.interface.models import ChatRequest, ChatResponse, FinishKind, FinishReason

logger = logging.getLogger(__name__)

# Set on every message after the first decoded from one wire turn; encoders
# fold such a message back into the preceding turn.
HINT_CONTINUES_TURN = "continues_turn"


class Transpiler(Protocol):
    """Protocol for provider-specific wire codecs."""

    provider: str
    capabilities: ProviderCapabilities

    def request_from_wire(self, payload: Any) -> ChatRequest:
        """Decode a provider request body into a ``ChatRequest``.

        Raises ``SchemaError`` for malformed payloads and
        ``ConstructionError`` when the payload breaks a canonical invariant.
        """
        ...

    def request_to_wire(self, request: ChatRequest) -> dict[str, Any]:
        """Encode a ``ChatRequest`` as this provider's request body.

        Raises ``UnrepresentableError`` for constructs the shape cannot carry.
        """
        ...

    def response_from_wire(self, payload: Any) -> ChatResponse:
        """Decode a non-streaming provider response."""
        ...

    def response_to_wire(self, response: ChatResponse) -> dict[str, Any]:
        """Encode a ``ChatResponse`` as this provider's non-streaming response."""
        ...


class FinishReasonTable:
    """Two-way mapping between provider finish strings and ``FinishKind``.

    ``defaults`` gives the string emitted for each kind.  A decoded string
    that is not the default for its kind is kept in ``FinishReason.raw`` so
    it is re-emitted unchanged; strings outside the table decode to
    ``FinishKind.OTHER`` tagged with *provider*.  Encoding an ``OTHER``
    reason decoded by a different provider raises ``UnrepresentableError``.
    """

    def __init__(self, provider: str, known: dict[str, FinishKind], defaults: dict[FinishKind, str]) -> None:
        self.provider = provider
        self._known = known
        self._defaults = defaults

    def decode(self, raw: str | None) -> FinishReason | None:
        if raw is None:
            return None
        kind = self._known.get(raw)
        if kind is None:
            return FinishReason.other(raw, self.provider)
        if self._defaults.get(kind) == raw:
            return FinishReason(kind=kind)
        return FinishReason(kind=kind, raw=raw)

    def encode(self, reason: FinishReason | None) -> str | None:
        if reason is None:
            return None
        if reason.raw is not None and self._known.get(reason.raw) is reason.kind:
            return reason.raw
        if reason.kind is FinishKind.OTHER:
            if reason.provider not in (None, self.provider):
                raise UnrepresentableError(
                    f"{reason.provider} finish reason {reason.raw!r}",
                    "no matching finish reason",
                    self.provider,
                )
            return reason.raw
        return self._defaults[reason.kind]

    def __contains__(self, raw: object) -> bool:
        return raw in self._known


def request_extra(request: ChatRequest, provider: str) -> dict[str, Any]:
    """Return the request's extra parameters if *provider* can emit them.

    Extra parameters from another provider have no defined meaning here and
    raise ``UnrepresentableError``.
    """
    if not request.extra:
        return {}
    if request.extra_provider != provider:
        keys = ", ".join(sorted(request.extra))
        raise UnrepresentableError(
            f"{request.extra_provider} parameters ({keys})",
            "no equivalent request field",
            provider,
        )
    return dict(request.extra)


def response_extra(response: ChatResponse, provider: str) -> dict[str, Any]:
    """Return the response metadata *provider* can re-emit; others are omitted."""
    if response.extra_provider == provider:
        return dict(response.extra)
    if response.extra:
        logger.debug(
            "Omitting %s response metadata for %s: %s",
            response.extra_provider,
            provider,
            sorted(response.extra),
        )
    return {}
