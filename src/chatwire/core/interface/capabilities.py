"""Provider capability profiles.

A profile says which canonical constructs a provider's wire shape can
express.  Codecs check a value against their own profile before encoding,
so an unsupported construct raises
:class:`~chatwire.core.errors.UnrepresentableError` instead of being
dropped.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict

from chatwire.core.errors import UnrepresentableError
from chatwire.core.interface.models import (
    ChatRequest,
    ChatResponse,
    ImagePart,
    Message,
    ToolResultPart,
)


class ProviderCapabilities(BaseModel):
    """Structured representation of what one wire shape can carry."""

    model_config = ConfigDict(frozen=True)

    provider: str
    supports_parallel_tool_calls: bool = True
    supports_image_url: bool = True
    supports_image_data: bool = True
    supports_image_detail: bool = False
    supports_message_name: bool = False
    supports_tool_result_images: bool = False
    supports_tool_result_errors: bool = False
    supports_top_k: bool = False

    @classmethod
    def from_capabilities_dict(
        cls, provider: str, caps: dict[str, bool], **defaults: Any
    ) -> "ProviderCapabilities":
        """Build a profile from a flat capabilities dict.

        Keys recognised: ``parallel_tool_calls``, ``image_url``,
        ``image_data``, ``image_detail``, ``message_name``,
        ``tool_result_images``, ``tool_result_errors``, ``top_k``.
        Unknown keys are silently ignored.
        """
        kwargs: dict[str, Any] = dict(defaults)
        kwargs["provider"] = provider
        for key, value in caps.items():
            field = f"supports_{key}"
            if field in cls.model_fields:
                kwargs[field] = value
        return cls(**kwargs)

    # -- checks ---------------------------------------------------------------

    def check_request(self, request: ChatRequest) -> None:
        """Raise ``UnrepresentableError`` if *request* cannot be encoded."""
        if request.top_k is not None and not self.supports_top_k:
            self._fail("top_k", "no top-k sampling parameter")
        for message in request.messages:
            self.check_message(message)

    def check_response(self, response: ChatResponse) -> None:
        if len(response.tool_calls) > 1 and not self.supports_parallel_tool_calls:
            self._fail("parallel tool calls", "a response carries one tool call")
        self.check_message(response.message)

    def check_message(self, message: Message) -> None:
        if message.extra and message.extra_provider != self.provider:
            keys = ", ".join(sorted(message.extra))
            self._fail(f"{message.extra_provider} message fields ({keys})", "no equivalent message field")
        if message.name is not None and not self.supports_message_name:
            self._fail("message name", "messages carry no participant name")
        for part in message.parts:
            if isinstance(part, ImagePart):
                self.check_image(part)
            elif isinstance(part, ToolResultPart):
                self._check_tool_result(part)

    def check_image(self, image: ImagePart) -> None:
        if image.url is not None and not self.supports_image_url:
            self._fail("image URL", "only inline image data is accepted")
        if image.data is not None and not self.supports_image_data:
            self._fail("inline image", "only image URLs are accepted")
        if image.detail is not None and not self.supports_image_detail:
            self._fail("image detail", "no per-image detail level")

    def _check_tool_result(self, result: ToolResultPart) -> None:
        if result.is_error and not self.supports_tool_result_errors:
            self._fail("tool error flag", "tool results cannot be marked as errors")
        for item in result.content:
            if isinstance(item, ImagePart):
                if not self.supports_tool_result_images:
                    self._fail("image in tool result", "tool results are text only")
                self.check_image(item)

    def _fail(self, construct: str, reason: str) -> None:
        raise UnrepresentableError(construct, reason, self.provider)


class CapabilityRegistry:
    """Maps provider identifiers to their capability profiles."""

    def __init__(self) -> None:
        self._providers: dict[str, ProviderCapabilities] = {}

    def register(self, profile: ProviderCapabilities) -> None:
        """Register (or replace) the profile for ``profile.provider``."""
        self._providers[profile.provider] = profile

    def resolve(self, provider: str, overrides: dict[str, bool] | None = None) -> ProviderCapabilities:
        """Resolve the profile for *provider*.

        Unknown providers get a conservative default profile.  *overrides*
        values replace the resolved profile's fields.
        """
        profile = self._providers.get(provider) or ProviderCapabilities(provider=provider)
        if overrides:
            base = profile.model_dump(exclude={"provider"})
            profile = ProviderCapabilities.from_capabilities_dict(provider, overrides, **base)
        return profile

    def __contains__(self, provider: object) -> bool:
        return provider in self._providers
