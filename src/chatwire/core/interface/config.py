"""Transcoding configuration passed explicitly to codecs and transcoders."""

from pydantic import BaseModel, ConfigDict

from chatwire.core.wire.base import DecodeMode


class TranscodeConfig(BaseModel):
    """Knobs for decoding and cross-provider translation.

    ``claude_default_max_tokens`` fills Claude's required ``max_tokens`` when
    the source request has none.  ``split_parallel_tool_calls`` forces
    assistant messages with several tool calls to be split into sequential
    call/result pairs even when the target accepts parallel calls.
    ``merge_consecutive_roles`` makes the Claude and Gemini encoders fold
    consecutive same-role messages into one wire turn; by default each
    canonical message is its own turn unless it was decoded from a shared one.
    """

    model_config = ConfigDict(frozen=True)

    claude_default_max_tokens: int = 4000
    decode_mode: DecodeMode = DecodeMode.FAIL_FAST
    split_parallel_tool_calls: bool = False
    merge_consecutive_roles: bool = False


DEFAULT_CONFIG = TranscodeConfig()
