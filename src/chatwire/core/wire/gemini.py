"""Gemini ``generateContent`` wire shapes.

Field names are camelCase on the wire; models accept either spelling but
always emit the wire aliases.  Parts carry no type field: the member key
present in the object (``text``, ``inlineData``, ``functionCall``...)
selects the variant.  Where the API allows a single object in place of an
array (``contents``, ``parts``, ``tools``) both forms decode and the
original form is re-emitted.
"""

from typing import Any, Literal

from pydantic import Field

from chatwire.core.wire.base import (
    TagTable,
    WireModel,
    keyed_union,
    one_or_many,
)

# ---------------------------------------------------------------------------
# Parts
# ---------------------------------------------------------------------------


class Blob(WireModel):
    mime_type: str = Field(alias="mimeType")
    data: str


class FileData(WireModel):
    mime_type: str | None = Field(default=None, alias="mimeType")
    file_uri: str = Field(alias="fileUri")


class FunctionCall(WireModel):
    id: str | None = None
    name: str
    args: dict[str, Any] | None = None


class FunctionResponse(WireModel):
    id: str | None = None
    name: str
    response: dict[str, Any]


class TextPart(WireModel):
    text: str


class InlineDataPart(WireModel):
    inline_data: Blob = Field(alias="inlineData")


class FileDataPart(WireModel):
    file_data: FileData = Field(alias="fileData")


class FunctionCallPart(WireModel):
    function_call: FunctionCall = Field(alias="functionCall")


class FunctionResponsePart(WireModel):
    function_response: FunctionResponse = Field(alias="functionResponse")


PART_TAGS: TagTable = {
    "text": TextPart,
    "inlineData": InlineDataPart,
    "fileData": FileDataPart,
    "functionCall": FunctionCallPart,
    "functionResponse": FunctionResponsePart,
}
Part = keyed_union(PART_TAGS, label="part")
PartList = one_or_many(Part)

# ---------------------------------------------------------------------------
# Request
# ---------------------------------------------------------------------------


class Content(WireModel):
    role: Literal["user", "model"] | None = None
    parts: PartList


class FunctionDeclaration(WireModel):
    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None


class Tool(WireModel):
    function_declarations: list[FunctionDeclaration] | None = Field(
        default=None, alias="functionDeclarations"
    )


class FunctionCallingConfig(WireModel):
    mode: Literal["AUTO", "ANY", "NONE", "VALIDATED", "MODE_UNSPECIFIED"] | None = None
    allowed_function_names: list[str] | None = Field(default=None, alias="allowedFunctionNames")


class ToolConfig(WireModel):
    function_calling_config: FunctionCallingConfig | None = Field(
        default=None, alias="functionCallingConfig"
    )


class GenerationConfig(WireModel):
    temperature: float | None = None
    top_p: float | None = Field(default=None, alias="topP")
    top_k: int | None = Field(default=None, alias="topK")
    max_output_tokens: int | None = Field(default=None, alias="maxOutputTokens")
    stop_sequences: list[str] | None = Field(default=None, alias="stopSequences")
    candidate_count: int | None = Field(default=None, alias="candidateCount")


ContentList = one_or_many(Content)
ToolList = one_or_many(Tool)


class GenerateContentRequest(WireModel):
    """Body of ``models/{model}:generateContent``.

    The model name travels in the URL, not the body.
    """

    contents: ContentList
    system_instruction: Content | None = Field(default=None, alias="systemInstruction")
    tools: ToolList | None = None
    tool_config: ToolConfig | None = Field(default=None, alias="toolConfig")
    generation_config: GenerationConfig | None = Field(default=None, alias="generationConfig")
    safety_settings: list[dict[str, Any]] | None = Field(default=None, alias="safetySettings")


# ---------------------------------------------------------------------------
# Response and stream chunk
# ---------------------------------------------------------------------------


class UsageMetadata(WireModel):
    prompt_token_count: int | None = Field(default=None, alias="promptTokenCount")
    candidates_token_count: int | None = Field(default=None, alias="candidatesTokenCount")
    total_token_count: int | None = Field(default=None, alias="totalTokenCount")


class Candidate(WireModel):
    content: Content | None = None
    finish_reason: str | None = Field(default=None, alias="finishReason")
    index: int | None = None
    safety_ratings: list[dict[str, Any]] | None = Field(default=None, alias="safetyRatings")


class GenerateContentResponse(WireModel):
    """A complete ``generateContent`` result: every candidate is final."""

    candidates: list[Candidate]
    usage_metadata: UsageMetadata | None = Field(default=None, alias="usageMetadata")
    model_version: str | None = Field(default=None, alias="modelVersion")
    response_id: str | None = Field(default=None, alias="responseId")
    prompt_feedback: dict[str, Any] | None = Field(default=None, alias="promptFeedback")


class GenerateContentChunk(WireModel):
    """One item of ``streamGenerateContent``: a partial candidate delta.

    Unlike the full response, a chunk may carry no candidates at all
    (usage or prompt-feedback only).
    """

    candidates: list[Candidate] | None = None
    usage_metadata: UsageMetadata | None = Field(default=None, alias="usageMetadata")
    model_version: str | None = Field(default=None, alias="modelVersion")
    response_id: str | None = Field(default=None, alias="responseId")
    prompt_feedback: dict[str, Any] | None = Field(default=None, alias="promptFeedback")
