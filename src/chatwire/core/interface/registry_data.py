"""Static provider capability data.

Contains the known wire-shape profiles and a helper to build a pre-loaded
``CapabilityRegistry``.
"""

from chatwire.core.interface.capabilities import CapabilityRegistry, ProviderCapabilities

OPENAI = "openai"
CLAUDE = "claude"
GEMINI = "gemini"
MCP = "mcp"

# ---------------------------------------------------------------------------
# Known provider profiles
# ---------------------------------------------------------------------------

KNOWN_PROVIDERS: dict[str, ProviderCapabilities] = {
    OPENAI: ProviderCapabilities(
        provider=OPENAI,
        supports_image_detail=True,
        supports_message_name=True,
    ),
    CLAUDE: ProviderCapabilities(
        provider=CLAUDE,
        supports_tool_result_images=True,
        supports_tool_result_errors=True,
        supports_top_k=True,
    ),
    GEMINI: ProviderCapabilities(
        provider=GEMINI,
        supports_top_k=True,
    ),
    MCP: ProviderCapabilities(
        provider=MCP,
        supports_parallel_tool_calls=False,
        supports_tool_result_images=True,
        supports_tool_result_errors=True,
    ),
}


def build_default_registry() -> CapabilityRegistry:
    """Return a ``CapabilityRegistry`` pre-loaded with :data:`KNOWN_PROVIDERS`."""
    registry = CapabilityRegistry()
    for profile in KNOWN_PROVIDERS.values():
        registry.register(profile)
    return registry
