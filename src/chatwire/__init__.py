"""chatwire: canonical LLM chat model and exact provider wire codecs."""

from __future__ import annotations

from typing import TYPE_CHECKING

__version__ = "0.1.0"

if TYPE_CHECKING:
    from chatwire.core.interface.transcode import transcode as transcode
    from chatwire.core.interface.transcode import transcode_request as transcode_request
    from chatwire.core.interface.transcode import transcode_response as transcode_response

_LAZY_EXPORTS = {
    "transcode": "chatwire.core.interface.transcode",
    "transcode_request": "chatwire.core.interface.transcode",
    "transcode_response": "chatwire.core.interface.transcode",
}


def __getattr__(name: str) -> object:
    module_path = _LAZY_EXPORTS.get(name)
    if module_path is not None:
        import importlib

        mod = importlib.import_module(module_path)
        return getattr(mod, name)
    raise AttributeError(f"module 'chatwire' has no attribute {name!r}")
