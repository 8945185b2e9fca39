"""Smoke test to verify the project scaffolding works."""

from __future__ import annotations

import pytest


def test_import() -> None:
    import chatwire

    assert chatwire.__version__ == "0.1.0"


def test_cli_entrypoint() -> None:
    from chatwire.cli import main

    assert callable(main)


def test_lazy_import_from_chatwire() -> None:
    import chatwire

    assert callable(chatwire.transcode)
    assert callable(chatwire.transcode_request)
    assert callable(chatwire.transcode_response)


def test_unknown_attribute() -> None:
    import chatwire

    with pytest.raises(AttributeError, match="no attribute"):
        chatwire.does_not_exist  # noqa: B018
