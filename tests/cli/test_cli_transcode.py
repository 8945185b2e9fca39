"""Tests for ``chatwire transcode`` and ``chatwire pairs`` CLI commands."""

from __future__ import annotations

import json
from pathlib import Path

from click.testing import CliRunner

from chatwire.cli import main

OPENAI_REQUEST = {
    "model": "gpt-4o",
    "messages": [
        {"role": "system", "content": "Be brief."},
        {"role": "user", "content": "hi"},
    ],
    "max_completion_tokens": 50,
}


def write(tmp_path: Path, payload: object) -> str:
    path = tmp_path / "payload.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


class TestTranscode:
    def test_openai_to_claude(self, tmp_path: Path) -> None:
        runner = CliRunner()
        args = ["transcode", "--from", "openai", "--to", "claude", write(tmp_path, OPENAI_REQUEST)]
        result = runner.invoke(main, args)

        assert result.exit_code == 0
        assert json.loads(result.output) == {
            "model": "gpt-4o",
            "system": "Be brief.",
            "messages": [{"role": "user", "content": "hi"}],
            "max_tokens": 50,
        }

    def test_merge_roles(self, tmp_path: Path) -> None:
        payload = {
            "model": "gpt-4o",
            "messages": [{"role": "user", "content": "a"}, {"role": "user", "content": "b"}],
        }
        runner = CliRunner()
        base = ["transcode", "--from", "openai", "--to", "claude", write(tmp_path, payload)]

        separate = runner.invoke(main, base)
        merged = runner.invoke(main, [*base, "--merge-roles"])

        assert separate.exit_code == 0
        assert json.loads(separate.output)["messages"] == [
            {"role": "user", "content": "a"},
            {"role": "user", "content": "b"},
        ]
        assert merged.exit_code == 0
        assert json.loads(merged.output)["messages"] == [
            {"role": "user", "content": [{"type": "text", "text": "a"}, {"type": "text", "text": "b"}]}
        ]

    def test_openai_to_gemini(self, tmp_path: Path) -> None:
        runner = CliRunner()
        args = ["transcode", "--from", "openai", "--to", "gemini", write(tmp_path, OPENAI_REQUEST)]
        result = runner.invoke(main, args)

        assert result.exit_code == 0
        body = json.loads(result.output)
        assert body["systemInstruction"] == {"parts": [{"text": "Be brief."}]}
        assert body["generationConfig"] == {"maxOutputTokens": 50}

    def test_tool_call_kind(self, tmp_path: Path) -> None:
        call = {"id": "call_1", "type": "function", "function": {"name": "ls", "arguments": "{}"}}
        runner = CliRunner()
        result = runner.invoke(
            main, ["transcode", "--from", "openai", "--to", "mcp", "--kind", "tool_call", write(tmp_path, call)]
        )

        assert result.exit_code == 0
        assert json.loads(result.output)["method"] == "tools/call"

    def test_unsupported_pair(self, tmp_path: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["transcode", "--from", "claude", "--to", "gemini", write(tmp_path, {})])

        assert result.exit_code == 1
        assert "UnsupportedPairError" in result.output

    def test_schema_error(self, tmp_path: Path) -> None:
        runner = CliRunner()
        args = ["transcode", "--from", "openai", "--to", "claude", write(tmp_path, {"model": "m"})]
        result = runner.invoke(main, args)

        assert result.exit_code == 1
        assert "InvalidFieldError" in result.output

    def test_unknown_provider(self, tmp_path: Path) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["transcode", "--from", "cohere", "--to", "openai", write(tmp_path, {})])

        assert result.exit_code == 2


class TestPairs:
    def test_lists_transcoders(self) -> None:
        runner = CliRunner()
        result = runner.invoke(main, ["pairs"])

        assert result.exit_code == 0
        assert "Registered transcoders" in result.output
        assert "tool_result" in result.output
        assert "gemini" in result.output
