"""Tests for the I/O adapters."""

import json
import subprocess
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
import requests

from familysync.adapters.claude_cli import ClaudeCLIService, build_prompt, parse_reply
from familysync.adapters.file_state import FileStateStore, StateFileError
from familysync.adapters.gemini_api import GeminiAPIService, parse_response, to_contents, to_declaration
from familysync.core.calendar import Event
from familysync.core.commands import FamilyState
from familysync.core.members import Member
from familysync.core.tools import TOOL_CATALOG
from familysync.ports.llm_service import Message, ToolCall, ToolResult


@pytest.fixture
def state():
    return FamilyState(
        members=(Member("m1", "Mom", "rose"),),
        events=(Event(id="e1", title="Yoga", start=datetime(2025, 1, 15, 9), end=datetime(2025, 1, 15, 10),
                      member_ids=("m1",)),),
    )


@pytest.fixture
def conversation():
    return [
        Message(role="user", text="add yoga"),
        Message(role="model", text="need ids", calls=[ToolCall("list_members", {}, id="c1")]),
        Message(role="tool", results=[ToolResult("list_members", [{"id": "m1"}], id="c1")]),
    ]


class TestFileStateStore:
    def test_missing_file_is_empty(self, tmp_path):
        assert FileStateStore(tmp_path / "state.json").load() == FamilyState()

    def test_save_and_load(self, tmp_path, state):
        store = FileStateStore(tmp_path / "data" / "state.json")
        store.save(state)

        assert store.exists()
        assert store.load() == state
        assert not (tmp_path / "data" / "state.json.tmp").exists()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(StateFileError):
            FileStateStore(path).load()

    def test_missing_fields(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"members": [{"name": "no id"}]}))
        with pytest.raises(StateFileError):
            FileStateStore(path).load()


class TestClaudeCLI:
    @patch("familysync.adapters.claude_cli.subprocess.run")
    def test_generate(self, mock_run):
        mock_run.return_value = MagicMock(returncode=0, stdout="hello", stderr="")
        assert ClaudeCLIService().generate("prompt") == "hello"
        assert mock_run.call_args.kwargs["input"] == "prompt"

    @patch("familysync.adapters.claude_cli.subprocess.run")
    def test_generate_failure(self, mock_run):
        mock_run.return_value = MagicMock(returncode=1, stdout="", stderr="boom")
        with pytest.raises(RuntimeError, match="boom"):
            ClaudeCLIService().generate("prompt")

    @patch("familysync.adapters.claude_cli.subprocess.run", side_effect=FileNotFoundError)
    def test_cli_missing(self, mock_run):
        with pytest.raises(RuntimeError, match="not found"):
            ClaudeCLIService().generate("prompt")

    @patch("familysync.adapters.claude_cli.subprocess.run")
    def test_timeout(self, mock_run):
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="claude", timeout=5)
        with pytest.raises(RuntimeError, match="timed out"):
            ClaudeCLIService(timeout=5).generate("prompt")

    def test_build_prompt(self, conversation):
        prompt = build_prompt("SYSTEM", conversation, TOOL_CATALOG)
        assert prompt.startswith("SYSTEM")
        assert "USER: add yoga" in prompt
        assert 'ASSISTANT: {"thought": "need ids", "calls": [{"name": "list_members", "args": {}}]}' in prompt
        assert 'TOOL RESULTS: [{"name": "list_members", "result": [{"id": "m1"}]}]' in prompt

    def test_parse_calls(self):
        reply = parse_reply('```json\n{"thought": "t", "calls": [{"name": "list_tasks", "args": {"type": "all"}}]}\n```')
        assert reply.text == "t"
        assert reply.calls[0].name == "list_tasks"
        assert reply.calls[0].args == {"type": "all"}

    def test_parse_final(self):
        reply = parse_reply('{"thought": "done", "calls": [], "reply": "All set!"}')
        assert reply.calls == []
        assert reply.text == "All set!"

    def test_parse_plain_text(self):
        reply = parse_reply("Sure, what time?")
        assert reply.text == "Sure, what time?"
        assert reply.calls == []


class TestGemini:
    def test_requires_key(self):
        with pytest.raises(ValueError):
            GeminiAPIService(api_key="")

    def test_declarations(self):
        decls = {t["name"]: to_declaration(t) for t in TOOL_CATALOG}
        assert "parameters" not in decls["list_members"]
        rec_item = decls["display_recommendations"]["parameters"]["properties"]["recommendations"]["items"]
        assert rec_item["properties"]["data"]["type"] == "string"
        # Catalog itself is untouched
        assert TOOL_CATALOG[-1]["parameters"]["properties"]["recommendations"]["items"]["properties"]["data"][
            "type"
        ] == "object"

    def test_contents(self, conversation):
        contents = to_contents(conversation)
        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[1]["parts"][1] == {"functionCall": {"name": "list_members", "args": {}}}
        assert contents[2]["parts"][0]["functionResponse"]["response"] == {"result": [{"id": "m1"}]}

    def test_parse_response(self):
        data = {
            "candidates": [
                {
                    "content": {
                        "parts": [
                            {"text": "Looking up members. "},
                            {"functionCall": {"name": "list_members", "args": {}}},
                        ]
                    }
                }
            ]
        }
        reply = parse_response(data)
        assert reply.text == "Looking up members. "
        assert [c.name for c in reply.calls] == ["list_members"]

    def test_parse_no_candidates(self):
        assert parse_response({"promptFeedback": {"blockReason": "SAFETY"}}).text == ""

    def test_respond(self, conversation):
        session = MagicMock()
        session.post.return_value = MagicMock(
            status_code=200,
            json=lambda: {"candidates": [{"content": {"parts": [{"text": "Done"}]}}]},
        )
        service = GeminiAPIService(api_key="k", model="gemini-2.5-flash", session=session)

        reply = service.respond("SYSTEM", conversation, TOOL_CATALOG)

        assert reply.text == "Done"
        url = session.post.call_args.args[0]
        assert url.endswith("/models/gemini-2.5-flash:generateContent")
        payload = session.post.call_args.kwargs["json"]
        assert payload["systemInstruction"] == {"parts": [{"text": "SYSTEM"}]}
        assert session.post.call_args.kwargs["params"] == {"key": "k"}

    def test_http_error(self, conversation):
        session = MagicMock()
        session.post.return_value = MagicMock(status_code=429, text="quota")
        with pytest.raises(RuntimeError, match="429"):
            GeminiAPIService(api_key="k", session=session).respond("S", conversation, [])

    def test_network_error(self, conversation):
        session = MagicMock()
        session.post.side_effect = requests.ConnectionError("down")
        with pytest.raises(RuntimeError, match="down"):
            GeminiAPIService(api_key="k", session=session).respond("S", conversation, [])
