"""Claude CLI adapter - subprocess wrapper for Claude Code."""

import json
import logging
import re
import subprocess
from pathlib import Path

from familysync.ports.llm_service import LLMReply, Message, ToolCall

logger = logging.getLogger(__name__)

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")

RESPONSE_FORMAT = """## Response Format
Reply with a single JSON object and nothing else:
{"thought": "<your reasoning>", "calls": [{"name": "<tool>", "args": {...}}], "reply": "<message for the user>"}
- To use tools, list them in "calls" and leave "reply" empty. You will get their results next turn.
- When you are done, leave "calls" empty and put your answer in "reply"."""


class ClaudeCLIService:
    """
    Claude CLI subprocess adapter.

    Implements LLMService protocol. The CLI has no native tool calling, so the
    catalog goes into the prompt and the model answers with a JSON envelope.
    """

    def __init__(
        self,
        cwd: Path | str | None = None,
        timeout: int = 300,  # 5 minutes default
    ):
        self.cwd = Path(cwd) if cwd else None
        self.timeout = timeout

    def generate(self, prompt: str) -> str:
        """Generate text from a prompt. Returns complete response."""
        try:
            proc = subprocess.run(
                ["claude", "-p", "-"],
                input=prompt,
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
            if proc.returncode != 0:
                logger.error(f"Claude CLI failed: {proc.stderr}")
                raise RuntimeError(f"Claude CLI failed: {proc.stderr}")
            return proc.stdout
        except FileNotFoundError:
            raise RuntimeError("Claude CLI not found. Install with: npm install -g @anthropic-ai/claude-code")
        except subprocess.TimeoutExpired:
            raise RuntimeError(f"Claude CLI timed out after {self.timeout}s")

    def respond(self, system: str, messages: list[Message], tools: list[dict]) -> LLMReply:
        """Run one turn: render the conversation, call the CLI, parse the envelope."""
        prompt = build_prompt(system, messages, tools)
        return parse_reply(self.generate(prompt))


def build_prompt(system: str, messages: list[Message], tools: list[dict]) -> str:
    """Render system prompt, tool catalog and transcript as one prompt."""
    sections = [system.strip(), "## Tools", json.dumps(tools, indent=1), RESPONSE_FORMAT, "## Conversation"]

    for msg in messages:
        if msg.role == "user":
            sections.append(f"USER: {msg.text}")
        elif msg.role == "model":
            calls = [{"name": c.name, "args": c.args} for c in msg.calls]
            sections.append(f"ASSISTANT: {json.dumps({'thought': msg.text, 'calls': calls})}")
        else:
            results = [{"name": r.name, "result": r.result} for r in msg.results]
            sections.append(f"TOOL RESULTS: {json.dumps(results, default=str)}")

    return "\n\n".join(sections)


def parse_reply(output: str) -> LLMReply:
    """
    Parse the JSON envelope from the CLI output.

    Output that is not a JSON object is taken as a plain final answer.
    """
    text = _FENCE.sub("", output.strip())
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        logger.warning("Claude CLI reply was not JSON, treating it as the final answer")
        return LLMReply(text=output.strip())
    if not isinstance(data, dict):
        return LLMReply(text=output.strip())

    calls = [
        ToolCall(name=c["name"], args=c.get("args") or {})
        for c in data.get("calls") or []
        if isinstance(c, dict) and c.get("name")
    ]
    if calls:
        return LLMReply(text=data.get("thought") or "", calls=calls)
    return LLMReply(text=data.get("reply") or data.get("thought") or "")
