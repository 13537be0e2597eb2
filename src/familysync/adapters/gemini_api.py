"""Gemini API adapter - HTTP client for tool-calling model turns."""

import copy
import logging

import requests

from familysync.ports.llm_service import LLMReply, Message, ToolCall

logger = logging.getLogger(__name__)

API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_MODEL = "gemini-2.5-flash"


class GeminiAPIService:
    """
    Gemini generateContent adapter.

    Implements LLMService protocol. Translates the conversation into Gemini
    contents with native function declarations. No business logic - just I/O.
    """

    def __init__(
        self,
        api_key: str,
        model: str = DEFAULT_MODEL,
        timeout: int = 60,
        session: requests.Session | None = None,
    ):
        if not api_key:
            raise ValueError("GEMINI_API_KEY not configured. Add it to familysync.conf")
        self.api_key = api_key
        self.model = model or DEFAULT_MODEL
        self.timeout = timeout
        self._session = session or requests.Session()

    def respond(self, system: str, messages: list[Message], tools: list[dict]) -> LLMReply:
        """Run one model turn."""
        payload = {
            "systemInstruction": {"parts": [{"text": system}]},
            "contents": to_contents(messages),
            "tools": [{"functionDeclarations": [to_declaration(t) for t in tools]}],
        }
        try:
            resp = self._session.post(
                f"{API_BASE}/models/{self.model}:generateContent",
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.error(f"Gemini request failed: {e}")
            raise RuntimeError(f"Gemini request failed: {e}")

        if resp.status_code != 200:
            logger.error(f"Gemini API error {resp.status_code}: {resp.text}")
            raise RuntimeError(f"Gemini API error {resp.status_code}")

        return parse_response(resp.json())


def to_contents(messages: list[Message]) -> list[dict]:
    """Convert the conversation into Gemini contents."""
    contents = []
    for msg in messages:
        if msg.role == "user":
            contents.append({"role": "user", "parts": [{"text": msg.text}]})
        elif msg.role == "model":
            parts = [{"text": msg.text}] if msg.text else []
            parts.extend({"functionCall": {"name": c.name, "args": c.args}} for c in msg.calls)
            contents.append({"role": "model", "parts": parts or [{"text": ""}]})
        else:
            contents.append(
                {
                    "role": "user",
                    "parts": [
                        {"functionResponse": {"name": r.name, "response": {"result": r.result}}}
                        for r in msg.results
                    ],
                }
            )
    return contents


def to_declaration(tool: dict) -> dict:
    """
    Adapt a catalog entry to a Gemini function declaration.

    Gemini rejects object schemas without properties: a tool taking no
    arguments loses its parameters, and a free-form nested object becomes a
    JSON-encoded string.
    """
    declaration = {"name": tool["name"], "description": tool.get("description", "")}
    params = tool.get("parameters") or {}
    if params.get("properties"):
        declaration["parameters"] = _sanitize(copy.deepcopy(params))
    return declaration


def _sanitize(schema: dict) -> dict:
    if schema.get("type") == "object" and not schema.get("properties"):
        description = schema.get("description", "")
        return {"type": "string", "description": f"{description} (JSON-encoded object)".strip()}
    if "properties" in schema:
        schema["properties"] = {k: _sanitize(v) for k, v in schema["properties"].items()}
    if "items" in schema:
        schema["items"] = _sanitize(schema["items"])
    return schema


def parse_response(data: dict) -> LLMReply:
    """Extract text and function calls from the first candidate."""
    candidates = data.get("candidates") or []
    if not candidates:
        logger.warning(f"Gemini returned no candidates: {data.get('promptFeedback')}")
        return LLMReply(text="")

    text_parts = []
    calls = []
    for part in candidates[0].get("content", {}).get("parts", []):
        if "text" in part:
            text_parts.append(part["text"])
        if "functionCall" in part:
            fc = part["functionCall"]
            calls.append(ToolCall(name=fc["name"], args=fc.get("args") or {}, id=fc.get("id")))

    return LLMReply(text="".join(text_parts), calls=calls)
