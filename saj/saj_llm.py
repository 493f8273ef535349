"""
A small Messages-API client used by `llm_call`.

Talks either to the Anthropic API directly (x-api-key) or to a proxy backend
that accepts the same request body behind a bearer token.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx

DEFAULT_API_URL = "https://api.anthropic.com"
ANTHROPIC_VERSION = "2023-06-01"


class LLMRequestError(RuntimeError):
    def __init__(self, status: int, message: str):
        super().__init__(f"LLM request failed ({status}): {message}")
        self.status = status


class MessagesClient:
    """Anything with `await create_message(model=, max_tokens=, system=, messages=)` works as a model client."""

    def __init__(self, api_key: Optional[str] = None, *,
                 token: Optional[str] = None,
                 base_url: Optional[str] = None,
                 timeout: float = 120.0):
        if not api_key and not token:
            raise ValueError("MessagesClient needs an api_key or a token")
        self.api_key = api_key
        self.token = token
        self.base_url = (base_url or DEFAULT_API_URL).rstrip("/")
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        else:
            headers["x-api-key"] = str(self.api_key)
            headers["anthropic-version"] = ANTHROPIC_VERSION
        return headers

    async def create_message(self, *, model: str, max_tokens: int,
                             messages: List[Dict[str, Any]],
                             system: Optional[str] = None) -> Dict[str, Any]:
        body: Dict[str, Any] = {"model": model, "max_tokens": max_tokens, "messages": messages}
        if system:
            body["system"] = system
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            resp = await client.post(f"{self.base_url}/v1/messages", headers=self._headers(), json=body)
        if not (200 <= resp.status_code < 300):
            try:
                detail = resp.json().get("error")
                if isinstance(detail, dict):
                    detail = detail.get("message")
            except Exception:
                detail = None
            raise LLMRequestError(resp.status_code, str(detail or (resp.text or "")[:200]))
        return resp.json()


def first_text(response: Any) -> str:
    """The text of the first text-typed content block, or '' when there is none."""
    content = response.get("content") if isinstance(response, dict) else getattr(response, "content", None)
    for block in content or []:
        if isinstance(block, dict):
            btype, text = block.get("type"), block.get("text")
        else:
            btype, text = getattr(block, "type", None), getattr(block, "text", None)
        if btype == "text":
            return text or ""
    return ""
