"""
Recursive self-invocation of the language model (RLM) and the session
context store that sub-calls share.

`llm_call` lets a running program ask the model a sub-question and use the
answer as a value. Depth exhaustion and context-store misses come back as
`{"error": ...}` values so a program can branch on them with a conditional.
"""
from __future__ import annotations

import inspect
import json
import re
from typing import Any, Dict, List, Optional

from saj.saj_datatypes import MissingModelClient
from saj.saj_llm import first_text

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant. Respond concisely."
DEFAULT_MAX_DEPTH = 10
DEPTH_EXCEEDED = "max depth exceeded"

_NUMBER_RE = re.compile(r"-?\d+\.?\d*")
# Longest numeric prefix, as a JavaScript parseFloat reads it
_FLOAT_PREFIX_RE = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


# =================================================================
# Context store
# =================================================================

async def context_set(args: Dict[str, Any], context) -> Dict[str, Any]:
    name = args.get("name")
    text = args.get("text")
    text = "" if text is None else str(text)
    async with context.lock:
        context.context_store[name] = text
    return {"stored": name, "length": len(text)}


async def context_get(args: Dict[str, Any], context) -> Any:
    name = args.get("name")
    text = context.context_store.get(name)
    if text is None:
        return {"error": f'Context "{name}" not found'}
    return text


async def context_list(args: Dict[str, Any], context) -> List[Dict[str, Any]]:
    return [{"name": name, "length": len(text)} for name, text in context.context_store.items()]


async def context_clear(args: Dict[str, Any], context) -> Dict[str, int]:
    name = args.get("name")
    async with context.lock:
        if name:
            existed = context.context_store.pop(name, None) is not None
            return {"cleared": 1 if existed else 0}
        count = len(context.context_store)
        context.context_store.clear()
    return {"cleared": count}


# =================================================================
# Response coercion
# =================================================================

def _first_balanced(text: str) -> Optional[str]:
    """The first balanced {...} or [...] substring, skipping brackets inside JSON strings."""
    start = None
    for i, ch in enumerate(text):
        if ch in "{[":
            start = i
            break
    if start is None:
        return None
    stack = []
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            stack.append("}" if ch == "{" else "]")
        elif ch in "}]":
            if not stack or stack.pop() != ch:
                return None
            if not stack:
                return text[start:i + 1]
    return None


def _coerce_number(text: str) -> Any:
    prefix = _FLOAT_PREFIX_RE.match(text.strip())
    if prefix:
        return float(prefix.group(0).replace("Infinity", "inf"))
    m = _NUMBER_RE.search(text)
    if m:
        return float(m.group(0))
    return text


def _coerce_boolean(text: str) -> Any:
    lower = text.strip().lower()
    if lower in ("true", "yes"):
        return True
    if lower in ("false", "no"):
        return False
    return text


def _coerce_json(text: str) -> Any:
    candidate = _first_balanced(text)
    if candidate is not None:
        try:
            return json.loads(candidate)
        except ValueError:
            pass
    try:
        return json.loads(text)
    except ValueError:
        return text


def coerce_response(text: str, expect: Optional[str] = None) -> Any:
    """
    Best-effort conversion of model text to the expected type.

    Falls back to the raw text at every rung, so callers must check the
    type of what comes back.
    """
    match expect:
        case "number":
            return _coerce_number(text)
        case "boolean":
            return _coerce_boolean(text)
        case "json":
            return _coerce_json(text)
        case _:
            return text


# =================================================================
# llm_call
# =================================================================

def _effective_max_depth(args: Dict[str, Any], context) -> int:
    override = args.get("max_depth")
    if override is not None:
        return int(override)
    if getattr(context, "max_depth", None) is not None:
        return int(context.max_depth)
    return DEFAULT_MAX_DEPTH


def frame_prompt(prompt: str, context_name: Optional[str], context_store: Dict[str, str]) -> str:
    if context_name:
        stored = context_store.get(context_name)
        if stored:
            return f'Context "{context_name}":\n{stored}\n\n---\n\n{prompt}'
    return prompt


async def llm_call(args: Dict[str, Any], context) -> Any:
    max_depth = _effective_max_depth(args, context)
    client = context.llm_client
    # Check and reserve one level under the lock
    async with context.lock:
        if context.depth >= max_depth:
            return {"error": DEPTH_EXCEEDED}
        if client is None:
            raise MissingModelClient()
        context.depth += 1

    prompt = frame_prompt(str(args.get("prompt") or ""), args.get("context_name"), context.context_store)
    request = dict(
        model=context.model,
        max_tokens=context.max_tokens,
        system=args.get("system") or DEFAULT_SYSTEM_PROMPT,
        messages=[{"role": "user", "content": prompt}],
    )
    try:
        response = client.create_message(**request)
        if inspect.isawaitable(response):
            response = await response
    except BaseException:
        # Release the reserved level; no await between read and write
        context.depth -= 1
        raise

    return coerce_response(first_text(response), args.get("expect"))
