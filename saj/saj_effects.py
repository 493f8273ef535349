"""
The effect protocol: a session context, the default handler table, and the
dispatcher the evaluator calls when it reaches an `effect` node.
"""
from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from saj.saj_datatypes import UnknownEffect
from saj.saj_http import fetch_handler
from saj import saj_fs, saj_rlm

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 4096

EffectHandler = Callable[[Dict[str, Any], 'EffectContext'], Union[Any, Awaitable[Any]]]


@dataclass
class EffectContext:
    """Session state handed to every effect handler.

    `depth` and `context_store` are the only mutable shared state. The lock
    guards their mutation when a host runs several evaluations over one
    session concurrently.
    """
    llm_client: Optional[Any] = None
    model: str = DEFAULT_MODEL
    context_store: Dict[str, str] = field(default_factory=dict)
    depth: int = 0
    max_depth: int = saj_rlm.DEFAULT_MAX_DEPTH
    max_tokens: int = DEFAULT_MAX_TOKENS
    http: Dict[str, Any] = field(default_factory=dict)
    base_dir: Optional[str] = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False, compare=False)


def print_handler(args: Dict[str, Any], context: EffectContext) -> Any:
    # Nothing is written anywhere; the value surfaces as the effect result
    return args.get("value")


DEFAULT_HANDLERS: Dict[str, EffectHandler] = {
    # Core I/O
    "fetch": fetch_handler,
    "read_file": saj_fs.read_file,
    "write_file": saj_fs.write_file,
    "shell": saj_fs.shell,
    "print": print_handler,

    # File operations
    "file_grep": saj_fs.file_grep,
    "file_stat": saj_fs.file_stat,
    "file_slice": saj_fs.file_slice,
    "glob": saj_fs.glob_files,

    # Context store
    "context_set": saj_rlm.context_set,
    "context_get": saj_rlm.context_get,
    "context_list": saj_rlm.context_list,
    "context_clear": saj_rlm.context_clear,

    # Recursive LLM
    "llm_call": saj_rlm.llm_call,
}


class EffectDispatcher:
    """Resolves an effect name through the handler table and runs it with the session context."""

    def __init__(self, handlers: Optional[Dict[str, EffectHandler]] = None,
                 context: Optional[EffectContext] = None):
        self.handlers: Dict[str, EffectHandler] = dict(DEFAULT_HANDLERS if handlers is None else handlers)
        self.context = context or EffectContext()
        # Optional sink (e.g. Evaluator.side_effects) for a record of each invocation
        self.side_effects: Optional[List[Dict[str, Any]]] = None

    def register(self, name: str, handler: EffectHandler) -> None:
        self.handlers[name] = handler

    def names(self) -> List[str]:
        return sorted(self.handlers)

    async def __call__(self, name: str, args: Dict[str, Any]) -> Any:
        handler = self.handlers.get(name)
        if handler is None:
            raise UnknownEffect(name)
        if self.side_effects is not None:
            self.side_effects.append({'topics': ['effect'], 'name': name, 'args': dict(args)})
        result = handler(args, self.context)
        if inspect.isawaitable(result):
            result = await result
        if name == "print" and self.side_effects is not None:
            self.side_effects.append({'topics': ['stdout'], 'message': result})
        return result


def create_effect_handler(config=None, *,
                          llm_client: Optional[Any] = None,
                          model: Optional[str] = None,
                          custom_handlers: Optional[Dict[str, EffectHandler]] = None,
                          context_store: Optional[Dict[str, str]] = None,
                          max_depth: Optional[int] = None) -> EffectDispatcher:
    """
    Builds a dispatcher over the default handlers plus any custom ones.

    `config` is an optional SajConfig; explicit keyword arguments win over it.
    """
    context = EffectContext(
        llm_client=llm_client,
        model=model or getattr(config, "model", None) or DEFAULT_MODEL,
        context_store=context_store if context_store is not None else {},
        depth=0,
        max_depth=max_depth if max_depth is not None else getattr(config, "max_depth", saj_rlm.DEFAULT_MAX_DEPTH),
        max_tokens=getattr(config, "max_tokens", DEFAULT_MAX_TOKENS),
        http=dict(getattr(config, "http", None) or {}),
        base_dir=getattr(config, "base_dir", None),
    )
    handlers = {**DEFAULT_HANDLERS, **(custom_handlers or {})}
    return EffectDispatcher(handlers, context)
