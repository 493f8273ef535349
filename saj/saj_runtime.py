"""
The host-facing runner: takes a program in any accepted shape, runs it, and
turns every failure into a structured ExecutionResult.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from saj.saj_datatypes import Environment, SajError, MalformedProgram, ProcedureClosure
from saj.saj_interpreter import Evaluator, EnvLike, EffectHandlerFn, execute_sequence
from saj.saj_printer import Printer
from saj.saj_serialize import deserialize
from saj.saj_transformer import SajTransformer


@dataclass
class ExecutionResult:
    """The structured result of a program execution."""
    status: Literal['success', 'error']
    value: Any = None
    results: List[Any] = field(default_factory=list)
    error_message: Optional[str] = None
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self) -> str:
        if self.status != 'error':
            return ""
        return str(self.error_message or "Unknown error")


class ProgramRunner:
    """Parses, transforms, and executes SAJ programs against a persistent environment."""

    def __init__(self, effect_handler: Optional[EffectHandlerFn] = None, env: EnvLike = None):
        self.transformer = SajTransformer()
        self.evaluator = Evaluator(effect_handler)
        self.printer = Printer()
        self._initial_env = Environment.from_dict(env)
        self._env = self._initial_env
        # Let a dispatcher record its invocations alongside ours
        if effect_handler is not None and hasattr(effect_handler, "side_effects"):
            effect_handler.side_effects = self.evaluator.side_effects

    @property
    def env(self) -> Environment:
        return self._env

    @property
    def effect_handler(self) -> Optional[EffectHandlerFn]:
        return self.evaluator.effect_handler

    def reset(self) -> None:
        self._env = Environment()
        self.evaluator.side_effects.clear()
        self.evaluator.call_stack.clear()

    def _format_stacktrace(self) -> str:
        stack = self.evaluator.call_stack
        if not stack:
            return ""

        def fmt(arg):
            match arg:
                case ProcedureClosure():
                    return "fn"
                case list():
                    return f"#[{len(arg)}]"
                case dict():
                    return "#{...}"
                case _:
                    return self.printer.pformat(arg)

        frames = []
        for frame in stack:
            args_s = " ".join(fmt(a) for a in frame.get('args') or [])
            frames.append(f"({frame.get('name') or '<call>'}{' ' + args_s if args_s else ''})")
        return "SAJ stacktrace: " + " ".join(frames)

    def _format_runtime_error(self, e: Exception) -> str:
        match e:
            case SajError():
                msg = f"{type(e).__name__}: {e.message}"
            case ZeroDivisionError() | TypeError() | ValueError():
                msg = f"{type(e).__name__}: {e}"
            case _:
                msg = f"InternalError: {e}"
        st = self._format_stacktrace()
        if st:
            msg += "\n" + st
        return msg

    def _error(self, msg: str) -> ExecutionResult:
        self.evaluator.side_effects.append({'topics': ['stderr'], 'message': msg})
        return ExecutionResult(status='error', error_message=msg, side_effects=self.evaluator.side_effects)

    async def handle_program(self, program: Any) -> ExecutionResult:
        """The main entry point to execute a program, a list of programs, or their JSON/YAML text."""
        # Clear per-run diagnostics, keeping the same list objects
        self.evaluator.side_effects.clear()
        self.evaluator.call_stack.clear()

        # 1. Parse
        if isinstance(program, (str, bytes, bytearray)):
            try:
                program = deserialize(program)
            except ValueError as e:
                return self._error(f"ParseError: {e}")

        # 2. Transform
        programs = program if isinstance(program, list) else [program]
        try:
            nodes = [self.transformer.transform(p) for p in programs]
        except MalformedProgram as e:
            return self._error(f"MalformedProgram: {e.message}")

        # 3. Evaluate
        try:
            outcome = await execute_sequence(nodes, self._env, evaluator=self.evaluator)
        except Exception as e:
            return self._error(self._format_runtime_error(e))

        self._env = outcome.env
        return ExecutionResult(
            status='success',
            value=outcome.result,
            results=outcome.results,
            side_effects=self.evaluator.side_effects,
        )


__all__ = ["ExecutionResult", "ProgramRunner"]
