"""
The core SAJ interpreter, containing the Evaluator and the host-facing
execute helpers.
"""
import inspect
import math
import os
import sys
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from saj.saj_datatypes import (
    SajExpression, Primitive, Variable,
    ArithmeticOperation, ComparativeOperation, Conditional,
    Procedure, ProcedureCall, Definition, Effect, Literal,
    Environment, ProcedureClosure, Undefined,
    NotAProcedure, NoEffectHandler, MalformedProgram,
)
from saj.saj_transformer import SajTransformer

EffectHandlerFn = Callable[[str, Dict[str, Any]], Awaitable[Any]]
EnvLike = Union[Environment, Dict[str, Any], None]


@dataclass
class EvalResult:
    """The value a node reduced to, paired with the environment after it."""
    result: Any
    env: Environment

    def __iter__(self):
        yield self.result
        yield self.env


@dataclass
class SequenceResult:
    """Results of each top-level program, plus the environment threaded through them."""
    results: List[Any] = field(default_factory=list)
    env: Environment = field(default_factory=Environment)

    @property
    def result(self) -> Any:
        return self.results[-1] if self.results else None


# --- Operator folds ---

def _divide(a, b):
    # IEEE semantics instead of ZeroDivisionError
    if b == 0:
        if a == 0 or (isinstance(a, float) and math.isnan(a)):
            return math.nan
        return math.copysign(math.inf, a) * math.copysign(1.0, b)
    return a / b

ARITHMETIC_OPS: Dict[str, Callable[[Any, Any], Any]] = {
    "+": lambda a, b: a + b,
    "-": lambda a, b: a - b,
    "*": lambda a, b: a * b,
    "/": _divide,
}

def _same(a, b) -> bool:
    # Booleans never equal numbers (1 = true is false)
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b

COMPARISON_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "=": _same,
    "!=": lambda a, b: not _same(a, b),
    "<": lambda a, b: a < b,
    ">": lambda a, b: a > b,
    "<=": lambda a, b: a <= b,
    ">=": lambda a, b: a >= b,
}


def _truthy(value) -> bool:
    # Only these are false; empty lists and dicts count as true
    if value is None or value is Undefined or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


class Evaluator:
    """The SAJ execution engine.

    `eval(node, env)` reduces a node to an EvalResult. The returned
    environment differs from the input only for a `definition` or an
    `effect` with `bind`. Evaluation is strictly sequential: operands and
    arguments left to right, exactly one conditional branch, and the only
    suspension points are awaited effect-handler calls.
    """
    def __init__(self, effect_handler: Optional[EffectHandlerFn] = None):
        self.effect_handler = effect_handler
        self.side_effects: List[Dict[str, Any]] = []
        self.call_stack: List[Dict[str, Any]] = []
        self.current_node: Optional[SajExpression] = None

    def _dbg(self, *parts):
        if os.environ.get("SAJ_DEBUG"):
            try:
                print("[DBG]", *parts, file=sys.stderr)
            except Exception:
                pass

    async def eval(self, node: SajExpression, env: Environment) -> EvalResult:
        """Public entry point for evaluation of a single node."""
        self.current_node = node
        return await self._eval(node, env)

    async def _eval(self, node: SajExpression, env: Environment) -> EvalResult:
        match node:
            case Primitive():
                return EvalResult(node.value, env)
            case Variable():
                return EvalResult(env.lookup(node.key), env)
            case Definition():
                return await self._eval_definition(node, env)
            case Procedure():
                # Creating a closure never touches the environment
                return EvalResult(ProcedureClosure(node, Environment(env.bindings)), env)
            case ArithmeticOperation():
                values = await self._eval_operands(node.operands, env)
                fold = ARITHMETIC_OPS[node.operation]
                result = values[0]
                for v in values[1:]:
                    result = fold(result, v)
                return EvalResult(result, env)
            case ComparativeOperation():
                values = await self._eval_operands(node.operands, env)
                test = COMPARISON_OPS[node.operation]
                result = all(test(a, b) for a, b in zip(values, values[1:]))
                return EvalResult(result, env)
            case Conditional():
                condition = (await self._eval(node.condition, env)).result
                taken = _truthy(condition)
                branch = node.true_return if taken else node.false_return
                self._dbg("IF", taken, "->", type(branch).__name__)
                return await self._eval(branch, env)
            case ProcedureCall():
                return await self._eval_call(node, env)
            case Effect():
                return await self._eval_effect(node, env)
            case _:
                raise MalformedProgram(f"Unknown expression type: {type(node).__name__}")

    async def _eval_operands(self, operands: List[SajExpression], env: Environment) -> List[Any]:
        # Only values flow between siblings; each operand sees the same env
        values = []
        for operand in operands:
            values.append((await self._eval(operand, env)).result)
        return values

    async def _eval_definition(self, node: Definition, env: Environment) -> EvalResult:
        value = (await self._eval(node.value, env)).result
        new_env = env.extend(node.key, value)
        if isinstance(value, ProcedureClosure):
            # Let the procedure see its own name for direct recursion
            value.scoped_env = new_env
        self._dbg("DEFINE", node.key, type(value).__name__)
        return EvalResult(None, new_env)

    async def _resolve_callee(self, node: ProcedureCall, env: Environment) -> ProcedureClosure:
        target = node.procedure
        if isinstance(target, Variable):
            value = env.lookup(target.key)
            if not isinstance(value, ProcedureClosure):
                raise NotAProcedure(target.key)
            return value
        closure = (await self._eval(target, env)).result
        if not isinstance(closure, ProcedureClosure):
            raise NotAProcedure("<inline>")
        return closure

    async def _eval_call(self, node: ProcedureCall, env: Environment) -> EvalResult:
        closure = await self._resolve_callee(node, env)
        # Arguments are evaluated in the caller's environment, not the closure's
        args = await self._eval_operands(node.arguments, env)

        inputs = closure.procedure.inputs
        # Positional binding: extra args are ignored, missing ones bind to Undefined
        local_env = closure.scoped_env.extend_many(
            (name, args[i] if i < len(args) else Undefined) for i, name in enumerate(inputs)
        )

        name = node.procedure.key if isinstance(node.procedure, Variable) else "<procedure>"
        self.call_stack.append({"name": name, "args": args})
        body_result = await self._eval(closure.procedure.body, local_env)
        self.call_stack.pop()
        # The caller's environment comes back untouched
        return EvalResult(body_result.result, env)

    async def _eval_effect_args(self, node: Effect, env: Environment) -> Dict[str, Any]:
        evaluated: Dict[str, Any] = {}
        for key, arg in node.args.items():
            if isinstance(arg, Literal):
                evaluated[key] = arg.value
            else:
                evaluated[key] = (await self._eval(arg, env)).result
        return evaluated

    async def _eval_effect(self, node: Effect, env: Environment) -> EvalResult:
        if self.effect_handler is None:
            raise NoEffectHandler(node.name)

        args = await self._eval_effect_args(node, env)
        self._dbg("EFFECT", node.name, args)
        outcome = self.effect_handler(node.name, args)
        if inspect.isawaitable(outcome):
            outcome = await outcome

        new_env = env.extend(node.bind, outcome) if node.bind else env
        if node.then is not None:
            return await self._eval(node.then, new_env)
        return EvalResult(outcome, new_env)


# ===================================================================
# Host-facing helpers
# ===================================================================

_transformer = SajTransformer()


def _as_node(program: Any) -> SajExpression:
    return program if isinstance(program, SajExpression) else _transformer.transform(program)


def _as_env(env: EnvLike) -> Environment:
    return Environment.from_dict(env)


async def evaluate(node: Any, env: EnvLike = None, effect_handler: Optional[EffectHandlerFn] = None) -> EvalResult:
    """Evaluates one node (typed or JSON-shaped) and returns (result, env)."""
    return await Evaluator(effect_handler).eval(_as_node(node), _as_env(env))


async def execute(program: Any, env: EnvLike = None, effect_handler: Optional[EffectHandlerFn] = None) -> EvalResult:
    """Runs a single top-level program."""
    return await evaluate(program, env, effect_handler)


async def execute_sequence(programs: List[Any], env: EnvLike = None,
                           effect_handler: Optional[EffectHandlerFn] = None,
                           evaluator: Optional[Evaluator] = None) -> SequenceResult:
    """Runs programs in order, threading the environment from one to the next."""
    ev = evaluator or Evaluator(effect_handler)
    current = _as_env(env)
    results: List[Any] = []
    for program in programs:
        result, current = await ev.eval(_as_node(program), current)
        results.append(result)
    return SequenceResult(results, current)
