
"""
Defines the core data types for the SAJ language runtime.

SAJ programs are trees of tagged expression nodes. This module provides the
node classes produced by the transformer, the runtime-only closure type,
the Environment that is threaded through evaluation, and the error taxonomy
raised by the evaluator.
"""

from abc import ABC
from typing import List, Dict, Any, Optional, Iterable, Tuple, Union
import collections.abc


# =================================================================
# Errors
# =================================================================

class SajError(Exception):
    """Base class for evaluator-level failures. These abort the evaluation."""
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class UndefinedVariable(SajError):
    def __init__(self, name: str):
        super().__init__(f"Undefined variable: {name}")
        self.name = name


class NotAProcedure(SajError):
    def __init__(self, name: str):
        super().__init__(f"Not a procedure: {name}")
        self.name = name


class NoEffectHandler(SajError):
    def __init__(self, effect_name: str):
        super().__init__(f'Effect "{effect_name}" called but no effect handler provided')
        self.effect_name = effect_name


class UnknownEffect(SajError):
    def __init__(self, effect_name: str):
        super().__init__(f"Unknown effect: {effect_name}")
        self.effect_name = effect_name


class MalformedProgram(SajError):
    pass


class MissingModelClient(SajError):
    def __init__(self):
        super().__init__("llm_call requires an LLM client in context")


# =================================================================
# Undefined marker
# =================================================================

class _UndefinedType:
    """Marks a procedure parameter that received no argument."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "Undefined"

    def __bool__(self) -> bool:
        return False

Undefined = _UndefinedType()


# =================================================================
# Abstract Base Classes
# =================================================================

class SajExpression(ABC):
    """Abstract base class for every node of a SAJ program tree."""
    tag: str = ""

    def _fields(self) -> Tuple:
        return tuple(self.__dict__.values())

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return self._fields() == other._fields()


class Primitive(SajExpression):
    """Self-evaluating literal node."""
    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.value!r})"


class Number(Primitive):
    tag = "number"


class String(Primitive):
    tag = "string"


class Boolean(Primitive):
    tag = "boolean"


class Variable(SajExpression):
    tag = "variable"

    def __init__(self, key: str):
        self.key = key

    def __repr__(self) -> str:
        return f"Variable({self.key!r})"


class ArithmeticOperation(SajExpression):
    tag = "arithmeticOperation"
    OPERATORS = ("+", "-", "*", "/")

    def __init__(self, operation: str, operands: List[SajExpression]):
        self.operation = operation
        self.operands = list(operands)

    def __repr__(self) -> str:
        return f"ArithmeticOperation({self.operation!r}, {self.operands!r})"


class ComparativeOperation(SajExpression):
    tag = "comparativeOperation"
    OPERATORS = ("=", "<", ">", "!=", "<=", ">=")

    def __init__(self, operation: str, operands: List[SajExpression]):
        self.operation = operation
        self.operands = list(operands)

    def __repr__(self) -> str:
        return f"ComparativeOperation({self.operation!r}, {self.operands!r})"


class Conditional(SajExpression):
    tag = "conditional"

    def __init__(self, condition: SajExpression, true_return: SajExpression, false_return: SajExpression):
        self.condition = condition
        self.true_return = true_return
        self.false_return = false_return

    def __repr__(self) -> str:
        return f"Conditional({self.condition!r}, {self.true_return!r}, {self.false_return!r})"


class Procedure(SajExpression):
    """A syntactic lambda. Evaluating it produces a ProcedureClosure."""
    tag = "procedure"

    def __init__(self, inputs: List[str], body: SajExpression):
        self.inputs = list(inputs)
        self.body = body

    def __repr__(self) -> str:
        return f"Procedure({self.inputs!r}, {self.body!r})"


class ProcedureCall(SajExpression):
    tag = "procedureCall"

    def __init__(self, procedure: Union[Variable, Procedure], arguments: List[SajExpression]):
        self.procedure = procedure
        self.arguments = list(arguments)

    def __repr__(self) -> str:
        return f"ProcedureCall({self.procedure!r}, {self.arguments!r})"


class Definition(SajExpression):
    tag = "definition"

    def __init__(self, key: str, value: SajExpression):
        self.key = key
        self.value = value

    def __repr__(self) -> str:
        return f"Definition({self.key!r}, {self.value!r})"


class Literal:
    """An effect argument passed to the handler verbatim, never evaluated."""
    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        return f"Literal({self.value!r})"

    def __eq__(self, other):
        return isinstance(other, Literal) and self.value == other.value


EffectArg = Union[SajExpression, Literal]


class Effect(SajExpression):
    """A named, host-handled operation with optional result binding and continuation."""
    tag = "effect"

    def __init__(self, name: str, args: Optional[Dict[str, EffectArg]] = None,
                 bind: Optional[str] = None, then: Optional[SajExpression] = None):
        self.name = name
        self.args: Dict[str, EffectArg] = dict(args or {})
        self.bind = bind
        self.then = then

    def __repr__(self) -> str:
        extra = ""
        if self.bind is not None:
            extra += f", bind={self.bind!r}"
        if self.then is not None:
            extra += f", then={self.then!r}"
        return f"Effect({self.name!r}, {self.args!r}{extra})"


NODE_TYPES: Dict[str, type] = {
    cls.tag: cls for cls in (
        Number, String, Boolean, Variable,
        ArithmeticOperation, ComparativeOperation,
        Conditional, Procedure, ProcedureCall, Definition, Effect,
    )
}


# =================================================================
# Core Runtime Types
# =================================================================

class Environment(collections.abc.Mapping):
    """An immutable-by-convention mapping from names to runtime values.

    Every extension produces a new Environment (a shallow copy plus the
    override); the evaluator never mutates one in place. This is what gives
    SAJ lexical scoping and keeps closures isolated from later definitions.
    """
    def __init__(self, bindings: Optional[Dict[str, Any]] = None):
        self.bindings: Dict[str, Any] = dict(bindings) if bindings else {}

    @classmethod
    def from_dict(cls, mapping: Optional[collections.abc.Mapping]) -> 'Environment':
        if isinstance(mapping, Environment):
            return mapping
        return cls(dict(mapping or {}))

    def lookup(self, name: str) -> Any:
        """Returns the bound value. A missing or Undefined binding is a hard failure."""
        value = self.bindings.get(name, Undefined)
        if value is Undefined:
            raise UndefinedVariable(name)
        return value

    def extend(self, name: str, value: Any) -> 'Environment':
        new_bindings = self.bindings.copy()
        new_bindings[name] = value
        return Environment(new_bindings)

    def extend_many(self, pairs: Iterable[Tuple[str, Any]]) -> 'Environment':
        new_bindings = self.bindings.copy()
        for name, value in pairs:
            new_bindings[name] = value
        return Environment(new_bindings)

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.bindings)

    def __getitem__(self, key: str) -> Any:
        return self.bindings[key]

    def __iter__(self):
        return iter(self.bindings)

    def __len__(self) -> int:
        return len(self.bindings)

    def __contains__(self, key: object) -> bool:
        return key in self.bindings

    def __eq__(self, other):
        if isinstance(other, Environment):
            return self.bindings == other.bindings
        if isinstance(other, collections.abc.Mapping):
            return self.bindings == dict(other)
        return NotImplemented

    def __repr__(self) -> str:
        keys = ', '.join(self.bindings.keys())
        return f"<Environment bindings=[{keys}]>"


class ProcedureClosure:
    """A procedure node bundled with the environment captured when it was created.

    `scoped_env` is rebound once, by a `definition`, so the closure can see
    its own name. That is the only mutation the evaluator performs on a value.
    """
    type = "procedureClosure"

    def __init__(self, procedure: Procedure, scoped_env: Environment):
        self.procedure = procedure
        self.scoped_env = scoped_env

    def __repr__(self) -> str:
        return f"<ProcedureClosure inputs={self.procedure.inputs!r}>"

    def __eq__(self, other):
        if not isinstance(other, ProcedureClosure):
            return NotImplemented
        # NOTE: captured environments are not compared (they may be cyclic).
        return self.procedure == other.procedure
