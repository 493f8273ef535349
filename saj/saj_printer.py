"""
A printer for SAJ values, and the inverse of the transformer (typed node -> JSON-shaped dict).
"""
import collections.abc
import json
import math

from saj.saj_datatypes import (
    SajExpression, Primitive, Variable,
    ArithmeticOperation, ComparativeOperation, Conditional,
    Procedure, ProcedureCall, Definition, Effect, Literal,
    Environment, ProcedureClosure, Undefined,
)


class Printer:
    """Formats SAJ runtime values for display to a user or a model."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj) -> str:
        """Public entry point to format a value."""
        handler = self._get_handler(obj)
        return handler(obj)

    def _get_handler(self, obj):
        if obj is Undefined: return lambda o: "undefined"
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, ProcedureClosure): return self._pformat_closure
        if isinstance(obj, SajExpression): return self._pformat_node
        if isinstance(obj, (collections.abc.Mapping, list, tuple)): return self._pformat_json
        return lambda o: str(o)

    def _create_handlers(self):
        return {
            type(None): lambda o: "nil",
            bool: lambda o: "#true" if o else "#false",
            int: self._pformat_number,
            float: self._pformat_number,
            str: lambda o: f'"{o}"',
            ProcedureClosure: self._pformat_closure,
            Environment: self._pformat_env,
        }

    def _pformat_number(self, obj):
        if isinstance(obj, float):
            if math.isnan(obj): return "NaN"
            if math.isinf(obj): return "Infinity" if obj > 0 else "-Infinity"
            if obj.is_integer(): return str(int(obj))
        return str(obj)

    def _pformat_closure(self, obj):
        return "#<procedure>"

    def _pformat_node(self, obj):
        return json.dumps(self.to_program(obj), ensure_ascii=False)

    def _pformat_env(self, obj):
        parts = [f"{k}: {self.pformat(v)}" for k, v in obj.bindings.items()]
        return "{" + ", ".join(parts) + "}"

    def _pformat_json(self, obj):
        return json.dumps(self.to_builtin(obj), ensure_ascii=False)

    def to_builtin(self, obj):
        """Plain JSON-compatible structure for a runtime value."""
        if isinstance(obj, ProcedureClosure):
            return {"type": "procedureClosure", "procedure": self.to_program(obj.procedure)}
        if isinstance(obj, Environment):
            return {k: self.to_builtin(v) for k, v in obj.bindings.items()}
        if isinstance(obj, collections.abc.Mapping):
            return {str(k): self.to_builtin(v) for k, v in obj.items()}
        if isinstance(obj, (list, tuple)):
            return [self.to_builtin(x) for x in obj]
        if obj is Undefined:
            return None
        return obj

    def to_program(self, node) -> dict:
        """Typed node back to the wire format the transformer accepts."""
        match node:
            case Primitive():
                return {"type": node.tag, "value": node.value}
            case Variable():
                return {"type": "variable", "key": node.key}
            case ArithmeticOperation() | ComparativeOperation():
                return {"type": node.tag, "operation": node.operation,
                        "operands": [self.to_program(o) for o in node.operands]}
            case Conditional():
                return {"type": "conditional",
                        "condition": self.to_program(node.condition),
                        "trueReturn": self.to_program(node.true_return),
                        "falseReturn": self.to_program(node.false_return)}
            case Procedure():
                return {"type": "procedure", "inputs": list(node.inputs), "body": self.to_program(node.body)}
            case ProcedureCall():
                return {"type": "procedureCall", "procedure": self.to_program(node.procedure),
                        "arguments": [self.to_program(a) for a in node.arguments]}
            case Definition():
                return {"type": "definition", "key": {"type": "variable", "key": node.key},
                        "value": self.to_program(node.value)}
            case Effect():
                out = {"type": "effect", "name": node.name,
                       "args": {k: (v.value if isinstance(v, Literal) else self.to_program(v))
                                for k, v in node.args.items()}}
                if node.bind is not None:
                    out["bind"] = node.bind
                if node.then is not None:
                    out["then"] = self.to_program(node.then)
                return out
        raise TypeError(f"not a SAJ node: {node!r}")
