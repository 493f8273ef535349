"""
Transforms JSON-shaped program trees (as emitted by a model) into typed nodes.
"""
from typing import Any, Optional, Tuple

from saj.saj_datatypes import (
    SajExpression, Number, String, Boolean, Variable,
    ArithmeticOperation, ComparativeOperation, Conditional,
    Procedure, ProcedureCall, Definition, Effect, Literal,
    NODE_TYPES, MalformedProgram,
)


def is_node_shape(obj: Any) -> bool:
    """True when obj is a dict tagged with one of the known node types."""
    return isinstance(obj, dict) and isinstance(obj.get("type"), str) and obj["type"] in NODE_TYPES


class SajTransformer:
    def _require(self, node: dict, field: str) -> Any:
        if field not in node:
            raise MalformedProgram(f"{node.get('type')} node is missing '{field}'")
        return node[field]

    def _name(self, value: Any, where: str) -> str:
        # definition.key is `{"type": "variable", "key": name}` on the wire; a bare name is accepted too
        if isinstance(value, dict) and value.get("type") == "variable":
            value = value.get("key")
        if not isinstance(value, str) or not value:
            raise MalformedProgram(f"{where} must be a non-empty name, got {value!r}")
        return value

    def _expr_list(self, node: dict, field: str):
        items = self._require(node, field)
        if not isinstance(items, list):
            raise MalformedProgram(f"{node['type']}.{field} must be a list")
        return [self.transform(item) for item in items]

    def transform(self, node: Any) -> Any:
        # Lists of programs: transform each item
        if isinstance(node, list):
            return [self.transform(n) for n in node]

        # Already transformed
        if isinstance(node, SajExpression):
            return node

        if not isinstance(node, dict):
            raise MalformedProgram(f"Expected a program node, got {type(node).__name__}")

        tag = node.get("type")
        if tag not in NODE_TYPES:
            raise MalformedProgram(f"Unknown expression type: {tag!r}")

        match tag:
            case "number":
                value = self._require(node, "value")
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise MalformedProgram(f"number node carries non-numeric value {value!r}")
                return Number(value)
            case "string":
                value = self._require(node, "value")
                if not isinstance(value, str):
                    raise MalformedProgram(f"string node carries non-string value {value!r}")
                return String(value)
            case "boolean":
                value = self._require(node, "value")
                if not isinstance(value, bool):
                    raise MalformedProgram(f"boolean node carries non-boolean value {value!r}")
                return Boolean(value)
            case "variable":
                return Variable(self._name(self._require(node, "key"), "variable.key"))
            case "arithmeticOperation" | "comparativeOperation":
                cls = NODE_TYPES[tag]
                op = self._require(node, "operation")
                if op not in cls.OPERATORS:
                    raise MalformedProgram(f"Unknown {tag} operator: {op!r}")
                operands = self._expr_list(node, "operands")
                if len(operands) < 2:
                    raise MalformedProgram(f"{tag} needs at least two operands")
                return cls(op, operands)
            case "conditional":
                return Conditional(
                    self.transform(self._require(node, "condition")),
                    self.transform(self._require(node, "trueReturn")),
                    self.transform(self._require(node, "falseReturn")),
                )
            case "procedure":
                return self._procedure(node)
            case "procedureCall":
                target = self._require(node, "procedure")
                callee = self.transform(target)
                if not isinstance(callee, (Variable, Procedure)):
                    raise MalformedProgram("procedureCall.procedure must be a variable or a procedure")
                return ProcedureCall(callee, self._expr_list(node, "arguments"))
            case "definition":
                return Definition(
                    self._name(self._require(node, "key"), "definition.key"),
                    self.transform(self._require(node, "value")),
                )
            case "effect":
                return self._effect(node)

    def _procedure(self, node: dict) -> Procedure:
        inputs = self._require(node, "inputs")
        if not isinstance(inputs, list):
            raise MalformedProgram("procedure.inputs must be a list of names")
        names = [self._name(i, "procedure input") for i in inputs]
        return Procedure(names, self.transform(self._require(node, "body")))

    def _effect(self, node: dict) -> Effect:
        name = self._name(self._require(node, "name"), "effect.name")
        raw_args = node.get("args") or {}
        if not isinstance(raw_args, dict):
            raise MalformedProgram("effect.args must be a mapping")
        args = {}
        for key, value in raw_args.items():
            # Decide literal vs. expression once, here, not at evaluation time
            args[key] = self.transform(value) if is_node_shape(value) else Literal(value)
        bind = node.get("bind")
        if bind is not None:
            bind = self._name(bind, "effect.bind")
        then = node.get("then")
        return Effect(name, args, bind, self.transform(then) if then is not None else None)


def validate_program(program: Any) -> Tuple[bool, Optional[str]]:
    """Checks that program is a well-formed node (or list of nodes) without raising."""
    try:
        SajTransformer().transform(program)
    except MalformedProgram as e:
        return False, e.message
    return True, None
