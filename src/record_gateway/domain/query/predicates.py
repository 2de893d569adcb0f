"""Filter predicate trees.

A predicate is either a leaf comparison of one field against a literal or a
logical combination (AND / OR / NOT) of other predicates. Predicates are
immutable, validate their own shape, render to a readable condition string
and can be evaluated against a field mapping (used by in-memory stores and
tests).
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Iterable, Mapping

from record_gateway.domain.errors import MalformedQueryError
from record_gateway.domain.value_objects import FieldValue


class ComparisonOp(Enum):
    """Comparison operators for leaf predicates."""

    EQ = "="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="
    IN = "IN"
    NOT_IN = "NOT IN"
    LIKE = "LIKE"
    BETWEEN = "BETWEEN"
    IS_NULL = "= null"
    IS_NOT_NULL = "!= null"


class LogicalOp(Enum):
    """Logical operators for combining predicates."""

    AND = "AND"
    OR = "OR"
    NOT = "NOT"


_UNARY_OPS = (ComparisonOp.IS_NULL, ComparisonOp.IS_NOT_NULL)
_SET_OPS = (ComparisonOp.IN, ComparisonOp.NOT_IN)


def _raw(value: Any) -> Any:
    """Unwrap tagged values so literals and field values compare alike."""
    if isinstance(value, FieldValue):
        return value.value
    return value


def _literal(value: Any) -> str:
    value = _raw(value)
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace("'", "\\'")
        return f"'{escaped}'"
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class Predicate(ABC):
    """Base class for filter predicates."""

    @abstractmethod
    def fields(self) -> list[str]:
        """Field names referenced by this predicate, in first-use order."""

    @abstractmethod
    def matches(self, values: Mapping[str, Any]) -> bool:
        """Evaluate the predicate against a field mapping."""

    @abstractmethod
    def __str__(self) -> str:
        pass

    def __and__(self, other: Predicate) -> Predicate:
        return and_(self, other)

    def __or__(self, other: Predicate) -> Predicate:
        return or_(self, other)

    def __invert__(self) -> Predicate:
        return not_(self)


@dataclass(frozen=True)
class Comparison(Predicate):
    """Leaf comparison of a field against a literal (e.g. Name = 'Acme')."""

    field: str
    op: ComparisonOp
    value: Any = None

    def __post_init__(self) -> None:
        if not self.field or not self.field.strip():
            raise MalformedQueryError("Comparison field must not be blank")
        if self.op in _SET_OPS:
            if isinstance(self.value, (str, bytes)) or not isinstance(self.value, Iterable):
                raise MalformedQueryError(f"{self.op.value} needs a collection of values")
            values = tuple(dict.fromkeys(self.value))
            if not values:
                raise MalformedQueryError(f"{self.op.value} needs at least one value")
            object.__setattr__(self, "value", values)
        elif self.op == ComparisonOp.BETWEEN:
            if not isinstance(self.value, (tuple, list)) or len(self.value) != 2:
                raise MalformedQueryError("BETWEEN needs a (low, high) pair")
            object.__setattr__(self, "value", tuple(self.value))
        elif self.op == ComparisonOp.LIKE:
            if not isinstance(self.value, str):
                raise MalformedQueryError("LIKE needs a string pattern")

    def fields(self) -> list[str]:
        return [self.field]

    def matches(self, values: Mapping[str, Any]) -> bool:
        left = _raw(values.get(self.field))
        if self.op == ComparisonOp.IS_NULL:
            return left is None
        if self.op == ComparisonOp.IS_NOT_NULL:
            return left is not None
        if left is None:
            return False
        try:
            return self._compare(left)
        except TypeError:
            # Incomparable variants (e.g. string vs number) never match
            return False

    def _compare(self, left: Any) -> bool:
        op = self.op
        if op == ComparisonOp.IN:
            return left in self.value
        if op == ComparisonOp.NOT_IN:
            return left not in self.value
        if op == ComparisonOp.BETWEEN:
            low, high = self.value
            return low <= left <= high
        if op == ComparisonOp.LIKE:
            pattern = re.escape(self.value).replace("%", ".*").replace("_", ".")
            return bool(re.fullmatch(pattern, str(left), re.IGNORECASE | re.DOTALL))
        right = _raw(self.value)
        if right is None:
            return False
        if op == ComparisonOp.EQ:
            return left == right
        if op == ComparisonOp.NE:
            return left != right
        if op == ComparisonOp.GT:
            return left > right
        if op == ComparisonOp.LT:
            return left < right
        if op == ComparisonOp.GE:
            return left >= right
        if op == ComparisonOp.LE:
            return left <= right
        return False

    def __str__(self) -> str:
        if self.op in _UNARY_OPS:
            return f"{self.field} {self.op.value}"
        if self.op in _SET_OPS:
            joined = ", ".join(_literal(v) for v in self.value)
            return f"{self.field} {self.op.value} ({joined})"
        if self.op == ComparisonOp.BETWEEN:
            low, high = self.value
            return f"({self.field} >= {_literal(low)} AND {self.field} <= {_literal(high)})"
        return f"{self.field} {self.op.value} {_literal(self.value)}"


@dataclass(frozen=True)
class LogicalPredicate(Predicate):
    """AND / OR / NOT over child predicates."""

    op: LogicalOp
    operands: tuple[Predicate, ...]

    def __post_init__(self) -> None:
        object.__setattr__(self, "operands", tuple(self.operands))
        if self.op == LogicalOp.NOT and len(self.operands) != 1:
            raise MalformedQueryError("NOT takes exactly one operand")
        if not self.operands:
            raise MalformedQueryError(f"{self.op.value} needs at least one operand")
        for operand in self.operands:
            if not isinstance(operand, Predicate):
                raise MalformedQueryError(
                    f"{self.op.value} operand must be a predicate, got {type(operand).__name__}"
                )

    def fields(self) -> list[str]:
        seen: dict[str, None] = {}
        for operand in self.operands:
            for name in operand.fields():
                seen.setdefault(name, None)
        return list(seen)

    def matches(self, values: Mapping[str, Any]) -> bool:
        if self.op == LogicalOp.AND:
            return all(o.matches(values) for o in self.operands)
        if self.op == LogicalOp.OR:
            return any(o.matches(values) for o in self.operands)
        return not self.operands[0].matches(values)

    def __str__(self) -> str:
        if self.op == LogicalOp.NOT:
            return f"NOT ({self.operands[0]})"
        if len(self.operands) == 1:
            return str(self.operands[0])
        return "(" + f" {self.op.value} ".join(str(o) for o in self.operands) + ")"


def eq(field: str, value: Any) -> Comparison:
    if value is None:
        return Comparison(field, ComparisonOp.IS_NULL)
    return Comparison(field, ComparisonOp.EQ, value)


def ne(field: str, value: Any) -> Comparison:
    if value is None:
        return Comparison(field, ComparisonOp.IS_NOT_NULL)
    return Comparison(field, ComparisonOp.NE, value)


def gt(field: str, value: Any) -> Comparison:
    return Comparison(field, ComparisonOp.GT, value)


def lt(field: str, value: Any) -> Comparison:
    return Comparison(field, ComparisonOp.LT, value)


def ge(field: str, value: Any) -> Comparison:
    return Comparison(field, ComparisonOp.GE, value)


def le(field: str, value: Any) -> Comparison:
    return Comparison(field, ComparisonOp.LE, value)


def in_(field: str, values: Iterable[Any]) -> Comparison:
    return Comparison(field, ComparisonOp.IN, values)


def not_in(field: str, values: Iterable[Any]) -> Comparison:
    return Comparison(field, ComparisonOp.NOT_IN, values)


def like(field: str, pattern: str) -> Comparison:
    return Comparison(field, ComparisonOp.LIKE, pattern)


def between(field: str, low: Any, high: Any) -> Comparison:
    return Comparison(field, ComparisonOp.BETWEEN, (low, high))


def is_null(field: str) -> Comparison:
    return Comparison(field, ComparisonOp.IS_NULL)


def is_not_null(field: str) -> Comparison:
    return Comparison(field, ComparisonOp.IS_NOT_NULL)


def _flatten(op: LogicalOp, operands: tuple[Predicate, ...]) -> tuple[Predicate, ...]:
    flat: list[Predicate] = []
    for operand in operands:
        if isinstance(operand, LogicalPredicate) and operand.op == op:
            flat.extend(operand.operands)
        else:
            flat.append(operand)
    return tuple(flat)


def and_(*operands: Predicate) -> LogicalPredicate:
    return LogicalPredicate(LogicalOp.AND, _flatten(LogicalOp.AND, operands))


def or_(*operands: Predicate) -> LogicalPredicate:
    return LogicalPredicate(LogicalOp.OR, _flatten(LogicalOp.OR, operands))


def not_(operand: Predicate) -> LogicalPredicate:
    return LogicalPredicate(LogicalOp.NOT, (operand,))
