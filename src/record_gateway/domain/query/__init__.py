"""Query model: predicate trees and immutable query expressions.

Exports:
    Expressions:
        - QueryExpression: Immutable, validated query description
        - select, select_aggregates: Entry points for building queries
        - Aggregate, AggregateFunction: Aggregate columns
        - OrderBy, Relation, QueryLimits: Ordering, sub-queries, shape limits

    Predicates:
        - Predicate, Comparison, LogicalPredicate: Filter tree nodes
        - ComparisonOp, LogicalOp: Operators
        - eq, ne, gt, lt, ge, le, in_, not_in, like, between, is_null,
          is_not_null, and_, or_, not_: Predicate constructors
"""

from record_gateway.domain.query.expression import (
    DEFAULT_LIMITS,
    Aggregate,
    AggregateFunction,
    OrderBy,
    QueryExpression,
    QueryLimits,
    Relation,
    select,
    select_aggregates,
)
from record_gateway.domain.query.predicates import (
    Comparison,
    ComparisonOp,
    LogicalOp,
    LogicalPredicate,
    Predicate,
    and_,
    between,
    eq,
    ge,
    gt,
    in_,
    is_not_null,
    is_null,
    le,
    like,
    lt,
    ne,
    not_,
    not_in,
    or_,
)

__all__ = [
    # Expressions
    "QueryExpression",
    "QueryLimits",
    "DEFAULT_LIMITS",
    "Aggregate",
    "AggregateFunction",
    "OrderBy",
    "Relation",
    "select",
    "select_aggregates",
    # Predicates
    "Predicate",
    "Comparison",
    "LogicalPredicate",
    "ComparisonOp",
    "LogicalOp",
    "eq",
    "ne",
    "gt",
    "lt",
    "ge",
    "le",
    "in_",
    "not_in",
    "like",
    "between",
    "is_null",
    "is_not_null",
    "and_",
    "or_",
    "not_",
]
