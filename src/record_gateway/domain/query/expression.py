"""Immutable query expressions.

A QueryExpression describes one structured read against a store collection:
projection, filter tree, relationship sub-queries, grouping/aggregation,
ordering and paging. Expressions are built by chaining; every builder method
returns a new, fully validated expression and never touches a store or a
quota.

Example:
    >>> q = (
    ...     select("Account", "Id", "Name")
    ...     .where(in_("Id", ["001A", "001B"]))
    ...     .with_relation("Contacts", select("Contact", "Id", "LastName"))
    ...     .order_by("Name")
    ...     .limit(10)
    ... )
    >>> str(q)
    "SELECT Id, Name, (SELECT Id, LastName FROM Contacts) FROM Account WHERE Id IN ('001A', '001B') ORDER BY Name ASC NULLS LAST LIMIT 10"

Validation rules (MalformedQueryError on violation):
    - target is non-blank and the projection (fields plus aggregates) is non-empty
    - aggregates name a known function; COUNT takes no field, the others need one
    - with aggregates, every selected field is grouped and ordering uses
      grouped fields or aggregate aliases
    - grouped queries select only grouped fields
    - relationship nesting depth and per-level breadth stay within QueryLimits
    - relation names are unique; sub-queries carry no aggregates or grouping
    - aggregate queries carry no relationship sub-queries
    - limit, when set, is positive; offset is non-negative
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable

from record_gateway.domain.errors import MalformedQueryError
from record_gateway.domain.query.predicates import Predicate, and_


class AggregateFunction(Enum):
    """Aggregate functions supported in aggregate queries."""

    COUNT = "COUNT"
    COUNT_FIELD = "COUNT_FIELD"
    SUM = "SUM"
    AVG = "AVG"
    MIN = "MIN"
    MAX = "MAX"


@dataclass(frozen=True)
class QueryLimits:
    """Shape limits applied while building a query."""

    max_relation_depth: int = 1
    max_relations: int = 55

    def __post_init__(self) -> None:
        if self.max_relation_depth < 0 or self.max_relations < 0:
            raise ValueError("QueryLimits must be non-negative")


DEFAULT_LIMITS = QueryLimits()


@dataclass(frozen=True)
class Aggregate:
    """One aggregate column, e.g. SUM(AnnualRevenue) total."""

    function: AggregateFunction
    field: str | None = None
    alias: str | None = None

    def __post_init__(self) -> None:
        function = self.function
        if not isinstance(function, AggregateFunction):
            try:
                function = AggregateFunction(str(function).upper())
            except ValueError:
                raise MalformedQueryError(
                    f"Unknown aggregate function {self.function!r}"
                ) from None
            object.__setattr__(self, "function", function)
        if function == AggregateFunction.COUNT:
            if self.field is not None:
                raise MalformedQueryError("COUNT takes no field; use COUNT_FIELD")
        elif not self.field or not self.field.strip():
            raise MalformedQueryError(f"{function.value} needs a field")

    @classmethod
    def count(cls, alias: str | None = None) -> Aggregate:
        return cls(AggregateFunction.COUNT, None, alias)

    def __str__(self) -> str:
        if self.function == AggregateFunction.COUNT:
            call = "COUNT()"
        elif self.function == AggregateFunction.COUNT_FIELD:
            call = f"COUNT({self.field})"
        else:
            call = f"{self.function.value}({self.field})"
        return f"{call} {self.alias}" if self.alias else call


@dataclass(frozen=True)
class OrderBy:
    """One ordering key."""

    field: str
    descending: bool = False
    nulls_last: bool = True

    def __str__(self) -> str:
        direction = "DESC" if self.descending else "ASC"
        nulls = "NULLS LAST" if self.nulls_last else "NULLS FIRST"
        return f"{self.field} {direction} {nulls}"


@dataclass(frozen=True)
class Relation:
    """A named relationship sub-query."""

    name: str
    query: QueryExpression


def _clean_names(kind: str, names: Iterable[str]) -> tuple[str, ...]:
    cleaned: dict[str, None] = {}
    for name in names:
        if not isinstance(name, str) or not name.strip():
            raise MalformedQueryError(f"{kind} names must be non-blank strings")
        cleaned.setdefault(name.strip(), None)
    return tuple(cleaned)


@dataclass(frozen=True)
class QueryExpression:
    """Immutable description of a structured query.

    Attributes:
        target: Collection queried.
        fields: Ordered, de-duplicated projection.
        filter: Predicate tree or None.
        relations: Relationship sub-queries, in declaration order.
        group_fields: Grouping fields (aggregate queries only).
        aggregates: Aggregate columns.
        ordering: Ordering keys.
        row_limit: Maximum rows, or None.
        row_offset: Rows skipped before the first returned row.
        limits: Shape limits this expression was validated against.
    """

    target: str
    fields: tuple[str, ...] = ()
    filter: Predicate | None = None
    relations: tuple[Relation, ...] = ()
    group_fields: tuple[str, ...] = ()
    aggregates: tuple[Aggregate, ...] = ()
    ordering: tuple[OrderBy, ...] = ()
    row_limit: int | None = None
    row_offset: int = 0
    limits: QueryLimits = field(default=DEFAULT_LIMITS, compare=False)

    def __post_init__(self) -> None:
        self._validate()

    # ------------------------------------------------------------------
    # Builder methods
    # ------------------------------------------------------------------

    def select_fields(self, *fields: str) -> QueryExpression:
        """Replace the projection."""
        return replace(self, fields=_clean_names("Field", fields))

    def where(self, predicate: Predicate) -> QueryExpression:
        """Add a filter; an existing filter is ANDed with the new one."""
        if not isinstance(predicate, Predicate):
            raise MalformedQueryError(
                f"where() needs a predicate, got {type(predicate).__name__}"
            )
        combined = predicate if self.filter is None else and_(self.filter, predicate)
        return replace(self, filter=combined)

    def with_relation(self, name: str, query: QueryExpression) -> QueryExpression:
        """Attach a relationship sub-query under ``name``."""
        if not isinstance(query, QueryExpression):
            raise MalformedQueryError("Relation sub-query must be a QueryExpression")
        if not name or not name.strip():
            raise MalformedQueryError("Relation name must not be blank")
        return replace(self, relations=self.relations + (Relation(name.strip(), query),))

    def group_by(self, *fields: str) -> QueryExpression:
        """Set the grouping fields."""
        return replace(self, group_fields=_clean_names("Group-by", fields))

    def aggregate(
        self,
        function: AggregateFunction | str | Aggregate,
        field: str | None = None,
        alias: str | None = None,
    ) -> QueryExpression:
        """Add an aggregate column. Without an alias, ``expr<N>`` is used."""
        if isinstance(function, Aggregate):
            agg = function
        else:
            agg = Aggregate(function, field, alias)  # type: ignore[arg-type]
        if agg.alias is None:
            agg = replace(agg, alias=f"expr{len(self.aggregates)}")
        return replace(self, aggregates=self.aggregates + (agg,))

    def order_by(
        self, field: str, descending: bool = False, nulls_last: bool = True
    ) -> QueryExpression:
        """Append an ordering key."""
        if not field or not field.strip():
            raise MalformedQueryError("Order-by field must not be blank")
        key = OrderBy(field.strip(), descending, nulls_last)
        return replace(self, ordering=self.ordering + (key,))

    def limit(self, count: int) -> QueryExpression:
        """Cap the number of returned rows."""
        return replace(self, row_limit=count)

    def offset(self, count: int) -> QueryExpression:
        """Skip ``count`` rows before the first returned row."""
        return replace(self, row_offset=count)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def is_aggregate(self) -> bool:
        return bool(self.aggregates)

    @property
    def relation_map(self) -> dict[str, QueryExpression]:
        return {r.name: r.query for r in self.relations}

    def relation_depth(self) -> int:
        """Nesting height of relationship sub-queries (0 when none)."""
        if not self.relations:
            return 0
        return 1 + max(r.query.relation_depth() for r in self.relations)

    def aggregate_aliases(self) -> tuple[str, ...]:
        return tuple(a.alias for a in self.aggregates if a.alias)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(self) -> None:
        if not isinstance(self.target, str) or not self.target.strip():
            raise MalformedQueryError("Query target must not be blank")
        if not self.fields and not self.aggregates:
            raise MalformedQueryError(f"Query on {self.target} selects no fields")
        if self.filter is not None and not isinstance(self.filter, Predicate):
            raise MalformedQueryError("Query filter must be a predicate")
        if self.row_limit is not None:
            if isinstance(self.row_limit, bool) or not isinstance(self.row_limit, int):
                raise MalformedQueryError("limit must be an integer")
            if self.row_limit <= 0:
                raise MalformedQueryError(f"limit must be positive, got {self.row_limit}")
        if isinstance(self.row_offset, bool) or not isinstance(self.row_offset, int):
            raise MalformedQueryError("offset must be an integer")
        if self.row_offset < 0:
            raise MalformedQueryError(f"offset must be non-negative, got {self.row_offset}")
        self._validate_aggregation()
        self._validate_relations()

    def _validate_aggregation(self) -> None:
        if not self.aggregates and not self.group_fields:
            return

        grouped = set(self.group_fields)
        ungrouped = [f for f in self.fields if f not in grouped]
        if ungrouped:
            raise MalformedQueryError(
                f"Fields {ungrouped} are selected with aggregates but not grouped"
            )
        if not self.aggregates:
            if self.relations:
                raise MalformedQueryError("Grouped queries cannot carry relationship sub-queries")
            return

        aliases = [a.alias for a in self.aggregates if a.alias]
        if len(aliases) != len(set(aliases)):
            raise MalformedQueryError(f"Duplicate aggregate aliases in {aliases}")
        clashes = grouped.intersection(aliases)
        if clashes:
            raise MalformedQueryError(f"Aggregate aliases {sorted(clashes)} shadow grouped fields")

        sortable = grouped.union(aliases)
        for key in self.ordering:
            if key.field not in sortable:
                raise MalformedQueryError(
                    f"Cannot order aggregate query by ungrouped field {key.field}"
                )
        if self.relations:
            raise MalformedQueryError("Aggregate queries cannot carry relationship sub-queries")

    def _validate_relations(self) -> None:
        if not self.relations:
            return
        if len(self.relations) > self.limits.max_relations:
            raise MalformedQueryError(
                f"{len(self.relations)} relationship sub-queries exceed the maximum "
                f"of {self.limits.max_relations}"
            )
        names = [r.name for r in self.relations]
        if len(names) != len(set(names)):
            raise MalformedQueryError(f"Duplicate relation names in {names}")
        for relation in self.relations:
            if relation.query.aggregates or relation.query.group_fields:
                raise MalformedQueryError(
                    f"Relation {relation.name} sub-query cannot aggregate"
                )
        depth = self.relation_depth()
        if depth > self.limits.max_relation_depth:
            raise MalformedQueryError(
                f"Relationship nesting depth {depth} exceeds the maximum "
                f"of {self.limits.max_relation_depth}"
            )

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render(self, source: str) -> str:
        columns: list[str] = list(self.fields)
        columns.extend(str(a) for a in self.aggregates)
        columns.extend(f"({r.query._render(r.name)})" for r in self.relations)
        parts = [f"SELECT {', '.join(columns)} FROM {source}"]
        if self.filter is not None:
            condition = str(self.filter)
            if condition.startswith("(") and condition.endswith(")"):
                condition = condition[1:-1]
            parts.append(f"WHERE {condition}")
        if self.group_fields:
            parts.append(f"GROUP BY {', '.join(self.group_fields)}")
        if self.ordering:
            parts.append(f"ORDER BY {', '.join(str(o) for o in self.ordering)}")
        if self.row_limit is not None:
            parts.append(f"LIMIT {self.row_limit}")
        if self.row_offset:
            parts.append(f"OFFSET {self.row_offset}")
        return " ".join(parts)

    def __str__(self) -> str:
        return self._render(self.target)


def select(
    target: str,
    *fields: str,
    limits: QueryLimits = DEFAULT_LIMITS,
) -> QueryExpression:
    """Start a query on ``target`` projecting ``fields``."""
    return QueryExpression(
        target=target.strip() if isinstance(target, str) else target,
        fields=_clean_names("Field", fields),
        limits=limits,
    )


def select_aggregates(
    target: str,
    *aggregates: Aggregate,
    group_by: Iterable[str] = (),
    limits: QueryLimits = DEFAULT_LIMITS,
) -> QueryExpression:
    """Start an aggregate query; grouped fields are selected automatically."""
    if not aggregates:
        raise MalformedQueryError("select_aggregates() needs at least one aggregate")
    grouped = _clean_names("Group-by", group_by)
    named = tuple(
        agg if agg.alias else replace(agg, alias=f"expr{i}")
        for i, agg in enumerate(aggregates)
    )
    return QueryExpression(
        target=target.strip() if isinstance(target, str) else target,
        fields=grouped,
        group_fields=grouped,
        aggregates=named,
        limits=limits,
    )
