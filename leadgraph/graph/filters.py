"""
Dynamic Cypher compilation for filtered, paginated listings.

``QueryFilterCompiler`` turns a sparse :class:`FilterSpec` into match clauses,
where clauses and bound parameters. Absent filters contribute nothing, so an
empty spec compiles to the bare entity pattern. Listing queries built from a
:class:`CompiledQuery` always collapse optional-match fan-out back to one row
per entity before ``ORDER BY`` / ``SKIP`` / ``LIMIT`` run.
"""

from __future__ import annotations

import math
import numbers
import re
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence

INT64_MIN = -(2**63)
INT64_MAX = 2**63 - 1

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class InvalidFilterError(ValueError):
    """Raised when a filter value cannot be bound as a query parameter."""


@dataclass
class DateRange:
    """Inclusive millisecond-epoch bounds on a numeric timestamp property."""

    field: str
    start: Optional[float] = None
    end: Optional[float] = None


@dataclass
class FilterSpec:
    text_match: Optional[str] = None
    exact_matches: Dict[str, Any] = field(default_factory=dict)
    tag_name: Optional[str] = None
    pain_name: Optional[str] = None
    date_ranges: List[DateRange] = field(default_factory=list)
    page: Optional[int] = None
    limit: Optional[int] = None


@dataclass(frozen=True)
class RelationshipFilter:
    """An extra traversal that both constrains the entity and binds a value."""

    rel_type: str
    label: str
    alias: str
    property: str
    param: str

    def match_clause(self, entity_alias: str) -> str:
        return f"MATCH ({entity_alias})-[:{self.rel_type}]->({self.alias}:{self.label})"

    def where_clause(self) -> str:
        return f"{self.alias}.{self.property} = ${self.param}"


@dataclass(frozen=True)
class LeadQuerySchema:
    label: str = "Lead"
    alias: str = "l"
    text_field: str = "nome"
    tag: RelationshipFilter = RelationshipFilter("TEM_TAG", "Tag", "tg", "nome", "tag")
    pain: RelationshipFilter = RelationshipFilter("TEM_DOR", "Dor", "dr", "nome", "pain")


@dataclass(frozen=True)
class CollectSpec:
    """``OPTIONAL MATCH <pattern>`` folded into ``collect(DISTINCT <expression>) AS <name>``."""

    pattern: str
    expression: str
    name: str


@dataclass
class CompiledQuery:
    match_clauses: List[str]
    where_clauses: List[str] = field(default_factory=list)
    params: Dict[str, Any] = field(default_factory=dict)
    alias: str = "l"
    paginated: bool = False

    def base_query(self) -> str:
        query = " ".join(self.match_clauses)
        if self.where_clauses:
            query = f"{query} WHERE {' AND '.join(self.where_clauses)}"
        return query

    def filter_params(self) -> Dict[str, Any]:
        """Parameters without the pagination pair, for count queries."""
        return {key: value for key, value in self.params.items() if key not in {"skip", "limit"}}

    def count_query(self) -> str:
        return f"{self.base_query()} RETURN count(DISTINCT {self.alias}) AS total"

    def listing_query(
        self,
        returns: str,
        *,
        collections: Sequence[CollectSpec] = (),
        order_by: Optional[str] = None,
    ) -> str:
        """
        Render a listing query that regroups before ordering and paginating.

        ``WITH DISTINCT`` drops duplicates introduced by the filter matches;
        the optional collections are then aggregated per entity, and only
        after that does ``ORDER BY`` / ``SKIP`` / ``LIMIT`` apply.
        """
        alias = self.alias
        lines = [self.base_query(), f"WITH DISTINCT {alias}"]
        if collections:
            for spec in collections:
                lines.append(f"OPTIONAL MATCH {spec.pattern}")
            aggregates = ", ".join(f"collect(DISTINCT {spec.expression}) AS {spec.name}" for spec in collections)
            lines.append(f"WITH {alias}, {aggregates}")
        if order_by:
            lines.append(f"ORDER BY {order_by}")
        if self.paginated:
            lines.append("SKIP $skip LIMIT $limit")
        lines.append(f"RETURN {returns}")
        return "\n".join(lines)


def _require_identifier(name: Any, what: str) -> str:
    if not isinstance(name, str) or not _IDENTIFIER_RE.match(name):
        raise InvalidFilterError(f"{what} must be a plain property name, got {name!r}")
    return name


def _store_integer(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, (numbers.Real, Decimal)):
        raise InvalidFilterError(f"{what} must be numeric, got {value!r}")
    if not isinstance(value, numbers.Integral):
        if not math.isfinite(float(value)):
            raise InvalidFilterError(f"{what} must be finite, got {value!r}")
        value = int(value)
    value = int(value)
    if value < INT64_MIN or value > INT64_MAX:
        raise InvalidFilterError(f"{what} is outside the 64-bit integer range: {value}")
    return value


def _bindable_scalar(value: Any, what: str) -> Any:
    if isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidFilterError(f"{what} must be finite, got {value!r}")
        return value
    raise InvalidFilterError(f"{what} must be a string, number or boolean, got {type(value).__name__}")


class QueryFilterCompiler:
    """Compile :class:`FilterSpec` instances against a fixed entity schema."""

    def __init__(self, schema: Optional[LeadQuerySchema] = None):
        self.schema = schema or LeadQuerySchema()

    def compile(self, spec: Optional[FilterSpec] = None) -> CompiledQuery:
        spec = spec or FilterSpec()
        schema = self.schema
        alias = schema.alias

        match_clauses = [f"MATCH ({alias}:{schema.label})"]
        where_clauses: List[str] = []
        params: Dict[str, Any] = {}

        if spec.text_match:
            where_clauses.append(f"toLower({alias}.{schema.text_field}) CONTAINS toLower($textMatch)")
            params["textMatch"] = _bindable_scalar(spec.text_match, "text_match")

        for name in sorted(spec.exact_matches or {}):
            value = spec.exact_matches[name]
            if value is None or value == "":
                continue
            prop = _require_identifier(name, "exact match field")
            param = f"eq_{prop}"
            where_clauses.append(f"{alias}.{prop} = ${param}")
            params[param] = _bindable_scalar(value, f"exact match {prop}")

        seen_fields: Dict[str, int] = {}
        for date_range in spec.date_ranges or []:
            prop = _require_identifier(date_range.field, "date range field")
            # Repeated fields get numbered parameters so every bound is kept.
            occurrence = seen_fields.get(prop, 0)
            seen_fields[prop] = occurrence + 1
            suffix = f"_{occurrence}" if occurrence else ""
            if date_range.start is not None:
                param = f"{prop}StartMillis{suffix}"
                where_clauses.append(f"{alias}.{prop} >= ${param}")
                params[param] = _store_integer(date_range.start, f"{prop} start")
            if date_range.end is not None:
                param = f"{prop}EndMillis{suffix}"
                where_clauses.append(f"{alias}.{prop} <= ${param}")
                params[param] = _store_integer(date_range.end, f"{prop} end")

        for rel_filter, value in ((schema.tag, spec.tag_name), (schema.pain, spec.pain_name)):
            if not value:
                continue
            match_clauses.append(rel_filter.match_clause(alias))
            where_clauses.append(rel_filter.where_clause())
            params[rel_filter.param] = _bindable_scalar(value, rel_filter.param)

        paginated = False
        if spec.limit is not None:
            limit = self._pagination_int(spec.limit, "limit")
            page = self._pagination_int(spec.page if spec.page is not None else 1, "page")
            params["skip"] = _store_integer((page - 1) * limit, "skip")
            params["limit"] = _store_integer(limit, "limit")
            paginated = True
        elif spec.page is not None:
            raise InvalidFilterError("page requires limit")

        return CompiledQuery(
            match_clauses=match_clauses,
            where_clauses=where_clauses,
            params=params,
            alias=alias,
            paginated=paginated,
        )

    @staticmethod
    def _pagination_int(value: Any, what: str) -> int:
        if isinstance(value, bool) or not isinstance(value, numbers.Integral):
            raise InvalidFilterError(f"{what} must be an integer, got {value!r}")
        return int(value)


def compile_filter_query(spec: Optional[FilterSpec] = None, schema: Optional[LeadQuerySchema] = None) -> CompiledQuery:
    return QueryFilterCompiler(schema).compile(spec)
