"""
OData system query options and URL literals.

Parses ``$filter``, ``$orderby``, ``$top``, ``$skip``, ``$count``, ``$select``
and ``$expand`` against an EDM entity type and applies them to a SQLAlchemy
Select. Also parses entity keys from resource path segments.

Supported ``$filter`` grammar::

    expr       := or_expr
    or_expr    := and_expr ("or" and_expr)*
    and_expr   := unary ("and" unary)*
    unary      := "not" unary | "(" expr ")" | comparison
    comparison := operand ("eq" | "ne" | "gt" | "ge" | "lt" | "le") operand
    operand    := PropertyName | literal
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple

from pydantic import TypeAdapter, ValidationError
from sqlalchemy import and_, not_, or_
from sqlalchemy.sql import ColumnElement, Select
from sqlmodel import func, select

from northwind.services.edm import EdmEntityType, EdmNavigationProperty, EdmStructuralProperty
from northwind.services.errors import ODataQueryError

MAX_TOP = 1000

_TOKEN_RE = re.compile(
    r"""
    \s*(?:
        (?P<string>'(?:[^']|'')*')
      | (?P<datetime>\d{4}-\d{2}-\d{2}(?:T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:\d{2})?)?)
      | (?P<number>-?\d+(?:\.\d+)?(?:[eE][+-]?\d+)?[mMdDfFlL]?)
      | (?P<paren>[()])
      | (?P<punct>[=,])
      | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
    )""",
    re.VERBOSE,
)

_COMPARISONS = {
    "eq": lambda a, b: a == b,
    "ne": lambda a, b: a != b,
    "gt": lambda a, b: a > b,
    "ge": lambda a, b: a >= b,
    "lt": lambda a, b: a < b,
    "le": lambda a, b: a <= b,
}

_SEGMENT_RE = re.compile(r"^(?P<name>[A-Za-z_][A-Za-z0-9_]*)(?:\((?P<key>.*)\))?$")

_NULL = object()


# ============================================================================
# Literals
# ============================================================================


def parse_datetime(text: str) -> datetime:
    """ISO 8601 date or date-time; aware values are normalized to naive UTC."""
    try:
        value = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise ODataQueryError(f"Invalid date/time literal '{text}'")
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


@lru_cache(maxsize=None)
def _adapter(python_type: type) -> TypeAdapter:
    return TypeAdapter(python_type)


def coerce_value(prop: EdmStructuralProperty, value: Any) -> Any:
    """Convert a JSON or URL value to the Python type of ``prop``."""
    if value is None or value is _NULL:
        return None

    try:
        result = _adapter(prop.python_type).validate_python(value)
    except ValidationError:
        raise ODataQueryError(f"Invalid value {value!r} for property '{prop.name}' ({prop.type_name})")
    if isinstance(result, datetime) and result.tzinfo is not None:
        result = result.astimezone(timezone.utc).replace(tzinfo=None)
    return result


# ============================================================================
# $filter
# ============================================================================


@dataclass
class _Token:
    kind: str
    text: str


def _tokenize(text: str) -> List[_Token]:
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise ODataQueryError(f"Unexpected character in $filter at position {pos}: {text[pos:pos + 10]!r}")
        kind = match.lastgroup
        tokens.append(_Token(kind, match.group(kind)))
        pos = match.end()
    return tokens


class _FilterParser:
    def __init__(self, text: str, entity_type: EdmEntityType):
        self.tokens = _tokenize(text)
        self.pos = 0
        self.entity_type = entity_type
        self.model_class = entity_type.model_class

    def parse(self) -> ColumnElement:
        if not self.tokens:
            raise ODataQueryError("$filter is empty")
        expr = self._or()
        if self.pos != len(self.tokens):
            raise ODataQueryError(f"Unexpected token '{self.tokens[self.pos].text}' in $filter")
        return expr

    def _peek(self) -> Optional[_Token]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> _Token:
        token = self._peek()
        if token is None:
            raise ODataQueryError("Unexpected end of $filter")
        self.pos += 1
        return token

    def _accept_word(self, word: str) -> bool:
        token = self._peek()
        if token is not None and token.kind == "word" and token.text == word:
            self.pos += 1
            return True
        return False

    def _or(self) -> ColumnElement:
        clauses = [self._and()]
        while self._accept_word("or"):
            clauses.append(self._and())
        return clauses[0] if len(clauses) == 1 else or_(*clauses)

    def _and(self) -> ColumnElement:
        clauses = [self._unary()]
        while self._accept_word("and"):
            clauses.append(self._unary())
        return clauses[0] if len(clauses) == 1 else and_(*clauses)

    def _unary(self) -> ColumnElement:
        if self._accept_word("not"):
            return not_(self._unary())
        token = self._peek()
        if token is not None and token.kind == "paren" and token.text == "(":
            self.pos += 1
            expr = self._or()
            closing = self._next()
            if closing.text != ")":
                raise ODataQueryError("Missing ')' in $filter")
            return expr
        return self._comparison()

    def _comparison(self) -> ColumnElement:
        left = self._operand()
        op_token = self._next()
        if op_token.kind != "word" or op_token.text not in _COMPARISONS:
            raise ODataQueryError(f"Expected comparison operator, found '{op_token.text}'")
        right = self._operand()

        left_prop = left if isinstance(left, EdmStructuralProperty) else None
        right_prop = right if isinstance(right, EdmStructuralProperty) else None
        if left_prop is None and right_prop is None:
            raise ODataQueryError("A comparison in $filter must reference at least one property")

        left_value = self._resolve(left, right_prop)
        right_value = self._resolve(right, left_prop)
        op = op_token.text

        if right_value is None or left_value is None:
            column = left_value if right_value is None else right_value
            if op == "eq":
                return column.is_(None)
            if op == "ne":
                return column.is_not(None)
            raise ODataQueryError(f"Operator '{op}' cannot be used with null")
        return _COMPARISONS[op](left_value, right_value)

    def _resolve(self, operand: Any, other: Optional[EdmStructuralProperty]) -> Any:
        if isinstance(operand, EdmStructuralProperty):
            return getattr(self.model_class, operand.python_name)
        if operand is _NULL:
            return None
        if other is not None:
            return coerce_value(other, operand)
        return operand

    def _operand(self) -> Any:
        token = self._next()
        if token.kind == "string":
            return token.text[1:-1].replace("''", "'")
        if token.kind == "datetime":
            return parse_datetime(token.text)
        if token.kind == "number":
            text = token.text.rstrip("mMdDfFlL")
            return float(text) if any(c in text for c in ".eE") else int(text)
        if token.kind == "word":
            if token.text == "null":
                return _NULL
            if token.text in ("true", "false"):
                return token.text == "true"
            prop = self.entity_type.find_structural(token.text)
            if prop is None:
                raise ODataQueryError(f"Property '{token.text}' not found on type '{self.entity_type.name}'")
            return prop
        raise ODataQueryError(f"Unexpected token '{token.text}' in $filter")


def parse_filter(text: str, entity_type: EdmEntityType) -> ColumnElement:
    return _FilterParser(text, entity_type).parse()


# ============================================================================
# Query options
# ============================================================================


@dataclass
class QueryOptions:
    filter: Optional[str] = None
    orderby: Optional[str] = None
    top: Optional[int] = None
    skip: Optional[int] = None
    count: bool = False
    select: List[str] = field(default_factory=list)
    expand: List[str] = field(default_factory=list)


def _parse_non_negative(name: str, value: Optional[str]) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        number = int(value)
    except ValueError:
        raise ODataQueryError(f"{name} must be a non-negative integer")
    if number < 0:
        raise ODataQueryError(f"{name} must be a non-negative integer")
    return number


def _split_list(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]


def parse_query_options(params: Dict[str, str]) -> QueryOptions:
    count = params.get("$count")
    if count not in (None, "true", "false"):
        raise ODataQueryError("$count must be 'true' or 'false'")
    top = _parse_non_negative("$top", params.get("$top"))
    if top is not None and top > MAX_TOP:
        raise ODataQueryError(f"$top cannot exceed {MAX_TOP}")
    return QueryOptions(
        filter=params.get("$filter") or None,
        orderby=params.get("$orderby") or None,
        top=top,
        skip=_parse_non_negative("$skip", params.get("$skip")),
        count=count == "true",
        select=_split_list(params.get("$select")),
        expand=_split_list(params.get("$expand")),
    )


def validate_shape(options: QueryOptions, entity_type: EdmEntityType) -> List[EdmNavigationProperty]:
    """Check $select/$expand names; return the explicitly expanded navigation properties."""
    for name in options.select:
        if name != "*" and entity_type.find_structural(name) is None:
            raise ODataQueryError(f"$select: property '{name}' not found on type '{entity_type.name}'")
    expanded = []
    for name in options.expand:
        nav = entity_type.find_navigation(name)
        if nav is None:
            raise ODataQueryError(f"$expand: navigation property '{name}' not found on type '{entity_type.name}'")
        expanded.append(nav)
    return expanded


def apply_filter_and_order(query: Select, options: QueryOptions, entity_type: EdmEntityType) -> Select:
    model_class = entity_type.model_class
    if options.filter:
        query = query.where(parse_filter(options.filter, entity_type))

    if options.orderby:
        for clause in _split_list(options.orderby):
            parts = clause.split()
            if len(parts) > 2 or (len(parts) == 2 and parts[1] not in ("asc", "desc")):
                raise ODataQueryError(f"Invalid $orderby clause '{clause}'")
            prop = entity_type.find_structural(parts[0])
            if prop is None:
                raise ODataQueryError(f"$orderby: property '{parts[0]}' not found on type '{entity_type.name}'")
            column = getattr(model_class, prop.python_name)
            query = query.order_by(column.desc() if len(parts) == 2 and parts[1] == "desc" else column.asc())

    return query


def apply_paging(query: Select, options: QueryOptions, entity_type: EdmEntityType) -> Select:
    """Apply $skip/$top with a stable key order so pages do not overlap."""
    if options.top is None and options.skip is None:
        return query
    for prop in entity_type.key_properties:
        query = query.order_by(getattr(entity_type.model_class, prop.python_name))
    if options.skip:
        query = query.offset(options.skip)
    if options.top is not None:
        query = query.limit(options.top)
    return query


def count_query(query: Select) -> Select:
    return select(func.count()).select_from(query.order_by(None).subquery())


# ============================================================================
# Resource path segments
# ============================================================================


def parse_segment(segment: str) -> Tuple[str, Optional[str]]:
    """'Products(1)' -> ('Products', '1'); 'Products' -> ('Products', None)."""
    match = _SEGMENT_RE.match(segment)
    if not match:
        raise ODataQueryError(f"Invalid resource path segment '{segment}'")
    return match.group("name"), match.group("key")


def _key_literal(token: _Token, text: str) -> Any:
    if token.kind == "string":
        return token.text[1:-1].replace("''", "'")
    if token.kind == "number":
        number = token.text.rstrip("mMdDfFlL")
        return int(number) if number.lstrip("-").isdigit() else float(number)
    raise ODataQueryError(f"Invalid key literal '{text}'")


def parse_key(text: str, entity_type: EdmEntityType) -> Dict[str, Any]:
    """
    Parse a key predicate into {python_name: value}.

    Accepts ``1``, ``'ALFKI'`` and the named form ``OrderId=1,ProductId=2``.
    """
    key_props = entity_type.key_properties
    groups: List[List[_Token]] = [[]]
    for token in _tokenize(text):
        if token.kind == "punct" and token.text == ",":
            groups.append([])
        else:
            groups[-1].append(token)

    if len(groups) == 1 and len(groups[0]) == 1:
        if len(key_props) != 1:
            raise ODataQueryError(f"Type '{entity_type.name}' has a composite key; use Name=value pairs")
        prop = key_props[0]
        return {prop.python_name: coerce_value(prop, _key_literal(groups[0][0], text))}

    values: Dict[str, Any] = {}
    for group in groups:
        if len(group) != 3 or group[0].kind != "word" or group[1].text != "=":
            raise ODataQueryError(f"Invalid key predicate '{text}' for type '{entity_type.name}'")
        prop = entity_type.find_structural(group[0].text)
        if prop is None or prop.name not in entity_type.key:
            raise ODataQueryError(f"Invalid key predicate '{text}' for type '{entity_type.name}'")
        values[prop.python_name] = coerce_value(prop, _key_literal(group[2], text))

    if len(values) != len(key_props):
        raise ODataQueryError(f"Key predicate '{text}' does not match the key of type '{entity_type.name}'")
    return values


def where_key(query: Select, entity_type: EdmEntityType, key: Dict[str, Any]) -> Select:
    for python_name, value in key.items():
        query = query.where(getattr(entity_type.model_class, python_name) == value)
    return query
