# Copyright (c) 2025-2026 Gowtham Adamane Rao. All Rights Reserved.
#
# Licensed under the Prosperity Public License 3.0.0 (the "License").
# You may not use this file except in compliance with the License.
# You may obtain a copy of the License in the LICENSE file at the root
# of this repository, or at: https://prosperitylicense.com/versions/3.0.0
#
# Commercial use beyond a 30-day trial requires a separate license.


"""
Query engine for the OData system query options.

This module parses the `$filter`, `$select`, `$orderby`, `$top`, `$skip` and
`$count` options sent by clients and evaluates them against the read-only
DataFrame view of an ObservationCollection. Evaluation never modifies the
collection; every step produces a new frame.
"""

import logging
import operator
import re
from typing import Any, Callable, Dict, List, Mapping, NamedTuple, Optional, Tuple, Union

import pandas as pd
from pydantic import BaseModel, Field

from .errors import QueryError
from .models import FIELDS, ObservationCollection

logger = logging.getLogger(__name__)

STRING, DATETIME, INTEGER = "string", "datetime", "integer"

FIELD_KINDS: Dict[str, str] = {
    "Id": STRING,
    "Country": STRING,
    "Province": STRING,
    "Date": DATETIME,
    "Value": STRING,
    "Count": INTEGER,
}

SUPPORTED_OPTIONS = ("filter", "select", "orderby", "top", "skip", "count")


class QueryOptions(BaseModel):
    """The system query options of a single request."""

    filter: Optional[str] = Field(default=None, description="Boolean predicate.")
    select: List[str] = Field(
        default_factory=lambda: list(FIELDS),
        description="Fields to project, in output order.",
    )
    orderby: List[Tuple[str, bool]] = Field(
        default_factory=list, description="(field, ascending) sort keys."
    )
    top: Optional[int] = Field(default=None, description="Maximum rows returned.")
    skip: int = Field(default=0, description="Rows skipped before returning.")
    count: bool = Field(default=False, description="Include the total match count.")

    @classmethod
    def from_params(
        cls, params: Mapping[str, Optional[str]], max_top: Optional[int] = None
    ) -> "QueryOptions":
        """
        Builds QueryOptions from raw `$`-prefixed query parameters.

        Raises:
            QueryError: If an option is unknown or malformed.
        """
        values: Dict[str, str] = {}
        for key, raw in params.items():
            if not key.startswith("$"):
                continue
            name = key[1:].lower()
            if name not in SUPPORTED_OPTIONS:
                raise QueryError(f"The query option '{key}' is not supported.")
            if raw is not None:
                values[name] = raw

        options = cls()
        if values.get("filter", "").strip():
            options.filter = values["filter"]
            # Fail early on syntax errors, before touching any data.
            FilterParser(options.filter).parse()
        if "select" in values:
            options.select = parse_select(values["select"])
        if "orderby" in values:
            options.orderby = parse_orderby(values["orderby"])
        if "top" in values:
            options.top = _parse_non_negative("$top", values["top"])
            if max_top is not None and options.top > max_top:
                raise QueryError(
                    f"The limit of '{max_top}' for $top was exceeded; "
                    f"the requested top was '{options.top}'."
                )
        if "skip" in values:
            options.skip = _parse_non_negative("$skip", values["skip"])
        if "count" in values:
            flag = values["count"].strip().lower()
            if flag not in ("true", "false"):
                raise QueryError(f"$count must be 'true' or 'false', got '{values['count']}'.")
            options.count = flag == "true"
        return options


class QueryResult(NamedTuple):
    records: List[Dict[str, Any]]
    count: int


def _parse_non_negative(option: str, raw: str) -> int:
    try:
        value = int(raw.strip())
    except ValueError:
        raise QueryError(f"{option} must be an integer, got '{raw}'.") from None
    if value < 0:
        raise QueryError(f"{option} must not be negative, got '{raw}'.")
    return value


def _check_field(name: str) -> str:
    if name not in FIELD_KINDS:
        raise QueryError(
            f"Could not find a property named '{name}'. "
            f"Available properties: {', '.join(FIELD_KINDS)}."
        )
    return name


def parse_select(raw: str) -> List[str]:
    items = [item.strip() for item in raw.split(",")]
    if not any(items):
        raise QueryError("$select must name at least one property.")
    if "*" in items:
        return list(FIELDS)
    selected: List[str] = []
    for item in items:
        if not item:
            raise QueryError(f"Empty property in $select '{raw}'.")
        if _check_field(item) not in selected:
            selected.append(item)
    return selected


def parse_orderby(raw: str) -> List[Tuple[str, bool]]:
    keys: List[Tuple[str, bool]] = []
    for item in raw.split(","):
        parts = item.split()
        if not parts or len(parts) > 2:
            raise QueryError(f"Malformed $orderby clause '{item.strip()}'.")
        direction = parts[1].lower() if len(parts) == 2 else "asc"
        if direction not in ("asc", "desc"):
            raise QueryError(f"Unknown sort direction '{parts[1]}' in $orderby.")
        keys.append((_check_field(parts[0]), direction == "asc"))
    return keys


# === $filter parsing ===


class FieldRef(NamedTuple):
    name: str


class Literal(NamedTuple):
    kind: str
    value: Any


class Comparison(NamedTuple):
    op: str
    left: Union[FieldRef, Literal]
    right: Union[FieldRef, Literal]


class FunctionCall(NamedTuple):
    name: str
    field: FieldRef
    argument: Literal


class BoolOp(NamedTuple):
    op: str
    left: Any
    right: Any


class Not(NamedTuple):
    operand: Any


NULL, BOOLEAN = "null", "boolean"

COMPARISON_OPS: Dict[str, Callable[[Any, Any], Any]] = {
    "eq": operator.eq,
    "ne": operator.ne,
    "gt": operator.gt,
    "ge": operator.ge,
    "lt": operator.lt,
    "le": operator.le,
}
STRING_FUNCTIONS = ("contains", "startswith", "endswith")

TOKEN_RE = re.compile(
    r"""
    (?P<ws>\s+)
    |(?P<datetime>datetime'[^']*')
    |(?P<string>'(?:[^']|'')*')
    |(?P<isodate>\d{4}-\d{2}-\d{2}(?:T\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:\d{2})?)?)
    |(?P<number>-?\d+)
    |(?P<name>[A-Za-z_][A-Za-z0-9_]*)
    |(?P<punct>[(),])
    """,
    re.VERBOSE,
)


def parse_date_literal(text: str) -> pd.Timestamp:
    """Parses an ISO-8601 literal and floors it to midnight UTC."""
    try:
        ts = pd.Timestamp(text)
    except (ValueError, TypeError):
        raise QueryError(f"'{text}' is not a valid date literal.") from None
    if ts is pd.NaT:
        raise QueryError(f"'{text}' is not a valid date literal.")
    ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
    return ts.normalize()


class FilterParser:
    """A recursive-descent parser for the supported `$filter` grammar."""

    def __init__(self, text: str):
        self.text = text
        self.tokens = self._tokenize(text)
        self.pos = 0

    @staticmethod
    def _tokenize(text: str) -> List[Tuple[str, str]]:
        tokens: List[Tuple[str, str]] = []
        pos = 0
        while pos < len(text):
            match = TOKEN_RE.match(text, pos)
            if not match:
                raise QueryError(f"Syntax error at position {pos} in $filter '{text}'.")
            pos = match.end()
            kind = match.lastgroup or ""
            if kind != "ws":
                tokens.append((kind, match.group()))
        return tokens

    def _peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _next(self) -> Tuple[str, str]:
        token = self._peek()
        if token is None:
            raise QueryError(f"Unexpected end of $filter '{self.text}'.")
        self.pos += 1
        return token

    def _accept_keyword(self, keyword: str) -> bool:
        token = self._peek()
        if token and token[0] == "name" and token[1] == keyword:
            self.pos += 1
            return True
        return False

    def _expect(self, value: str) -> None:
        token = self._next()
        if token[1] != value:
            raise QueryError(f"Expected '{value}' but found '{token[1]}' in $filter.")

    def parse(self) -> Any:
        if not self.tokens:
            raise QueryError("$filter must not be empty.")
        node = self._or()
        if self._peek() is not None:
            raise QueryError(f"Unexpected token '{self._peek()[1]}' in $filter.")
        return node

    def _or(self) -> Any:
        node = self._and()
        while self._accept_keyword("or"):
            node = BoolOp("or", node, self._and())
        return node

    def _and(self) -> Any:
        node = self._unary()
        while self._accept_keyword("and"):
            node = BoolOp("and", node, self._unary())
        return node

    def _unary(self) -> Any:
        if self._accept_keyword("not"):
            return Not(self._unary())
        return self._primary()

    def _primary(self) -> Any:
        token = self._peek()
        if token == ("punct", "("):
            self._next()
            node = self._or()
            self._expect(")")
            return node
        if token and token[0] == "name" and token[1] in STRING_FUNCTIONS:
            return self._function()

        left = self._operand()
        op_token = self._next()
        if op_token[0] != "name" or op_token[1] not in COMPARISON_OPS:
            raise QueryError(f"Expected a comparison operator, found '{op_token[1]}'.")
        right = self._operand()
        if isinstance(left, Literal) and isinstance(right, Literal):
            raise QueryError("A comparison must reference at least one property.")
        return Comparison(op_token[1], left, right)

    def _function(self) -> FunctionCall:
        name = self._next()[1]
        self._expect("(")
        field = self._operand()
        self._expect(",")
        argument = self._operand()
        self._expect(")")
        if not isinstance(field, FieldRef) or FIELD_KINDS[field.name] != STRING:
            raise QueryError(f"{name}() requires a string property as first argument.")
        if not isinstance(argument, Literal) or argument.kind != STRING:
            raise QueryError(f"{name}() requires a string literal as second argument.")
        return FunctionCall(name, field, argument)

    def _operand(self) -> Union[FieldRef, Literal]:
        kind, text = self._next()
        if kind == "string":
            return Literal(STRING, text[1:-1].replace("''", "'"))
        if kind == "datetime":
            return Literal(DATETIME, parse_date_literal(text[len("datetime'") : -1]))
        if kind == "isodate":
            return Literal(DATETIME, parse_date_literal(text))
        if kind == "number":
            return Literal(INTEGER, int(text))
        if kind == "name":
            if text == "null":
                return Literal(NULL, None)
            if text in ("true", "false"):
                return Literal(BOOLEAN, text == "true")
            return FieldRef(_check_field(text))
        raise QueryError(f"Unexpected token '{text}' in $filter.")


# === $filter evaluation ===


def _coerce_literal(literal: Literal, field_kind: str, field_name: str) -> Any:
    if literal.kind == field_kind:
        return literal.value
    if field_kind == DATETIME and literal.kind == STRING:
        return parse_date_literal(literal.value)
    raise QueryError(
        f"Cannot compare property '{field_name}' of type {field_kind} "
        f"with a {literal.kind} literal."
    )


def _evaluate(node: Any, df: pd.DataFrame) -> pd.Series:
    if isinstance(node, BoolOp):
        left, right = _evaluate(node.left, df), _evaluate(node.right, df)
        return (left & right) if node.op == "and" else (left | right)
    if isinstance(node, Not):
        return ~_evaluate(node.operand, df)
    if isinstance(node, FunctionCall):
        series = df[node.field.name].astype(str)
        method = getattr(series.str, node.name)
        if node.name == "contains":
            return method(node.argument.value, regex=False)
        return method(node.argument.value)
    return _evaluate_comparison(node, df)


def _evaluate_comparison(node: Comparison, df: pd.DataFrame) -> pd.Series:
    op = COMPARISON_OPS[node.op]
    left, right = node.left, node.right

    if isinstance(left, FieldRef) and isinstance(right, FieldRef):
        if FIELD_KINDS[left.name] != FIELD_KINDS[right.name]:
            raise QueryError(f"Cannot compare '{left.name}' with '{right.name}'.")
        return op(df[left.name], df[right.name])

    # Normalise to (field op literal); mirror the operator when swapped.
    if isinstance(left, Literal):
        mirrored = {"gt": "lt", "ge": "le", "lt": "gt", "le": "ge"}
        op = COMPARISON_OPS[mirrored.get(node.op, node.op)]
        left, right = right, left

    if right.kind == NULL:
        # Observations never carry null properties.
        if node.op not in ("eq", "ne"):
            raise QueryError(f"Operator '{node.op}' cannot be used with null.")
        return pd.Series(node.op == "ne", index=df.index)

    value = _coerce_literal(right, FIELD_KINDS[left.name], left.name)
    return op(df[left.name], value)


def apply_filter(df: pd.DataFrame, expression: Optional[str]) -> pd.DataFrame:
    """Returns the rows of `df` matching a `$filter` expression."""
    if not expression or not expression.strip():
        return df
    tree = FilterParser(expression).parse()
    mask = _evaluate(tree, df)
    return df[mask.astype(bool)]


# === Execution ===


def _serialize(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.strftime("%Y-%m-%dT%H:%M:%SZ")
    if hasattr(value, "item"):
        return value.item()
    return value


def execute(collection: ObservationCollection, options: QueryOptions) -> QueryResult:
    """
    Evaluates query options against a collection.

    Filtering happens first and determines the count; ordering is stable
    with ties kept in ingestion order; paging and projection come last.

    Args:
        collection: The collection to query.
        options: The parsed system query options.

    Returns:
        The projected records and the number of filter matches.
    """
    matched = apply_filter(collection.frame, options.filter)
    total = len(matched)

    if options.orderby:
        by = [name for name, _ in options.orderby] + ["__position"]
        ascending = [asc for _, asc in options.orderby] + [True]
        matched = (
            matched.assign(__position=range(total))
            .sort_values(by=by, ascending=ascending, kind="stable")
            .drop(columns="__position")
        )

    end = None if options.top is None else options.skip + options.top
    page = matched.iloc[options.skip : end]

    records = [
        {name: _serialize(value) for name, value in row.items()}
        for row in page[options.select].to_dict("records")
    ]
    logger.debug(
        f"Query on {collection.metric.entity_set} matched {total} rows, "
        f"returning {len(records)}."
    )
    return QueryResult(records=records, count=total)
