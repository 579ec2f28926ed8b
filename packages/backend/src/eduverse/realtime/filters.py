"""Row filter expressions in the backend's filter syntax.

A filter is written `column=operator.value`, e.g.
`recipient_user_id=eq.3f1c…` or `status=in.(open,pending)`. The same
syntax is used for REST query parameters and for change-feed filters, so
one parser serves both.
"""

from dataclasses import dataclass
from typing import Any

OPERATORS = ("eq", "neq", "lt", "lte", "gt", "gte", "in", "is")


def format_filter_value(value: Any) -> str:
    """Render a Python value the way the backend expects it in a filter."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_list(raw: str) -> tuple[str, ...]:
    if not (raw.startswith("(") and raw.endswith(")")):
        raise ValueError(f"'in' filter expects a parenthesised list, got {raw!r}")
    inner = raw[1:-1]
    if not inner:
        return ()
    return tuple(item.strip().strip('"') for item in inner.split(","))


def _compare(left: str, right: str) -> int:
    # Numeric when both sides parse as numbers, lexical otherwise
    # (ISO timestamps order correctly as strings).
    try:
        a, b = float(left), float(right)
    except ValueError:
        a, b = left, right
    return (a > b) - (a < b)


@dataclass(frozen=True)
class RowFilter:
    """A single `column=op.value` predicate."""

    column: str
    operator: str
    value: str

    @classmethod
    def parse(cls, expression: str) -> "RowFilter":
        column, sep, rest = expression.partition("=")
        operator, dot, value = rest.partition(".")
        if not sep or not dot or not column.strip():
            raise ValueError(f"Malformed row filter: {expression!r}")
        if operator not in OPERATORS:
            raise ValueError(f"Unsupported filter operator {operator!r} in {expression!r}")
        if operator == "in":
            _parse_list(value)
        return cls(column=column.strip(), operator=operator, value=value)

    def __str__(self) -> str:
        return f"{self.column}={self.operator}.{self.value}"

    def matches(self, row: dict[str, Any]) -> bool:
        """Evaluate the filter against a change record."""
        if self.column not in row:
            return False
        actual = row[self.column]

        if self.operator == "is":
            return format_filter_value(actual) == self.value.lower()
        if actual is None:
            # SQL semantics: comparisons with NULL are never true
            return False

        rendered = format_filter_value(actual)
        if self.operator == "eq":
            return rendered == self.value
        if self.operator == "neq":
            return rendered != self.value
        if self.operator == "in":
            return rendered in _parse_list(self.value)

        order = _compare(rendered, self.value)
        return {
            "lt": order < 0,
            "lte": order <= 0,
            "gt": order > 0,
            "gte": order >= 0,
        }[self.operator]
