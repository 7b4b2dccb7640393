"""
Deterministic synthetic values.

A value is a pure function of (table id, row sequence number n, column index
i, column name, column type): no RNG state, no dependency between rows, so any
worker can compute any row. The bulk INSERT evaluates the same rules in SQL;
`sql_parameters` hands it the pools and multipliers defined here so both sides
agree.
"""

from __future__ import annotations

import zlib
from typing import Dict, Sequence

from rowstream.domain.models import CellValue, Column, ColumnType, ordered_columns

NAME_POOL = (
    "Liam", "Noah", "Olivia", "Emma", "Ava", "Mia", "Amelia", "Sophia", "Isabella", "James",
    "Benjamin", "Lucas", "Henry", "Alexander", "Charlotte", "Harper", "Evelyn", "Ella", "Jack",
    "Leo",
)  # fmt: skip

WORD_POOL = (
    "alpha", "bravo", "charlie", "delta", "echo", "foxtrot", "golf", "hotel", "india", "juliet",
    "kilo", "lima", "mike", "november", "oscar", "papa", "quebec", "romeo", "sierra", "tango",
    "uniform",
)  # fmt: skip

# (row multiplier, column multiplier) per rule
RULE_PRIMES: Dict[str, tuple[int, int]] = {
    "name": (31, 7),
    "email": (37, 11),
    "age": (13, 17),
    "number": (19, 23),
    "word": (29, 3),
}

EMAIL_BASE, EMAIL_SPAN = 100_000, 900_000
AGE_MIN, AGE_SPAN = 18, 63
NUMBER_MIN, NUMBER_SPAN = 1, 100


def table_seed(table_id: str) -> int:
    """Stable per-table offset (crc32, so identical across processes and runs)."""
    return zlib.crc32(table_id.encode("utf-8"))


def value_rule(column_name: str, column_type: ColumnType | str) -> str:
    """Pick the synthesis rule for a column. Name-based rules win over type."""
    if column_name == "Name":
        return "name"
    if column_name == "Email":
        return "email"
    if column_name == "Age":
        return "age"
    if ColumnType(column_type) is ColumnType.NUMBER:
        return "number"
    return "word"


def _mix(seed: int, n: int, column_index: int, rule: str) -> int:
    row_prime, column_prime = RULE_PRIMES[rule]
    return seed + n * row_prime + column_index * column_prime


def synthesize_value(
    table_id: str,
    n: int,
    column_index: int,
    column_name: str,
    column_type: ColumnType | str,
) -> CellValue:
    if n < 0 or column_index < 0:
        raise ValueError("row sequence number and column index must be non-negative")
    rule = value_rule(column_name, column_type)
    mix = _mix(table_seed(table_id), n, column_index, rule)
    if rule == "name":
        return NAME_POOL[mix % len(NAME_POOL)]
    if rule == "email":
        return f"user{EMAIL_BASE + mix % EMAIL_SPAN}@example.com"
    if rule == "age":
        return AGE_MIN + mix % AGE_SPAN
    if rule == "number":
        return NUMBER_MIN + mix % NUMBER_SPAN
    return WORD_POOL[mix % len(WORD_POOL)]


def synthesize_row(table_id: str, n: int, columns: Sequence[Column]) -> Dict[str, CellValue]:
    """Cache for row `n`: exactly one entry per column, indexed in creation order."""
    return {
        column.id: synthesize_value(table_id, n, index, column.name, column.type)
        for index, column in enumerate(ordered_columns(columns))
    }


def build_search_text(cache: Dict[str, CellValue], columns: Sequence[Column]) -> str:
    """Lowercased, space-joined non-null cache values in column creation order."""
    parts = [
        str(cache[column.id])
        for column in ordered_columns(columns)
        if cache.get(column.id) is not None
    ]
    return " ".join(parts).lower()


def sql_parameters(table_id: str) -> Dict[str, object]:
    """Bind parameters that let the bulk INSERT reproduce `synthesize_value`."""
    params: Dict[str, object] = {
        "seed": table_seed(table_id),
        "name_pool": list(NAME_POOL),
        "word_pool": list(WORD_POOL),
        "email_base": EMAIL_BASE,
        "email_span": EMAIL_SPAN,
        "age_min": AGE_MIN,
        "age_span": AGE_SPAN,
        "number_min": NUMBER_MIN,
        "number_span": NUMBER_SPAN,
    }
    for rule, (row_prime, column_prime) in RULE_PRIMES.items():
        params[f"{rule}_pn"] = row_prime
        params[f"{rule}_pi"] = column_prime
    return params


__all__ = [
    "NAME_POOL",
    "RULE_PRIMES",
    "WORD_POOL",
    "build_search_text",
    "sql_parameters",
    "synthesize_row",
    "synthesize_value",
    "table_seed",
    "value_rule",
]
