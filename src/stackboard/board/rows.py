"""Row-level helpers: primary keys, filter expressions and payloads."""

import html
from typing import Any

from stackboard.board.errors import ConfigurationError
from stackboard.board.types import PK_SEPARATOR, Record, StackKey, TableMeta


def extract_primary_key(record: Record, table: TableMeta) -> str:
    """Build the canonical composite primary-key string for a row.

    Values of the primary-key columns are joined with PK_SEPARATOR in column
    order.

    Raises:
        ConfigurationError: If the table has no primary key column
    """
    pk_columns = table.primary_key_columns
    if not pk_columns:
        msg = f"Table '{table.title}' has no primary key; rows cannot be updated or deleted"
        raise ConfigurationError(msg)
    return PK_SEPARATOR.join(_pk_part(record.get(col.title)) for col in pk_columns)


def _pk_part(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def has_primary_key_values(record: Record, table: TableMeta) -> bool:
    return all(record.get(col.title) is not None for col in table.primary_key_columns)


def build_stack_filter(grouping_field: str, stack_key: StackKey) -> str:
    """Build the where-expression selecting the rows of one stack."""
    if stack_key is None:
        return f"({grouping_field},is,null)"
    return f"({grouping_field},eq,{stack_key})"


def build_insert_payload(record: Record, table: TableMeta) -> Record:
    """Drop auto-generated columns and unset values before creating a row."""
    payload: Record = {}
    for col in table.columns:
        if col.is_auto_generated:
            continue
        value = record.get(col.title)
        if value is None:
            continue
        payload[col.title] = value
    return payload


def encode_audit_value(value: Any) -> str:
    """HTML-encode a field value for the audit trail."""
    if value is None:
        return ""
    return html.escape(str(value))
