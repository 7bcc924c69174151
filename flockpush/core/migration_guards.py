"""Idempotent Alembic operations for tables this service owns."""

from __future__ import annotations

from typing import Any

from alembic import op
from sqlalchemy import text


def table_exists(*, table_name: str, schema: str | None = None) -> bool:
  statement = text("SELECT 1 FROM information_schema.tables WHERE table_schema = :schema AND table_name = :table_name AND table_type = 'BASE TABLE' LIMIT 1")
  result = op.get_bind().execute(statement, {"schema": schema or "public", "table_name": table_name})
  return result.first() is not None


def index_exists(*, index_name: str, schema: str | None = None) -> bool:
  statement = text("SELECT 1 FROM pg_indexes WHERE schemaname = :schema AND indexname = :index_name LIMIT 1")
  result = op.get_bind().execute(statement, {"schema": schema or "public", "index_name": index_name})
  return result.first() is not None


def guarded_create_table(table_name: str, *args: Any, **kwargs: Any) -> None:
  """Create a table unless a previous partial run already did."""
  if table_exists(table_name=table_name, schema=kwargs.get("schema")):
    return
  op.create_table(table_name, *args, **kwargs)


def guarded_drop_table(table_name: str, **kwargs: Any) -> None:
  if not table_exists(table_name=table_name, schema=kwargs.get("schema")):
    return
  op.drop_table(table_name, **kwargs)


def guarded_create_index(index_name: str, table_name: str, columns: list[str], **kwargs: Any) -> None:
  schema = kwargs.get("schema")
  if not table_exists(table_name=table_name, schema=schema) or index_exists(index_name=index_name, schema=schema):
    return
  op.create_index(index_name, table_name, columns, **kwargs)


def guarded_drop_index(index_name: str, *, table_name: str, **kwargs: Any) -> None:
  if not index_exists(index_name=index_name, schema=kwargs.get("schema")):
    return
  op.drop_index(index_name, table_name=table_name, **kwargs)
