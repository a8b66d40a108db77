"""Database backends used by the per-server executor.

A backend is a module exposing ``run_query(server, query, credentials,
timeout_seconds) -> BackendResult``. Each call opens its own connection and
releases it before returning, so workers never share a connection.

Backends supported:
  - mssql    : SQL Server through pyodbc (default)
  - postgres : PostgreSQL through psycopg2
  - duckdb   : local DuckDB database files (server = file path)
  - redshift : clusters/workgroups through the Redshift Data API

Driver modules are imported only when selected, so a missing ODBC manager does
not break the other backends.
"""
from __future__ import annotations

import importlib
from typing import Dict

from distributed_query.db.utils import QueryRunner
from distributed_query.exceptions.errors import ConfigurationError

_BACKENDS: Dict[str, str] = {
    "mssql": "distributed_query.db.mssql",
    "sqlserver": "distributed_query.db.mssql",
    "postgres": "distributed_query.db.postgres",
    "postgresql": "distributed_query.db.postgres",
    "pg": "distributed_query.db.postgres",
    "duckdb": "distributed_query.db.duckdb_local",
    "redshift": "distributed_query.db.redshift",
}


def available_backends() -> list:
    return sorted(set(_BACKENDS))


def get_runner(backend: str) -> QueryRunner:
    key = (backend or "mssql").strip().lower()
    module_name = _BACKENDS.get(key)
    if module_name is None:
        raise ConfigurationError(
            f"Unknown backend '{backend}'. Expected one of: {', '.join(available_backends())}"
        )
    return importlib.import_module(module_name).run_query
