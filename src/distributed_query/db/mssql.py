from __future__ import annotations

from contextlib import closing

import pandas as pd
import pyodbc

from distributed_query.db.utils import (
    BackendResult,
    ConnectionProfile,
    build_odbc_connection_string,
    frame_from_records,
)
from distributed_query.logging.logger import get_logger


log = get_logger("db.mssql")


def _add_count(total: int, count: int) -> int:
    if count < 0:
        return total
    return max(0, total) + count


def run_query(server: str, query: str, credentials: ConnectionProfile, timeout_seconds: int) -> BackendResult:
    """Execute one statement (or batch) on one SQL Server instance.

    timeout_seconds applies to both the login and the statement; 0 waits
    indefinitely, matching ODBC semantics. Modified-row counts of every DML
    statement that precedes the first result set are summed, like ADO.NET's
    RecordsAffected.
    """
    conn_str = build_odbc_connection_string(server, credentials, timeout_seconds)
    log.debug("Connecting", extra={"server": server, "database": credentials.database})

    with closing(pyodbc.connect(conn_str, timeout=timeout_seconds, autocommit=True)) as conn:
        conn.timeout = timeout_seconds
        with closing(conn.cursor()) as cur:
            cur.execute(query)

            rows_modified = -1
            while cur.description is None:
                rows_modified = _add_count(rows_modified, cur.rowcount)
                if not cur.nextset():
                    return BackendResult(rows=pd.DataFrame(), rows_modified=rows_modified)

            columns = [d[0] for d in cur.description]
            records = cur.fetchall()
            return BackendResult(rows=frame_from_records(columns, records), rows_modified=rows_modified)
