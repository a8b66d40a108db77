from __future__ import annotations

from contextlib import closing

import duckdb
import pandas as pd

from distributed_query.db.utils import BackendResult, ConnectionProfile, frame_from_records
from distributed_query.logging.logger import get_logger


log = get_logger("db.duckdb")


def run_query(server: str, query: str, credentials: ConnectionProfile, timeout_seconds: int) -> BackendResult:
    """Run a statement against a local DuckDB database.

    The server target is the database file path (or ":memory:"). DuckDB has no
    statement timeout and no separate modified-row count, so timeout_seconds
    is ignored and rows_modified is always -1.
    """
    log.debug("Opening DuckDB database", extra={"server": server})

    with closing(duckdb.connect(server)) as con:
        cur = con.execute(query)
        if cur.description is None:
            return BackendResult(rows=pd.DataFrame(), rows_modified=-1)
        columns = [d[0] for d in cur.description]
        return BackendResult(rows=frame_from_records(columns, cur.fetchall()), rows_modified=-1)
