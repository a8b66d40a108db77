from __future__ import annotations

from contextlib import closing
from typing import Any, Dict, Optional

import pandas as pd
import psycopg2

from distributed_query.db.utils import BackendResult, ConnectionProfile, frame_from_records
from distributed_query.logging.logger import get_logger


log = get_logger("db.postgres")


def connect_kwargs(server: str, credentials: ConnectionProfile, timeout_seconds: int) -> Dict[str, Any]:
    """psycopg2.connect() keyword arguments for one server.

    With integrated security, user/password are omitted so libpq falls back to
    PGUSER/PGPASSWORD, .pgpass or peer authentication.
    """
    timeout = max(0, int(timeout_seconds))
    kwargs: Dict[str, Any] = {
        "host": server,
        "dbname": credentials.database or "postgres",
        # statement_timeout is in milliseconds; 0 disables it
        "options": f"-c statement_timeout={timeout * 1000}",
    }
    if timeout:
        kwargs["connect_timeout"] = timeout
    if credentials.port is not None:
        kwargs["port"] = credentials.port
    if not credentials.integrated_security:
        kwargs["user"] = credentials.user
        kwargs["password"] = credentials.password
    return kwargs


def rows_modified_from_status(status: Optional[str]) -> int:
    """Modified-row count from a command tag ("UPDATE 3", "INSERT 0 2").

    SELECT tags report rows returned, not modified, so they map to -1 like
    utility commands without a count.
    """
    if not status:
        return -1
    parts = status.split()
    if parts[0].upper() == "SELECT" or not parts[-1].isdigit():
        return -1
    return int(parts[-1])


def run_query(server: str, query: str, credentials: ConnectionProfile, timeout_seconds: int) -> BackendResult:
    log.debug("Connecting", extra={"server": server, "database": credentials.database})

    with closing(psycopg2.connect(**connect_kwargs(server, credentials, timeout_seconds))) as conn:
        conn.autocommit = True
        with conn.cursor() as cur:
            cur.execute(query)
            rows_modified = rows_modified_from_status(cur.statusmessage)
            if cur.description is None:
                return BackendResult(rows=pd.DataFrame(), rows_modified=rows_modified)

            columns = [d[0] for d in cur.description]
            return BackendResult(rows=frame_from_records(columns, cur.fetchall()), rows_modified=rows_modified)
