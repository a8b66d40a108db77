from __future__ import annotations

from typing import Any, Dict, List, Optional
import time

import boto3
import pandas as pd

from distributed_query.db.utils import BackendResult, ConnectionProfile, frame_from_records
from distributed_query.exceptions.errors import ConnectionFailure, QueryExecutionError, QueryTimeoutError
from distributed_query.logging.logger import get_logger


log = get_logger("db.redshift")

POLL_INTERVAL_SECONDS = 0.5


def _field_to_py(v: Dict[str, Any]) -> Any:
    if not v:
        return None
    if v.get("isNull") is True:
        return None
    for k in ("stringValue", "longValue", "doubleValue", "booleanValue", "blobValue"):
        if k in v:
            return v[k]
    return None


def statement_args(server: str, query: str, credentials: ConnectionProfile) -> Dict[str, Any]:
    """execute_statement() arguments for one cluster or serverless workgroup.

    The server target is the cluster identifier, or the workgroup name when
    credentials.serverless is set.
    """
    if not credentials.database:
        raise ConnectionFailure("A database name is required for the redshift backend")
    if not (credentials.secret_arn or credentials.user):
        raise ConnectionFailure("A secret ARN (preferred) or database user is required for the redshift backend")

    args: Dict[str, Any] = {"Sql": query, "Database": credentials.database}
    if credentials.serverless:
        args["WorkgroupName"] = server
    else:
        args["ClusterIdentifier"] = server

    if credentials.secret_arn:
        args["SecretArn"] = credentials.secret_arn
    else:
        args["DbUser"] = credentials.user
    return args


def _wait_for_statement(client, statement_id: str, server: str, timeout_seconds: int) -> Dict[str, Any]:
    deadline = time.monotonic() + timeout_seconds if timeout_seconds > 0 else None
    while True:
        d = client.describe_statement(Id=statement_id)
        status = d.get("Status", "")
        if status == "FINISHED":
            return d
        if status in {"FAILED", "ABORTED"}:
            raise QueryExecutionError(f"Redshift query {status}: {d.get('Error', '') or ''}")
        if deadline is not None and time.monotonic() >= deadline:
            try:
                client.cancel_statement(Id=statement_id)
            except Exception:
                log.warning("Could not cancel timed out statement", extra={"server": server, "statement_id": statement_id})
            raise QueryTimeoutError(f"Redshift query exceeded the {timeout_seconds}s timeout")
        time.sleep(POLL_INTERVAL_SECONDS)


def _fetch_frame(client, statement_id: str) -> pd.DataFrame:
    cols: List[str] = []
    rows: List[List[Any]] = []

    next_token: Optional[str] = None
    first = True
    while True:
        page_args = {"Id": statement_id}
        if next_token:
            page_args["NextToken"] = next_token
        r = client.get_statement_result(**page_args)

        if first:
            cols = [c.get("name", "") for c in r.get("ColumnMetadata", [])]
            first = False

        for rec in r.get("Records", []):
            rows.append([_field_to_py(x) for x in rec])

        next_token = r.get("NextToken")
        if not next_token:
            break

    return frame_from_records(cols, rows)


def run_query(server: str, query: str, credentials: ConnectionProfile, timeout_seconds: int) -> BackendResult:
    """Execute SQL through the Redshift Data API and return rows plus modified count.

    The Data API has no server-side statement timeout, so the statement is
    polled and cancelled once timeout_seconds elapse (0 waits indefinitely).
    """
    exec_args = statement_args(server, query, credentials)
    client = boto3.client("redshift-data", region_name=credentials.aws_region or None)
    try:
        log.info("Redshift execute_statement", extra={"server": server, "database": credentials.database, "sql_head": query[:300]})

        statement_id = client.execute_statement(**exec_args)["Id"]
        d = _wait_for_statement(client, statement_id, server, timeout_seconds)

        if d.get("HasResultSet"):
            return BackendResult(rows=_fetch_frame(client, statement_id), rows_modified=-1)
        return BackendResult(rows=pd.DataFrame(), rows_modified=int(d.get("ResultRows", -1)))
    finally:
        client.close()
