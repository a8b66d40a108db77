from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

import pandas as pd


@dataclass(frozen=True)
class ConnectionProfile:
    """Credentials and connection options for one distribution call.

    integrated_security=True means the backend authenticates as the running
    process (Windows/Kerberos trusted connection for SQL Server, peer/ident or
    PG* environment for Postgres, the default AWS credential chain for Redshift).
    Otherwise user/password are sent explicitly.
    """

    integrated_security: bool = True
    user: str = ""
    password: str = ""
    database: str = ""
    odbc_driver: str = "ODBC Driver 18 for SQL Server"
    port: Optional[int] = None
    trust_server_certificate: bool = False

    # Redshift Data API
    secret_arn: str = ""
    serverless: bool = False
    aws_region: str = ""

    def __repr__(self) -> str:
        # Never leak the password into logs or tracebacks.
        masked = "***" if self.password else ""
        return (
            f"ConnectionProfile(integrated_security={self.integrated_security}, "
            f"user={self.user!r}, password={masked!r}, database={self.database!r})"
        )


@dataclass(frozen=True)
class BackendResult:
    """Raw result of one statement on one server.

    rows_modified follows the driver convention: -1 when the backend did not
    report a modified-row count (plain SELECT).
    """

    rows: pd.DataFrame
    rows_modified: int = -1


QueryRunner = Callable[[str, str, ConnectionProfile, int], BackendResult]


def normalize_columns(names: Iterable[Optional[str]]) -> List[str]:
    """Give every result column a unique, non-empty name.

    Unnamed columns (SELECT 1) become Column1, Column2, ...; repeated names get
    a numeric suffix (X, X_2) so frames from different servers can be merged
    by column name.
    """
    out: List[str] = []
    seen: Dict[str, int] = {}
    for i, raw in enumerate(names, start=1):
        name = (raw or "").strip() or f"Column{i}"
        if name not in seen:
            seen[name] = 1
            out.append(name)
            continue
        seen[name] += 1
        candidate = f"{name}_{seen[name]}"
        while candidate in seen:
            seen[name] += 1
            candidate = f"{name}_{seen[name]}"
        seen[candidate] = 1
        out.append(candidate)
    return out


def frame_from_records(columns: Iterable[Optional[str]], records: Iterable[Iterable]) -> pd.DataFrame:
    cols = normalize_columns(columns)
    return pd.DataFrame([list(r) for r in records], columns=cols)


def _odbc_escape(value: str) -> str:
    """Brace-quote an ODBC attribute value when it contains separators."""
    if any(ch in value for ch in ";{}=") or value != value.strip():
        return "{" + value.replace("}", "}}") + "}"
    return value


def build_odbc_connection_string(server: str, profile: ConnectionProfile, timeout_seconds: int) -> str:
    """Build a SQL Server ODBC connection string for a single server.

    Built fresh for every call so concurrent distributions with different
    credentials or timeouts never share state.
    """
    host = server if profile.port is None else f"{server},{profile.port}"
    parts = [
        f"Driver={{{profile.odbc_driver}}}",
        f"Server={_odbc_escape(host)}",
    ]
    if profile.database:
        parts.append(f"Database={_odbc_escape(profile.database)}")
    if profile.integrated_security:
        parts.append("Trusted_Connection=yes")
    else:
        parts.append(f"UID={_odbc_escape(profile.user)}")
        parts.append(f"PWD={_odbc_escape(profile.password)}")
    if profile.trust_server_certificate:
        parts.append("TrustServerCertificate=yes")
    parts.append(f"Connection Timeout={max(0, int(timeout_seconds))}")
    return ";".join(parts) + ";"
