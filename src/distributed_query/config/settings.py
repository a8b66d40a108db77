from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional
import yaml
from dotenv import load_dotenv

from distributed_query.db.utils import ConnectionProfile
from distributed_query.exceptions.errors import ConfigurationError
from distributed_query.execution.models import DispatchConfig

load_dotenv()

def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)

def _env_bool(key: str, default: bool = False) -> bool:
    val = os.environ.get(key)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "y", "on")

def _env_list(key: str, default: List[str]) -> List[str]:
    val = os.environ.get(key)
    if not val:
        return default
    return [x.strip() for x in val.split(",") if x.strip()]

def _to_int(key: str, val) -> int:
    try:
        return int(val)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"{key} must be an integer, got {val!r}") from e

def _env_int(key: str, default) -> Optional[int]:
    val = os.environ.get(key)
    if val is None or not val.strip():
        return None if default in (None, "") else _to_int(key, default)
    return _to_int(key, val.strip())

@dataclass(frozen=True)
class Settings:
    env: str
    log_level: str
    log_file: str

    # Dispatch
    backend: str
    timeout_seconds: int
    max_parallelism: int
    add_server_column: bool
    server_column_name: str
    count_failed_impact: bool
    servers: List[str]

    # Credentials (DB_PASSWORD is only read from the environment)
    integrated_security: bool
    db_user: str
    db_password: str
    db_name: str
    db_port: Optional[int]
    odbc_driver: str
    trust_server_certificate: bool

    # Redshift Data API
    aws_region: str
    redshift_secret_arn: str
    redshift_serverless: bool

    export_dir: str

    def dispatch_config(self) -> DispatchConfig:
        return DispatchConfig(
            max_parallelism=self.max_parallelism,
            add_server_column=self.add_server_column,
            timeout_seconds=self.timeout_seconds,
            server_column_name=self.server_column_name,
            count_failed_impact=self.count_failed_impact,
        )

    def connection_profile(self) -> ConnectionProfile:
        return ConnectionProfile(
            integrated_security=self.integrated_security,
            user=self.db_user,
            password=self.db_password,
            database=self.db_name,
            odbc_driver=self.odbc_driver,
            port=self.db_port,
            trust_server_certificate=self.trust_server_certificate,
            secret_arn=self.redshift_secret_arn,
            serverless=self.redshift_serverless,
            aws_region=self.aws_region,
        )

def load_settings(config_dir: str = "config") -> Settings:
    app_env = _env("APP_ENV", "dev")
    cfg_path = Path(config_dir) / f"{app_env}.yaml"
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config not found: {cfg_path}")

    cfg = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}

    app_cfg = cfg.get("app") or {}
    dispatch_cfg = cfg.get("dispatch") or {}
    db_cfg = cfg.get("database") or {}
    rs_cfg = db_cfg.get("redshift") or {}
    export_cfg = cfg.get("export") or {}

    backend = (_env("DB_BACKEND", str(db_cfg.get("backend", "mssql"))) or "mssql").strip().lower()

    db_port = _env_int("DB_PORT", db_cfg.get("port"))

    return Settings(
        env=app_env,
        log_level=_env("LOG_LEVEL", str(app_cfg.get("log_level", "INFO"))),
        log_file=_env("LOG_FILE", str(app_cfg.get("log_file", "logs/distributed_query.log"))),

        backend=backend,
        timeout_seconds=_env_int("QUERY_TIMEOUT_SECONDS", dispatch_cfg.get("timeout_seconds", 30)),
        max_parallelism=_env_int("MAX_PARALLELISM", dispatch_cfg.get("max_parallelism", 4)),
        add_server_column=_env_bool("ADD_SERVER_COLUMN", bool(dispatch_cfg.get("add_server_column", False))),
        server_column_name=_env("SERVER_COLUMN_NAME", str(dispatch_cfg.get("server_column_name", "SERVER"))),
        count_failed_impact=_env_bool("COUNT_FAILED_IMPACT", bool(dispatch_cfg.get("count_failed_impact", True))),
        servers=_env_list("SERVERS", [str(s) for s in (dispatch_cfg.get("servers") or [])]),

        integrated_security=_env_bool("DB_INTEGRATED_SECURITY", bool(db_cfg.get("integrated_security", True))),
        db_user=_env("DB_USER", str(db_cfg.get("user", ""))) or "",
        db_password=_env("DB_PASSWORD", "") or "",
        db_name=_env("DB_NAME", str(db_cfg.get("database", ""))) or "",
        db_port=db_port,
        odbc_driver=_env("ODBC_DRIVER", str(db_cfg.get("odbc_driver", "ODBC Driver 18 for SQL Server"))),
        trust_server_certificate=_env_bool(
            "DB_TRUST_SERVER_CERTIFICATE", bool(db_cfg.get("trust_server_certificate", False))
        ),

        aws_region=_env("AWS_REGION", str(rs_cfg.get("region", ""))) or "",
        redshift_secret_arn=_env("REDSHIFT_SECRET_ARN", str(rs_cfg.get("secret_arn", ""))) or "",
        redshift_serverless=_env_bool("REDSHIFT_SERVERLESS", bool(rs_cfg.get("serverless", False))),

        export_dir=_env("EXPORT_DIR", str(export_cfg.get("export_dir", "exports"))),
    )
