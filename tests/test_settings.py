import pytest

from distributed_query.config.settings import load_settings
from distributed_query.exceptions.errors import ConfigurationError

ENV_KEYS = [
    "APP_ENV", "LOG_LEVEL", "LOG_FILE", "DB_BACKEND", "QUERY_TIMEOUT_SECONDS", "MAX_PARALLELISM",
    "ADD_SERVER_COLUMN", "SERVER_COLUMN_NAME", "COUNT_FAILED_IMPACT", "SERVERS",
    "DB_INTEGRATED_SECURITY", "DB_USER", "DB_PASSWORD", "DB_NAME", "DB_PORT", "ODBC_DRIVER",
    "DB_TRUST_SERVER_CERTIFICATE", "AWS_REGION", "REDSHIFT_SECRET_ARN", "REDSHIFT_SERVERLESS", "EXPORT_DIR",
]

YAML = """
app:
  log_level: DEBUG
  log_file: logs/test.log
dispatch:
  max_parallelism: 3
  timeout_seconds: 20
  add_server_column: true
  server_column_name: SERVIDOR
  count_failed_impact: false
  servers: [sql01, sql02]
database:
  backend: postgres
  integrated_security: false
  user: reporter
  database: sales
  port: 5433
export:
  export_dir: out
"""


@pytest.fixture
def config_dir(tmp_path, monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("APP_ENV", "test")
    (tmp_path / "test.yaml").write_text(YAML, encoding="utf-8")
    return tmp_path


def test_settings_from_yaml(config_dir):
    s = load_settings(str(config_dir))

    assert s.env == "test"
    assert s.log_level == "DEBUG"
    assert s.backend == "postgres"
    assert s.servers == ["sql01", "sql02"]
    assert s.db_port == 5433

    cfg = s.dispatch_config()
    assert cfg.max_parallelism == 3
    assert cfg.timeout_seconds == 20
    assert cfg.add_server_column is True
    assert cfg.server_column_name == "SERVIDOR"
    assert cfg.count_failed_impact is False

    profile = s.connection_profile()
    assert profile.integrated_security is False
    assert profile.user == "reporter"
    assert profile.database == "sales"


def test_environment_overrides_yaml(config_dir, monkeypatch):
    monkeypatch.setenv("MAX_PARALLELISM", "8")
    monkeypatch.setenv("SERVERS", "a, b ,,c")
    monkeypatch.setenv("ADD_SERVER_COLUMN", "no")
    monkeypatch.setenv("DB_PASSWORD", "pw")
    monkeypatch.setenv("DB_BACKEND", "DuckDB")

    s = load_settings(str(config_dir))

    assert s.max_parallelism == 8
    assert s.servers == ["a", "b", "c"]
    assert s.add_server_column is False
    assert s.connection_profile().password == "pw"
    assert s.backend == "duckdb"


def test_missing_config_file(config_dir, monkeypatch):
    monkeypatch.setenv("APP_ENV", "prod")
    with pytest.raises(FileNotFoundError):
        load_settings(str(config_dir))


@pytest.mark.parametrize("key,value", [("MAX_PARALLELISM", "abc"), ("QUERY_TIMEOUT_SECONDS", "1.5"), ("DB_PORT", "sql")])
def test_malformed_integer_in_environment(config_dir, monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ConfigurationError, match=key):
        load_settings(str(config_dir))


def test_malformed_integer_in_yaml(config_dir):
    (config_dir / "test.yaml").write_text(YAML.replace("timeout_seconds: 20", "timeout_seconds: soon"), encoding="utf-8")
    with pytest.raises(ConfigurationError, match="QUERY_TIMEOUT_SECONDS"):
        load_settings(str(config_dir))


def test_blank_integer_falls_back_to_yaml(config_dir, monkeypatch):
    monkeypatch.setenv("MAX_PARALLELISM", "  ")
    monkeypatch.setenv("DB_PORT", " 1434 ")

    s = load_settings(str(config_dir))

    assert s.max_parallelism == 3
    assert s.db_port == 1434
