from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Sequence

from distributed_query.exceptions.errors import ConfigurationError
from distributed_query.logging.logger import get_logger

log = get_logger("ingestion.servers")

DEFAULT_ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")


def parse_servers(text: str) -> List[str]:
    """One server per line; blank lines and '#' comments are ignored.

    Order and duplicates are preserved: every listed entry is one unit of work.
    """
    servers: List[str] = []
    for line in text.splitlines():
        entry = line.split("#", 1)[0].strip()
        if entry:
            servers.append(entry)
    return servers


def split_servers(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [x.strip() for x in value.split(",") if x.strip()]


def load_servers(file_path: str, encodings: Sequence[str] = DEFAULT_ENCODINGS) -> List[str]:
    p = Path(file_path)
    if not p.exists():
        raise ConfigurationError(f"Server list not found: {file_path}")

    last_err: Optional[Exception] = None
    for enc in encodings:
        try:
            servers = parse_servers(p.read_text(encoding=enc))
            log.info("Loaded server list", extra={"source_file": p.name, "encoding": enc, "servers": len(servers)})
            return servers
        except UnicodeDecodeError as e:
            last_err = e
            log.warning("Encoding error", extra={"source_file": p.name, "encoding": enc, "error": str(e)})

    raise ConfigurationError(f"Failed to decode {p.name} with encodings: {list(encodings)}") from last_err
