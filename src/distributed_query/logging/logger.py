import logging
import os
import glob
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

_INITIALIZED = False

_ROOT_NAME = "distributed_query"


class TimestampRotatingFileHandler(RotatingFileHandler):
    """Size-based rotation that archives the full file under a timestamped name.

    The live log keeps its configured path (e.g. logs/distributed_query.log). On
    rollover it becomes logs/distributed_query_20261019_101500.log. backupCount=0
    keeps every archive, backupCount=N keeps the newest N.
    """

    def _archive_name(self) -> str:
        base = Path(self.baseFilename)
        suffix = base.suffix or ".log"
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        candidate = base.with_name(f"{base.stem}_{ts}{suffix}")
        n = 1
        while candidate.exists():
            candidate = base.with_name(f"{base.stem}_{ts}_{n}{suffix}")
            n += 1
        return str(candidate)

    def _prune_archives(self) -> None:
        base = Path(self.baseFilename)
        suffix = base.suffix or ".log"
        pattern = str(base.with_name(f"{base.stem}_*{suffix}"))
        archives = sorted(glob.glob(pattern), key=os.path.getmtime, reverse=True)
        for stale in archives[self.backupCount:]:
            try:
                os.remove(stale)
            except OSError:
                pass

    def doRollover(self) -> None:
        if self.stream:
            try:
                self.stream.close()
            finally:
                self.stream = None

        if os.path.exists(self.baseFilename):
            try:
                os.replace(self.baseFilename, self._archive_name())
            except OSError:
                # Keep logging into the current file rather than failing the caller
                pass

        if self.backupCount and self.backupCount > 0:
            self._prune_archives()

        if not self.delay:
            self.stream = self._open()


def init_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = "logs/distributed_query.log",
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 0,
) -> None:
    """Configure root logging once per process.

    log_file=None logs to the console only (used by the CLI when no log
    directory is configured).
    """
    global _INITIALIZED
    if _INITIALIZED:
        return

    level = getattr(logging, (log_level or "INFO").upper(), logging.INFO)
    fmt = "%(asctime)s | %(levelname)s | %(threadName)s | %(name)s | %(message)s"

    handlers: list = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.insert(
            0,
            TimestampRotatingFileHandler(
                log_file,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            ),
        )

    logging.basicConfig(level=level, format=fmt, handlers=handlers)
    _INITIALIZED = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"{_ROOT_NAME}.{name}")
