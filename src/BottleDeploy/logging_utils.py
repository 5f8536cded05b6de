"""Structured logging helpers shared across deployment components."""

from __future__ import annotations

import gzip
import json
import logging
import re
import shutil
import sys
from datetime import datetime, timedelta, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Optional

from rich.console import Console
from rich.markup import escape

from .settings import LOG_DIR

__all__ = ["JSONFormatter", "heading", "mask_sensitive_data", "setup_logging"]

_LOGGER_NAME = "BottleDeploy"
_SENSITIVE_KEYS = {"authorization", "api_key", "apikey", "token", "secret", "password", "key"}
_TOKEN_PATTERN = re.compile(r"^[A-Za-z0-9+/=_-]{32,}$")
_STANDARD_ATTRS = set(vars(logging.makeLogRecord({}))) | {"message", "asctime"}

_console = Console()


def mask_sensitive_data(payload: Dict[str, object]) -> Dict[str, object]:
    """Return a copy of ``payload`` with common secret fields masked."""

    def _mask_value(value: object, key_hint: Optional[str]) -> object:
        if isinstance(value, dict):
            return {k: _mask_value(v, str(k).lower()) for k, v in value.items()}
        if isinstance(value, (list, tuple)):
            return [_mask_value(item, key_hint) for item in value]
        if isinstance(value, str):
            if key_hint in _SENSITIVE_KEYS:
                return "***masked***"
            if "bearer " in value.lower() or _TOKEN_PATTERN.fullmatch(value):
                return "***masked***"
        return value

    return {key: _mask_value(value, key.lower()) for key, value in payload.items()}


class JSONFormatter(logging.Formatter):
    """Formatter emitting masked JSON log entries."""

    def format(self, record: logging.LogRecord) -> str:
        """Render ``record`` as a JSON string including any ``extra`` fields."""

        now = datetime.now(timezone.utc)
        payload: Dict[str, object] = {
            "timestamp": now.isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stage": getattr(record, "stage", None),
        }
        for key, value in vars(record).items():
            if key in _STANDARD_ATTRS or key in payload:
                continue
            payload[key] = value if isinstance(value, (str, int, float, bool, type(None))) else str(value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(mask_sensitive_data(payload))


def _compress_stale_logs(log_dir: Path, retention_days: int) -> None:
    cutoff = datetime.now(timezone.utc) - timedelta(days=retention_days)
    for path in log_dir.glob("*.jsonl"):
        if datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc) >= cutoff:
            continue
        with path.open("rb") as source, gzip.open(path.with_suffix(path.suffix + ".gz"), "wb") as target:
            shutil.copyfileobj(source, target)
        path.unlink()


def setup_logging(
    *,
    level: str = "INFO",
    retention_days: int = 30,
    max_log_size_mb: int = 20,
    log_dir: Optional[Path] = None,
    propagate: bool = False,
) -> logging.Logger:
    """Configure deployment logging with a console handler and a JSON sidecar."""

    resolved_dir = log_dir or LOG_DIR
    resolved_dir.mkdir(parents=True, exist_ok=True)
    _compress_stale_logs(resolved_dir, retention_days)

    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    for handler in list(logger.handlers):
        if getattr(handler, "_bottle_deploy_managed", False):
            logger.removeHandler(handler)
            if isinstance(handler, logging.StreamHandler):
                stream = getattr(handler, "stream", None)
                if stream in (sys.stdout, sys.stderr):
                    continue
            handler.close()

    stream_handler = logging.StreamHandler(sys.stdout)
    stream_handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    stream_handler._bottle_deploy_managed = True  # type: ignore[attr-defined]
    logger.addHandler(stream_handler)

    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    file_handler = RotatingFileHandler(
        resolved_dir / f"bottle-deploy-{today}.jsonl",
        maxBytes=int(max_log_size_mb * 1024 * 1024),
        backupCount=5,
    )
    file_handler.setFormatter(JSONFormatter())
    file_handler._bottle_deploy_managed = True  # type: ignore[attr-defined]
    logger.addHandler(file_handler)

    logger.propagate = propagate
    return logger


def heading(title: str) -> None:
    """Print a ``==> title`` banner to the console."""

    _console.print(f"[blue]==>[/blue] [bold]{escape(title)}[/bold]", highlight=False)
    logging.getLogger(_LOGGER_NAME).debug(title, extra={"stage": "heading"})
