"""Logging helpers for the provisioner CLI."""

from __future__ import annotations

import logging
from pathlib import Path

# SDK loggers are chatty at INFO/DEBUG; keep them at WARNING unless tracing.
_SDK_LOGGERS = ("boto3", "botocore", "s3transfer", "urllib3")


def parse_level(value: str | None) -> int:
    name = (value or "info").strip().upper()
    if name == "WARN":
        name = "WARNING"
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        raise ValueError(f"LOG_LEVEL_INVALID:{value}")
    return level


def configure_logging(level: int = logging.INFO, log_paths: list[str] | None = None, *, trace_sdk: bool = False) -> None:
    """Configure default logging if no handlers are present."""
    for name in _SDK_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if trace_sdk else logging.WARNING)
    root = logging.getLogger()
    if root.handlers:
        return
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    for entry in log_paths or []:
        path = Path(entry)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
    )
