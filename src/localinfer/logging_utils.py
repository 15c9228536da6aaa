"""Process-wide logging setup for the proxy server and CLI.

``LOCALINFER_LOG_DIR`` and ``LOCALINFER_LOG_LEVEL`` override the defaults.
"""

from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

__all__ = ["configure_logging", "resolve_log_level"]

_MANAGED_HANDLER_FLAG = "_localinfer_managed_handler"
_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def _default_log_directory() -> Path:
    env_override = os.environ.get("LOCALINFER_LOG_DIR")
    if env_override:
        return Path(env_override).expanduser()
    return Path.cwd() / "logs"


def resolve_log_level(level: Optional[int | str] = None) -> int:
    """Map an explicit level, ``LOCALINFER_LOG_LEVEL`` or INFO to a number."""
    candidate = level if level is not None else os.environ.get("LOCALINFER_LOG_LEVEL")
    if candidate is None:
        return logging.INFO
    if isinstance(candidate, int):
        return candidate
    resolved = logging.getLevelName(str(candidate).strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _install(root: logging.Logger, handler: logging.Handler, level: int) -> None:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    setattr(handler, _MANAGED_HANDLER_FLAG, True)
    root.addHandler(handler)


def configure_logging(
    log_name: str,
    *,
    level: Optional[int | str] = None,
    log_dir: Optional[Path] = None,
    include_console: bool = True,
    max_bytes: int = 10_000_000,
    backup_count: int = 3,
) -> Path:
    """Send root logging to ``<log_dir>/<log_name>.log`` and optionally stderr.

    Handlers installed by an earlier call are removed first, so switching log
    files never duplicates output.
    """

    target_directory = (
        Path(log_dir).expanduser() if log_dir else _default_log_directory()
    )
    target_directory.mkdir(parents=True, exist_ok=True)
    log_path = target_directory / f"{log_name}.log"
    numeric_level = resolve_log_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    for handler in list(root_logger.handlers):
        if getattr(handler, _MANAGED_HANDLER_FLAG, False):
            root_logger.removeHandler(handler)
            handler.close()

    _install(
        root_logger,
        RotatingFileHandler(
            log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        ),
        numeric_level,
    )
    if include_console:
        _install(root_logger, logging.StreamHandler(), numeric_level)

    logging.captureWarnings(True)

    return log_path
