"""Proxy settings from ``configs/localinfer.toml`` and the environment.

Precedence is ``LOCALINFER_PROXY_<FIELD>`` variables, then the TOML file,
then the ``ProxyConfig`` defaults. Loading never creates the file; use
``write_config`` (or ``localinfer config-init``) for that.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, fields
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Optional, Union, get_args, get_origin, get_type_hints

try:
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    import tomli as tomllib  # type: ignore[no-redef]

from .config import ProxyConfig

logger = logging.getLogger(__name__)

CONFIG_FILE_ENV = "LOCALINFER_PROXY_CONFIG_FILE"
ENV_PREFIX = "LOCALINFER_PROXY_"
DEFAULT_CONFIG_PATH = Path("configs/localinfer.toml")

# TOML table -> ProxyConfig fields stored in it (also the write order)
_SECTIONS: dict[str, tuple[str, ...]] = {
    "server": ("host", "port", "enable_metrics", "log_path", "max_log_bytes"),
    "registry": ("data_dir", "models_dir_name", "metadata_file_name"),
    "inference": (
        "inference_base_url",
        "chat_completion_path",
        "local_engine",
        "local_engine_backend",
    ),
    "timeouts": ("backend_connect_timeout_ms", "backend_read_timeout_ms"),
}

_TRUTHY = frozenset({"1", "true", "yes", "on"})


def _as_bool(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() in _TRUTHY
    return bool(raw)


def _as_int(raw: Any) -> int:
    if isinstance(raw, bool):
        raise ValueError(f"expected an integer, got {raw!r}")
    if isinstance(raw, (int, float)):
        return int(raw)
    return int(str(raw).strip())


def _as_str(raw: Any) -> str:
    return "" if raw is None else str(raw)


_PARSERS: dict[Any, Callable[[Any], Any]] = {
    bool: _as_bool,
    int: _as_int,
    str: _as_str,
}


@lru_cache(maxsize=None)
def _annotations() -> dict[str, Any]:
    return get_type_hints(ProxyConfig)


def _parser_for(annotation: Any) -> tuple[Optional[Callable[[Any], Any]], bool]:
    """Return ``(parser, nullable)`` for a field annotation."""
    if get_origin(annotation) is Union:
        members = [arg for arg in get_args(annotation) if arg is not type(None)]
        inner = members[0] if len(members) == 1 else None
        return _PARSERS.get(inner), True
    return _PARSERS.get(annotation), False


def _convert(name: str, raw: Any) -> Any:
    parser, nullable = _parser_for(_annotations().get(name))
    if nullable and raw in ("", None):
        return None
    return parser(raw) if parser else raw


def _defaults() -> dict[str, Any]:
    return {
        f.name: f.default for f in fields(ProxyConfig) if f.name != "config_file_path"
    }


def _resolve(values: dict[str, Any]) -> dict[str, Any]:
    """Merge ``values`` over the defaults; unusable values keep the default."""
    resolved: dict[str, Any] = {}
    for name, default in _defaults().items():
        if name not in values:
            resolved[name] = default
            continue
        try:
            resolved[name] = _convert(name, values[name])
        except (TypeError, ValueError):
            logger.warning("Ignoring invalid value for %s: %r", name, values[name])
            resolved[name] = default
    return resolved


def _read_config_file(path: Path) -> dict[str, Any]:
    if not path.is_file():
        return {}
    with path.open("rb") as fh:
        document = tomllib.load(fh)

    values: dict[str, Any] = {}
    for section, keys in _SECTIONS.items():
        table = document.get(section)
        if isinstance(table, dict):
            values.update({key: table[key] for key in keys if key in table})
    return values


def env_var_name(field_name: str) -> str:
    return f"{ENV_PREFIX}{field_name.upper()}"


def _env_values() -> dict[str, str]:
    return {
        name: os.environ[env_var_name(name)]
        for name in _defaults()
        if env_var_name(name) in os.environ
    }


def config_file_path() -> Path:
    return Path(os.environ.get(CONFIG_FILE_ENV, DEFAULT_CONFIG_PATH)).expanduser()


def load_file_config() -> dict[str, Any]:
    """Defaults overlaid with the file only, as reported by ``/v1/config``."""
    return _resolve(_read_config_file(config_file_path()))


def load_proxy_config() -> ProxyConfig:
    path = config_file_path()
    settings = _resolve(_read_config_file(path))
    for name, raw in _env_values().items():
        try:
            settings[name] = _convert(name, raw)
        except ValueError:
            logger.warning("Ignoring unparseable %s=%r", env_var_name(name), raw)
    return ProxyConfig(**settings, config_file_path=str(path))


def list_env_overrides() -> dict[str, str]:
    return {env_var_name(name): raw for name, raw in _env_values().items()}


def _toml_literal(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return repr(value)
    # JSON string escapes are a subset of TOML basic-string escapes
    return json.dumps("" if value is None else str(value))


def render_config(config: ProxyConfig) -> str:
    current = asdict(config)
    lines = [
        "# localinfer proxy configuration.",
        f"# {ENV_PREFIX}<FIELD> environment variables override these values.",
    ]
    for section, keys in _SECTIONS.items():
        lines.extend(["", f"[{section}]"])
        lines.extend(f"{key} = {_toml_literal(current[key])}" for key in keys)
    return "\n".join(lines) + "\n"


def write_config(config: ProxyConfig, path: Path | None = None) -> Path:
    """Atomically write ``config`` as TOML and return the target path."""
    target = Path(path or config_file_path()).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    with tempfile.NamedTemporaryFile(
        "w",
        encoding="utf-8",
        dir=target.parent,
        prefix=f".{target.name}.",
        suffix=".tmp",
        delete=False,
    ) as handle:
        handle.write(render_config(config))
    try:
        os.replace(handle.name, target)
    except OSError:
        os.unlink(handle.name)
        raise
    return target
