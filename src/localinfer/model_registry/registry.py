"""Discovery of locally installed models.

The catalog is a pure function of what is on disk at call time:

* ``<data_root>/<dir_name>`` is listed (sorted by name).
* A directory entry contributes ``<entry>/<metadata_file_name>``; a plain file
  entry is read as metadata itself (flat layout).
* Entries that cannot be read, are not valid JSON, or do not describe a JSON
  object are skipped. Values inside an object are not type-checked. Nothing
  is filtered by file name, so stray files such as ``.DS_Store`` drop out
  only because they fail to parse.

Nothing is cached and nothing is written. Duplicate ids are kept in listing
order; lookups return the first match.

Environment overrides:
    - LOCALINFER_DATA_DIR: data root (defaults to ``~/localinfer``).
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Iterable, List, Optional

from .models import ModelDescriptor, RegistryConfiguration

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "LOCALINFER_DATA_DIR"


def resolve_data_root(data_root: str | Path | None = None) -> Path:
    if data_root:
        return Path(data_root).expanduser()
    env_root = os.environ.get(DATA_DIR_ENV)
    if env_root:
        return Path(env_root).expanduser()
    return Path.home() / "localinfer"


def models_directory(
    configuration: RegistryConfiguration, data_root: str | Path | None = None
) -> Path:
    return resolve_data_root(data_root) / configuration.dir_name


def _metadata_path(directory: Path, entry: str, metadata_file_name: str) -> Path:
    candidate = directory / entry
    if candidate.is_dir():
        return candidate / metadata_file_name
    return candidate


def _read_descriptor(
    directory: Path, entry: str, metadata_file_name: str
) -> Optional[ModelDescriptor]:
    """Return the descriptor for one listing entry or None when it is unusable."""
    try:
        path = _metadata_path(directory, entry, metadata_file_name)
        raw_text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        logger.debug("[registry] Skipping unreadable entry %s: %s", entry, exc)
        return None
    try:
        data = json.loads(raw_text)
    except json.JSONDecodeError as exc:
        logger.debug("[registry] Skipping malformed %s: %s", path, exc)
        return None
    if not isinstance(data, dict):
        logger.debug("[registry] Skipping %s: metadata is not an object", path)
        return None
    return ModelDescriptor.model_validate(data)


def load_models(
    configuration: RegistryConfiguration, data_root: str | Path | None = None
) -> List[ModelDescriptor]:
    """Build a fresh catalog from disk. Never raises for per-entry problems."""
    directory = models_directory(configuration, data_root)
    try:
        if not directory.exists():
            return []
        entries = sorted(os.listdir(directory))
    except OSError as exc:
        logger.warning("[registry] Cannot list %s: %s", directory, exc)
        return []

    candidates = (
        _read_descriptor(directory, entry, configuration.metadata_file_name)
        for entry in entries
    )
    models = [descriptor for descriptor in candidates if descriptor is not None]
    logger.debug(
        "[registry] Loaded %d of %d entries from %s",
        len(models),
        len(entries),
        directory,
    )
    return models


async def aload_models(
    configuration: RegistryConfiguration, data_root: str | Path | None = None
) -> List[ModelDescriptor]:
    return await asyncio.to_thread(load_models, configuration, data_root)


def find_model(
    models: Iterable[ModelDescriptor], model_id: str | None
) -> Optional[ModelDescriptor]:
    if model_id is None:
        return None
    for descriptor in models:
        if descriptor.id == model_id:
            return descriptor
    return None


def get_model(
    configuration: RegistryConfiguration,
    model_id: str,
    data_root: str | Path | None = None,
) -> Optional[ModelDescriptor]:
    return find_model(load_models(configuration, data_root), model_id)
