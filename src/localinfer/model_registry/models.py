"""Schema for installed model descriptors and registry settings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict


class ModelDescriptor(BaseModel):
    """One installed model as read from its metadata file.

    Only ``id``, ``name`` and ``engine`` are interpreted. Every other key in
    the metadata file is kept as an extra field and emitted unchanged by
    :meth:`to_dict`.
    """

    # Not type-checked. A non-string id or engine is kept verbatim and
    # simply never matches a lookup or the local engine tag.
    id: Any = None
    name: Any = None
    engine: Any = None

    model_config = ConfigDict(extra="allow")

    @property
    def extra(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})

    def to_dict(self) -> Dict[str, Any]:
        # exclude_unset keeps absent keys absent instead of emitting nulls
        return self.model_dump(exclude_unset=True)


@dataclass
class RegistryConfiguration:
    dir_name: str = "models"
    metadata_file_name: str = "model.json"
    # Settings owned by other features (e.g. deletion event shape); not read here
    extras: Dict[str, Any] = field(default_factory=dict)


__all__ = ["ModelDescriptor", "RegistryConfiguration"]
