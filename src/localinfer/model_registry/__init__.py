"""Registry of locally installed models, rebuilt from disk on every load."""

from .models import ModelDescriptor, RegistryConfiguration
from .registry import aload_models, find_model, get_model, load_models

__all__ = [
    "ModelDescriptor",
    "RegistryConfiguration",
    "aload_models",
    "find_model",
    "get_model",
    "load_models",
]
