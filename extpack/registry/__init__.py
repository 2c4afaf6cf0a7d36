# extpack/registry/__init__.py
from .registry import ExtensionId, Registry, RegistryEntry

__all__ = [
    "ExtensionId",
    "Registry",
    "RegistryEntry",
]
