"""
Database Repositories Module

The registry store contract and its PostgreSQL implementation.
"""

from .base_repository import RegistryStore
from .registry_repository import RegistryRepository

__all__ = [
    "RegistryStore",
    "RegistryRepository",
]
