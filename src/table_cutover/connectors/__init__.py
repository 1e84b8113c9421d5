# src/table_cutover/connectors/__init__.py

from .base import BaseStore
from .memory import MemoryStore
from .registry import open_store, register_store

__all__ = [
    'BaseStore',
    'MemoryStore',
    'open_store',
    'register_store',
]
