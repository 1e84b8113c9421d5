# src/table_cutover/connectors/registry.py
import importlib
import logging
from typing import Dict, Type
from urllib.parse import urlparse

from .base import BaseStore
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

# Store modules imported on first use, so a driver is only loaded when its scheme is requested
_BUILTIN_MODULES = {
    "clickhouse": "clickhouse",
    "postgresql": "postgresql",
    "postgres": "postgresql",
    "memory": "memory",
}

_STORE_MAP: Dict[str, Type[BaseStore]] = {}


def register_store(store_class: Type[BaseStore]) -> Type[BaseStore]:
    """Registers a store class under each of its URL schemes. Usable as a decorator."""
    for scheme in store_class.schemes:
        _STORE_MAP[scheme] = store_class
        logger.debug(f"Registered store: {scheme} -> {store_class.__name__}")
    return store_class


def get_store_class(scheme: str) -> Type[BaseStore]:
    """Returns the store class for a URL scheme."""
    scheme = scheme.lower()
    if scheme in _STORE_MAP:
        return _STORE_MAP[scheme]

    module_name = _BUILTIN_MODULES.get(scheme)
    if module_name is None:
        supported = ", ".join(sorted(set(_BUILTIN_MODULES) | set(_STORE_MAP)))
        raise ConfigurationError(f"Unsupported DSN scheme '{scheme}'. Supported: {supported}")

    module = importlib.import_module(f".{module_name}", package=__package__)
    for obj in vars(module).values():
        if isinstance(obj, type) and issubclass(obj, BaseStore) and obj is not BaseStore and scheme in obj.schemes:
            return register_store(obj)

    raise ConfigurationError(f"No store class in module '{module_name}' handles scheme '{scheme}'")


def open_store(dsn: str) -> BaseStore:
    """Opens the store that handles the DSN's URL scheme."""
    scheme = urlparse(dsn).scheme
    if not scheme:
        raise ConfigurationError(f"DSN '{redact_dsn(dsn)}' has no URL scheme")
    store = get_store_class(scheme).from_dsn(dsn)
    logger.info(f"Opened {type(store).__name__} for {redact_dsn(dsn)}")
    return store


def redact_dsn(dsn: str) -> str:
    """DSN with the password replaced, for log lines."""
    parsed = urlparse(dsn)
    if not parsed.password:
        return dsn
    netloc = parsed.netloc.replace(f":{parsed.password}@", ":***@")
    return parsed._replace(netloc=netloc).geturl()
