"""
Remote store implementations.
"""

from pathlib import Path

from .base import RemoteStore, RemoteSubscription, PushFanout, ChangeHandler
from .memory import MemoryRemoteStore
from .sqlite import SQLiteRemoteStore
from .postgrest import PostgrestRemoteStore
from ..utils.config import RemoteConfig
from ..utils.errors import ConfigurationError


def create_remote_store(config: RemoteConfig) -> RemoteStore:
    """Build the remote store selected by configuration."""
    if config.backend == "memory":
        return MemoryRemoteStore()
    if config.backend == "sqlite":
        return SQLiteRemoteStore(Path(config.sqlite_path).expanduser(), table=config.table)
    if not config.base_url:
        raise ConfigurationError("remote.base_url is required for the postgrest backend")
    return PostgrestRemoteStore(
        config.base_url,
        api_key=config.api_key,
        table=config.table,
        timeout=config.timeout,
    )


__all__ = [
    'RemoteStore',
    'RemoteSubscription',
    'PushFanout',
    'ChangeHandler',
    'MemoryRemoteStore',
    'SQLiteRemoteStore',
    'PostgrestRemoteStore',
    'create_remote_store',
]
