"""
Synchronization between the local state store and the remote store.
"""

from .writer import DebouncedWriter
from .channels import SyncChannels, MergeSource, Scope
from .engine import SyncEngine

__all__ = [
    'DebouncedWriter',
    'SyncChannels',
    'MergeSource',
    'Scope',
    'SyncEngine',
]
