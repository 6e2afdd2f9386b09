"""
Local state store.
"""

from .local_state import LocalStateStore, SaveStatus, default_value

__all__ = [
    'LocalStateStore',
    'SaveStatus',
    'default_value',
]
