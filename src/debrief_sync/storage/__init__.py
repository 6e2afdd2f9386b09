"""
Local persistent storage.
"""

from .preferences import PreferenceStore

__all__ = ['PreferenceStore']
