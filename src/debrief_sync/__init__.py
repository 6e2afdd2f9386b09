"""
debrief-sync - state synchronization core for a collaborative event
review and task tracker.

This package keeps a client-resident record store consistent with a
shared remote table:
- Composite-key addressing of reviews, task lists and config records
- A codec multiplexing votes, comment threads and tags into text columns
- Debounced, per-key remote writes with save-status tracking
- Bulk load, periodic poll and push channels merging into one store
"""

__version__ = "0.1.0"
__author__ = "Debrief Team"

__all__ = [
    '__version__',
]
