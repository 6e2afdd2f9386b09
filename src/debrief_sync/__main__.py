#!/usr/bin/env python3
"""
debrief-sync - entry point for python -m debrief_sync
"""

from debrief_sync.cli import main

if __name__ == "__main__":
    main()
