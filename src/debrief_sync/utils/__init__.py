"""Ambient utilities: logging, errors, configuration, notifications, lifecycle."""
