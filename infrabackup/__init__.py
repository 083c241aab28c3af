"""Scheduled backups for local WordPress Docker infrastructures."""

__version__ = "0.1.0"
