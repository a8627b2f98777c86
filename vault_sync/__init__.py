"""Vault Sync: one-way incremental sync of external files into a vault.

Copies configured sources (single files or whole folders) into a
destination root, skipping excluded paths and files that are already
up to date.  Runs on demand or on an interval / daily schedule.
"""

__version__ = "1.0.0"
__app_name__ = "Vault Sync"
