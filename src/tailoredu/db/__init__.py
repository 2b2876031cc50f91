"""Managed backend access.

Provides:
- Caller authentication against the backend's auth service
- Table reads/writes for submission analysis and class digests
"""

from tailoredu.db.backend import (
    BackendError,
    BackendNotConfiguredError,
    BackendStore,
    get_store,
    reset_store,
)

__all__ = [
    "BackendError",
    "BackendNotConfiguredError",
    "BackendStore",
    "get_store",
    "reset_store",
]
