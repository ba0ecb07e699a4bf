"""Durable profile store adapters."""
from .profile_store import (
    InMemoryProfileStore,
    PersistenceError,
    ProfileStore,
    SqlProfileStore,
)

__all__ = [
    "InMemoryProfileStore",
    "PersistenceError",
    "ProfileStore",
    "SqlProfileStore",
]
