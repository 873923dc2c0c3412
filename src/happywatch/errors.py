"""Exception taxonomy shared by the store, limiter and aggregator."""

from __future__ import annotations


class HappywatchError(Exception):
    """Base class for all happywatch failures."""


class StorageError(HappywatchError):
    """The shared store is unavailable or a store round trip failed.

    Never retried internally; the caller decides how to surface it.
    """


class ValidationError(HappywatchError, ValueError):
    """Caller-supplied parameters violate a stated constraint."""
