"""Exceptions shared across the mirror."""


class AuthError(Exception):
    """The browser could not reach an authenticated state."""


class StorageError(Exception):
    """A database, bucket, local file or session file could not be written or read."""
