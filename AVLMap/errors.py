"""
Exception taxonomy for the AVL map.

All errors are raised by the Python layer before any mutation takes place,
so a failed operation always leaves the tree exactly as it was.
"""


class AVLMapError(Exception):
    """Base class for every error raised by the map."""


class DuplicateKeyError(AVLMapError, KeyError):
    """Insert of a key that is already present."""

    def __init__(self, key: int) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"key {self.key} already exists"


class KeyNotFoundError(AVLMapError, KeyError):
    """Delete or lookup of a key that is not present."""

    def __init__(self, key: int) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"key {self.key} not found"


class PreconditionViolation(AVLMapError, ValueError):
    """
    A split or join was called with arguments outside its contract
    (absent pivot, overlapping key ranges, ...).
    """
