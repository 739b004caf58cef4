import logging

from .AVLMapArray import AVLMap, build_map, default_pool, fill_map, remove_map, warmup
from .NodeArray import DEFAULT_CAPACITY, NIL, NodePool
from .errors import AVLMapError, DuplicateKeyError, KeyNotFoundError, PreconditionViolation


logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "AVLMap",
    "AVLMapError",
    "DEFAULT_CAPACITY",
    "DuplicateKeyError",
    "KeyNotFoundError",
    "NIL",
    "NodePool",
    "PreconditionViolation",
    "build_map",
    "default_pool",
    "fill_map",
    "remove_map",
    "warmup",
]
