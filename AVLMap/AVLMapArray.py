import logging

import numpy as np
from numba import njit, prange
from typing import Iterable, Iterator, List, Optional, Tuple

from .NodeArray import (
    KEY, LEFT, RIGHT, PARENT, HEIGHT, NIL,
    DEFAULT_CAPACITY, INT64_MAX, INT64_MIN,
    NodePool,
    _balance_factor,
    _fresh_height,
    _get_height,
    _get_left,
    _get_right,
)
from .Rebalance import (
    attach,
    remove,
    search_slot,
    subtree_max,
    subtree_min,
    tree_position,
)
from .JoinSplit import join, split, subtree_size
from .errors import DuplicateKeyError, KeyNotFoundError, PreconditionViolation


logger = logging.getLogger(__name__)



# ---------- JIT-Compiled Search / Traversal ----------
@njit(parallel=True)
def _search_bulk(
    nodes: np.ndarray,
    root:  np.int64,
    keys:  np.ndarray

) -> np.ndarray:

    """
    Look up many keys at once across all available CPU cores.

    Searches only read the node array, so the queries are independent and
    are spread with `prange`.

    Args:
        nodes (np.ndarray): Node array of the pool.
        root (np.int64): Root of the tree (shared by all threads).
        keys (np.ndarray): 1D int64 array of keys to look for.

    Returns:
        np.ndarray: Slot of each key, NIL for the keys that are absent.
    """

    size    = keys.size
    results = np.zeros(size, dtype=np.int64)
    for i in prange(size):
        results[i] = search_slot(nodes, root, keys[i])

    return results

@njit
def inorder_traversal( # LVR
    nodes:        np.ndarray,
    root:         np.int64,
    current_size: np.int64

) -> np.ndarray:

    """
    Slots of all nodes in ascending key order.

    The output buffer is sized by the tree's size counter and the stack by
    the root height.
    """

    traverse = np.zeros(current_size, dtype=np.int64)
    stack    = np.zeros(_get_height(nodes, root) + 2, dtype=np.int64)

    current_index = root
    stack_idx     = 0
    traverse_idx  = 0

    while traverse_idx < current_size:

        while current_index != NIL:
            stack[stack_idx] = current_index
            stack_idx += 1
            current_index = _get_left(nodes, current_index)

        if stack_idx > 0:
            stack_idx -= 1
            current_index = stack[stack_idx]

            traverse[traverse_idx] = current_index
            traverse_idx += 1

            current_index = _get_right(nodes, current_index)

        else:
            break

    return traverse

@njit
def validate(
    nodes: np.ndarray,
    root:  np.int64

) -> np.int64:

    """
    Check every structural invariant of the tree under `root`.

    Verifies, for every real node: strictly increasing keys in order,
    parent links matching child links, stored height equal to the
    recomputed one and a balance factor within [-1, 1]. The root must be
    detached.

    Returns:
        np.int64: Number of real nodes, or -1 on the first violation.
    """

    if root == NIL:
        return 0

    if nodes[root, PARENT] != NIL:
        return -1

    stack         = np.zeros(_get_height(nodes, root) + 2, dtype=np.int64)
    stack_idx     = 0
    current_index = root
    count         = 0
    previous_key  = INT64_MIN
    first         = True

    while True:
        while current_index != NIL:
            if stack_idx >= stack.size:
                return -1

            stack[stack_idx] = current_index
            stack_idx += 1
            current_index = _get_left(nodes, current_index)

        if stack_idx == 0:
            break

        stack_idx -= 1
        current_index = stack[stack_idx]
        key           = nodes[current_index, KEY]
        left          = _get_left(nodes, current_index)
        right         = _get_right(nodes, current_index)

        if not first and key <= previous_key:
            return -1
        if left != NIL and nodes[left, PARENT] != current_index:
            return -1
        if right != NIL and nodes[right, PARENT] != current_index:
            return -1
        if nodes[current_index, HEIGHT] != _fresh_height(nodes, current_index):
            return -1
        if abs(_balance_factor(nodes, current_index)) > 1:
            return -1

        first        = False
        previous_key = key
        count += 1

        current_index = right

    return count



# --------- Argument Checks ---------
def _check_key(key) -> int:
    if isinstance(key, bool) or not isinstance(key, (int, np.integer)):
        raise TypeError(f"Keys must be integers, not {type(key).__name__}")

    key = int(key)
    if not (INT64_MIN <= key <= INT64_MAX):
        raise ValueError(f"The key must fit in a signed 64-bit integer, not {key}")

    return key

def _check_keys(keys) -> np.ndarray:
    """
    Keys as a contiguous int64 array. Integer arrays pass through; anything
    else is checked element by element like a single key.
    """

    if isinstance(keys, np.ndarray) and np.issubdtype(keys.dtype, np.integer):
        if keys.dtype == np.uint64 and keys.size and int(keys.max()) > INT64_MAX:
            raise ValueError("The keys must fit in a signed 64-bit integer")

        return np.ascontiguousarray(keys.astype(np.int64, copy=False).ravel())

    return np.array([_check_key(key) for key in keys], dtype=np.int64)

def _check_value(value) -> str:
    if not isinstance(value, str):
        raise TypeError(f"Values must be strings, not {type(value).__name__}")

    return value



# --------- Default Pool ---------
_default_pool: Optional[NodePool] = None

def default_pool() -> NodePool:
    """
    Pool shared by every AVLMap built without `capacity` or `pool`.

    Sharing one arena lets independently built trees be joined by
    re-linking rows instead of copying them.
    """

    global _default_pool
    if _default_pool is None:
        _default_pool = NodePool(DEFAULT_CAPACITY)

    return _default_pool



# --------- AVLMap API ---------
class AVLMap:
    """
    Ordered map from distinct int64 keys to string values, kept as an AVL tree.

    Nodes live in a `NodePool`: a numpy array of rows (key, left, right,
    parent, height) manipulated by numba kernels, plus a parallel list of
    values. Row 0 is the sentinel, so `root == NIL` means the tree is empty.
    Trees built without arguments draw from the module's `default_pool()`;
    trees returned by `split` share the pool of their source. Trees in the
    same pool are joined by re-linking rows, without copying.

    Passing `capacity` gives the tree a private pool of that size. Passing
    `pool` places it in an existing pool. The two are mutually exclusive.
    A tree releases its slots when it is garbage collected.

    `insert` and `delete` return the number of rebalancing operations: every
    rotation, promotion and demotion counts as one.

    Attributes:
        pool (NodePool): Arena holding the nodes.
        root (int): Slot of the root node, NIL when empty.
        count (int): Number of real nodes in the tree.
    """

    def __init__(
        self,
        capacity: Optional[int]      = None,
        pool:     Optional[NodePool] = None

    ) -> None:

        if capacity is not None and pool is not None:
            raise ValueError("Pass either a capacity or a pool, not both")

        if pool is None:
            pool = NodePool(capacity) if capacity is not None else default_pool()

        self.pool  = pool
        self.root  = NIL
        self.count = 0

    @classmethod
    def _from_subtree(
        cls,
        pool: NodePool,
        root: int

    ) -> "AVLMap":

        """
        Wrap a detached, valid subtree of `pool` as a tree of its own.
        The size is the only thing recomputed.
        """

        tree       = cls(pool=pool)
        tree.root  = int(root)
        tree.count = int(subtree_size(pool.nodes, tree.root))
        return tree

    @property
    def height(self) -> int:
        """Rank of the root, -1 for the empty tree."""
        return int(self.pool.nodes[self.root, HEIGHT])

    @property
    def capacity(self) -> int:
        return self.pool.capacity - 1

    def empty(self) -> bool:
        return self.root == NIL

    def size(self) -> int:
        return self.count

    # ----- node accessors -----
    def get_node(
        self,
        index: int

    ) -> Tuple[int, int, int, int, int]:

        """
        All fields of a node.

        Args:
            index (int): Slot of the node. NIL answers the sentinel row.

        Returns:
            Tuple[int, int, int, int, int]: (key, left, right, parent, height).
        """

        key, left, right, parent, height = self.pool.nodes[index]
        return int(key), int(left), int(right), int(parent), int(height)

    def get_key(self, index: int) -> int:
        return int(self.pool.nodes[index, KEY])

    def get_value(self, index: int) -> Optional[str]:
        return self.pool.values[index]

    def get_left(self, index: int) -> int:
        return int(self.pool.nodes[index, LEFT])

    def get_right(self, index: int) -> int:
        return int(self.pool.nodes[index, RIGHT])

    def get_parent(self, index: int) -> int:
        return int(self.pool.nodes[index, PARENT])

    def get_height(self, index: int) -> int:
        return int(self.pool.nodes[index, HEIGHT])

    def is_real_node(self, index: int) -> bool:
        return index != NIL

    def balance_factor(self, index: int) -> int:
        """height(left) - height(right) of a node."""
        return self.get_height(self.get_left(index)) - self.get_height(self.get_right(index))

    def is_leaf(self, index: int) -> bool:
        return index != NIL and self.get_left(index) == NIL and self.get_right(index) == NIL

    def is_unary(self, index: int) -> bool:
        """True if the node has exactly one real child."""
        return index != NIL and (self.get_left(index) == NIL) != (self.get_right(index) == NIL)

    def height_is_fresh(self, index: int) -> bool:
        nodes = self.pool.nodes
        return index == NIL or int(nodes[index, HEIGHT]) == int(_fresh_height(nodes, index))

    # ----- lookups -----
    def search(
        self,
        key: int

    ) -> Optional[str]:

        """Value stored under `key`, or None if the key is absent."""

        index = search_slot(self.pool.nodes, self.root, _check_key(key))
        return self.pool.values[index]

    def search_bulk(
        self,
        keys: Iterable[int]

    ) -> List[Optional[str]]:

        """Parallel lookup of many keys. None marks the absent ones."""

        keys = _check_keys(keys)
        slots = _search_bulk(self.pool.nodes, self.root, keys)

        values = self.pool.values
        return [values[index] for index in slots]

    def __contains__(self, key) -> bool:
        return search_slot(self.pool.nodes, self.root, _check_key(key)) != NIL

    def __getitem__(self, key: int) -> str:
        index = search_slot(self.pool.nodes, self.root, _check_key(key))
        if index == NIL:
            raise KeyNotFoundError(key)

        return self.pool.values[index]

    def min(self) -> Optional[str]:
        """Value of the smallest key, None if the tree is empty."""
        return self.pool.values[subtree_min(self.pool.nodes, self.root)]

    def max(self) -> Optional[str]:
        """Value of the largest key, None if the tree is empty."""
        return self.pool.values[subtree_max(self.pool.nodes, self.root)]

    def min_key(self) -> Optional[int]:
        if self.root == NIL:
            return None
        return self.get_key(subtree_min(self.pool.nodes, self.root))

    def max_key(self) -> Optional[int]:
        if self.root == NIL:
            return None
        return self.get_key(subtree_max(self.pool.nodes, self.root))

    # ----- updates -----
    def insert(
        self,
        key:   int,
        value: str

    ) -> int:

        """
        Insert a new key with auto-rebalancing.

        Returns:
            int: Number of rebalancing operations (0 for the first key).

        Raises:
            DuplicateKeyError: The key is already present; nothing changes.
        """

        key   = _check_key(key)
        value = _check_value(value)

        parent, found = tree_position(self.pool.nodes, self.root, key)
        if found:
            raise DuplicateKeyError(key)

        index = self.pool.allocate(key, value)

        root, operations = attach(self.pool.nodes, self.root, parent, index)

        self.root = int(root)
        self.count += 1
        return int(operations)

    def delete(
        self,
        key: int

    ) -> int:

        """
        Delete a key and stabilize the tree.

        Returns:
            int: Number of rebalancing operations.

        Raises:
            KeyNotFoundError: The key is absent; nothing changes.
        """

        key   = _check_key(key)
        index = search_slot(self.pool.nodes, self.root, key)
        if index == NIL:
            raise KeyNotFoundError(key)

        root, operations = remove(self.pool.nodes, self.root, index)
        self.pool.release(int(index))

        self.root = int(root)
        self.count -= 1
        return int(operations)

    def update(
        self,
        key:   int,
        value: str

    ) -> None:

        """Replace the value of an existing key. The shape is untouched."""

        value = _check_value(value)
        index = search_slot(self.pool.nodes, self.root, _check_key(key))
        if index == NIL:
            raise KeyNotFoundError(key)

        self.pool.values[index] = value

    # ----- join / split -----
    def join(
        self,
        key:   int,
        value: str,
        other: "AVLMap"

    ) -> int:

        """
        Merge `other` and a new (key, value) connector into this tree.

        All keys of one tree must be smaller than `key` and all keys of the
        other larger; which side this tree is on is read from the keys.
        Afterwards this tree holds everything and `other` is empty.

        If `other` lives in a different pool its nodes are first copied into
        this tree's pool; trees sharing a pool are re-linked in place.

        Args:
            key (int): Key of the connecting item.
            value (str): Value of the connecting item.
            other (AVLMap): Tree to absorb.

        Returns:
            int: |height(self) - height(other)| + 1, heights taken before the join.

        Raises:
            PreconditionViolation: Overlapping key ranges, or `other is self`.
        """

        key   = _check_key(key)
        value = _check_value(value)

        if other is self:
            raise PreconditionViolation("Cannot join a tree with itself")

        self_is_left = self._side_of(key)
        other_is_left = other._side_of(key)

        if self_is_left is None:
            self_is_left = not other_is_left if other_is_left is not None else True
        elif other_is_left is not None and other_is_left == self_is_left:
            raise PreconditionViolation(
                f"Both trees have keys on the same side of the connector {key}"
            )

        cost = abs(self.height - other.height) + 1

        other_root = other.root
        if other.pool is not self.pool:
            other_root = self.pool.adopt(other.pool, other.root)
            other.pool.release_subtree(other.root)

        connector = self.pool.allocate(key, value)

        if self_is_left:
            left_root, right_root = self.root, other_root
        else:
            left_root, right_root = other_root, self.root

        self.root = int(join(self.pool.nodes, connector, left_root, right_root))
        self.count += other.count + 1

        other.root  = NIL
        other.count = 0

        logger.debug("joined through key %d, %d nodes, cost %d", key, self.count, cost)
        return cost

    def _side_of(self, key: int) -> Optional[bool]:
        """
        True if every key is below `key`, False if every key is above,
        None for the empty tree.
        """

        if self.root == NIL:
            return None

        if self.max_key() < key:
            return True
        if self.min_key() > key:
            return False

        raise PreconditionViolation(f"The connector key {key} falls inside the tree's key range")

    def split(
        self,
        key: int

    ) -> Tuple["AVLMap", "AVLMap"]:

        """
        Split around an existing key.

        Returns two trees sharing this tree's pool: the keys smaller than
        `key` and the keys larger than `key`. The pivot item is dropped and
        this tree is left empty.

        Raises:
            PreconditionViolation: `key` is not in the tree.
        """

        key   = _check_key(key)
        pivot = int(search_slot(self.pool.nodes, self.root, key))
        if pivot == NIL:
            raise PreconditionViolation(f"The split key {key} is not in the tree")

        left_root, right_root = split(self.pool.nodes, pivot)
        self.pool.release(pivot)

        left  = AVLMap._from_subtree(self.pool, left_root)
        right = AVLMap._from_subtree(self.pool, right_root)

        self.root  = NIL
        self.count = 0

        logger.debug("split at key %d into %d and %d nodes", key, left.count, right.count)
        return left, right

    # ----- extraction -----
    def inorder(self) -> np.ndarray:
        """Slots of all nodes in ascending key order."""
        return inorder_traversal(self.pool.nodes, self.root, self.count)

    def keys(self) -> List[int]:
        return self.pool.nodes[self.inorder(), KEY].tolist()

    def values(self) -> List[str]:
        values = self.pool.values
        return [values[index] for index in self.inorder()]

    def items(self) -> Iterator[Tuple[int, str]]:
        """
        Lazy in-order iteration over (key, value) pairs.

        Keeps a stack of at most height + 1 slots. The tree must not be
        modified while the iterator is alive.
        """

        stack   = []
        current = self.root

        while stack or current != NIL:
            nodes = self.pool.nodes

            while current != NIL:
                stack.append(current)
                current = int(nodes[current, LEFT])

            current = stack.pop()
            yield int(nodes[current, KEY]), self.pool.values[current]
            current = int(nodes[current, RIGHT])

    def is_valid(self) -> bool:
        """Full invariant check, including the size counter."""
        return int(validate(self.pool.nodes, self.root)) == self.count

    def __iter__(self) -> Iterator[int]:
        for key, _ in self.items():
            yield key

    def __del__(self) -> None:
        pool = getattr(self, "pool", None)
        root = getattr(self, "root", NIL)
        if pool is not None and root != NIL:
            self.root = NIL
            pool.release_subtree(root)

    def __len__(self) -> int:
        return self.count

    def __str__(self) -> str:
        return "AVLMap(size=" + str(self.count) + ", root=" + str(self.root) + ", height=" + str(self.height) + ")"



# --------- Utils ---------
def warmup(tree_size: int = 16) -> bool:
    """
    Minimally triggers JIT compilation for every kernel.
    """

    avl = AVLMap(tree_size)
    for key in (30, 20, 10, 40, 50, 25):
        avl.insert(key, str(key))

    avl.search(20)
    avl.search_bulk([10, 25, 99])
    avl.delete(10)
    avl.is_valid()

    left, right = avl.split(30)
    left.join(30, "30", right)
    left.keys()

    return True

def build_map(
    keys:   Iterable[int],
    values: Iterable[str]

) -> AVLMap:

    """
    Builds and populates an AVLMap from parallel key and value sequences.

    Args:
        keys (Iterable[int]): Distinct keys to insert.
        values (Iterable[str]): Value for each key, same length as `keys`.

    Returns:
        AVLMap: A balanced tree holding every pair.
    """

    keys   = list(keys)
    values = list(values)

    avl = AVLMap()
    fill_map(avl, keys, values)

    return avl

def fill_map(
    avl:    AVLMap,
    keys:   Iterable[int],
    values: Iterable[str]

) -> None:

    """
    Populates an existing AVLMap with (key, value) pairs.

    Every pair is checked before the first insert, so on error the tree is
    left unchanged.

    Raises:
        ValueError: `keys` and `values` differ in length.
        DuplicateKeyError: A key repeats in `keys` or is already in the tree.
    """

    keys   = [_check_key(key) for key in keys]
    values = [_check_value(value) for value in values]

    if len(keys) != len(values):
        raise ValueError(f"Got {len(keys)} keys but {len(values)} values")

    seen = set()
    for key in keys:
        if key in seen or key in avl:
            raise DuplicateKeyError(key)
        seen.add(key)

    for key, value in zip(keys, values):
        avl.insert(key, value)

def remove_map(
    avl:  AVLMap,
    keys: Iterable[int]

) -> None:

    """
    Batch removal of keys.

    Keys that are not in the tree are silently ignored.
    """

    for key in [_check_key(key) for key in keys]:
        try:
            avl.delete(key)
        except KeyNotFoundError:
            continue
