import logging

import numpy as np
from numba import njit


logger = logging.getLogger(__name__)



# Node layout, one int64 row per node:
#     ROW[5]: [key | left | right | parent | height]
#     Links are row indices into the same array.
#     Row 0 is the sentinel (virtual node): key -1, height -1, every link 0.
#     The sentinel row is written once, when the pool is created.



# ROW[5]: [key | left | right | parent | height]
KEY    = 0
LEFT   = 1
RIGHT  = 2
PARENT = 3
HEIGHT = 4
FIELDS = 5

NIL             = 0          # slot of the sentinel
SENTINEL_KEY    = -1
SENTINEL_HEIGHT = -1

DEFAULT_CAPACITY = 64
GROWTH_FACTOR    = 2
MAX_CAPACITY     = (1 << 31) - 1

INT64_MIN = int(np.iinfo(np.int64).min)
INT64_MAX = int(np.iinfo(np.int64).max)



# ---------- JIT-Compiled Field Accessors ----------
@njit(inline="always")
def _get_left(nodes: np.ndarray, index: np.int64) -> np.int64:
    return nodes[index, LEFT]

@njit(inline="always")
def _get_right(nodes: np.ndarray, index: np.int64) -> np.int64:
    return nodes[index, RIGHT]

@njit(inline="always")
def _get_parent(nodes: np.ndarray, index: np.int64) -> np.int64:
    return nodes[index, PARENT]

@njit(inline="always")
def _get_height(nodes: np.ndarray, index: np.int64) -> np.int64:
    """
    Rank of a node. The sentinel row answers -1, so empty subtrees need
    no special case.
    """

    return nodes[index, HEIGHT]

@njit(inline="always")
def _set_parent(
    nodes:  np.ndarray,
    index:  np.int64,
    parent: np.int64

) -> None:

    """
    Point `index` back at `parent`. A no-op on the sentinel row.
    """

    if index != NIL:
        nodes[index, PARENT] = parent

@njit(inline="always")
def _balance_factor(nodes: np.ndarray, index: np.int64) -> np.int64:
    """
    height(left) - height(right). Positive means left-leaning.
    """

    return nodes[nodes[index, LEFT], HEIGHT] - nodes[nodes[index, RIGHT], HEIGHT]

@njit(inline="always")
def _fresh_height(nodes: np.ndarray, index: np.int64) -> np.int64:
    """
    Height recomputed from the children's stored heights.
    """

    return max(nodes[nodes[index, LEFT], HEIGHT], nodes[nodes[index, RIGHT], HEIGHT]) + 1

@njit(inline="always")
def _fix_height(nodes: np.ndarray, index: np.int64) -> bool:
    """
    Store the recomputed height of `index`. Returns True if it changed.
    """

    new_height = _fresh_height(nodes, index)
    if nodes[index, HEIGHT] != new_height:
        nodes[index, HEIGHT] = new_height
        return True

    return False

@njit(inline="always")
def _replace_child(
    nodes:  np.ndarray,
    parent: np.int64,
    old:    np.int64,
    new:    np.int64,
    root:   np.int64

) -> np.int64:

    """
    Put `new` in the child slot of `parent` that currently holds `old`.

    When `parent` is the sentinel, `old` was the root and `new` takes its
    place. The (possibly new) root is returned.

    :param nodes: Node array of the pool
    :type nodes: np.ndarray
    :param parent: Slot whose child link is rewritten (NIL for the root)
    :type parent: np.int64
    :param old: Child being replaced
    :type old: np.int64
    :param new: Replacement, may be NIL
    :type new: np.int64
    :param root: Current root of the tree
    :type root: np.int64
    :return: Root after the replacement
    :rtype: np.int64
    """

    _set_parent(nodes, new, parent)

    if parent == NIL:
        return new

    if nodes[parent, LEFT] == old:
        nodes[parent, LEFT] = new
    else:
        nodes[parent, RIGHT] = new

    return root



# ---------- Node Pool ----------
class NodePool:
    """
    Arena holding the nodes of one or more trees.

    The structural fields live in a single int64 array (see the row layout
    at the top of this module) so that numba kernels can work on it
    directly; values are opaque strings kept in a Python list indexed by
    the same slot. Released slots go on a free list and are reused before
    the arena grows.

    Attributes:
        nodes (np.ndarray): 2D array [capacity, FIELDS] of node rows.
        values (list): Value stored for each slot, None for unused slots.
        capacity (int): Number of rows, the sentinel row included.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY

    ) -> None:

        if not (0 <= capacity <= MAX_CAPACITY):
            raise ValueError(
                f"The capacity must be between 0 and {MAX_CAPACITY}, not {capacity}"
            )

        self.capacity   = capacity + 1
        self.nodes      = np.zeros((self.capacity, FIELDS), dtype=np.int64)
        self.values     = [None] * self.capacity
        self._free      = 1
        self._free_list = []

        self.nodes[NIL] = (SENTINEL_KEY, NIL, NIL, NIL, SENTINEL_HEIGHT)

    def __len__(self) -> int:
        """Number of slots currently holding a real node."""
        return self._free - 1 - len(self._free_list)

    def allocate(
        self,
        key:   int,
        value: str

    ) -> int:

        """
        Take a free slot and initialise it as a detached leaf.

        Args:
            key (int): Key of the new node.
            value (str): Value of the new node.

        Returns:
            int: Slot of the new node.
        """

        if self._free_list:
            index = self._free_list.pop()
        else:
            if self._free >= self.capacity:
                self._grow()
            index = self._free
            self._free += 1

        self.nodes[index] = (key, NIL, NIL, NIL, 0)
        self.values[index] = value
        return index

    def release(self, index: int) -> None:
        """Return a slot to the free list."""

        self.nodes[index] = (SENTINEL_KEY, NIL, NIL, NIL, 0)
        self.values[index] = None
        self._free_list.append(index)

    def release_subtree(self, root: int) -> None:
        """Release every slot of the subtree rooted at `root`."""

        stack = [root] if root != NIL else []
        while stack:
            index = stack.pop()
            for child in (int(self.nodes[index, LEFT]), int(self.nodes[index, RIGHT])):
                if child != NIL:
                    stack.append(child)
            self.release(index)

    def adopt(
        self,
        other: "NodePool",
        root:  int

    ) -> int:

        """
        Copy the subtree rooted at `root` of another pool into this one.

        The copy keeps the shape and the stored heights; the copied root is
        detached (its parent is NIL). The source is left untouched.

        Args:
            other (NodePool): Pool the subtree lives in.
            root (int): Root slot of the subtree in `other`.

        Returns:
            int: Root slot of the copy in this pool (NIL for an empty subtree).
        """

        if root == NIL:
            return NIL

        source  = other.nodes
        mapping = {}
        order   = []
        stack   = [root]

        while stack:
            index = stack.pop()
            mapping[index] = self.allocate(int(source[index, KEY]), other.values[index])
            order.append(index)

            for child in (int(source[index, LEFT]), int(source[index, RIGHT])):
                if child != NIL:
                    stack.append(child)

        # Allocation may have grown the array, fetch it once all slots exist
        nodes = self.nodes
        for index in order:
            copy = mapping[index]
            nodes[copy, LEFT]   = mapping.get(int(source[index, LEFT]), NIL)
            nodes[copy, RIGHT]  = mapping.get(int(source[index, RIGHT]), NIL)
            nodes[copy, PARENT] = mapping.get(int(source[index, PARENT]), NIL)
            nodes[copy, HEIGHT] = source[index, HEIGHT]

        logger.debug("adopted %d nodes from a foreign pool", len(order))
        return mapping[root]

    def _grow(self) -> None:
        new_capacity = min(
            max(self.capacity * GROWTH_FACTOR, self.capacity + 1),
            MAX_CAPACITY + 1
        )

        if new_capacity <= self.capacity:
            raise MemoryError(f"The node pool is full ({MAX_CAPACITY} slots)")

        grown = np.zeros((new_capacity, FIELDS), dtype=np.int64)
        grown[:self.capacity] = self.nodes

        self.nodes = grown
        self.values.extend([None] * (new_capacity - self.capacity))

        logger.debug("node pool grown from %d to %d slots", self.capacity, new_capacity)
        self.capacity = new_capacity
