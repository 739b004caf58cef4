import numpy as np
from numba import njit
from typing import Tuple

from .NodeArray import (
    KEY, LEFT, RIGHT, PARENT, HEIGHT, NIL,
    _get_height,
    _get_left,
    _get_parent,
    _get_right,
    _set_parent,
)
from .Rebalance import rebalance_insert



# ---------- JIT-Compiled Join ----------
@njit
def join(
    nodes:      np.ndarray,
    connector:  np.int64,
    left_root:  np.int64,
    right_root: np.int64

) -> np.int64:

    """
    Join two detached trees through a detached connector node.

    Precondition: keys(left) < key(connector) < keys(right); both roots have
    a NIL parent (either may be NIL itself).

    The taller tree's spine facing the shorter one is walked down until the
    first node whose height is the shorter tree's height or one less. The
    connector takes that node and the shorter tree as children, takes the
    spine node's place, and the insert rebalancer runs from it.

    Cost is O(|height(left) - height(right)| + 1).

    Args:
        nodes (np.ndarray): Node array of the pool.
        connector (np.int64): Slot of the joining node; its links are overwritten.
        left_root (np.int64): Root of the tree holding the smaller keys.
        right_root (np.int64): Root of the tree holding the larger keys.

    Returns:
        np.int64: Root of the joined tree.
    """

    h_left  = _get_height(nodes, left_root)
    h_right = _get_height(nodes, right_root)

    parent = NIL

    if h_left >= h_right: # walk the right spine of the left tree
        spine = left_root
        while _get_height(nodes, spine) > h_right:
            parent = spine
            spine  = _get_right(nodes, spine)

        nodes[connector, LEFT]   = spine
        nodes[connector, RIGHT]  = right_root
        nodes[connector, HEIGHT] = h_right + 1

        if parent == NIL:
            root = connector
        else:
            nodes[parent, RIGHT] = connector
            root = left_root

    else: # walk the left spine of the right tree
        spine = right_root
        while _get_height(nodes, spine) > h_left:
            parent = spine
            spine  = _get_left(nodes, spine)

        nodes[connector, LEFT]   = left_root
        nodes[connector, RIGHT]  = spine
        nodes[connector, HEIGHT] = h_left + 1

        if parent == NIL:
            root = connector
        else:
            nodes[parent, LEFT] = connector
            root = right_root

    nodes[connector, PARENT] = parent
    _set_parent(nodes, nodes[connector, LEFT], connector)
    _set_parent(nodes, nodes[connector, RIGHT], connector)

    root, _ = rebalance_insert(nodes, connector, root)
    return root



# ---------- JIT-Compiled Split ----------
@njit
def split(
    nodes: np.ndarray,
    pivot: np.int64

) -> Tuple[np.int64, np.int64]:

    """
    Split the tree containing `pivot` into the trees of smaller and larger keys.

    The pivot's own subtrees seed both sides. Walking up, every ancestor with
    a smaller key is used as the connector joining its left subtree onto the
    left result; every ancestor with a larger key joins its right subtree onto
    the right result. Ancestors are taken bottom-up so each join works on
    subtrees that are already valid.

    The pivot row is detached but not released.

    Args:
        nodes (np.ndarray): Node array of the pool.
        pivot (np.int64): Slot of the splitting node.

    Returns:
        Tuple[np.int64, np.int64]: roots of (smaller keys, larger keys).
    """

    pivot_key  = nodes[pivot, KEY]
    left_root  = _get_left(nodes, pivot)
    right_root = _get_right(nodes, pivot)
    _set_parent(nodes, left_root, NIL)
    _set_parent(nodes, right_root, NIL)

    ancestor = _get_parent(nodes, pivot)

    nodes[pivot, LEFT]   = NIL
    nodes[pivot, RIGHT]  = NIL
    nodes[pivot, PARENT] = NIL

    while ancestor != NIL:
        next_ancestor = _get_parent(nodes, ancestor)

        if nodes[ancestor, KEY] < pivot_key:
            subtree = _get_left(nodes, ancestor)
            _set_parent(nodes, subtree, NIL)
            left_root = join(nodes, ancestor, subtree, left_root)

        else:
            subtree = _get_right(nodes, ancestor)
            _set_parent(nodes, subtree, NIL)
            right_root = join(nodes, ancestor, right_root, subtree)

        ancestor = next_ancestor

    return left_root, right_root



# ---------- JIT-Compiled Subtree Size ----------
@njit
def subtree_size(
    nodes: np.ndarray,
    root:  np.int64

) -> np.int64:

    """
    Count the real nodes under `root` with an explicit stack.
    """

    if root == NIL:
        return 0

    stack     = np.zeros(_get_height(nodes, root) + 2, dtype=np.int64)
    stack_idx = 1
    stack[0]  = root
    count     = 0

    while stack_idx > 0:
        stack_idx -= 1
        current = stack[stack_idx]
        count += 1

        left  = _get_left(nodes, current)
        right = _get_right(nodes, current)
        if left != NIL:
            stack[stack_idx] = left
            stack_idx += 1
        if right != NIL:
            stack[stack_idx] = right
            stack_idx += 1

    return count
