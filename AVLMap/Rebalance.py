import numpy as np
from numba import njit
from typing import Tuple

from .NodeArray import (
    KEY, LEFT, RIGHT, PARENT, HEIGHT, NIL,
    _balance_factor,
    _fix_height,
    _get_height,
    _get_left,
    _get_parent,
    _get_right,
    _replace_child,
    _set_parent,
)



# Operation counting:
#     every rotation, promotion and demotion is one operation.
#     insert: promotion 1, single rotation fix 2, double rotation fix 5
#     delete: height fix 1, single rotation fix 3, double rotation fix 5



# ---------- JIT-Compiled Rotations ----------
@njit(inline="always")
def rotate_right( # pivot is a left child
    nodes: np.ndarray,
    pivot: np.int64,
    root:  np.int64

) -> np.int64:

    """
    Rotate `pivot` above its parent, `pivot` being the parent's left child.

    The pivot's right subtree becomes the old parent's left subtree, the old
    parent becomes the pivot's right child and the grandparent (or the tree
    root) now points at the pivot. Heights are not touched.

    :param nodes: Node array of the pool
    :type nodes: np.ndarray
    :param pivot: Slot of the node moving up
    :type pivot: np.int64
    :param root: Current root of the tree
    :type root: np.int64
    :return: Root after the rotation
    :rtype: np.int64
    """

    parent = _get_parent(nodes, pivot)
    inner  = _get_right(nodes, pivot)

    nodes[parent, LEFT] = inner
    _set_parent(nodes, inner, parent)

    root = _replace_child(nodes, _get_parent(nodes, parent), parent, pivot, root)

    nodes[pivot, RIGHT]   = parent
    nodes[parent, PARENT] = pivot

    return root

@njit(inline="always")
def rotate_left( # pivot is a right child
    nodes: np.ndarray,
    pivot: np.int64,
    root:  np.int64

) -> np.int64:

    """
    Mirror of `rotate_right`: `pivot` is the right child of its parent.
    """

    parent = _get_parent(nodes, pivot)
    inner  = _get_left(nodes, pivot)

    nodes[parent, RIGHT] = inner
    _set_parent(nodes, inner, parent)

    root = _replace_child(nodes, _get_parent(nodes, parent), parent, pivot, root)

    nodes[pivot, LEFT]    = parent
    nodes[parent, PARENT] = pivot

    return root



# ---------- JIT-Compiled BST Primitives ----------
@njit
def subtree_min(nodes: np.ndarray, index: np.int64) -> np.int64:
    """
    Leftmost node of the subtree rooted at `index` (NIL for an empty subtree).
    """

    if index == NIL:
        return index

    while _get_left(nodes, index) != NIL:
        index = _get_left(nodes, index)

    return index

@njit
def subtree_max(nodes: np.ndarray, index: np.int64) -> np.int64:
    """
    Rightmost node of the subtree rooted at `index` (NIL for an empty subtree).
    """

    if index == NIL:
        return index

    while _get_right(nodes, index) != NIL:
        index = _get_right(nodes, index)

    return index

@njit
def search_slot(
    nodes: np.ndarray,
    root:  np.int64,
    key:   np.int64

) -> np.int64:

    """
    Iterative BST search. Returns the slot holding `key`, or NIL.
    """

    current = root
    while current != NIL:
        current_key = nodes[current, KEY]

        if key == current_key:
            return current

        elif key < current_key:
            current = nodes[current, LEFT]

        else:
            current = nodes[current, RIGHT]

    return current

@njit
def tree_position(
    nodes: np.ndarray,
    root:  np.int64,
    key:   np.int64

) -> Tuple[np.int64, bool]:

    """
    Find where `key` belongs.

    Descends from `root` until the sentinel is reached in the place `key`
    would occupy.

    Args:
        nodes (np.ndarray): Node array of the pool.
        root (np.int64): Root of the tree (NIL if empty).
        key (np.int64): Key being looked for.

    Returns:
        Tuple[np.int64, bool]:
            - slot: the node holding `key` if found, otherwise the parent the
              new node must be attached to (NIL for an empty tree).
            - found: True if `key` already exists.
    """

    parent  = root
    current = root

    while current != NIL:
        parent      = current
        current_key = nodes[current, KEY]

        if key == current_key:
            return current, True

        elif key < current_key:
            current = nodes[current, LEFT]

        else:
            current = nodes[current, RIGHT]

    return parent, False

@njit
def structural_delete(
    nodes: np.ndarray,
    node:  np.int64,
    root:  np.int64

) -> Tuple[np.int64, np.int64]:

    """
    Unlink `node` from the tree without fixing any height.

    Three cases:
    1. Leaf: the parent's edge gets the sentinel.
    2. One real child: the child is spliced into the parent's edge.
    3. Two real children: the in-order successor is physically moved into
       the node's position, keeping its own slot, key and value but taking
       over the node's stored height. The successor's right child fills the
       successor's former slot.

    The unlinked row is detached (all links NIL) but not released.

    Args:
        nodes (np.ndarray): Node array of the pool.
        node (np.int64): Slot to remove.
        root (np.int64): Current root of the tree.

    Returns:
        Tuple[np.int64, np.int64]:
            - new root of the tree.
            - slot where the delete rebalancing walk must start (NIL if none).
    """

    left   = _get_left(nodes, node)
    right  = _get_right(nodes, node)
    parent = _get_parent(nodes, node)

    if left == NIL or right == NIL:
        child = left if left != NIL else right
        root  = _replace_child(nodes, parent, node, child, root)
        start = parent

    else:
        successor = subtree_min(nodes, right)

        if successor == right:
            start = successor

        else:
            start   = _get_parent(nodes, successor)
            s_right = _get_right(nodes, successor)

            nodes[start, LEFT] = s_right
            _set_parent(nodes, s_right, start)

            nodes[successor, RIGHT] = right
            _set_parent(nodes, right, successor)

        nodes[successor, LEFT] = left
        _set_parent(nodes, left, successor)

        nodes[successor, HEIGHT] = nodes[node, HEIGHT]
        root = _replace_child(nodes, parent, node, successor, root)

    nodes[node, LEFT]   = NIL
    nodes[node, RIGHT]  = NIL
    nodes[node, PARENT] = NIL

    return root, start



# ---------- JIT-Compiled Rebalancers ----------
@njit
def rebalance_insert(
    nodes: np.ndarray,
    curr:  np.int64,
    root:  np.int64

) -> Tuple[np.int64, np.int64]:

    """
    Restore the AVL invariant on the way up from a freshly attached node.

    At each step `parent` is the parent of `curr`. Work is only needed while
    both carry the same stored height:
        - parent off by one on the other side: promote parent, move up.
        - parent off by two: rotate. When `curr` leans toward the side it
          hangs from, a single rotation and a demotion of parent finish the
          job; when it leans away, a double rotation through its inner child
          does. A balanced `curr` only happens below a join connector: it is
          rotated up, promoted, and the walk continues from it.

    Args:
        nodes (np.ndarray): Node array of the pool.
        curr (np.int64): Node the walk starts from (the inserted node, or
            the connector of a join).
        root (np.int64): Current root of the tree.

    Returns:
        Tuple[np.int64, np.int64]: (new root, number of operations).
    """

    count = 0

    while True:
        parent = _get_parent(nodes, curr)

        if parent == NIL or _get_height(nodes, parent) != _get_height(nodes, curr):
            break

        bf = _balance_factor(nodes, parent)

        if bf == 1 or bf == -1:
            nodes[parent, HEIGHT] += 1
            count += 1
            curr = parent
            continue

        lean = _balance_factor(nodes, curr)

        if _get_left(nodes, parent) == curr: # L
            if lean == 1: # LL
                root = rotate_right(nodes, curr, root)
                nodes[parent, HEIGHT] -= 1
                count += 2
                break

            elif lean == -1: # LR
                inner = _get_right(nodes, curr)
                nodes[curr, HEIGHT]   -= 1
                nodes[parent, HEIGHT] -= 1
                nodes[inner, HEIGHT]  += 1
                root = rotate_left(nodes, inner, root)
                root = rotate_right(nodes, inner, root)
                count += 5
                break

            else: # join only
                root = rotate_right(nodes, curr, root)
                nodes[curr, HEIGHT] += 1
                count += 2

        else: # R
            if lean == -1: # RR
                root = rotate_left(nodes, curr, root)
                nodes[parent, HEIGHT] -= 1
                count += 2
                break

            elif lean == 1: # RL
                inner = _get_left(nodes, curr)
                nodes[curr, HEIGHT]   -= 1
                nodes[parent, HEIGHT] -= 1
                nodes[inner, HEIGHT]  += 1
                root = rotate_right(nodes, inner, root)
                root = rotate_left(nodes, inner, root)
                count += 5
                break

            else: # join only
                root = rotate_left(nodes, curr, root)
                nodes[curr, HEIGHT] += 1
                count += 2

    return root, count

@njit
def rebalance_delete(
    nodes: np.ndarray,
    curr:  np.int64,
    root:  np.int64

) -> Tuple[np.int64, np.int64]:

    """
    Retrace from the structural-delete start point up to the root.

    Unlike insertion, one rotation does not end the walk: a rotation can
    shrink the subtree and unbalance an ancestor, so every ancestor is
    visited. Nodes that stay balanced only get their stored height fixed.

    Args:
        nodes (np.ndarray): Node array of the pool.
        curr (np.int64): First node to examine (NIL for none).
        root (np.int64): Current root of the tree.

    Returns:
        Tuple[np.int64, np.int64]: (new root, number of operations).
    """

    count = 0

    while curr != NIL:
        bf = _balance_factor(nodes, curr)

        if bf > 1: # L
            child = _get_left(nodes, curr)

            if _balance_factor(nodes, child) >= 0: # LL
                root = rotate_right(nodes, child, root)
                _fix_height(nodes, curr)
                _fix_height(nodes, child)
                count += 3
                curr = _get_parent(nodes, child)

            else: # LR
                inner = _get_right(nodes, child)
                root  = rotate_left(nodes, inner, root)
                root  = rotate_right(nodes, inner, root)
                _fix_height(nodes, curr)
                _fix_height(nodes, child)
                _fix_height(nodes, inner)
                count += 5
                curr = _get_parent(nodes, inner)

        elif bf < -1: # R
            child = _get_right(nodes, curr)

            if _balance_factor(nodes, child) <= 0: # RR
                root = rotate_left(nodes, child, root)
                _fix_height(nodes, curr)
                _fix_height(nodes, child)
                count += 3
                curr = _get_parent(nodes, child)

            else: # RL
                inner = _get_left(nodes, child)
                root  = rotate_right(nodes, inner, root)
                root  = rotate_left(nodes, inner, root)
                _fix_height(nodes, curr)
                _fix_height(nodes, child)
                _fix_height(nodes, inner)
                count += 5
                curr = _get_parent(nodes, inner)

        else:
            if _fix_height(nodes, curr):
                count += 1
            curr = _get_parent(nodes, curr)

    return root, count



# ---------- JIT-Compiled Insert / Delete ----------
@njit
def attach(
    nodes:  np.ndarray,
    root:   np.int64,
    parent: np.int64,
    index:  np.int64

) -> Tuple[np.int64, np.int64]:

    """
    Hang the detached leaf `index` under `parent` (as found by
    `tree_position`) and rebalance.

    Returns:
        Tuple[np.int64, np.int64]: (new root, number of operations).
    """

    if parent == NIL:
        return index, 0

    nodes[index, PARENT] = parent
    if nodes[index, KEY] < nodes[parent, KEY]:
        nodes[parent, LEFT] = index
    else:
        nodes[parent, RIGHT] = index

    return rebalance_insert(nodes, index, root)

@njit
def remove(
    nodes: np.ndarray,
    root:  np.int64,
    node:  np.int64

) -> Tuple[np.int64, np.int64]:

    """
    Unlink `node` and rebalance. The caller releases the slot.

    Returns:
        Tuple[np.int64, np.int64]: (new root, number of operations).
    """

    root, start = structural_delete(nodes, node, root)
    return rebalance_delete(nodes, start, root)
