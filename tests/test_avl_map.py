import math

import numpy as np
import pytest

from AVLMap import (
    AVLMap,
    AVLMapError,
    DuplicateKeyError,
    KeyNotFoundError,
    NIL,
    NodePool,
    build_map,
    fill_map,
    remove_map,
    warmup,
)

from helpers import assert_avl, build


SCENARIO = [5, 3, 8, 1, 4, 7, 9]


def test_empty_tree():
    tree = AVLMap()
    assert tree.empty()
    assert tree.size() == 0
    assert len(tree) == 0
    assert tree.root == NIL
    assert tree.height == -1
    assert tree.min() is None and tree.max() is None
    assert tree.min_key() is None and tree.max_key() is None
    assert tree.keys() == [] and tree.values() == []
    assert list(tree.items()) == []
    assert tree.search(1) is None
    assert tree.is_valid()


def test_scenario():
    tree = build(SCENARIO)

    assert tree.keys() == [1, 3, 4, 5, 7, 8, 9]
    assert tree.height <= math.ceil(math.log2(8))
    assert tree.search(4) == "v4"
    assert_avl(tree)

    tree.delete(3)
    assert tree.search(3) is None
    assert 3 not in tree
    assert tree.keys() == [1, 4, 5, 7, 8, 9]
    assert_avl(tree)


def test_round_trip():
    keys = [17, -4, 230, 0, 99, -1000, 55, 8]
    tree = AVLMap()
    for key in keys:
        tree.insert(key, f"value {key}")

    assert tree.keys() == sorted(keys)
    assert tree.values() == [f"value {key}" for key in sorted(keys)]
    assert list(tree) == sorted(keys)
    assert list(tree.items()) == [(key, f"value {key}") for key in sorted(keys)]
    for key in keys:
        assert tree.search(key) == f"value {key}"
        assert tree[key] == f"value {key}"


def test_min_max_return_values():
    tree = build(SCENARIO)
    assert tree.min() == "v1"
    assert tree.max() == "v9"
    assert tree.min_key() == 1
    assert tree.max_key() == 9


def test_extreme_keys():
    low, high = -(1 << 63), (1 << 63) - 1
    tree = AVLMap()
    tree.insert(high, "high")
    tree.insert(low, "low")
    tree.insert(-1, "minus one")
    assert tree.keys() == [low, -1, high]
    assert tree.search(-1) == "minus one"


def test_duplicate_insert_leaves_tree_unchanged():
    tree   = build(SCENARIO)
    before = (tree.keys(), tree.values(), tree.root, tree.height)

    with pytest.raises(DuplicateKeyError) as info:
        tree.insert(4, "other")

    assert info.value.key == 4
    assert isinstance(info.value, KeyError)
    assert isinstance(info.value, AVLMapError)
    assert (tree.keys(), tree.values(), tree.root, tree.height) == before
    assert tree.search(4) == "v4"
    assert len(tree.pool) == len(SCENARIO)


def test_delete_miss_is_idempotent():
    tree = build(SCENARIO)
    for _ in range(2):
        with pytest.raises(KeyNotFoundError):
            tree.delete(6)
        assert tree.keys() == [1, 3, 4, 5, 7, 8, 9]
        assert tree.size() == 7


def test_getitem_miss():
    with pytest.raises(KeyNotFoundError) as info:
        build([1])[2]
    assert "key 2 not found" in str(info.value)


@pytest.mark.parametrize("key", ["1", 1.0, None, True])
def test_bad_key_types(key):
    tree = AVLMap()
    with pytest.raises(TypeError):
        tree.insert(key, "x")
    assert tree.empty()


def test_key_out_of_range():
    with pytest.raises(ValueError):
        AVLMap().insert(1 << 63, "x")


def test_numpy_keys_accepted():
    tree = AVLMap()
    tree.insert(np.int64(5), "five")
    assert tree.keys() == [5]
    assert np.int32(5) in tree


def test_bad_value_type():
    tree = AVLMap()
    with pytest.raises(TypeError):
        tree.insert(1, 1)
    assert tree.empty()


def test_update():
    tree = build([1, 2, 3])
    root = tree.root
    tree.update(2, "two")
    assert tree.search(2) == "two"
    assert tree.root == root
    with pytest.raises(KeyNotFoundError):
        tree.update(4, "four")


def test_delete_everything():
    tree = build(range(50))
    for key in range(0, 50, 2):
        tree.delete(key)
        assert_avl(tree)
    for key in range(49, 0, -2):
        tree.delete(key)
        assert_avl(tree)
    assert tree.empty()
    assert len(tree.pool) == 0


def test_search_bulk():
    tree = build(SCENARIO)
    assert tree.search_bulk([1, 2, 9, 5]) == ["v1", None, "v9", "v5"]
    assert tree.search_bulk(np.array([], dtype=np.int64)) == []
    assert AVLMap().search_bulk([1, 2]) == [None, None]


@pytest.mark.parametrize("keys", [[1.9], ["2"], [True], np.array([1.5])])
def test_search_bulk_rejects_non_integer_keys(keys):
    tree = build([1, 2])
    with pytest.raises(TypeError):
        tree.search_bulk(keys)


def test_search_bulk_integer_arrays():
    tree = build([1, 2, 3])
    assert tree.search_bulk(np.array([[1, 2], [3, 4]], dtype=np.int32)) == ["v1", "v2", "v3", None]
    assert tree.search_bulk(np.array([3], dtype=np.uint64)) == ["v3"]
    assert tree.search_bulk([np.int64(2), 5]) == ["v2", None]
    with pytest.raises(ValueError):
        tree.search_bulk(np.array([1 << 63], dtype=np.uint64))


def test_capacity_grows():
    tree = AVLMap(capacity=2)
    assert tree.capacity == 2
    for key in range(100):
        tree.insert(key, str(key))
    assert tree.capacity >= 100
    assert tree.size() == 100
    assert_avl(tree)


def test_invalid_capacity():
    with pytest.raises(ValueError):
        AVLMap(capacity=-1)


def test_capacity_and_pool_are_exclusive():
    with pytest.raises(ValueError):
        AVLMap(4, pool=NodePool(1))


def test_default_trees_share_a_pool():
    assert AVLMap().pool is AVLMap().pool
    assert AVLMap(4).pool is not AVLMap().pool


def test_collected_tree_releases_its_slots():
    pool = NodePool(4)
    tree = AVLMap(pool=pool)
    for key in (2, 1, 3):
        tree.insert(key, str(key))
    assert len(pool) == 3

    del tree
    assert len(pool) == 0


def test_node_accessors():
    tree = build([2, 1, 3, 4])
    root = tree.root
    key, left, right, parent, height = tree.get_node(root)

    assert key == 2 and parent == NIL and height == 2
    assert tree.get_key(left) == 1
    assert tree.get_value(right) == "v3"
    assert tree.get_parent(left) == root
    assert tree.balance_factor(root) == -1
    assert tree.is_leaf(left)
    assert tree.is_unary(right)
    assert not tree.is_unary(root)
    assert tree.is_real_node(root)
    assert not tree.is_real_node(NIL)
    assert tree.height_is_fresh(root)
    assert tree.get_node(NIL) == (-1, NIL, NIL, NIL, -1)
    assert tree.get_value(NIL) is None


def test_str():
    tree = build([1, 2])
    assert str(tree) == f"AVLMap(size=2, root={tree.root}, height=1)"


def test_is_valid_detects_a_stale_height():
    tree = build(SCENARIO)
    tree.pool.nodes[tree.root, 4] += 1
    assert not tree.is_valid()
    assert not tree.height_is_fresh(tree.root)


def test_build_fill_remove_helpers():
    tree = build_map([3, 1, 2], ["c", "a", "b"])
    assert tree.keys() == [1, 2, 3]
    assert tree.values() == ["a", "b", "c"]

    fill_map(tree, [10, 0], ["j", "z"])
    assert tree.keys() == [0, 1, 2, 3, 10]

    remove_map(tree, [1, 77, 10])
    assert tree.keys() == [0, 2, 3]
    assert_avl(tree)

    with pytest.raises(ValueError):
        fill_map(tree, [4, 5], ["d"])

    assert build_map([], []).empty()


def test_fill_map_duplicate_in_input_inserts_nothing():
    tree = build([1, 2])
    with pytest.raises(DuplicateKeyError) as info:
        fill_map(tree, [10, 11, 10, 12], ["a", "b", "c", "d"])
    assert info.value.key == 10
    assert tree.keys() == [1, 2]
    assert len(tree.pool) == 2


def test_fill_map_existing_key_inserts_nothing():
    tree = build([1, 2])
    with pytest.raises(DuplicateKeyError):
        fill_map(tree, [10, 2, 11], ["a", "b", "c"])
    assert tree.keys() == [1, 2]


def test_fill_map_bad_item_inserts_nothing():
    tree = build([1])
    with pytest.raises(TypeError):
        fill_map(tree, [5, "6"], ["a", "b"])
    with pytest.raises(TypeError):
        fill_map(tree, [5, 6], ["a", 6])
    assert tree.keys() == [1]


def test_remove_map_bad_key_removes_nothing():
    tree = build([1, 2, 3])
    with pytest.raises(TypeError):
        remove_map(tree, [1, 2.0])
    assert tree.keys() == [1, 2, 3]


def test_warmup():
    assert warmup()
