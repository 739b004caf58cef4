from AVLMap import NIL


def assert_avl(tree):
    """
    Walk the tree through its public node accessors and check every
    invariant independently of the compiled validator.
    """

    def walk(index, parent, low, high):
        if index == NIL:
            return -1, 0

        key, left, right, up, height = tree.get_node(index)
        assert up == parent, f"node {key}: parent link {up}, expected {parent}"
        assert low is None or key > low, f"node {key} breaks the order (lower bound {low})"
        assert high is None or key < high, f"node {key} breaks the order (upper bound {high})"

        h_left, n_left   = walk(left, index, low, key)
        h_right, n_right = walk(right, index, key, high)

        assert abs(h_left - h_right) <= 1, f"node {key} is unbalanced ({h_left}, {h_right})"
        assert height == max(h_left, h_right) + 1, f"node {key} has a stale height {height}"
        return height, n_left + n_right + 1

    height, count = walk(tree.root, NIL, None, None)
    assert count == tree.size()
    assert height == tree.height
    assert tree.is_valid()


def build(keys, capacity=8, pool=None):
    from AVLMap import AVLMap

    tree = AVLMap(pool=pool) if pool is not None else AVLMap(capacity)
    for key in keys:
        tree.insert(key, f"v{key}")
    return tree
