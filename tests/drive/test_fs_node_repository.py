"""节点仓储测试：闭包表在创建、重命名、移动、删除下的不变量。"""

import pytest
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.packages.drive.core.exceptions import InvalidPathError, NodeConflictError, NodeNotFoundError
from app.packages.drive.crud.fs_node import fs_node_crud
from app.packages.drive.models.fs_closure import FsClosure
from app.packages.drive.models.fs_node import FsNode


def _edges(db: Session) -> set[tuple[str, str, int]]:
    return {(anc, desc, edge.depth) for edge, anc, desc, _ in fs_node_crud.list_edges_named(db)}


def _expected_edges(paths: list[str]) -> set[tuple[str, str, int]]:
    """按路径层级推导应有的闭包边：自身 depth 0，每个严格祖先 depth=段数差。"""
    expected = set()
    for path in paths:
        parts = path.split("/")
        for i in range(1, len(parts) + 1):
            ancestor = "/".join(parts[:i])
            if ancestor in paths:
                expected.add((ancestor, path, len(parts) - i))
    return expected


def _build_scenario(db: Session) -> dict[str, FsNode]:
    a = fs_node_crud.create_node(db, path="a", is_dir=True)
    b = fs_node_crud.create_node(db, path="a/b", is_dir=True)
    c = fs_node_crud.create_node(db, path="a/b/c.txt", size=10)
    db.commit()
    return {"a": a, "b": b, "c": c}


def test_create_scenario_closure_rows(db: Session):
    nodes = _build_scenario(db)
    a, b, c = nodes["a"].id, nodes["b"].id, nodes["c"].id

    rows = {(e.ancestor, e.descendant, e.depth) for e in fs_node_crud.list_edges(db)}
    assert rows == {(a, a, 0), (b, b, 0), (c, c, 0), (a, b, 1), (b, c, 1), (a, c, 2)}
    assert nodes["c"].size_bytes == 10
    assert nodes["c"].name == "c.txt"
    assert nodes["a"].is_dir and not nodes["c"].is_dir


def test_every_node_has_single_self_edge(db: Session):
    _build_scenario(db)
    fs_node_crud.create_node(db, path="a/empty.txt", size=0)
    db.commit()

    for node in fs_node_crud.get_multi(db):
        self_edges = db.query(FsClosure).filter(FsClosure.ancestor == node.id, FsClosure.descendant == node.id).all()
        assert len(self_edges) == 1
        assert self_edges[0].depth == 0


def test_empty_file_is_not_a_directory(db: Session):
    node = fs_node_crud.create_node(db, path="zero.bin", size=0)
    db.commit()
    assert node.is_dir is False
    assert node.size_bytes == 0


def test_create_existing_path_conflicts_without_duplicates(db: Session):
    _build_scenario(db)
    before = _edges(db)

    with pytest.raises(NodeConflictError):
        fs_node_crud.create_node(db, path="a/b", is_dir=True)
    db.rollback()

    assert _edges(db) == before
    assert db.query(FsNode).count() == 3


def test_create_under_file_is_rejected(db: Session):
    _build_scenario(db)
    with pytest.raises(InvalidPathError):
        fs_node_crud.create_node(db, path="a/b/c.txt/x", size=1)
    db.rollback()


def test_create_with_missing_parent_becomes_root(db: Session):
    node = fs_node_crud.create_node(db, path="ghost/file.txt", size=3)
    db.commit()
    rows = {(e.ancestor, e.descendant, e.depth) for e in fs_node_crud.list_edges(db)}
    assert rows == {(node.id, node.id, 0)}


def test_ensure_directory_builds_missing_ancestors(db: Session):
    leaf = fs_node_crud.ensure_directory(db, "x/y/z")
    db.commit()

    assert leaf.path == "x/y/z"
    assert _edges(db) == _expected_edges(["x", "x/y", "x/y/z"])

    again = fs_node_crud.ensure_directory(db, "x/y/z")
    db.commit()
    assert again.id == leaf.id
    assert db.query(FsNode).count() == 3


def test_ensure_directory_rejects_file_segment(db: Session):
    _build_scenario(db)
    with pytest.raises(InvalidPathError):
        fs_node_crud.ensure_directory(db, "a/b/c.txt/deeper")
    db.rollback()


def test_rename_rewrites_paths_only(db: Session):
    nodes = _build_scenario(db)
    before = {(e.ancestor, e.descendant, e.depth) for e in fs_node_crud.list_edges(db)}

    old, new = fs_node_crud.rename_node(db, "a/b/c.txt", "d.txt")
    db.commit()

    assert (old, new) == ("a/b/c.txt", "a/b/d.txt")
    db.refresh(nodes["c"])
    assert nodes["c"].path == "a/b/d.txt"
    assert nodes["c"].name == "d.txt"
    assert {(e.ancestor, e.descendant, e.depth) for e in fs_node_crud.list_edges(db)} == before


def test_rename_directory_rewrites_descendants(db: Session):
    _build_scenario(db)
    fs_node_crud.rename_node(db, "a", "root")
    db.commit()

    paths = sorted(n.path for n in fs_node_crud.get_multi(db))
    assert paths == ["root", "root/b", "root/b/c.txt"]
    assert _edges(db) == _expected_edges(paths)


def test_rename_errors(db: Session):
    _build_scenario(db)
    fs_node_crud.create_node(db, path="a/b/other.txt", size=1)
    db.commit()

    with pytest.raises(NodeNotFoundError):
        fs_node_crud.rename_node(db, "a/missing", "x")
    with pytest.raises(NodeConflictError):
        fs_node_crud.rename_node(db, "a/b/c.txt", "other.txt")
    with pytest.raises(InvalidPathError):
        fs_node_crud.rename_node(db, "a/b/c.txt", "sub/x.txt")
    with pytest.raises(InvalidPathError):
        fs_node_crud.rename_node(db, "a/b/c.txt", "..")
    db.rollback()


def test_move_to_root_detaches_old_ancestors(db: Session):
    nodes = _build_scenario(db)
    a, b, c = nodes["a"].id, nodes["b"].id, nodes["c"].id

    old, new = fs_node_crud.move_node(db, "a/b", "")
    db.commit()

    assert (old, new) == ("a/b", "b")
    rows = {(e.ancestor, e.descendant, e.depth) for e in fs_node_crud.list_edges(db)}
    assert rows == {(a, a, 0), (b, b, 0), (c, c, 0), (b, c, 1)}
    db.refresh(nodes["c"])
    assert nodes["c"].path == "b/c.txt"


def test_move_under_new_parent_rebuilds_edges(db: Session):
    _build_scenario(db)
    fs_node_crud.ensure_directory(db, "x/y")
    db.commit()
    subtree_size = len(fs_node_crud.subtree_ids(db, fs_node_crud.get_by_path(db, "a/b").id))

    old, new = fs_node_crud.move_node(db, "a/b", "x/y")
    db.commit()

    assert new == "x/y/b"
    moved = fs_node_crud.get_by_path(db, "x/y/b")
    assert len(fs_node_crud.subtree_ids(db, moved.id)) == subtree_size
    paths = sorted(n.path for n in fs_node_crud.get_multi(db))
    assert paths == ["a", "x", "x/y", "x/y/b", "x/y/b/c.txt"]
    assert _edges(db) == _expected_edges(paths)


def test_move_errors(db: Session):
    _build_scenario(db)
    fs_node_crud.create_node(db, path="b", is_dir=True)
    db.commit()

    with pytest.raises(NodeNotFoundError):
        fs_node_crud.move_node(db, "nope", "")
    with pytest.raises(NodeNotFoundError):
        fs_node_crud.move_node(db, "a/b", "missing")
    with pytest.raises(InvalidPathError):
        fs_node_crud.move_node(db, "a/b", "a/b/c.txt")
    with pytest.raises(InvalidPathError):
        fs_node_crud.move_node(db, "a", "a/b")
    with pytest.raises(InvalidPathError):
        fs_node_crud.move_node(db, "a", "a")
    with pytest.raises(NodeConflictError):
        fs_node_crud.move_node(db, "a/b", "")
    with pytest.raises(NodeConflictError):
        fs_node_crud.move_node(db, "a/b", "a")
    db.rollback()


def test_delete_subtree_removes_nodes_and_edges(db: Session):
    _build_scenario(db)
    fs_node_crud.create_node(db, path="keep.txt", size=2)
    db.commit()

    stats = fs_node_crud.delete_subtree(db, "a")
    db.commit()

    assert stats.nodes == 3
    assert stats.edges == 6
    assert stats.paths == ["a", "a/b", "a/b/c.txt"]
    assert [n.path for n in fs_node_crud.get_multi(db)] == ["keep.txt"]
    assert _edges(db) == {("keep.txt", "keep.txt", 0)}
    assert db.query(FsClosure).count() == 1


def test_delete_after_move_counts_remaining_edges(db: Session):
    _build_scenario(db)
    fs_node_crud.move_node(db, "a/b", "")
    db.commit()

    stats = fs_node_crud.delete_subtree(db, "b")
    db.commit()
    assert (stats.nodes, stats.edges) == (2, 3)


def test_delete_leaf(db: Session):
    _build_scenario(db)

    with pytest.raises(NodeConflictError):
        fs_node_crud.delete_leaf(db, "a/b")
    db.rollback()

    stats = fs_node_crud.delete_leaf(db, "a/b/c.txt")
    db.commit()
    assert (stats.nodes, stats.edges) == (1, 3)
    assert sorted(n.path for n in fs_node_crud.get_multi(db)) == ["a", "a/b"]

    with pytest.raises(NodeNotFoundError):
        fs_node_crud.delete_leaf(db, "a/b/c.txt")


def test_ids_are_not_reused(db: Session):
    first = fs_node_crud.create_node(db, path="one.txt", size=1)
    db.commit()
    first_id = first.id
    fs_node_crud.delete_leaf(db, "one.txt")
    db.commit()

    second = fs_node_crud.create_node(db, path="one.txt", size=1)
    db.commit()
    assert second.id > first_id


def test_subtree_orders_by_depth(db: Session):
    nodes = _build_scenario(db)
    result = fs_node_crud.subtree(db, nodes["a"].id)
    assert [(n.path, depth) for n, depth in result] == [("a", 0), ("a/b", 1), ("a/b/c.txt", 2)]


def test_deleting_node_row_cascades_to_closure(db: Session):
    nodes = _build_scenario(db)
    c_id = nodes["c"].id
    assert db.execute(text("PRAGMA foreign_keys")).scalar() == 1

    db.execute(text("DELETE FROM fs_nodes WHERE path = :path"), {"path": "a/b/c.txt"})
    db.commit()
    db.expire_all()

    dangling = (
        db.query(FsClosure)
        .filter((FsClosure.ancestor == c_id) | (FsClosure.descendant == c_id))
        .count()
    )
    assert dangling == 0
    assert _edges(db) == _expected_edges(["a", "a/b"])
