from __future__ import annotations

import pytest

from agentsync.core.errors import PatchError
from agentsync.protocol.events import PatchOperation
from agentsync.runtime.patch import apply_patch, deep_merge, get_value, parse_pointer


def test_parse_pointer_unescapes_tokens() -> None:
    assert parse_pointer("") == []
    assert parse_pointer("/a~1b/c~0d/0") == ["a/b", "c~d", "0"]
    with pytest.raises(PatchError):
        parse_pointer("no-slash")


def test_add_replace_and_remove() -> None:
    document = {"items": ["a", "c"], "count": 2}

    result = apply_patch(
        document,
        [
            {"op": "add", "path": "/items/1", "value": "b"},
            {"op": "add", "path": "/items/-", "value": "d"},
            {"op": "replace", "path": "/count", "value": 4},
            {"op": "remove", "path": "/items/0"},
        ],
    )

    assert result == {"items": ["b", "c", "d"], "count": 4}
    assert document == {"items": ["a", "c"], "count": 2}


def test_move_copy_and_test_operations() -> None:
    document = {"draft": {"title": "x"}, "meta": {}}

    result = apply_patch(
        document,
        [
            PatchOperation(op="test", path="/draft/title", value="x"),
            PatchOperation(op="copy", path="/meta/original", **{"from": "/draft/title"}),
            PatchOperation(op="move", path="/published", **{"from": "/draft"}),
        ],
    )

    assert result == {"meta": {"original": "x"}, "published": {"title": "x"}}


def test_root_operations_replace_the_document() -> None:
    assert apply_patch({"a": 1}, [{"op": "replace", "path": "", "value": [1, 2]}]) == [1, 2]
    assert apply_patch(None, [{"op": "add", "path": "", "value": {"b": 2}}]) == {"b": 2}


@pytest.mark.parametrize(
    "operation",
    [
        {"op": "remove", "path": "/missing"},
        {"op": "replace", "path": "/missing", "value": 1},
        {"op": "add", "path": "/list/5", "value": 1},
        {"op": "add", "path": "/list/01", "value": 1},
        {"op": "add", "path": "/scalar/x", "value": 1},
        {"op": "test", "path": "/scalar", "value": 2},
        {"op": "move", "path": "/list/0/x", "from": "/list"},
        {"op": "copy", "path": "/x"},
        {"op": "explode", "path": "/x"},
    ],
)
def test_invalid_operations_raise_patch_error(operation) -> None:
    with pytest.raises(PatchError):
        apply_patch({"list": [{}], "scalar": 1}, [operation])


def test_failed_patch_leaves_input_untouched() -> None:
    document = {"a": {"b": 1}}

    with pytest.raises(PatchError, match="operation 1 failed"):
        apply_patch(
            document,
            [
                {"op": "replace", "path": "/a/b", "value": 2},
                {"op": "remove", "path": "/a/zzz"},
            ],
        )

    assert document == {"a": {"b": 1}}


def test_replaying_deltas_reproduces_the_snapshot() -> None:
    deltas = [
        [{"op": "add", "path": "/todos", "value": []}],
        [{"op": "add", "path": "/todos/-", "value": {"text": "milk", "done": False}}],
        [{"op": "add", "path": "/todos/-", "value": {"text": "eggs", "done": False}}],
        [{"op": "replace", "path": "/todos/0/done", "value": True}],
        [{"op": "remove", "path": "/todos/1"}],
    ]
    snapshot = {}
    for delta in deltas:
        snapshot = apply_patch(snapshot, delta)

    replayed = apply_patch({}, [operation for delta in deltas for operation in delta])

    assert replayed == snapshot == {"todos": [{"text": "milk", "done": True}]}


def test_get_value_reads_nested_paths() -> None:
    assert get_value({"a": [{"b": "c"}]}, "/a/0/b") == "c"


def test_deep_merge_replaces_lists_and_merges_mappings() -> None:
    base = {"ui": {"theme": "dark", "panels": ["a", "b"]}, "count": 1}

    merged = deep_merge(base, {"ui": {"panels": ["c"]}, "extra": True})

    assert merged == {"ui": {"theme": "dark", "panels": ["c"]}, "count": 1, "extra": True}
    assert base["ui"]["panels"] == ["a", "b"]
