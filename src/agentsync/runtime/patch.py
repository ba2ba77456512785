"""Pure helpers for mutating JSON-like state trees.

``apply_patch`` implements JSON-Patch semantics (``add``, ``remove``,
``replace``, ``move``, ``copy`` and ``test``) over JSON-Pointer paths. A patch
is applied to a private copy of the document, so a failing operation leaves the
caller's value untouched.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from copy import deepcopy
from typing import Any

from agentsync.core.errors import PatchError
from agentsync.protocol.events import PatchOperation

_MISSING = object()


def parse_pointer(pointer: str) -> list[str]:
    """Split a JSON pointer into unescaped reference tokens."""

    if pointer == "":
        return []
    if not pointer.startswith("/"):
        msg = f"path '{pointer}' must be empty or start with '/'"
        raise PatchError(msg)
    return [token.replace("~1", "/").replace("~0", "~") for token in pointer[1:].split("/")]


def _array_index(token: str, length: int, *, allow_end: bool, pointer: str) -> int:
    if token == "-" and allow_end:
        return length
    if not token.isdigit() or (len(token) > 1 and token.startswith("0")):
        msg = f"path '{pointer}' uses invalid array index '{token}'"
        raise PatchError(msg)
    index = int(token)
    upper = length if allow_end else length - 1
    if index > upper:
        msg = f"path '{pointer}' index {index} is out of range"
        raise PatchError(msg)
    return index


def _resolve(document: Any, tokens: list[str], pointer: str) -> Any:
    current = document
    for token in tokens:
        if isinstance(current, dict):
            if token not in current:
                msg = f"path '{pointer}' does not exist"
                raise PatchError(msg)
            current = current[token]
        elif isinstance(current, list):
            current = current[_array_index(token, len(current), allow_end=False, pointer=pointer)]
        else:
            msg = f"path '{pointer}' traverses a scalar value"
            raise PatchError(msg)
    return current


def _parent(document: Any, pointer: str) -> tuple[Any, str]:
    tokens = parse_pointer(pointer)
    if not tokens:
        msg = "operation cannot target the document root"
        raise PatchError(msg)
    parent = _resolve(document, tokens[:-1], pointer)
    if not isinstance(parent, (dict, list)):
        msg = f"parent of path '{pointer}' is not a container"
        raise PatchError(msg)
    return parent, tokens[-1]


def get_value(document: Any, pointer: str) -> Any:
    """Return the value addressed by ``pointer``."""

    return _resolve(document, parse_pointer(pointer), pointer)


def _add(document: Any, pointer: str, value: Any) -> Any:
    if pointer == "":
        return value
    parent, key = _parent(document, pointer)
    if isinstance(parent, dict):
        parent[key] = value
    else:
        parent.insert(_array_index(key, len(parent), allow_end=True, pointer=pointer), value)
    return document


def _remove(document: Any, pointer: str) -> tuple[Any, Any]:
    parent, key = _parent(document, pointer)
    if isinstance(parent, dict):
        if key not in parent:
            msg = f"path '{pointer}' does not exist"
            raise PatchError(msg)
        return document, parent.pop(key)
    return document, parent.pop(_array_index(key, len(parent), allow_end=False, pointer=pointer))


def _replace(document: Any, pointer: str, value: Any) -> Any:
    if pointer == "":
        return value
    parent, key = _parent(document, pointer)
    if isinstance(parent, dict):
        if key not in parent:
            msg = f"path '{pointer}' does not exist"
            raise PatchError(msg)
        parent[key] = value
    else:
        parent[_array_index(key, len(parent), allow_end=False, pointer=pointer)] = value
    return document


def _coerce_operation(operation: PatchOperation | Mapping[str, Any]) -> PatchOperation:
    if isinstance(operation, PatchOperation):
        return operation
    if not isinstance(operation, Mapping):
        msg = "patch operations must be mappings"
        raise PatchError(msg)
    try:
        return PatchOperation.model_validate(dict(operation))
    except ValueError as exc:
        msg = f"invalid patch operation: {dict(operation)!r}"
        raise PatchError(msg) from exc


def apply_operation(document: Any, operation: PatchOperation | Mapping[str, Any]) -> Any:
    """Apply one operation in place where possible and return the new document."""

    op = _coerce_operation(operation)
    if op.op == "add":
        return _add(document, op.path, deepcopy(op.value))
    if op.op == "remove":
        document, _ = _remove(document, op.path)
        return document
    if op.op == "replace":
        return _replace(document, op.path, deepcopy(op.value))
    if op.op == "test":
        actual = get_value(document, op.path)
        if actual != op.value:
            msg = f"test failed at '{op.path}': expected {op.value!r}, found {actual!r}"
            raise PatchError(msg)
        return document

    if op.from_ is None:
        msg = f"'{op.op}' operation requires a 'from' path"
        raise PatchError(msg)
    if op.op == "copy":
        return _add(document, op.path, deepcopy(get_value(document, op.from_)))

    # move
    if op.path != op.from_ and op.path.startswith(op.from_ + "/"):
        msg = f"cannot move '{op.from_}' into its own child '{op.path}'"
        raise PatchError(msg)
    if op.path == op.from_:
        get_value(document, op.from_)
        return document
    document, value = _remove(document, op.from_)
    return _add(document, op.path, value)


def apply_patch(
    document: Any, operations: Iterable[PatchOperation | Mapping[str, Any]]
) -> Any:
    """Return ``document`` with every operation applied in order.

    The input is never mutated; if any operation fails a :class:`PatchError`
    is raised and no partial result escapes.
    """

    working = deepcopy(document)
    for index, operation in enumerate(operations):
        try:
            working = apply_operation(working, operation)
        except PatchError as exc:
            msg = f"operation {index} failed: {exc}"
            raise PatchError(msg) from exc
    return working


def deep_merge(base: Any, partial: Any) -> Any:
    """Merge ``partial`` into ``base`` key by key.

    Mappings merge recursively; every other value (scalars and lists alike)
    replaces what was there. Neither argument is mutated.
    """

    if not isinstance(base, Mapping) or not isinstance(partial, Mapping):
        return deepcopy(partial)

    merged = {key: deepcopy(value) for key, value in base.items()}
    for key, value in partial.items():
        if key in merged and isinstance(merged[key], Mapping) and isinstance(value, Mapping):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = deepcopy(value)
    return merged


__all__ = [
    "apply_operation",
    "apply_patch",
    "deep_merge",
    "get_value",
    "parse_pointer",
]
