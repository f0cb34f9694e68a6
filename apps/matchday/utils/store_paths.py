"""
Helpers for the slash-separated paths of the replicated store.
"""

from typing import Any, List, Tuple

from matchday.utils.constants import COLLECTION_ROOTS


def split_path(path: str) -> List[str]:
    """
    Split a store path into its segments.

    Raises:
        ValueError: If the path is empty or contains empty segments
    """
    if not path or not path.strip("/"):
        raise ValueError("Store path must not be empty")
    parts = path.strip("/").split("/")
    if any(not part for part in parts):
        raise ValueError(f"Invalid store path: '{path}'")
    return parts


def join_path(*parts: str) -> str:
    return "/".join(str(part).strip("/") for part in parts)


def is_collection_root(parts: List[str]) -> bool:
    """True when the path names a whole collection (``users``, ``history``, ...)."""
    return len(parts) == 1 and parts[0] in COLLECTION_ROOTS


def document_key(parts: List[str]) -> Tuple[str, List[str]]:
    """
    Resolve a path into the key of the document holding it and the field
    path inside that document.

    ``users/abc/name`` -> (``users/abc``, [``name``])
    ``current-match/score/team1`` -> (``current-match``, [``score``, ``team1``])
    """
    depth = 2 if parts[0] in COLLECTION_ROOTS else 1
    if len(parts) < depth:
        raise ValueError(f"Path '{'/'.join(parts)}' does not address a document")
    return "/".join(parts[:depth]), parts[depth:]


def paths_overlap(a: str, b: str) -> bool:
    """True when one path is an ancestor of (or equal to) the other."""
    a_parts = split_path(a)
    b_parts = split_path(b)
    size = min(len(a_parts), len(b_parts))
    return a_parts[:size] == b_parts[:size]


def get_in(value: Any, fields: List[str]) -> Any:
    """Read a nested field; missing fields read as None."""
    for field in fields:
        if not isinstance(value, dict) or field not in value:
            return None
        value = value[field]
    return value


def set_in(value: Any, fields: List[str], new_value: Any) -> Any:
    """
    Return ``value`` with the nested field set, creating intermediate dicts.
    An empty field path replaces the whole value.
    """
    if not fields:
        return new_value
    root = value if isinstance(value, dict) else {}
    node = root
    for field in fields[:-1]:
        child = node.get(field)
        if not isinstance(child, dict):
            child = {}
            node[field] = child
        node = child
    node[fields[-1]] = new_value
    return root


def delete_in(value: Any, fields: List[str]) -> Any:
    """
    Return ``value`` with the nested field removed. An empty field path
    removes the whole value (returns None).
    """
    if not fields:
        return None
    node = value
    for field in fields[:-1]:
        if not isinstance(node, dict) or field not in node:
            return value
        node = node[field]
    if isinstance(node, dict):
        node.pop(fields[-1], None)
    return value
