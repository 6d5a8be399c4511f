"""The small subset of JSON path that placeholders and captured values use.

Supported: ``$`` root, dotted property names, ``[n]`` array indexers and
``['quoted.name']`` properties (optionally after a dot), e.g. ``$.value[0]['@odata.id']``.
"""

import json
import re

from api_doc_check.errors import JsonPathError

_TOKEN = re.compile(r"""\.([^.\[\]]+)|\[(\d+)\]|\.?\['([^']*)'\]|\.?\["([^"]*)"\]""")


def decompose_path(path: str) -> list[str | int]:
    """Split a path into property names (str) and array indexes (int)."""
    if not path or not path.startswith("$"):
        raise JsonPathError(f'Path "{path}" doesn\'t appear to conform to JSONpath syntax.')
    parts: list[str | int] = []
    position = 1
    while position < len(path):
        match = _TOKEN.match(path, position)
        if match is None:
            raise JsonPathError(f'Path "{path}" has an unsupported component at position {position}.')
        name, index, single, double = match.groups()
        if index is not None:
            parts.append(int(index))
        else:
            parts.append(name if name is not None else (single if single is not None else double))
        position = match.end()
    return parts


def _step(node, part: str | int):
    if isinstance(part, int):
        if not isinstance(node, list):
            raise JsonPathError(f"Cannot index into a non-array value with [{part}].")
        if part >= len(node):
            raise JsonPathError("Specified array index was unavailable.")
        return node[part]
    if not isinstance(node, dict):
        raise JsonPathError(f"Couldn't locate property {part}")
    return node.get(part)


def _load(json_text: str):
    try:
        return json.loads(json_text)
    except (TypeError, ValueError) as e:
        raise JsonPathError(f"Body is not valid JSON: {e}") from e


def value_from_json_path(json_text: str, path: str):
    """Return the value at `path`; a missing leaf property is None."""
    node = _load(json_text)
    parts = decompose_path(path)
    for i, part in enumerate(parts):
        node = _step(node, part)
        if node is None and i < len(parts) - 1:
            raise JsonPathError(f"Property {part} was null or missing. Cannot continue to evaluate path.")
    return node


def set_value_for_json_path(json_text: str, path: str, value) -> str:
    """Write `value` at `path` and return the re-serialised document.

    Missing intermediate objects are created along the way.
    """
    document = _load(json_text)
    parts = decompose_path(path)
    if not parts:
        raise JsonPathError("Cannot replace the root of a document.")

    node = document
    for part, following in zip(parts, parts[1:]):
        child = _step(node, part)
        if child is None:
            if isinstance(part, int):
                raise JsonPathError(f"Array element [{part}] was null. Cannot continue to evaluate path.")
            child = [] if isinstance(following, int) else {}
            node[part] = child
        node = child

    leaf = parts[-1]
    if isinstance(leaf, int):
        if not isinstance(node, list) or leaf >= len(node):
            raise JsonPathError("Specified array index was unavailable.")
    elif not isinstance(node, dict):
        raise JsonPathError("Unable to set the value of the property.")
    node[leaf] = value
    return json.dumps(document, indent=2)
