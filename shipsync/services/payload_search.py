"""
Keyed lookups over loosely structured provider payloads.

ECCANG does not keep field names stable between operations or API versions
(order_code vs orderCode vs ordercode2, data vs items, ...), so values are
located by candidate key lists instead of a fixed schema.
"""
from collections import deque
from typing import Any, Callable, Iterable, Optional

# Ordered container keys probed by find_array
ARRAY_CONTAINER_KEYS = (
    "items",
    "item",
    "tracks",
    "track",
    "data",
    "list",
    "rows",
    "detail",
    "details",
)


def find_value(
    payload: Any,
    keys: Iterable[str],
    accept: Callable[[Any], Optional[Any]],
) -> Optional[Any]:
    """
    Breadth-first search through nested dicts/lists.
    At each dict every candidate key is tried (in order) before descending.
    `accept` converts a candidate value or returns None to reject it.
    """
    keys = tuple(keys)
    queue = deque([payload])
    while queue:
        current = queue.popleft()
        if isinstance(current, dict):
            for key in keys:
                if key in current:
                    accepted = accept(current[key])
                    if accepted is not None:
                        return accepted
            children = current.values()
        elif isinstance(current, (list, tuple)):
            children = current
        else:
            continue
        for child in children:
            if isinstance(child, (dict, list, tuple)):
                queue.append(child)
    return None


def _accept_string(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value
    return None


def to_number(value: Any) -> Optional[float]:
    """Numbers and non-empty numeric strings; booleans are not numbers."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str) and value.strip():
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def find_string(payload: Any, keys: Iterable[str]) -> Optional[str]:
    """First non-blank string under any candidate key, nearest level first."""
    return find_value(payload, keys, _accept_string)


def find_number(payload: Any, keys: Iterable[str]) -> Optional[float]:
    """
    First numeric value under any candidate key. Lists are summed: each element
    contributes its own find_number result (0 when absent).
    """
    keys = tuple(keys)
    if payload is None:
        return None
    if isinstance(payload, (list, tuple)):
        return sum(find_number(item, keys) or 0.0 for item in payload)
    if not isinstance(payload, dict):
        return None

    queue = deque([payload])
    while queue:
        current = queue.popleft()
        for key in keys:
            number = to_number(current.get(key))
            if number is not None:
                return number
        for child in current.values():
            if isinstance(child, dict):
                queue.append(child)
            elif isinstance(child, (list, tuple)):
                total = find_number(child, keys)
                if total:
                    return total
    return None


def _list_in(node: dict) -> Optional[list]:
    for key in ARRAY_CONTAINER_KEYS:
        value = node.get(key)
        if isinstance(value, list):
            return value
    for value in node.values():
        if isinstance(value, list):
            return value
    return None


def find_array(payload: Any) -> list:
    """
    Locate the record list in a payload: the payload itself, a known container
    key, or the first list-valued property. Nested dicts are searched
    breadth-first with the same rules, container keys first.
    """
    if isinstance(payload, list):
        return payload
    if not isinstance(payload, dict):
        return []
    queue = deque([payload])
    while queue:
        current = queue.popleft()
        found = _list_in(current)
        if found is not None:
            return found
        children = [current.get(key) for key in ARRAY_CONTAINER_KEYS]
        children += [value for key, value in current.items() if key not in ARRAY_CONTAINER_KEYS]
        for child in children:
            if isinstance(child, dict):
                queue.append(child)
    return []
