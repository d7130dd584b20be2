from __future__ import annotations

from typing import List, Mapping, Sequence, TypeVar

T = TypeVar("T")


def interleave_by_source(per_source: Mapping[str, Sequence[T]]) -> List[T]:
    """
    Round-robin merge: each pass takes the next unconsumed item of every
    source, in mapping order, until all lists are exhausted.
    """
    lists = list(per_source.values())
    if not lists:
        return []
    if len(lists) == 1:
        return list(lists[0] or [])

    result: List[T] = []
    longest = max(len(items or []) for items in lists)
    for index in range(longest):
        for items in lists:
            if items and index < len(items):
                result.append(items[index])
    return result
