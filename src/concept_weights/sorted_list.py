"""
Sorted container keyed by integer ids, plus linear merge-style set algebra.

Usage:
    from concept_weights.sorted_list import SortedList, union

    query = SortedList(key=lambda w: w.concept)
    query.insert_or_fetch(7, lambda: ConceptWeight(7, 0.0)).weight += 0.5
    for q, d in union(query, document):
        ...

The three algebra helpers (``union``, ``difference``, ``merge``) walk both
operands once, so they require that both lists order their elements with the
same key function.
"""

from __future__ import annotations

from bisect import bisect_left
from collections.abc import Callable, Iterable, Iterator
from typing import Generic, TypeVar

T = TypeVar("T")
U = TypeVar("U")

KeyFunc = Callable[[T], int]


class SortedList(Generic[T]):
    """
    Elements sorted ascending by ``key(element)``; keys are unique.

    Args:
        key: Extracts the integer sort key of an element.
        items: Optional initial elements (duplicates keep the first one seen).
    """

    def __init__(self, key: KeyFunc, items: Iterable[T] | None = None):
        self.key = key
        self._items: list[T] = []
        if items is not None:
            for item in items:
                self.insert_or_fetch(key(item), lambda item=item: item)

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __iter__(self) -> Iterator[T]:
        return self.iterate()

    def __reversed__(self) -> Iterator[T]:
        return self.iterate(reverse=True)

    def __contains__(self, k: int) -> bool:
        return self._find(k) >= 0

    def __repr__(self) -> str:
        return f"SortedList({self._items!r})"

    def _position(self, k: int) -> int:
        return bisect_left(self._items, k, key=self.key)

    def _find(self, k: int) -> int:
        pos = self._position(k)
        if pos < len(self._items) and self.key(self._items[pos]) == k:
            return pos
        return -1

    def insert_or_fetch(self, k: int, factory: Callable[[], T]) -> T:
        """Return the element under ``k``, creating it with ``factory`` if absent."""
        pos = self._position(k)
        if pos < len(self._items) and self.key(self._items[pos]) == k:
            return self._items[pos]
        element = factory()
        if self.key(element) != k:
            raise ValueError(f"factory produced key {self.key(element)}, expected {k}")
        self._items.insert(pos, element)
        return element

    def lookup(self, k: int) -> T | None:
        pos = self._find(k)
        return self._items[pos] if pos >= 0 else None

    def delete(self, k: int) -> T:
        pos = self._find(k)
        if pos < 0:
            raise KeyError(k)
        return self._items.pop(pos)

    def iterate(self, reverse: bool = False) -> Iterator[T]:
        """Lazily yield elements in ascending (or descending) key order."""
        if reverse:
            for pos in range(len(self._items) - 1, -1, -1):
                yield self._items[pos]
        else:
            for pos in range(len(self._items)):
                yield self._items[pos]

    def keys(self) -> list[int]:
        return [self.key(item) for item in self._items]


def _check_compatible(a: SortedList, b: SortedList) -> None:
    if a.key is not b.key:
        raise ValueError("set algebra requires both lists to share one key function")


def union(a: SortedList[T], b: SortedList[U]) -> Iterator[tuple[T, U]]:
    """Yield ``(x, y)`` for every key present in both lists, ascending."""
    _check_compatible(a, b)
    ia, ib = a._items, b._items
    i = j = 0
    key = a.key
    while i < len(ia) and j < len(ib):
        ka, kb = key(ia[i]), key(ib[j])
        if ka < kb:
            i += 1
        elif ka > kb:
            j += 1
        else:
            yield ia[i], ib[j]
            i += 1
            j += 1


def difference(a: SortedList[T], b: SortedList) -> Iterator[T]:
    """Yield the elements of ``a`` whose key does not occur in ``b``."""
    _check_compatible(a, b)
    ia, ib = a._items, b._items
    i = j = 0
    key = a.key
    while i < len(ia):
        if j >= len(ib):
            yield ia[i]
            i += 1
            continue
        ka, kb = key(ia[i]), key(ib[j])
        if ka < kb:
            yield ia[i]
            i += 1
        elif ka > kb:
            j += 1
        else:
            i += 1
            j += 1


def merge(a: SortedList[T], b: SortedList[T]) -> Iterator[T]:
    """Yield one element per key of ``a`` or ``b``; ``a`` wins on shared keys."""
    _check_compatible(a, b)
    ia, ib = a._items, b._items
    i = j = 0
    key = a.key
    while i < len(ia) or j < len(ib):
        if j >= len(ib):
            yield ia[i]
            i += 1
        elif i >= len(ia):
            yield ib[j]
            j += 1
        else:
            ka, kb = key(ia[i]), key(ib[j])
            if ka < kb:
                yield ia[i]
                i += 1
            elif ka > kb:
                yield ib[j]
                j += 1
            else:
                yield ia[i]
                i += 1
                j += 1
