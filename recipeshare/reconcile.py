"""Diff/patch for the displayed recipe list.

The list screen keeps the recipes it is showing and, when a fresh batch
arrives, turns the old list into the new one through a stream of
:class:`Insert`, :class:`Remove`, :class:`Move` and :class:`Change`
operations instead of redrawing everything.

Alignment uses Myers' greedy O(N·D) longest-common-subsequence search driven
by an *identity* predicate. Aligned pairs whose content is not *unchanged*
are payload candidates. Entries that did not align, or aligned only as a
payload candidate, are then matched across the two lists with *unchanged* so
that a recipe which merely changed position becomes a single move. A paired
entry whose stored value differs from its replacement is followed by a
:class:`Change` carrying the new value, so the patched list equals the new one.
"""

from __future__ import annotations

import logging
import threading
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import (
    Any,
    Callable,
    Deque,
    Dict,
    List,
    MutableSequence,
    Optional,
    Sequence,
    Tuple,
    Union,
)

logger = logging.getLogger(__name__)

Predicate = Callable[[Any, Any], bool]


def same_kind(old_item: Any, new_item: Any) -> bool:
    """Identity: entries of the same type occupy the same slot.

    With a single entity type this is always true, so every slot pair can
    align and change detection falls entirely on :func:`same_id`.
    """

    return type(old_item) is type(new_item)


def same_id(old_item: Any, new_item: Any) -> bool:
    return old_item.id == new_item.id


@dataclass(frozen=True)
class Insert:
    position: int
    item: Any


@dataclass(frozen=True)
class Remove:
    position: int


@dataclass(frozen=True)
class Move:
    from_position: int
    to_position: int


@dataclass(frozen=True)
class Change:
    position: int
    item: Any


Operation = Union[Insert, Remove, Move, Change]


def _align(old: Sequence[Any], new: Sequence[Any], identity: Predicate) -> List[Tuple[int, int]]:
    """Return the ``(old_index, new_index)`` pairs of a shortest edit script."""

    n, m = len(old), len(new)
    v: Dict[int, int] = {1: 0}
    trace: List[Dict[int, int]] = []

    for d in range(n + m + 1):
        trace.append(dict(v))
        for k in range(-d, d + 1, 2):
            if k == -d or (k != d and v[k - 1] < v[k + 1]):
                x = v[k + 1]
            else:
                x = v[k - 1] + 1
            y = x - k
            while x < n and y < m and identity(old[x], new[y]):
                x += 1
                y += 1
            v[k] = x
            if x >= n and y >= m:
                return _backtrack(trace, n, m)

    return []  # pragma: no cover - the loop always reaches (n, m)


def _backtrack(trace: List[Dict[int, int]], n: int, m: int) -> List[Tuple[int, int]]:
    pairs: List[Tuple[int, int]] = []
    x, y = n, m
    for d in range(len(trace) - 1, -1, -1):
        v = trace[d]
        k = x - y
        if k == -d or (k != d and v[k - 1] < v[k + 1]):
            prev_k = k + 1
        else:
            prev_k = k - 1
        prev_x = v[prev_k]
        prev_y = prev_x - prev_k
        while x > prev_x and y > prev_y:
            x -= 1
            y -= 1
            pairs.append((x, y))
        x, y = prev_x, prev_y
    pairs.reverse()
    return pairs


def reconcile(
    old: Sequence[Any],
    new: Sequence[Any],
    *,
    identity: Predicate = same_kind,
    unchanged: Predicate = same_id,
) -> List[Operation]:
    """Compute the operations that turn ``old`` into ``new``.

    The result is meant to be applied in order to one mutable list: removals
    come first, from the back, then a single left-to-right pass places every
    position of ``new`` by inserting, moving or changing entries.
    """

    partner_of_new: Dict[int, int] = {}
    changed_new: set = set()
    candidates: Dict[int, int] = {}

    for i, j in _align(old, new, identity):
        if unchanged(old[i], new[j]):
            partner_of_new[j] = i
        else:
            candidates[j] = i

    paired_old = set(partner_of_new.values())
    free_old = [i for i in range(len(old)) if i not in paired_old]
    _pair_moves(old, new, free_old, partner_of_new, unchanged)

    paired_old = set(partner_of_new.values())
    for j, i in candidates.items():
        if j not in partner_of_new and i not in paired_old:
            partner_of_new[j] = i
            changed_new.add(j)
            paired_old.add(i)

    operations: List[Operation] = []
    for i in range(len(old) - 1, -1, -1):
        if i not in paired_old:
            operations.append(Remove(i))

    # Entries not placed yet keep their old relative order after the placed
    # prefix, so a partner's position is j plus the unplaced entries before it.
    unplaced = _Counter(len(old))
    for i in paired_old:
        unplaced.add(i, 1)

    for j, item in enumerate(new):
        partner = partner_of_new.get(j)
        if partner is None:
            operations.append(Insert(j, item))
            continue
        ahead = unplaced.count_below(partner)
        unplaced.add(partner, -1)
        if ahead:
            operations.append(Move(j + ahead, j))
        if j in changed_new or old[partner] != item:
            operations.append(Change(j, item))

    return operations


def _pair_moves(
    old: Sequence[Any],
    new: Sequence[Any],
    free_old: List[int],
    partner_of_new: Dict[int, int],
    unchanged: Predicate,
) -> None:
    """Pair each unpartnered new entry with the first free old one it matches."""

    if unchanged is same_id:
        by_id: Dict[Any, Deque[int]] = defaultdict(deque)
        for i in free_old:
            by_id[old[i].id].append(i)
        for j in range(len(new)):
            if j in partner_of_new:
                continue
            waiting = by_id.get(new[j].id)
            if waiting:
                partner_of_new[j] = waiting.popleft()
        return

    # Arbitrary predicates cannot be indexed.
    for j in range(len(new)):
        if j in partner_of_new:
            continue
        for position, i in enumerate(free_old):
            if unchanged(old[i], new[j]):
                partner_of_new[j] = i
                del free_old[position]
                break


class _Counter:
    """Fenwick tree of counts over old positions."""

    def __init__(self, size: int) -> None:
        self._tree = [0] * (size + 1)

    def add(self, index: int, delta: int) -> None:
        index += 1
        while index < len(self._tree):
            self._tree[index] += delta
            index += index & -index

    def count_below(self, index: int) -> int:
        total = 0
        while index > 0:
            total += self._tree[index]
            index -= index & -index
        return total


def apply(display_list: MutableSequence[Any], operations: Sequence[Operation]) -> None:
    """Mutate ``display_list`` in place by replaying ``operations``."""

    for operation in operations:
        if isinstance(operation, Remove):
            del display_list[operation.position]
        elif isinstance(operation, Insert):
            display_list.insert(operation.position, operation.item)
        elif isinstance(operation, Move):
            display_list.insert(operation.to_position, display_list.pop(operation.from_position))
        elif isinstance(operation, Change):
            display_list[operation.position] = operation.item


class RecipeListAdapter:
    """Holds the recipes currently shown by the list screen."""

    def __init__(
        self,
        listener: Optional[Callable[[Operation], None]] = None,
        *,
        identity: Predicate = same_kind,
        unchanged: Predicate = same_id,
    ) -> None:
        self._items: List[Any] = []
        self._listener = listener
        self._identity = identity
        self._unchanged = unchanged
        self._lock = threading.Lock()

    @property
    def items(self) -> List[Any]:
        with self._lock:
            return list(self._items)

    def update(self, recipes: Sequence[Any]) -> List[Operation]:
        with self._lock:
            operations = reconcile(
                self._items,
                recipes,
                identity=self._identity,
                unchanged=self._unchanged,
            )
            apply(self._items, operations)
            if operations:
                logger.debug("Dispatched %d list operations", len(operations))
            if self._listener is not None:
                for operation in operations:
                    self._listener(operation)
            return operations


__all__ = [
    "Change",
    "Insert",
    "Move",
    "Operation",
    "RecipeListAdapter",
    "Remove",
    "apply",
    "reconcile",
    "same_id",
    "same_kind",
]
