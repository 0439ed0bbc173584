"""Reorders deck entries so new vocabulary is spread evenly over study days.

The completion stage writes every variant of a word in one contiguous run,
which makes Anki schedule them together. :func:`reorder` introduces a fixed
number of new keys per virtual day and, on each day, hands out a bounded
number of entries for every key introduced so far.
"""

from __future__ import annotations

from typing import Callable, Dict, Hashable, List, Optional, Sequence, TypeVar

T = TypeVar("T")


def reorder(
    entries: Sequence[T],
    new_items_per_group: int = 5,
    entries_per_group_item: int = 1,
    key: Optional[Callable[[T], Hashable]] = None,
) -> List[T]:
    """Return ``entries`` interleaved by key.

    Keys are introduced in first-occurrence order, ``new_items_per_group`` per
    day. Each day visits the introduced keys in that same order and emits up
    to ``entries_per_group_item`` not-yet-emitted entries per key. Entries
    sharing a key keep their relative order. The result is deterministic.

    >>> reorder(list("AABABC"), 2, 1)
    ['A', 'B', 'A', 'B', 'C', 'A']
    """

    key_of = key or (lambda item: item)

    groups: Dict[Hashable, List[T]] = {}
    key_order: List[Hashable] = []
    for entry in entries:
        entry_key = key_of(entry)
        if entry_key not in groups:
            groups[entry_key] = []
            key_order.append(entry_key)
        groups[entry_key].append(entry)

    if not key_order:
        return []
    if new_items_per_group < 1:
        raise ValueError("new_items_per_group must be at least 1")

    per_key = max(0, int(entries_per_group_item))
    used: Dict[Hashable, int] = {}
    output: List[T] = []
    day = 0

    while len(output) < len(entries):
        introduced = min(len(key_order), (day + 1) * new_items_per_group)
        for entry_key in key_order[len(used):introduced]:
            used[entry_key] = 0

        day_entries: List[T] = []
        for entry_key in key_order[:introduced]:
            group = groups[entry_key]
            start = used[entry_key]
            if start >= len(group):
                continue
            taken = group[start:start + per_key]
            day_entries.extend(taken)
            used[entry_key] = start + len(taken)

        output.extend(day_entries)
        # Stop once nothing new can be introduced and the day made no progress.
        if introduced == len(key_order) and not day_entries:
            break
        day += 1

    return output


def key_sequence(entries: Sequence[T], key: Optional[Callable[[T], Hashable]] = None) -> List[int]:
    """For each entry, the position at which its key first appears in ``entries``.

    Plotting this against ``index // cards_per_day`` shows when each word is
    introduced and how often it comes back.
    """

    key_of = key or (lambda item: item)
    first_seen: Dict[Hashable, int] = {}
    sequence: List[int] = []
    for index, entry in enumerate(entries):
        sequence.append(first_seen.setdefault(key_of(entry), index))
    return sequence


def schedule_by_day(sequence: Sequence[int], cards_per_day: int) -> List[List[int]]:
    """Split a key sequence into per-day slices of ``cards_per_day`` cards."""

    if cards_per_day < 1:
        raise ValueError("cards_per_day must be at least 1")
    return [list(sequence[i:i + cards_per_day]) for i in range(0, len(sequence), cards_per_day)]


__all__ = ["reorder", "key_sequence", "schedule_by_day"]
