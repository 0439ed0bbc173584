from __future__ import annotations

from collections import Counter

import pytest

from lexideck.interleave import key_sequence, reorder, schedule_by_day
from lexideck.records import TranslationEntry


def entry(word: str, context: str) -> TranslationEntry:
    return TranslationEntry(word, context, f"{word}-en", f"{context}-en")


def test_reorder_introduces_keys_per_day() -> None:
    assert reorder(list("AABABC"), 2, 1) == ["A", "B", "A", "B", "C", "A"]


def test_reorder_hands_out_several_entries_per_key_per_day() -> None:
    assert reorder(list("AAABBBCC"), 1, 2) == ["A", "A", "A", "B", "B", "B", "C", "C"]
    assert reorder(list("AAABBC"), 3, 2) == ["A", "A", "B", "B", "C", "A"]


def test_reorder_is_a_permutation_preserving_order_within_keys() -> None:
    entries = [entry(word, f"{word}{n}") for n in range(3) for word in ("pes", "kočka", "dům", "strom")]

    result = reorder(entries, 2, 1, key=lambda item: item.source_text)

    assert Counter(result) == Counter(entries)
    for word in ("pes", "kočka", "dům", "strom"):
        assert [e for e in result if e.source_text == word] == [e for e in entries if e.source_text == word]
    assert result == reorder(entries, 2, 1, key=lambda item: item.source_text)


def test_reorder_is_stable_on_its_own_output() -> None:
    once = reorder(list("AAAABBBCCDEEF"), 2, 1)
    assert reorder(once, 2, 1) == once


def test_keys_never_appear_before_their_day() -> None:
    ordered = reorder(list("AABBCCDD"), 1, 1)
    # Days 0 and 1 emit three entries before C is introduced.
    assert ordered == ["A", "A", "B", "B", "C", "C", "D", "D"]
    assert ordered.index("C") >= 1 + 2


def test_reorder_with_more_new_items_than_keys() -> None:
    assert reorder(list("ABAB"), 10, 1) == ["A", "B", "A", "B"]


def test_reorder_empty_input() -> None:
    assert reorder([], 3, 1) == []


def test_reorder_with_zero_entries_per_key_terminates_empty() -> None:
    assert reorder(list("AABC"), 1, 0) == []


def test_reorder_rejects_non_positive_new_items() -> None:
    with pytest.raises(ValueError):
        reorder(list("AB"), 0, 1)


def test_key_sequence_marks_first_occurrence() -> None:
    ordered = reorder(list("AABABC"), 2, 1)
    assert key_sequence(ordered) == [0, 1, 0, 1, 4, 0]


def test_schedule_by_day() -> None:
    assert schedule_by_day([0, 1, 0, 1, 4, 0], 4) == [[0, 1, 0, 1], [4, 0]]
    with pytest.raises(ValueError):
        schedule_by_day([0], 0)
