"""Reduce policies for combining per-batch analysis results.

Each policy takes the successful batch results in input order and folds one
field of them. Entries that are not shaped as expected are skipped.
"""

from __future__ import annotations

from collections.abc import Hashable, Iterable, Mapping, Sequence
import math
from numbers import Real
from typing import Any


def _entries(results: Iterable[Any], field: str) -> Iterable[Any]:
    for result in results:
        if not isinstance(result, Mapping):
            continue
        values = result.get(field)
        if isinstance(values, list):
            yield from values


def _keyed_totals(
    results: Iterable[Any], field: str, key: str, value: str
) -> dict[Any, float]:
    totals: dict[Any, float] = {}
    for entry in _entries(results, field):
        if not isinstance(entry, Mapping):
            continue
        name = entry.get(key)
        # Model-authored names may be lists or objects
        if name is None or not isinstance(name, Hashable):
            continue
        amount = entry.get(value, 0)
        if not isinstance(amount, Real) or isinstance(amount, bool):
            continue
        totals[name] = totals.get(name, 0) + amount
    return totals


def _round_half_up(number: float) -> int:
    return math.floor(number + 0.5)


def sum_by_key(
    results: Sequence[Any], field: str, key: str = "name", value: str = "count"
) -> list[dict[str, Any]]:
    """Sum ``value`` per distinct ``key`` across all batches.

    >>> sum_by_key([{"c": [{"name": "A", "count": 2}]},
    ...             {"c": [{"name": "A", "count": 3}]}], "c")
    [{'name': 'A', 'count': 5}]
    """
    return [
        {key: name, value: total}
        for name, total in _keyed_totals(results, field, key, value).items()
    ]


def average_by_key(
    results: Sequence[Any], field: str, key: str = "name", value: str = "percentage"
) -> list[dict[str, Any]]:
    """Average ``value`` per ``key`` over the number of successful batches.

    Keys missing from some batches count as zero there. Averages are rounded
    half up to an int.
    """
    if not results:
        return []
    count = len(results)
    return [
        {key: name, value: _round_half_up(total / count)}
        for name, total in _keyed_totals(results, field, key, value).items()
    ]


def concat(results: Sequence[Any], field: str) -> list[Any]:
    return list(_entries(results, field))


def concat_unique(results: Sequence[Any], field: str) -> list[Any]:
    """Concatenate ``field`` across batches, dropping repeats but keeping order."""
    seen: set[Any] = set()
    unhashable: list[Any] = []
    merged: list[Any] = []
    for entry in _entries(results, field):
        try:
            if entry in seen:
                continue
            seen.add(entry)
        except TypeError:
            if entry in unhashable:
                continue
            unhashable.append(entry)
        merged.append(entry)
    return merged


def flatten(results: Iterable[Iterable[Any]]) -> list[Any]:
    """Concatenate per-batch lists into one list."""
    return [item for batch in results for item in batch]


def first_per_batch(results: Iterable[Sequence[Any]]) -> list[Any]:
    """Unwrap ``[[obj], [], [obj]]`` into ``[obj, obj]``."""
    return [batch[0] for batch in results if batch]
