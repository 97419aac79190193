"""CID list normalisation."""

from __future__ import annotations

from typing import Iterable


def normalize_cids(values: Iterable[object] | None) -> dict[str, int]:
    """Trim, drop empties and count occurrences, keeping first-seen order."""
    counts: dict[str, int] = {}
    for value in values or ():
        if value is None:
            continue
        cid = value.strip() if isinstance(value, str) else str(value).strip()
        if not cid:
            continue
        counts[cid] = counts.get(cid, 0) + 1
    return counts


def unique_cids(values: Iterable[object] | None) -> list[str]:
    return list(normalize_cids(values))
