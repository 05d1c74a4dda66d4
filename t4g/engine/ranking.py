"""
t4g.engine.ranking — Stable leaderboard ranking
================================================

Positions are derived, never authoritative: every score change re-ranks
the whole board.  Ties keep their previous relative order so equal scores
don't reshuffle on every write; entries that were never ranked go after
ranked ones with the same score, in insertion order.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RankCandidate:
    user_id: str
    score: int
    position: int | None  # previous position, None if never ranked
    seq: int              # insertion order


def rerank(candidates: Iterable[RankCandidate]) -> dict[str, int]:
    """Return ``user_id → 1-based position`` for *candidates*."""
    prior = sorted(
        candidates,
        key=lambda c: (c.position is None, c.position or 0, c.seq),
    )
    # sorted() is stable: equal scores keep the prior order built above
    ordered = sorted(prior, key=lambda c: -c.score)
    return {c.user_id: index for index, c in enumerate(ordered, start=1)}


def context_window(position: int, range_: int) -> tuple[int, int]:
    """``(offset, limit)`` covering positions ``max(1, p-r) .. p+r``."""
    first = max(1, position - range_)
    last = position + range_
    return first - 1, last - first + 1
