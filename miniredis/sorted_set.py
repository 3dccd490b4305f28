"""A plain sorted set: members with a float score each."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Iterator, Optional


class Direction(enum.Enum):
    """Sort direction for sorted set listings."""

    UNSORTED = 0
    ASC = 1
    DESC = 2


@dataclass(frozen=True)
class SSElem:
    """A member of a sorted set together with its score."""

    score: float
    member: str


def _sort_key(elem: SSElem) -> tuple[float, str]:
    return elem.score, elem.member


class SortedSet:
    """Members mapped to scores, listed in (score, member) order on demand."""

    def __init__(self) -> None:
        self._scores: dict[str, float] = {}

    def __len__(self) -> int:
        return len(self._scores)

    def __contains__(self, member: object) -> bool:
        return member in self._scores

    def __iter__(self) -> Iterator[str]:
        return iter(self._scores)

    def __delitem__(self, member: str) -> None:
        if member not in self._scores:
            raise KeyError(member)
        self._scores.pop(member)

    def card(self) -> int:
        """The number of members."""
        return len(self._scores)

    def set(self, score: float, member: str) -> None:
        """Add a member, or replace the score of an existing one."""
        self._scores[member] = score

    def get(self, member: str) -> Optional[float]:
        """The score of a member, or None if it is not in the set."""
        return self._scores.get(member)

    def elems(self) -> list[SSElem]:
        """All members with their scores, in no particular order."""
        return [SSElem(score, member) for member, score in self._scores.items()]

    def by_score(self, direction: Direction) -> list[SSElem]:
        """All members ordered by score, ties broken by member."""
        ordered = sorted(self.elems(), key=_sort_key)
        if direction is Direction.DESC:
            ordered.reverse()
        return ordered

    def rank_by_score(self, member: str, direction: Direction) -> Optional[int]:
        """The 0-based position of a member in score order, or None."""
        if member not in self._scores:
            return None
        for rank, elem in enumerate(self.by_score(direction)):
            if elem.member == member:
                return rank
        return None