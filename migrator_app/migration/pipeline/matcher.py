"""
Exact-name entity matching between a source entity and a target snapshot.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, Iterable, Sequence, TypeVar, Union

T = TypeVar("T")


def normalize_name(value: object | None) -> str | None:
    """Lower-case and trim a display name; blank values normalize to None."""

    if value is None:
        return None
    token = str(value).strip().lower()
    return token or None


@dataclass(frozen=True)
class NoMatch:
    key: str | None


@dataclass(frozen=True)
class OneMatch(Generic[T]):
    key: str
    target: T


@dataclass(frozen=True)
class AmbiguousMatch(Generic[T]):
    key: str
    candidates: tuple[T, ...]


MatchResult = Union[NoMatch, OneMatch, AmbiguousMatch]


class EntityMatcher(Generic[T]):
    """
    Lookup of target entities grouped by normalized key.

    Candidates keep the order they were supplied in, so callers that load the
    target snapshot ordered by id get deterministic candidate tuples.
    """

    def __init__(self, targets: Iterable[T], *, key: Callable[[T], object], normalize=normalize_name) -> None:
        self._normalize = normalize
        self._lookup: dict[str, list[T]] = {}
        for target in targets:
            normalized = normalize(key(target))
            if normalized is None:
                continue
            self._lookup.setdefault(normalized, []).append(target)

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._lookup.values())

    def candidates(self, value: object | None) -> Sequence[T]:
        normalized = self._normalize(value)
        if normalized is None:
            return ()
        return tuple(self._lookup.get(normalized, ()))

    def match(self, value: object | None) -> MatchResult:
        normalized = self._normalize(value)
        if normalized is None:
            return NoMatch(key=None)
        bucket = self._lookup.get(normalized)
        if not bucket:
            return NoMatch(key=normalized)
        if len(bucket) == 1:
            return OneMatch(key=normalized, target=bucket[0])
        return AmbiguousMatch(key=normalized, candidates=tuple(bucket))
