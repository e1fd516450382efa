"""
Scoring of a user-typed unit identifier against a vehicle's candidate strings.

Ladder, per candidate, on folded and sanitized forms:
    100 exact          forms are equal
     70 prefix_suffix  one is a prefix or suffix of the other
     60 contains       one contains the other
      0 none

The best tier across candidates wins; at equal score the first candidate
in iteration order wins and scanning stops at 100. Given identical inputs
the result is always identical.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Tuple

from .normalize import fold, sanitize
from .vehicles import candidate_strings


class MatchReason(str, Enum):
    EXACT = "exact"
    PREFIX_SUFFIX = "prefix_suffix"
    CONTAINS = "contains"
    NONE = "none"


@dataclass(frozen=True)
class MatchResult:
    score: int
    reason: MatchReason

    def to_dict(self) -> Dict[str, Any]:
        return {"score": self.score, "reason": self.reason.value}


NO_MATCH = MatchResult(0, MatchReason.NONE)


def _compare(needle: str, hay: str) -> MatchResult:
    if not needle or not hay:
        return NO_MATCH
    if needle == hay:
        return MatchResult(100, MatchReason.EXACT)
    if hay.startswith(needle) or hay.endswith(needle) or needle.startswith(hay) or needle.endswith(hay):
        return MatchResult(70, MatchReason.PREFIX_SUFFIX)
    if needle in hay or hay in needle:
        return MatchResult(60, MatchReason.CONTAINS)
    return NO_MATCH


def _best(*results: MatchResult) -> MatchResult:
    best = NO_MATCH
    for r in results:
        if r.score > best.score:
            best = r
    return best


def identifier_forms(identifier: Any) -> Tuple[str, str]:
    return fold(identifier), sanitize(identifier)


def score(identifier: Any, candidates: Iterable[str]) -> MatchResult:
    """Best MatchResult of `identifier` across `candidates`."""
    folded, sanitized = identifier_forms(identifier)
    if not folded and not sanitized:
        return NO_MATCH

    best = NO_MATCH
    for cand in candidates:
        result = _best(_compare(folded, fold(cand)), _compare(sanitized, sanitize(cand)))
        if result.score > best.score:
            best = result
            if best.score == 100:
                break
    return best


def score_vehicle(identifier: Any, vehicle: Dict[str, Any]) -> MatchResult:
    return score(identifier, candidate_strings(vehicle))
