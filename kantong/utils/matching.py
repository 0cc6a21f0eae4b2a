"""Token-overlap fuzzy matching for names typed in chat ("mawar merah" vs "Mawar Merah Import")."""

import re
from collections.abc import Callable, Iterable
from typing import TypeVar

T = TypeVar("T")

_TOKEN_RE = re.compile(r"[a-z0-9]+")


def tokenize(text: str) -> list[str]:
    return _TOKEN_RE.findall(text.lower())


def normalize(text: str) -> str:
    return " ".join(tokenize(text))


def best_match(
    query: str,
    candidates: Iterable[T],
    key: Callable[[T], str] = str,
) -> T | None:
    """
    Return the candidate whose name best matches the query.

    An exact normalized match wins outright. Otherwise the candidate sharing
    the most tokens with the query wins; ties go to the earliest candidate.
    Nothing shared means no match.
    """
    wanted = normalize(query)
    query_tokens = set(wanted.split())

    best: T | None = None
    best_score = 0
    for candidate in candidates:
        name = key(candidate)
        if normalize(name) == wanted:
            return candidate
        score = len(query_tokens & set(tokenize(name)))
        if score > best_score:
            best, best_score = candidate, score

    return best
