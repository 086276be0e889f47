"""Fuzzy ranking of notes against a search query.

The scorer contract is small on purpose: given a query and a document,
return an integer score (lower is a better match) or None for no match.
Anything with that signature can be handed to the query service.
"""

from typing import Callable, Optional

Ranker = Callable[[str, str], Optional[int]]


def fuzzy_rank(query: str, document: str) -> Optional[int]:
    """Score a document against a query.

    The query matches when its characters appear in the document in order,
    ignoring case (``"dntst"`` matches ``"Dentist at 3"``). The score is the
    edit distance between the two folded strings. For an in-order match
    that distance is exactly the number of document characters left
    unmatched, so shorter, tighter documents rank first.

    Returns:
        The score, or None when the query does not match
    """
    needle = query.casefold()
    haystack = document.casefold()
    if not needle:
        return None

    pos = 0
    for ch in needle:
        pos = haystack.find(ch, pos)
        if pos < 0:
            return None
        pos += 1
    return len(haystack) - len(needle)
