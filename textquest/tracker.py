"""Heuristic entity tracking over narrative text.

Picks likely location, character and item names out of the story prose so
they can be shown to the player and counted for achievements. This is a
coarse phrase matcher, not language understanding: false positives and
misses are expected.
"""

from __future__ import annotations

import logging
import string
from typing import Literal

from textquest.models import TrackedEntities

logger = logging.getLogger(__name__)

EntityKind = Literal["locations", "npcs", "items"]

RECENT_LIMIT = 10

# A capitalized word right after one of these is taken as a character name.
NPC_INDICATORS: frozenset[str] = frozenset({
    "named", "called", "meet", "meets", "met", "greets", "greeted",
    "stranger", "merchant", "wizard", "guard", "innkeeper", "traveler",
    "hermit", "knight", "priest", "old", "mysterious",
})

ITEM_PHRASES: tuple[str, ...] = (
    "you pick up", "you take", "you find", "you obtain", "you receive",
    "you grab", "you acquire", "you pocket", "added to your inventory:",
)

LOCATION_PHRASES: tuple[str, ...] = (
    "you enter", "you arrive at", "you arrive in", "you reach",
    "you step into", "you find yourself in", "you emerge into",
    "welcome to",
)

ITEM_MAX_TOKENS = 3
LOCATION_MAX_TOKENS = 4

_PUNCT = string.punctuation + "“”‘’—–…"
_CLAUSE_END = (".", ",", ";", ":", "!", "?", "…")


def _clean(token: str) -> str:
    return token.strip(_PUNCT)


# Token index range [start, end) covered by one phrase occurrence.
Span = tuple[int, int]


def _phrase_spans(tokens: list[str], phrases: tuple[str, ...]) -> list[Span]:
    """Find whole-word occurrences of each phrase in a token list.

    Words are compared case-insensitively with punctuation stripped, so
    "You entered" never matches "you enter". A phrase may not run across
    the end of a clause ("you find. Yourself" is not "you find yourself").
    Occurrences whose last word closes a clause are skipped: nothing
    follows them to capture.
    """
    words = [_clean(t).lower() for t in tokens]
    spans: list[Span] = []
    for phrase in phrases:
        target = [_clean(w) for w in phrase.split()]
        size = len(target)
        for start in range(len(words) - size + 1):
            end = start + size
            if words[start:end] != target:
                continue
            if any(t.endswith(_CLAUSE_END) for t in tokens[start:end - 1]):
                continue
            if tokens[end - 1].endswith(_CLAUSE_END) and not phrase.endswith(_CLAUSE_END):
                continue
            spans.append((start, end))
    return spans


def _outermost(spans: list[Span], others: list[Span]) -> list[Span]:
    """Drop spans that sit inside a longer match, in text order.

    "you find" inside "you find yourself in" belongs to the longer phrase.
    """
    kept = [
        s for s in spans
        if not any(o != s and o[0] <= s[0] and s[1] <= o[1] for o in others)
    ]
    return sorted(kept)


def _capture(tokens: list[str], spans: list[Span], max_tokens: int) -> list[str]:
    """Return up to ``max_tokens`` words following each span.

    Capture stops early after a word that closes a clause, so "you take the
    lamp. It glows" yields "the lamp".
    """
    found: list[str] = []
    for _, end in spans:
        words: list[str] = []
        for token in tokens[end:end + max_tokens]:
            cleaned = _clean(token)
            if cleaned:
                words.append(cleaned)
            if token.endswith(_CLAUSE_END):
                break
        name = " ".join(words)
        if name:
            found.append(name)
    return found


def _npc_names(text: str) -> list[str]:
    tokens = text.split()
    names: list[str] = []
    for i, token in enumerate(tokens[:-1]):
        if _clean(token).lower() not in NPC_INDICATORS:
            continue
        candidate = _clean(tokens[i + 1])
        if candidate and candidate[0].isupper():
            names.append(candidate)
    return names


def extract_entities(narrative: str) -> TrackedEntities:
    """Pure scan of one narrative. Names are deduplicated within the result."""
    tokens = narrative.split()
    location_spans = _phrase_spans(tokens, LOCATION_PHRASES)
    item_spans = _phrase_spans(tokens, ITEM_PHRASES)
    every = location_spans + item_spans
    locations = _capture(tokens, _outermost(location_spans, every), LOCATION_MAX_TOKENS)
    items = _capture(tokens, _outermost(item_spans, every), ITEM_MAX_TOKENS)
    return TrackedEntities(
        locations=list(dict.fromkeys(locations)),
        npcs=list(dict.fromkeys(_npc_names(narrative))),
        items=list(dict.fromkeys(items)),
    )


class EntityTracker:
    """Accumulates tracked names across turns."""

    def __init__(self, tracked: TrackedEntities | None = None) -> None:
        self.tracked = tracked.model_copy(deep=True) if tracked else TrackedEntities()

    def update(self, narrative: str) -> TrackedEntities:
        """Merge names from ``narrative``; return only the ones that were new."""
        scanned = extract_entities(narrative)
        added = TrackedEntities()
        for kind in ("locations", "npcs", "items"):
            current: list[str] = getattr(self.tracked, kind)
            for name in getattr(scanned, kind):
                if name not in current:
                    current.append(name)
                    getattr(added, kind).append(name)
        if not added.is_empty():
            logger.debug(
                "tracked new entities locations=%s npcs=%s items=%s",
                added.locations, added.npcs, added.items,
            )
        return added

    def recent(self, kind: EntityKind, limit: int = RECENT_LIMIT) -> list[str]:
        return list(getattr(self.tracked, kind)[-limit:])

    def counts(self) -> dict[str, int]:
        return {
            "locations": len(self.tracked.locations),
            "npcs": len(self.tracked.npcs),
            "items": len(self.tracked.items),
        }

    def reset(self) -> None:
        self.tracked = TrackedEntities()
