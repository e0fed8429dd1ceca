"""Model reply parsing into narrative prose + selectable actions."""

from __future__ import annotations

import re
from typing import NamedTuple

from textquest.prompts import DETAIL_TEMPLATES, TONE_TEMPLATES

ACTIONS_MARKER = "ACTIONS:"

FALLBACK_ACTIONS: tuple[str, ...] = (
    "Look around",
    "Continue",
    "Go back",
    "Examine surroundings",
)

# Fragments of the system prompt the model sometimes echoes back.
# Matched case-insensitively as substrings of a line.
LEAKAGE_PHRASES: tuple[str, ...] = (
    ACTIONS_MARKER,
    "You are the game master",
    "text-based adventure game in the style of",
    "CRITICAL FORMAT REQUIREMENT",
    "Always end your response with",
    "Example response format",
    "action1 | action2",
    "Keep descriptions concise",
    "Make actions specific and interesting",
    "Track inventory, location, and game state",
    "Present 2-4 possible actions",
    "Create an immersive, mysterious world",
    "Respond to player actions with vivid descriptions",
    "Be creative and surprising",
    "Make the world feel alive",
) + tuple(
    # leading clause of each detail and tone instruction, e.g. "Be playful and whimsical"
    re.split(r"[;(.]", text, maxsplit=1)[0].strip()
    for text in (*DETAIL_TEMPLATES.values(), *TONE_TEMPLATES.values())
)


class ParsedResponse(NamedTuple):
    narrative: str
    actions: list[str]


def _is_leakage(line: str) -> bool:
    lowered = line.lower()
    return any(phrase.lower() in lowered for phrase in LEAKAGE_PHRASES)


def _split_actions(line: str) -> list[str]:
    body = line.strip()[len(ACTIONS_MARKER):]
    return [part.strip() for part in body.split("|") if part.strip()]


def parse_response(text: str) -> ParsedResponse:
    """Split a complete model reply into narrative and actions.

    The first line starting with ``ACTIONS:`` supplies the actions,
    pipe-separated. Any later marker line is treated as narrative and is
    dropped by the leakage filter along with echoed prompt fragments.
    Blank lines are removed. Without a usable actions line the fallback
    set is returned so there is always something to choose.
    """
    narrative_lines: list[str] = []
    actions: list[str] | None = None

    for line in text.splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if actions is None and stripped.startswith(ACTIONS_MARKER):
            actions = _split_actions(stripped)
            continue
        if _is_leakage(stripped):
            continue
        narrative_lines.append(line.rstrip())

    if not actions:
        actions = list(FALLBACK_ACTIONS)

    return ParsedResponse("\n".join(narrative_lines), actions)


def strip_actions_line(partial: str) -> str:
    """Streaming preview: the reply so far without its actions line.

    The marker may still be arriving, so a trailing line that is a prefix
    of ``ACTIONS:`` is hidden as well.
    """
    lines = partial.split("\n")
    kept: list[str] = []
    for i, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith(ACTIONS_MARKER):
            break
        is_last = i == len(lines) - 1
        if is_last and stripped and ACTIONS_MARKER.startswith(stripped):
            break
        kept.append(line)
    return "\n".join(kept).rstrip()
