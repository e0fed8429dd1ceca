"""Achievement catalog and threshold evaluation."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime
from typing import NamedTuple

from pydantic import TypeAdapter, ValidationError

from textquest.models import Achievement, utcnow


class Counters(NamedTuple):
    actions_taken: int
    locations: int
    npcs: int
    items: int


class _Rule(NamedTuple):
    id: str
    title: str
    description: str
    predicate: Callable[[Counters], bool]


RULES: tuple[_Rule, ...] = (
    _Rule("first_steps", "First Steps", "Take your first action.",
          lambda c: c.actions_taken >= 1),
    _Rule("explorer", "Explorer", "Visit 5 different locations.",
          lambda c: c.locations >= 5),
    _Rule("cartographer", "Cartographer", "Visit 20 different locations.",
          lambda c: c.locations >= 20),
    _Rule("socialite", "Socialite", "Meet 5 different characters.",
          lambda c: c.npcs >= 5),
    _Rule("diplomat", "Diplomat", "Meet 15 different characters.",
          lambda c: c.npcs >= 15),
    _Rule("collector", "Collector", "Find 5 different items.",
          lambda c: c.items >= 5),
    _Rule("hoarder", "Hoarder", "Find 15 different items.",
          lambda c: c.items >= 15),
    _Rule("adventurer", "Adventurer", "Take 50 actions.",
          lambda c: c.actions_taken >= 50),
    _Rule("legend", "Legend", "Take 200 actions.",
          lambda c: c.actions_taken >= 200),
)

_RULES_BY_ID = {rule.id: rule for rule in RULES}

_timestamp = TypeAdapter(datetime | None)


def default_catalog() -> list[Achievement]:
    """Fresh, all-locked catalog."""
    return [Achievement(id=r.id, title=r.title, description=r.description) for r in RULES]


def evaluate(counters: Counters, achievements: Iterable[Achievement]) -> list[str]:
    """Ids of locked achievements whose threshold is now met. No side effects."""
    newly: list[str] = []
    for ach in achievements:
        if ach.unlocked:
            continue
        rule = _RULES_BY_ID.get(ach.id)
        if rule is not None and rule.predicate(counters):
            newly.append(ach.id)
    return newly


def unlock(
    achievements: list[Achievement], ids: Iterable[str], now: datetime | None = None
) -> list[Achievement]:
    """Flip the given achievements to unlocked. Already unlocked ones are left alone.

    Returns the achievements that actually changed.
    """
    wanted = set(ids)
    stamp = now or utcnow()
    changed: list[Achievement] = []
    for ach in achievements:
        if ach.id in wanted and not ach.unlocked:
            ach.unlocked = True
            ach.unlocked_at = stamp
            changed.append(ach)
    return changed


def merge_catalog(stored: Iterable[dict]) -> list[Achievement]:
    """Overlay persisted unlock state onto the fixed catalog.

    Unknown ids are ignored; a stored ``unlocked: false`` never re-locks.
    """
    catalog = default_catalog()
    by_id = {a.id: a for a in catalog}
    for entry in stored:
        ach = by_id.get(entry.get("id", ""))
        if ach is None or not entry.get("unlocked"):
            continue
        ach.unlocked = True
        try:
            ach.unlocked_at = _timestamp.validate_python(entry.get("unlocked_at"))
        except ValidationError:
            ach.unlocked_at = None
    return catalog
