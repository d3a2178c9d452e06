"""Card list edits and section lookup for session dashboards.

Every edit takes a Session and returns the session's next item list; the
caller persists it through the session store. Structural edits (add,
remove, move, reorder, clear) raise SessionLockedError on a locked session.
Filling in missing positions is not structural and is always allowed.
"""

from __future__ import annotations

from typing import Any, Literal

from fizzrix import grid
from fizzrix.errors import SessionLockedError
from fizzrix.models import SECTION_CARD_TYPES, CardRef, CardType, ImageRef, Module, Session
from fizzrix.storage.core import new_id


def _check_unlocked(session: Session) -> None:
    if session.locked:
        raise SessionLockedError(session.id)


def _index_of(items: list[CardRef], card_id: str) -> int:
    for i, item in enumerate(items):
        if item.id == card_id:
            return i
    raise KeyError(card_id)


def new_card(module_id: str, card_type: CardType, section_id: str | None = None) -> CardRef:
    if card_type in SECTION_CARD_TYPES:
        if not section_id:
            raise ValueError(f"A {card_type} card needs a section_id")
    else:
        section_id = None
    return CardRef(id=new_id(), module_id=module_id, type=card_type, section_id=section_id)


def add_card(session: Session, card: CardRef) -> list[CardRef]:
    """Append a card and pack it into the first free slot."""
    _check_unlocked(session)
    if any(item.id == card.id for item in session.items):
        raise ValueError(f"Duplicate card id: {card.id}")
    return grid.assign_positions([*session.items, card])


def remove_card(session: Session, card_id: str) -> list[CardRef]:
    _check_unlocked(session)
    index = _index_of(session.items, card_id)
    return session.items[:index] + session.items[index + 1:]


def move_card(session: Session, card_id: str, dx: float, dy: float) -> list[CardRef]:
    _check_unlocked(session)
    return grid.commit_drag(session.items, card_id, dx, dy)


def clear_cards(session: Session) -> list[CardRef]:
    _check_unlocked(session)
    return []


def shift_card(session: Session, card_id: str, direction: Literal["left", "right"]) -> list[CardRef]:
    """Swap a card with its neighbour in list order (arrow reorder mode)."""
    _check_unlocked(session)
    items = list(session.items)
    index = _index_of(items, card_id)
    target = index - 1 if direction == "left" else index + 1
    if target < 0 or target >= len(items):
        return items
    items[index], items[target] = items[target], items[index]
    return items


def layout(session: Session) -> list[CardRef]:
    return grid.assign_positions(session.items)


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


def selectable_sections(module: Module) -> list[dict[str, Any]]:
    """Every section of a module a card can point at, in display order."""
    d = module.data
    sections: list[dict[str, Any]] = [
        {"type": "map", "section_id": None, "label": "Map of Overall Area"},
        {"type": "intro", "section_id": None, "label": "Introduction"},
        {"type": "overview", "section_id": None, "label": "Overview"},
    ]
    for ep in d.episodes:
        sections.append({"type": "episode", "section_id": ep.id, "label": ep.title or "Episode"})
    for entry in d.appendices.monsters:
        sections.append({"type": "monster", "section_id": entry.id, "label": entry.name or "Monster"})
    for entry in d.appendices.magic_items:
        sections.append({"type": "magicItem", "section_id": entry.id, "label": entry.name or "Magic Item"})
    return sections


def _shown(image: ImageRef | None) -> ImageRef | None:
    if image is not None and image.data_url and image.show_on_dashboard:
        return image
    return None


def _joined(entries) -> str:
    return "\n\n".join(f"{e.name}\n{e.content}" if e.name else e.content for e in entries)


def resolve_card(module: Module, card: CardRef) -> dict[str, Any]:
    """Title, text and dashboard image for a card.

    A card whose section has since been deleted resolves to an empty body
    rather than failing.
    """
    d = module.data
    title = module.name
    text = ""
    image: ImageRef | None = None

    if card.type == "map":
        title, text, image = f"{module.name}: Map", d.map.url, d.map.image
    elif card.type == "intro":
        title, text, image = f"{module.name}: Introduction", d.introduction.text, d.introduction.image
    elif card.type == "overview":
        title, text, image = f"{module.name}: Overview", d.overview.text, d.overview.image
    elif card.type == "episode":
        ep = next((e for e in d.episodes if e.id == card.section_id), None)
        title = f"{module.name}: {ep.title if ep else 'Episode'}"
        if ep:
            text, image = ep.content, ep.image
    elif card.type in ("monster", "magicItem"):
        entries = d.appendices.monsters if card.type == "monster" else d.appendices.magic_items
        entry = next((e for e in entries if e.id == card.section_id), None)
        fallback = "Monster" if card.type == "monster" else "Magic Item"
        title = f"{module.name}: {entry.name if entry else fallback}"
        if entry:
            text, image = entry.content, entry.image
    elif card.type == "appendix:monsters":
        title, text = f"{module.name}: Monsters Appendix", _joined(d.appendices.monsters)
    elif card.type == "appendix:magicItems":
        title, text = f"{module.name}: Magic Items Appendix", _joined(d.appendices.magic_items)

    shown = _shown(image)
    return {
        "title": title,
        "text": text,
        "image": shown.model_dump() if shown else None,
    }
