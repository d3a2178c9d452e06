"""Free-form dashboard grid: auto-packing, drag commits and canvas bounds.

Positions are top-left pixel coordinates on a virtual canvas. Cards all have
the same footprint (CARD_WIDTH x CARD_HEIGHT). Two cards overlap when both
their x and y distances are below the card size.

Auto-pack walks slots in reading order across COLUMNS columns:

    index 0 1 2 3
          4 5 6 7
          ...

starting from the number of cards already placed, and takes the first slot
that overlaps nothing. The walk gives up after MAX_PACK_ATTEMPTS slots and
uses the last one it tried.
"""

from __future__ import annotations

import math

from fizzrix.models import CardRef, Position

GRID_SIZE = 20
CARD_WIDTH = 300
CARD_HEIGHT = 200
COLUMNS = 4
CARD_MARGIN = GRID_SIZE * 2
MAX_PACK_ATTEMPTS = 100
CANVAS_PADDING = GRID_SIZE * 4
MIN_CANVAS_WIDTH = 800
MIN_CANVAS_HEIGHT = 600


def slot_position(index: int) -> Position:
    col = index % COLUMNS
    row = index // COLUMNS
    return Position(
        x=col * (CARD_WIDTH + CARD_MARGIN),
        y=row * (CARD_HEIGHT + CARD_MARGIN),
    )


def overlaps(a: Position, b: Position) -> bool:
    return abs(a.x - b.x) < CARD_WIDTH and abs(a.y - b.y) < CARD_HEIGHT


def auto_pack(existing: list[Position]) -> Position:
    """Pick a slot for one more card that clears every existing position."""
    start = len(existing)
    candidate = slot_position(start)
    for attempt in range(MAX_PACK_ATTEMPTS):
        candidate = slot_position(start + attempt)
        if not any(overlaps(candidate, pos) for pos in existing):
            return candidate
    return candidate


def assign_positions(items: list[CardRef]) -> list[CardRef]:
    """Give every unpositioned card a slot. Returns a new list.

    Cards are processed in list order and each new slot counts as occupied
    for the cards after it.
    """
    occupied = [item.position for item in items if item.position is not None]
    result = []
    for item in items:
        if item.position is None:
            pos = auto_pack(occupied)
            occupied.append(pos)
            item = item.model_copy(update={"position": pos})
        result.append(item)
    return result


def snap(value: float) -> int:
    """Nearest multiple of GRID_SIZE; halves round up."""
    return int(math.floor(value / GRID_SIZE + 0.5)) * GRID_SIZE


def commit_drag(items: list[CardRef], card_id: str, dx: float, dy: float) -> list[CardRef]:
    """Apply a drag delta to one card, snapped to the grid and clamped at 0.

    There is no upper bound; the canvas grows to fit. Raises KeyError for an
    unknown card.
    """
    result = []
    found = False
    for item in items:
        if item.id == card_id:
            found = True
            old = item.position or Position(x=0, y=0)
            new = Position(
                x=max(0, snap(old.x + dx)),
                y=max(0, snap(old.y + dy)),
            )
            item = item.model_copy(update={"position": new})
        result.append(item)
    if not found:
        raise KeyError(card_id)
    return result


def canvas_size(items: list[CardRef]) -> tuple[int, int]:
    """(width, height) that fits the furthest card plus padding."""
    positions = [item.position for item in items if item.position is not None]
    if not positions:
        return MIN_CANVAS_WIDTH, MIN_CANVAS_HEIGHT
    max_x = max(p.x + CARD_WIDTH for p in positions)
    max_y = max(p.y + CARD_HEIGHT for p in positions)
    return (
        max(MIN_CANVAS_WIDTH, max_x + CANVAS_PADDING),
        max(MIN_CANVAS_HEIGHT, max_y + CANVAS_PADDING),
    )
