"""Versioned schema upgrades for stored records.

Records carry `schema_version`. Anything without it is version 1, the shape
written by the browser-only app:

  * camelCase keys (createdAt, moduleId, dataUrl, showOnDashboard, ...)
  * flat content fields (mapUrl + mapImage, introduction + introImage, ...)
  * appendices stored as a single string plus a sibling image
  * dashboard cards with a `size` column span and no position

Version 2 is the current shape described by `fizzrix.models`. Every upgrade
is pure and idempotent: a record already at the current version is returned
unchanged, so running an upgrade twice is harmless.
"""

import logging
from collections import OrderedDict
from typing import Any

from fizzrix.models import SCHEMA_VERSION

from .core import new_id

logger = logging.getLogger(__name__)

LEGACY_MONSTER_NAME = "Legacy Monster Entry"
LEGACY_MAGIC_ITEM_NAME = "Legacy Magic Item Entry"
DEFAULT_SESSION_NAME = "Session 1"


def needs_upgrade(raw: dict[str, Any]) -> bool:
    return raw.get("schema_version", 1) < SCHEMA_VERSION


def _pick(d: dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in d:
        return d[snake]
    return d.get(camel, default)


def _image(raw: Any) -> dict[str, Any]:
    if not isinstance(raw, dict):
        return {"data_url": "", "alt": "", "show_on_dashboard": False}
    return {
        "data_url": _pick(raw, "data_url", "dataUrl", "") or "",
        "alt": raw.get("alt") or "",
        "show_on_dashboard": bool(_pick(raw, "show_on_dashboard", "showOnDashboard", False)),
    }


def _text_section(data: dict[str, Any], key: str, legacy_image_key: str) -> dict[str, Any]:
    value = data.get(key)
    if isinstance(value, dict):
        return {"text": value.get("text") or "", "image": _image(value.get("image"))}
    return {"text": value or "", "image": _image(data.get(legacy_image_key))}


def _map_section(data: dict[str, Any]) -> dict[str, Any]:
    value = data.get("map")
    if isinstance(value, dict):
        return {"url": value.get("url") or "", "image": _image(value.get("image"))}
    return {"url": data.get("mapUrl") or "", "image": _image(data.get("mapImage"))}


def _unique_ids(entries: list[dict[str, Any]]) -> list[dict[str, Any]]:
    seen: set[str] = set()
    for entry in entries:
        if not entry.get("id") or entry["id"] in seen:
            entry["id"] = new_id()
        seen.add(entry["id"])
    return entries


def _episodes(raw: Any) -> list[dict[str, Any]]:
    if not isinstance(raw, list):
        return []
    episodes = []
    for i, ep in enumerate(raw):
        if not isinstance(ep, dict):
            continue
        episodes.append({
            "id": str(ep.get("id") or ""),
            "title": ep.get("title") or f"Episode {i + 1}",
            "content": ep.get("content") or "",
            "image": _image(ep.get("image")),
        })
    return _unique_ids(episodes)


def _appendix(raw: Any, legacy_image: Any, kind: str, legacy_name: str) -> list[dict[str, Any]]:
    """Normalize one appendix to a list of entries.

    A legacy string becomes a single entry holding the whole text; the entry
    id is fixed so repeated reads of an unmigrated record agree.
    """
    if isinstance(raw, str):
        if not raw.strip():
            return []
        return [{
            "id": f"legacy-{kind}",
            "name": legacy_name,
            "content": raw,
            "image": _image(legacy_image),
        }]
    if not isinstance(raw, list):
        return []
    entries = []
    for entry in raw:
        if not isinstance(entry, dict):
            continue
        entries.append({
            "id": str(entry.get("id") or ""),
            "name": entry.get("name") or "",
            "content": entry.get("content") or "",
            "image": _image(entry.get("image")),
        })
    return _unique_ids(entries)


def upgrade_module_data(data: Any) -> dict[str, Any]:
    data = data if isinstance(data, dict) else {}
    appendices = data.get("appendices")
    appendices = appendices if isinstance(appendices, dict) else {}
    return {
        "map": _map_section(data),
        "introduction": _text_section(data, "introduction", "introImage"),
        "overview": _text_section(data, "overview", "overviewImage"),
        "episodes": _episodes(data.get("episodes")),
        "appendices": {
            "monsters": _appendix(
                appendices.get("monsters"),
                appendices.get("monstersImage"),
                "monsters",
                LEGACY_MONSTER_NAME,
            ),
            "magic_items": _appendix(
                _pick(appendices, "magic_items", "magicItems"),
                appendices.get("magicItemsImage"),
                "magic-items",
                LEGACY_MAGIC_ITEM_NAME,
            ),
        },
    }


def upgrade_module(raw: dict[str, Any]) -> dict[str, Any]:
    """Bring a module record up to the current schema version."""
    if not needs_upgrade(raw):
        return raw
    created = _pick(raw, "created_at", "createdAt", "") or ""
    return {
        "schema_version": SCHEMA_VERSION,
        "id": raw.get("id"),
        "name": (raw.get("name") or "").strip(),
        "category": raw.get("category") or "one-shot",
        "created_at": created,
        "updated_at": _pick(raw, "updated_at", "updatedAt", "") or created,
        "data": upgrade_module_data(raw.get("data")),
    }


def _position(raw: Any) -> dict[str, int] | None:
    if not isinstance(raw, dict):
        return None
    try:
        return {"x": int(raw["x"]), "y": int(raw["y"])}
    except (KeyError, TypeError, ValueError):
        return None


def upgrade_card(raw: dict[str, Any], module_id: str | None = None) -> dict[str, Any]:
    return {
        "id": str(raw.get("id") or new_id()),
        "module_id": _pick(raw, "module_id", "moduleId") or module_id,
        "type": raw.get("type"),
        "section_id": _pick(raw, "section_id", "sectionId"),
        "position": _position(raw.get("position")),
    }


def upgrade_session(raw: dict[str, Any]) -> dict[str, Any]:
    """Bring a session record up to the current schema version."""
    if not needs_upgrade(raw):
        return raw
    module_id = _pick(raw, "module_id", "moduleId")
    items = [
        upgrade_card(item, module_id)
        for item in raw.get("items") or []
        if isinstance(item, dict)
    ]
    return {
        "schema_version": SCHEMA_VERSION,
        "id": raw.get("id"),
        "module_id": module_id,
        "name": raw.get("name") or DEFAULT_SESSION_NAME,
        "locked": bool(raw.get("locked", False)),
        "items": _unique_ids(items),
    }


def sessions_from_legacy_dashboard(items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Group pre-sessions dashboard cards into one session per module."""
    by_module: OrderedDict[str, list[dict[str, Any]]] = OrderedDict()
    for item in items:
        if not isinstance(item, dict):
            continue
        module_id = _pick(item, "module_id", "moduleId")
        if not module_id:
            continue
        by_module.setdefault(module_id, []).append(upgrade_card(item, module_id))

    sessions = []
    for module_id, cards in by_module.items():
        sessions.append({
            "schema_version": SCHEMA_VERSION,
            "id": new_id(),
            "module_id": module_id,
            "name": DEFAULT_SESSION_NAME,
            "locked": False,
            "items": _unique_ids(cards),
        })
    card_count = sum(len(s["items"]) for s in sessions)
    logger.info(f"Converted {card_count} legacy dashboard cards into {len(sessions)} sessions")
    return sessions
