"""Module CRUD and content-tree editing."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any, Literal

from fizzrix.models import (
    AppendixEntry,
    Category,
    Episode,
    Module,
    ModuleData,
)

from .core import Collection, new_id, now_iso
from .migrations import upgrade_module

logger = logging.getLogger(__name__)

CATEGORIES = ("one-shot", "campaign")

AppendixKind = Literal["monsters", "magic_items"]

_EPISODE_FIELDS = {"title", "content", "image"}
_ENTRY_FIELDS = {"name", "content", "image"}


def _check_unique_ids(data: ModuleData) -> None:
    for label, entries in (
        ("episodes", data.episodes),
        ("monsters", data.appendices.monsters),
        ("magic_items", data.appendices.magic_items),
    ):
        ids = [e.id for e in entries]
        if len(ids) != len(set(ids)):
            raise ValueError(f"Duplicate id in {label}")


class ModuleStore:
    """Modules are saved by whole-document replace."""

    def __init__(self, collection: Collection) -> None:
        self._records = collection

    def _load(self, raw: dict[str, Any]) -> Module:
        return Module.model_validate(upgrade_module(raw))

    def list(self) -> list[Module]:
        return [self._load(r) for r in self._records.list()]

    def get(self, module_id: str) -> Module | None:
        raw = self._records.get(module_id)
        if raw is None:
            return None
        return self._load(raw)

    def add(self, name: str, category: Category = "one-shot") -> Module:
        name = name.strip()
        if not name:
            raise ValueError("Module name must not be blank")
        if category not in CATEGORIES:
            raise ValueError(f"Unknown category: {category}")
        ts = now_iso()
        module = Module(
            id=new_id(),
            name=name,
            category=category,
            created_at=ts,
            updated_at=ts,
            data=ModuleData(),
        )
        self._records.insert(module.model_dump())
        return module

    def rename(self, module_id: str, name: str) -> Module | None:
        name = name.strip()
        if not name:
            raise ValueError("Module name must not be blank")
        with self._records.transaction():
            module = self.get(module_id)
            if module is None:
                return None
            module.name = name
            module.updated_at = now_iso()
            self._records.update(module_id, module.model_dump())
        return module

    def update_data(
        self, module_id: str, updater: Callable[[ModuleData], ModuleData | dict[str, Any]]
    ) -> Module | None:
        """Replace the whole content tree with `updater(current_tree)`.

        The updater gets a private deep copy and must return the entire next
        tree, not a patch.
        """
        with self._records.transaction():
            module = self.get(module_id)
            if module is None:
                return None
            next_data = updater(module.data.model_copy(deep=True))
            if not isinstance(next_data, ModuleData):
                next_data = ModuleData.model_validate(next_data)
            _check_unique_ids(next_data)
            module.data = next_data
            module.updated_at = now_iso()
            self._records.update(module_id, module.model_dump())
        return module

    def remove(self, module_id: str) -> bool:
        return self._records.delete(module_id)

    def replace_all(self, modules: list[Module]) -> None:
        ids = [m.id for m in modules]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate module id")
        self._records.replace_all([m.model_dump() for m in modules])
        logger.info(f"Replaced module collection with {len(modules)} modules")

    # ------------------------------------------------------------------
    # Episodes
    # ------------------------------------------------------------------

    def add_episode(self, module_id: str, title: str | None = None) -> Module | None:
        def add(data: ModuleData) -> ModuleData:
            data.episodes.append(Episode(
                id=new_id(),
                title=title or f"Episode {len(data.episodes) + 1}",
            ))
            return data

        return self.update_data(module_id, add)

    def update_episode(
        self, module_id: str, episode_id: str, fields: dict[str, Any]
    ) -> Module | None:
        module = self.get(module_id)
        if module is None or not any(e.id == episode_id for e in module.data.episodes):
            return None

        def patch(data: ModuleData) -> ModuleData:
            data.episodes = [
                _patched(e, fields, _EPISODE_FIELDS) if e.id == episode_id else e
                for e in data.episodes
            ]
            return data

        return self.update_data(module_id, patch)

    def remove_episode(self, module_id: str, episode_id: str) -> Module | None:
        def remove(data: ModuleData) -> ModuleData:
            data.episodes = [e for e in data.episodes if e.id != episode_id]
            return data

        return self.update_data(module_id, remove)

    # ------------------------------------------------------------------
    # Appendices
    # ------------------------------------------------------------------

    def add_appendix_entry(
        self, module_id: str, kind: AppendixKind, name: str, content: str = ""
    ) -> Module | None:
        def add(data: ModuleData) -> ModuleData:
            getattr(data.appendices, kind).append(
                AppendixEntry(id=new_id(), name=name, content=content)
            )
            return data

        return self.update_data(module_id, add)

    def update_appendix_entry(
        self, module_id: str, kind: AppendixKind, entry_id: str, fields: dict[str, Any]
    ) -> Module | None:
        module = self.get(module_id)
        if module is None or not any(
            e.id == entry_id for e in getattr(module.data.appendices, kind)
        ):
            return None

        def patch(data: ModuleData) -> ModuleData:
            entries = getattr(data.appendices, kind)
            setattr(data.appendices, kind, [
                _patched(e, fields, _ENTRY_FIELDS) if e.id == entry_id else e
                for e in entries
            ])
            return data

        return self.update_data(module_id, patch)

    def remove_appendix_entry(
        self, module_id: str, kind: AppendixKind, entry_id: str
    ) -> Module | None:
        def remove(data: ModuleData) -> ModuleData:
            entries = getattr(data.appendices, kind)
            setattr(data.appendices, kind, [e for e in entries if e.id != entry_id])
            return data

        return self.update_data(module_id, remove)


def _patched(entry, fields: dict[str, Any], allowed: set[str]):
    """Copy of an episode/appendix entry with the allowed fields replaced."""
    merged = entry.model_dump()
    merged.update({k: v for k, v in fields.items() if k in allowed})
    return type(entry).model_validate(merged)
