"""Process-wide cache of modules and sessions.

DataContext sits between screens and the stores. It keeps the last fetched
modules, the sessions of every module visited so far, and the active
module/session selection, so navigation does not re-fetch from scratch.

State only changes through `reduce(state, action)`, a pure function. Every
mutating method has the same two phases:

    1. await the store call
    2. on success, dispatch an action carrying the record the store returned

A failing store call raises straight through and nothing is dispatched, so
the cache never holds a value the store did not confirm.

Two guards against out-of-order responses:

  * Each load is tagged with a per-key request token. If a newer load for
    the same key was issued while it was in flight, its result is dropped.
  * The selection epoch bumps on every user selection. Loads that started
    under an older epoch still fill the cache but do not touch the active
    selection.

Writes to one session go through a per-session asyncio.Lock, so two quick
drags on the same dashboard are applied one after the other.

Stores are injected: the HTTP client (fizzrix.client) in the app, any
object with the same coroutine methods in tests.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from typing import Any, Literal

from fizzrix import cards
from fizzrix.errors import LastSessionError
from fizzrix.models import CardRef, CardType, Category, Module, ModuleData, Session
from fizzrix.storage.local import ACTIVE_MODULE_KEY, ACTIVE_SESSION_KEY, REORDER_KEY, LocalStore

logger = logging.getLogger(__name__)

LoadingKey = Literal["modules", "sessions", "active_session"]


@dataclass(frozen=True)
class DataState:
    modules: list[Module] = field(default_factory=list)
    sessions: dict[str, list[Session]] = field(default_factory=dict)
    active_module_id: str = ""
    active_session_id: str = ""
    loading: dict[str, bool] = field(
        default_factory=lambda: {"modules": False, "sessions": False, "active_session": False}
    )


Action = dict[str, Any]


def _replace_session(sessions: list[Session], session: Session) -> list[Session]:
    return [session if s.id == session.id else s for s in sessions]


def reduce(state: DataState, action: Action) -> DataState:
    """Return the next state. Never mutates `state`."""
    kind = action["type"]

    if kind == "SET_LOADING":
        return replace(state, loading={**state.loading, action["key"]: action["value"]})

    if kind == "SET_MODULES":
        return replace(state, modules=list(action["modules"]))

    if kind == "ADD_MODULE":
        return replace(state, modules=[*state.modules, action["module"]])

    if kind == "UPDATE_MODULE":
        module = action["module"]
        return replace(state, modules=[module if m.id == module.id else m for m in state.modules])

    if kind == "REMOVE_MODULE":
        module_id = action["module_id"]
        sessions = {k: v for k, v in state.sessions.items() if k != module_id}
        return replace(
            state,
            modules=[m for m in state.modules if m.id != module_id],
            sessions=sessions,
        )

    if kind == "SET_SESSIONS":
        return replace(state, sessions={**state.sessions, action["module_id"]: list(action["sessions"])})

    if kind == "ADD_SESSION":
        session = action["session"]
        current = state.sessions.get(session.module_id, [])
        return replace(state, sessions={**state.sessions, session.module_id: [*current, session]})

    if kind == "UPDATE_SESSION":
        session = action["session"]
        current = state.sessions.get(session.module_id, [])
        return replace(
            state,
            sessions={**state.sessions, session.module_id: _replace_session(current, session)},
        )

    if kind == "REMOVE_SESSION":
        module_id = action["module_id"]
        current = state.sessions.get(module_id, [])
        return replace(
            state,
            sessions={**state.sessions, module_id: [s for s in current if s.id != action["session_id"]]},
        )

    if kind == "SET_ACTIVE_MODULE":
        return replace(state, active_module_id=action["module_id"])

    if kind == "SET_ACTIVE_SESSION":
        return replace(state, active_session_id=action["session_id"])

    raise ValueError(f"Unknown action type: {kind}")


class DataContext:
    def __init__(self, modules, sessions, local: LocalStore | None = None) -> None:
        self._modules = modules
        self._sessions = sessions
        self._local = local
        self.state = DataState(
            active_module_id=(local.get(ACTIVE_MODULE_KEY) or "") if local else "",
            active_session_id=(local.get(ACTIVE_SESSION_KEY) or "") if local else "",
        )
        self._listeners: list[Callable[[DataState], None]] = []
        self._tokens = itertools.count(1)
        self._latest: dict[str, int] = {}
        self._selection_epoch = 0
        self._session_locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Dispatch and subscription
    # ------------------------------------------------------------------

    def dispatch(self, action: Action) -> None:
        self.state = reduce(self.state, action)
        for listener in list(self._listeners):
            listener(self.state)

    def subscribe(self, listener: Callable[[DataState], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _issue(self, key: str) -> int:
        token = next(self._tokens)
        self._latest[key] = token
        return token

    def _is_latest(self, key: str, token: int) -> bool:
        return self._latest.get(key) == token

    def _session_lock(self, session_id: str) -> asyncio.Lock:
        return self._session_locks.setdefault(session_id, asyncio.Lock())

    def _drop_session_locks(self, session_ids) -> None:
        for session_id in session_ids:
            self._session_locks.pop(session_id, None)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def modules(self) -> list[Module]:
        return self.state.modules

    @property
    def loading(self) -> dict[str, bool]:
        return self.state.loading

    @property
    def active_module(self) -> Module | None:
        return next((m for m in self.state.modules if m.id == self.state.active_module_id), None)

    @property
    def sessions_for_active_module(self) -> list[Session]:
        return self.state.sessions.get(self.state.active_module_id, [])

    @property
    def active_session(self) -> Session | None:
        if not self.state.active_module_id or not self.state.active_session_id:
            return None
        return next(
            (s for s in self.sessions_for_active_module if s.id == self.state.active_session_id),
            None,
        )

    def _find_session(self, session_id: str) -> Session | None:
        for sessions in self.state.sessions.values():
            for s in sessions:
                if s.id == session_id:
                    return s
        return None

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def _select_module(self, module_id: str) -> None:
        self.dispatch({"type": "SET_ACTIVE_MODULE", "module_id": module_id})
        if self._local:
            self._local.set(ACTIVE_MODULE_KEY, module_id)
        sessions = self.state.sessions.get(module_id)
        if sessions is not None and not any(s.id == self.state.active_session_id for s in sessions):
            self._select_session(sessions[0].id if sessions else "")

    def _select_session(self, session_id: str) -> None:
        self.dispatch({"type": "SET_ACTIVE_SESSION", "session_id": session_id})
        if self._local and session_id:
            self._local.set(ACTIVE_SESSION_KEY, session_id)

    def set_active_module(self, module_id: str) -> None:
        self._selection_epoch += 1
        self._select_module(module_id)

    def set_active_session(self, session_id: str) -> None:
        self._selection_epoch += 1
        self._select_session(session_id)

    @property
    def reorder_mode(self) -> Literal["drag", "arrows"]:
        stored = self._local.get(REORDER_KEY) if self._local else None
        return "arrows" if stored == "arrows" else "drag"

    def set_reorder_mode(self, mode: Literal["drag", "arrows"]) -> None:
        if mode not in ("drag", "arrows"):
            raise ValueError(f"Unknown reorder mode: {mode}")
        if self._local:
            self._local.set(REORDER_KEY, mode)

    def _resolve_active_module(self) -> None:
        """Keep the remembered module if it still exists, else the first by name."""
        modules = self.state.modules
        if any(m.id == self.state.active_module_id for m in modules):
            return
        first = min(modules, key=lambda m: m.name.casefold(), default=None)
        self._select_module(first.id if first else "")

    def _resolve_active_session(self, sessions: list[Session]) -> None:
        if any(s.id == self.state.active_session_id for s in sessions):
            return
        self._select_session(sessions[0].id if sessions else "")

    # ------------------------------------------------------------------
    # Loads
    # ------------------------------------------------------------------

    async def load_modules(self, force: bool = False) -> list[Module]:
        if not force and self.state.modules:
            return self.state.modules

        key = "modules"
        token = self._issue(key)
        epoch = self._selection_epoch
        self.dispatch({"type": "SET_LOADING", "key": "modules", "value": True})
        try:
            modules = await self._modules.list()
        finally:
            if self._is_latest(key, token):
                self.dispatch({"type": "SET_LOADING", "key": "modules", "value": False})

        if not self._is_latest(key, token):
            logger.debug("Dropping superseded modules response")
            return self.state.modules
        self.dispatch({"type": "SET_MODULES", "modules": modules})
        if epoch == self._selection_epoch:
            self._resolve_active_module()
        return modules

    async def load_sessions(self, module_id: str, force: bool = False) -> list[Session]:
        """Sessions of a module; makes sure the module has at least one."""
        if not module_id:
            return []
        cached = self.state.sessions.get(module_id)
        if not force and cached:
            return cached

        key = f"sessions:{module_id}"
        token = self._issue(key)
        epoch = self._selection_epoch
        self.dispatch({"type": "SET_LOADING", "key": "sessions", "value": True})
        try:
            sessions = await self._sessions.ensure_default_for_module(module_id)
        finally:
            if self._is_latest(key, token):
                self.dispatch({"type": "SET_LOADING", "key": "sessions", "value": False})

        if not self._is_latest(key, token):
            logger.debug(f"Dropping superseded sessions response for {module_id}")
            return self.state.sessions.get(module_id, [])
        self.dispatch({"type": "SET_SESSIONS", "module_id": module_id, "sessions": sessions})
        if module_id == self.state.active_module_id and epoch == self._selection_epoch:
            self._resolve_active_session(sessions)
        return sessions

    async def load_active_session(self) -> Session | None:
        """Re-read the active session; dropped if the selection moved meanwhile."""
        session_id = self.state.active_session_id
        if not session_id:
            return None
        self.dispatch({"type": "SET_LOADING", "key": "active_session", "value": True})
        try:
            session = await self._sessions.get(session_id)
        finally:
            self.dispatch({"type": "SET_LOADING", "key": "active_session", "value": False})
        if session_id != self.state.active_session_id:
            return self.active_session
        if session is not None:
            self.dispatch({"type": "UPDATE_SESSION", "session": session})
        return session

    # ------------------------------------------------------------------
    # Modules
    # ------------------------------------------------------------------

    async def add_module(self, name: str, category: Category = "one-shot") -> Module:
        module = await self._modules.add(name, category)
        self.dispatch({"type": "ADD_MODULE", "module": module})
        return module

    async def update_module(
        self, module_id: str, updater: Callable[[ModuleData], ModuleData]
    ) -> Module | None:
        module = await self._modules.update_data(module_id, updater)
        if module is not None:
            self.dispatch({"type": "UPDATE_MODULE", "module": module})
        return module

    async def rename_module(self, module_id: str, name: str) -> Module | None:
        module = await self._modules.rename(module_id, name)
        if module is not None:
            self.dispatch({"type": "UPDATE_MODULE", "module": module})
        return module

    async def remove_module(self, module_id: str) -> None:
        """Delete a module and its sessions."""
        await self._modules.remove(module_id)
        await self._sessions.remove_by_module(module_id)
        self._drop_session_locks(s.id for s in self.state.sessions.get(module_id, []))
        self.dispatch({"type": "REMOVE_MODULE", "module_id": module_id})
        if module_id == self.state.active_module_id:
            self._resolve_active_module()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def add_session(self, module_id: str, name: str | None = None) -> Session:
        if name is None:
            name = f"Session {len(self.state.sessions.get(module_id, [])) + 1}"
        session = await self._sessions.create(module_id, name)
        self.dispatch({"type": "ADD_SESSION", "session": session})
        return session

    async def update_session(self, session_id: str, updates: dict[str, Any]) -> Session | None:
        """Apply name / locked / items, whichever are present in `updates`."""
        unknown = set(updates) - {"name", "locked", "items"}
        if unknown:
            raise ValueError(f"Cannot update session fields: {', '.join(sorted(unknown))}")
        fields = dict(updates)
        if fields.get("items") is not None:
            fields["items"] = [CardRef.model_validate(i) if isinstance(i, dict) else i for i in fields["items"]]
        async with self._session_lock(session_id):
            # One store call, so a rejected field leaves every field unapplied
            session = await self._sessions.update(session_id, **fields)
            if session is not None:
                self.dispatch({"type": "UPDATE_SESSION", "session": session})
            return session

    async def remove_session(self, session_id: str) -> None:
        """Delete a session; a module's last session cannot be removed."""
        session = self._find_session(session_id) or await self._sessions.get(session_id)
        if session is None:
            return
        siblings = await self._sessions.list_by_module(session.module_id)
        if len(siblings) <= 1:
            raise LastSessionError(session.module_id)
        async with self._session_lock(session_id):
            await self._sessions.remove(session_id)
        self._drop_session_locks([session_id])
        self.dispatch({"type": "REMOVE_SESSION", "module_id": session.module_id, "session_id": session_id})
        if session_id == self.state.active_session_id:
            self._resolve_active_session(self.state.sessions.get(session.module_id, []))

    async def duplicate_session(self, session_id: str) -> Session | None:
        session = await self._sessions.duplicate(session_id)
        if session is not None:
            self.dispatch({"type": "ADD_SESSION", "session": session})
        return session

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    async def _edit_cards(
        self, session_id: str, edit: Callable[[Session], list[CardRef]]
    ) -> Session | None:
        # Re-read inside the lock so the edit applies to the latest card list
        async with self._session_lock(session_id):
            current = await self._sessions.get(session_id)
            if current is None:
                return None
            session = await self._sessions.set_items(session_id, edit(current))
            if session is not None:
                self.dispatch({"type": "UPDATE_SESSION", "session": session})
            return session

    async def add_card(
        self, session_id: str, card_type: CardType, section_id: str | None = None
    ) -> Session | None:
        return await self._edit_cards(
            session_id,
            lambda s: cards.add_card(s, cards.new_card(s.module_id, card_type, section_id)),
        )

    async def remove_card(self, session_id: str, card_id: str) -> Session | None:
        return await self._edit_cards(session_id, lambda s: cards.remove_card(s, card_id))

    async def move_card(self, session_id: str, card_id: str, dx: float, dy: float) -> Session | None:
        return await self._edit_cards(session_id, lambda s: cards.move_card(s, card_id, dx, dy))

    async def shift_card(
        self, session_id: str, card_id: str, direction: Literal["left", "right"]
    ) -> Session | None:
        return await self._edit_cards(session_id, lambda s: cards.shift_card(s, card_id, direction))

    async def clear_cards(self, session_id: str) -> Session | None:
        return await self._edit_cards(session_id, cards.clear_cards)

    async def layout_session(self, session_id: str) -> Session | None:
        """Give unpositioned cards a slot before the dashboard renders."""
        return await self._edit_cards(session_id, cards.layout)
