"""Session CRUD, legacy dashboard migration, and change notification.

A session belongs to one module and holds an ordered list of cards. Sessions
are edited field by field (name, locked, items); every mutation is
broadcast to subscribers and bumps a persisted revision counter so other
processes viewing the same data can tell when to refresh.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Literal

from fizzrix import cards
from fizzrix.errors import LastSessionError
from fizzrix.models import CardRef, CardType, Session

from .core import Collection, new_id
from .local import LEGACY_DASHBOARD_KEY, LocalStore
from .migrations import DEFAULT_SESSION_NAME, sessions_from_legacy_dashboard, upgrade_session

logger = logging.getLogger(__name__)

MIGRATED_MARKER_KEY = "fizzrix.sessions.migrated"
REVISION_KEY = "fizzrix.sessions.revision"

ChangeKind = Literal["created", "updated", "removed", "migrated"]


@dataclass(frozen=True)
class SessionChange:
    kind: ChangeKind
    session_id: str | None
    module_id: str | None
    revision: int


Listener = Callable[[SessionChange], None]


class SessionStore:
    def __init__(self, collection: Collection, local: LocalStore) -> None:
        self._records = collection
        self._local = local
        self._listeners: list[Listener] = []
        # Re-entrant: ensure_default_for_module reads (and so may migrate)
        # while already holding it.
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener. Returns a function that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def revision(self) -> int:
        return int(self._local.get(REVISION_KEY) or 0)

    def _emit(self, kind: ChangeKind, session_id: str | None, module_id: str | None) -> None:
        revision = self.revision() + 1
        self._local.set(REVISION_KEY, str(revision))
        change = SessionChange(kind, session_id, module_id, revision)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                logger.warning(f"Session change listener failed: {e}")

    # ------------------------------------------------------------------
    # Migration
    # ------------------------------------------------------------------

    def migrate_legacy_dashboard(self) -> list[Session]:
        """Convert the pre-sessions dashboard list into sessions, once.

        Runs only when no sessions exist yet and legacy items are present.
        A persisted marker keeps it from running again; the lock keeps two
        racing first reads from both converting.
        """
        with self._lock:
            if self._local.get(MIGRATED_MARKER_KEY):
                return []
            if self._records.list():
                self._local.set(MIGRATED_MARKER_KEY, "1")
                return []
            raw = self._local.get(LEGACY_DASHBOARD_KEY)
            if raw is None:
                return []
            try:
                legacy = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Discarding unreadable legacy dashboard data")
                legacy = []
            migrated = sessions_from_legacy_dashboard(legacy) if isinstance(legacy, list) else []
            sessions = [Session.model_validate(s) for s in migrated]
            for session in sessions:
                self._records.insert(session.model_dump())
            self._local.remove(LEGACY_DASHBOARD_KEY)
            self._local.set(MIGRATED_MARKER_KEY, "1")
        if sessions:
            self._emit("migrated", None, None)
        return sessions

    def _all(self) -> list[Session]:
        self.migrate_legacy_dashboard()
        return [Session.model_validate(upgrade_session(r)) for r in self._records.list()]

    def _save(self, session: Session) -> Session:
        self._records.update(session.id, session.model_dump())
        return session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self) -> list[Session]:
        return self._all()

    def list_by_module(self, module_id: str) -> list[Session]:
        return [s for s in self._all() if s.module_id == module_id]

    def get(self, session_id: str) -> Session | None:
        for session in self._all():
            if session.id == session_id:
                return session
        return None

    # ------------------------------------------------------------------
    # Mutations
    #
    # Writes happen under self._lock; listeners are notified only after it
    # is released.
    # ------------------------------------------------------------------

    def _insert_new(self, module_id: str, name: str) -> Session:
        session = Session(id=new_id(), module_id=module_id, name=name)
        self._records.insert(session.model_dump())
        return session

    def create(self, module_id: str, name: str = DEFAULT_SESSION_NAME) -> Session:
        name = name.strip()
        if not name:
            raise ValueError("Session name must not be blank")
        self.migrate_legacy_dashboard()
        with self._lock:
            session = self._insert_new(module_id, name)
        self._emit("created", session.id, module_id)
        return session

    def rename(self, session_id: str, name: str) -> Session | None:
        return self.update(session_id, name=name)

    def set_items(self, session_id: str, items: list[CardRef | dict[str, Any]]) -> Session | None:
        return self.update(session_id, items=items)

    def set_locked(self, session_id: str, locked: bool) -> Session | None:
        return self.update(session_id, locked=locked)

    def update(
        self,
        session_id: str,
        name: str | None = None,
        locked: bool | None = None,
        items: list[CardRef | dict[str, Any]] | None = None,
    ) -> Session | None:
        """Change any of name / locked / items in one write.

        Every field is validated before anything is saved, so a rejected
        update leaves the session as it was.
        """
        fields = _validated_fields(name, locked, items)
        if not fields:
            return self.get(session_id)
        with self._lock:
            session = self._apply(session_id, fields)
        if session is not None:
            self._emit("updated", session.id, session.module_id)
        return session

    def _apply(self, session_id: str, fields: dict[str, Any]) -> Session | None:
        session = self.get(session_id)
        if session is None:
            return None
        session = session.model_copy(update=fields)
        self._save(session)
        return session

    def duplicate(self, session_id: str) -> Session | None:
        with self._lock:
            source = self.get(session_id)
            if source is None:
                return None
            copy = source.model_copy(deep=True, update={
                "id": new_id(),
                "name": f"{source.name} (copy)",
            })
            self._records.insert(copy.model_dump())
        self._emit("created", copy.id, copy.module_id)
        return copy

    def remove(self, session_id: str) -> bool:
        session = self.get(session_id)
        if session is None or not self._records.delete(session_id):
            return False
        self._emit("removed", session_id, session.module_id)
        return True

    def remove_guarded(self, session_id: str) -> bool:
        """Remove a session unless it is the last one of its module."""
        with self._lock:
            session = self.get(session_id)
            if session is None:
                return False
            if len(self.list_by_module(session.module_id)) <= 1:
                raise LastSessionError(session.module_id)
            if not self._records.delete(session_id):
                return False
        self._emit("removed", session_id, session.module_id)
        return True

    def remove_by_module(self, module_id: str) -> int:
        self.migrate_legacy_dashboard()
        removed = self._records.delete_where("module_id", module_id)
        if removed:
            self._emit("removed", None, module_id)
        return removed

    def ensure_default_for_module(self, module_id: str) -> list[Session]:
        """Sessions of a module, creating "Session 1" if it has none.

        Idempotent: repeated or concurrent calls create at most one session.
        """
        self.migrate_legacy_dashboard()
        with self._lock:
            existing = self.list_by_module(module_id)
            if existing:
                return existing
            session = self._insert_new(module_id, DEFAULT_SESSION_NAME)
        self._emit("created", session.id, module_id)
        return [session]

    def replace_all(self, sessions: list[Session]) -> None:
        with self._lock:
            self._records.replace_all([s.model_dump() for s in sessions])
            self._local.set(MIGRATED_MARKER_KEY, "1")
        self._emit("updated", None, None)

    # ------------------------------------------------------------------
    # Cards
    # ------------------------------------------------------------------

    def _edit_items(self, session_id: str, edit: Callable[[Session], list[CardRef]]) -> Session | None:
        with self._lock:
            current = self.get(session_id)
            if current is None:
                return None
            session = self._apply(session_id, _validated_fields(items=edit(current)))
        self._emit("updated", session.id, session.module_id)
        return session

    def add_card(
        self, session_id: str, card_type: CardType, section_id: str | None = None
    ) -> Session | None:
        def add(session: Session) -> list[CardRef]:
            return cards.add_card(session, cards.new_card(session.module_id, card_type, section_id))

        return self._edit_items(session_id, add)

    def remove_card(self, session_id: str, card_id: str) -> Session | None:
        return self._edit_items(session_id, lambda s: cards.remove_card(s, card_id))

    def move_card(self, session_id: str, card_id: str, dx: float, dy: float) -> Session | None:
        return self._edit_items(session_id, lambda s: cards.move_card(s, card_id, dx, dy))

    def shift_card(
        self, session_id: str, card_id: str, direction: Literal["left", "right"]
    ) -> Session | None:
        return self._edit_items(session_id, lambda s: cards.shift_card(s, card_id, direction))

    def clear_cards(self, session_id: str) -> Session | None:
        return self._edit_items(session_id, cards.clear_cards)

    def layout(self, session_id: str) -> Session | None:
        """Persist auto-packed positions for any unpositioned cards."""
        session = self.get(session_id)
        if session is None:
            return None
        if all(item.position is not None for item in session.items):
            return session
        return self._edit_items(session_id, cards.layout)


def _validated_fields(
    name: str | None = None,
    locked: bool | None = None,
    items: list[CardRef | dict[str, Any]] | None = None,
) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    if name is not None:
        name = name.strip()
        if not name:
            raise ValueError("Session name must not be blank")
        fields["name"] = name
    if locked is not None:
        fields["locked"] = bool(locked)
    if items is not None:
        validated = [CardRef.model_validate(i) if isinstance(i, dict) else i for i in items]
        ids = [i.id for i in validated]
        if len(ids) != len(set(ids)):
            raise ValueError("Duplicate card id")
        fields["items"] = validated
    return fields
