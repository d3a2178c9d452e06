"""Session CRUD + card endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from fizzrix.cards import resolve_card
from fizzrix.errors import LastSessionError, SessionLockedError
from fizzrix.grid import canvas_size
from fizzrix.storage import Repository

from .deps import get_repo
from .models import AddCard, CreateSession, MoveCard, ShiftCard, UpdateSession

router = APIRouter()


def _card_error(e: Exception) -> HTTPException:
    if isinstance(e, SessionLockedError):
        return HTTPException(409, str(e))
    if isinstance(e, KeyError):
        return HTTPException(404, "Card not found")
    return HTTPException(400, str(e))


@router.get("/sessions")
async def list_sessions(module_id: str | None = None, repo: Repository = Depends(get_repo)):
    """List sessions, optionally only those of one module."""
    if module_id is not None:
        return repo.sessions.list_by_module(module_id)
    return repo.sessions.list()


@router.get("/sessions/revision")
async def sessions_revision(repo: Repository = Depends(get_repo)):
    """Change counter; bumps on every session mutation."""
    return {"revision": repo.sessions.revision()}


@router.post("/modules/{module_id}/sessions/ensure-default")
async def ensure_default_session(module_id: str, repo: Repository = Depends(get_repo)):
    """Sessions of a module, creating "Session 1" if there are none."""
    if not repo.modules.get(module_id):
        raise HTTPException(404, "Module not found")
    return repo.sessions.ensure_default_for_module(module_id)


@router.delete("/modules/{module_id}/sessions")
async def delete_module_sessions(module_id: str, repo: Repository = Depends(get_repo)):
    """Delete every session of a module."""
    return {"removed": repo.sessions.remove_by_module(module_id)}


@router.post("/sessions", status_code=201)
async def create_session(body: CreateSession, repo: Repository = Depends(get_repo)):
    """Create an empty session for a module."""
    if not repo.modules.get(body.module_id):
        raise HTTPException(404, "Module not found")
    try:
        return repo.sessions.create(body.module_id, body.name)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/sessions/{session_id}")
async def get_session(session_id: str, repo: Repository = Depends(get_repo)):
    """Get a single session by id."""
    session = repo.sessions.get(session_id)
    if not session:
        raise HTTPException(404, "Session not found")
    return session


@router.patch("/sessions/{session_id}")
async def update_session(session_id: str, body: UpdateSession, repo: Repository = Depends(get_repo)):
    """Update name, lock flag and/or card list. All or nothing is applied."""
    try:
        session = repo.sessions.update(session_id, body.name, body.locked, body.items)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not session:
        raise HTTPException(404, "Session not found")
    return session


@router.post("/sessions/{session_id}/duplicate", status_code=201)
async def duplicate_session(session_id: str, repo: Repository = Depends(get_repo)):
    """Copy a session and its cards under the name "<name> (copy)"."""
    session = repo.sessions.duplicate(session_id)
    if not session:
        raise HTTPException(404, "Session not found")
    return session


@router.delete("/sessions/{session_id}")
async def delete_session(session_id: str, guarded: bool = False, repo: Repository = Depends(get_repo)):
    """Delete a session. With guarded=true the last session of a module is kept."""
    try:
        removed = repo.sessions.remove_guarded(session_id) if guarded else repo.sessions.remove(session_id)
    except LastSessionError as e:
        raise HTTPException(409, str(e))
    if not removed:
        raise HTTPException(404, "Session not found")
    return {"ok": True}


# ── Cards ────────────────────────────────────────────────


@router.get("/sessions/{session_id}/dashboard")
async def session_dashboard(session_id: str, repo: Repository = Depends(get_repo)):
    """Positioned, resolved cards plus canvas size, ready to render."""
    session = repo.sessions.layout(session_id)
    if not session:
        raise HTTPException(404, "Session not found")
    width, height = canvas_size(session.items)
    cards = []
    modules = {}
    for item in session.items:
        if item.module_id not in modules:
            modules[item.module_id] = repo.modules.get(item.module_id)
        module = modules[item.module_id]
        if module is None:
            continue
        cards.append({"card": item, **resolve_card(module, item)})
    return {"session": session, "cards": cards, "width": width, "height": height}


@router.post("/sessions/{session_id}/cards", status_code=201)
async def add_card(session_id: str, body: AddCard, repo: Repository = Depends(get_repo)):
    """Add a card for a module section; it is packed into a free slot."""
    try:
        session = repo.sessions.add_card(session_id, body.type, body.section_id)
    except (ValueError, KeyError) as e:
        raise _card_error(e)
    if not session:
        raise HTTPException(404, "Session not found")
    return session


@router.delete("/sessions/{session_id}/cards/{card_id}")
async def remove_card(session_id: str, card_id: str, repo: Repository = Depends(get_repo)):
    """Remove a card from a session."""
    try:
        session = repo.sessions.remove_card(session_id, card_id)
    except (ValueError, KeyError) as e:
        raise _card_error(e)
    if not session:
        raise HTTPException(404, "Session not found")
    return session


@router.post("/sessions/{session_id}/cards/{card_id}/move")
async def move_card(session_id: str, card_id: str, body: MoveCard, repo: Repository = Depends(get_repo)):
    """Commit a drag: offset the card, snap to the grid, clamp at zero."""
    try:
        session = repo.sessions.move_card(session_id, card_id, body.dx, body.dy)
    except (ValueError, KeyError) as e:
        raise _card_error(e)
    if not session:
        raise HTTPException(404, "Session not found")
    return session


@router.post("/sessions/{session_id}/cards/{card_id}/shift")
async def shift_card(session_id: str, card_id: str, body: ShiftCard, repo: Repository = Depends(get_repo)):
    """Swap a card with its list neighbour (arrow reorder mode)."""
    try:
        session = repo.sessions.shift_card(session_id, card_id, body.direction)
    except (ValueError, KeyError) as e:
        raise _card_error(e)
    if not session:
        raise HTTPException(404, "Session not found")
    return session


@router.delete("/sessions/{session_id}/cards")
async def clear_cards(session_id: str, repo: Repository = Depends(get_repo)):
    """Remove every card from a session."""
    try:
        session = repo.sessions.clear_cards(session_id)
    except ValueError as e:
        raise _card_error(e)
    if not session:
        raise HTTPException(404, "Session not found")
    return session


@router.post("/sessions/{session_id}/layout")
async def layout_session(session_id: str, repo: Repository = Depends(get_repo)):
    """Assign and persist positions for cards that have none."""
    session = repo.sessions.layout(session_id)
    if not session:
        raise HTTPException(404, "Session not found")
    return session
