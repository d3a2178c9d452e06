"""Module CRUD endpoints."""

from fastapi import APIRouter, Depends, HTTPException

from fizzrix.cards import selectable_sections
from fizzrix.models import ModuleData
from fizzrix.storage import Repository

from .deps import get_repo
from .models import CreateModule, RenameModule

router = APIRouter()


@router.get("/modules")
async def list_modules(repo: Repository = Depends(get_repo)):
    """List all modules in insertion order."""
    return repo.modules.list()


@router.post("/modules", status_code=201)
async def create_module(body: CreateModule, repo: Repository = Depends(get_repo)):
    """Create a module with an empty content tree."""
    try:
        return repo.modules.add(body.name, body.category)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.get("/modules/{module_id}")
async def get_module(module_id: str, repo: Repository = Depends(get_repo)):
    """Get a single module by id."""
    module = repo.modules.get(module_id)
    if not module:
        raise HTTPException(404, "Module not found")
    return module


@router.patch("/modules/{module_id}")
async def rename_module(module_id: str, body: RenameModule, repo: Repository = Depends(get_repo)):
    """Rename a module."""
    try:
        module = repo.modules.rename(module_id, body.name)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not module:
        raise HTTPException(404, "Module not found")
    return module


@router.put("/modules/{module_id}/data")
async def replace_module_data(module_id: str, body: ModuleData, repo: Repository = Depends(get_repo)):
    """Replace the whole content tree of a module."""
    try:
        module = repo.modules.update_data(module_id, lambda _: body)
    except ValueError as e:
        raise HTTPException(400, str(e))
    if not module:
        raise HTTPException(404, "Module not found")
    return module


@router.get("/modules/{module_id}/sections")
async def list_sections(module_id: str, repo: Repository = Depends(get_repo)):
    """Sections of a module that can be added to a session as cards."""
    module = repo.modules.get(module_id)
    if not module:
        raise HTTPException(404, "Module not found")
    return selectable_sections(module)


@router.delete("/modules/{module_id}")
async def delete_module(module_id: str, repo: Repository = Depends(get_repo)):
    """Delete a module and all of its sessions."""
    if not repo.remove_module(module_id):
        raise HTTPException(404, "Module not found")
    return {"ok": True}
