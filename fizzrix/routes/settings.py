"""Health check, settings, and backup endpoints."""

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse

from fizzrix.errors import BackupError
from fizzrix.storage import Repository
from fizzrix.storage.backup import backup_filename, export_backup, import_backup, parse_backup

from .deps import get_repo
from .models import ImportResult

router = APIRouter()


@router.get("/health")
async def health():
    """Health check."""
    return {"status": "ok"}


@router.get("/settings")
async def get_settings(repo: Repository = Depends(get_repo)):
    """Get UI settings (defaults merged with stored values)."""
    return repo.settings.get()


@router.patch("/settings")
async def update_settings(body: dict, repo: Repository = Depends(get_repo)):
    """Shallow-merge settings."""
    try:
        return repo.settings.set(body)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.put("/settings")
async def replace_settings(body: dict, repo: Repository = Depends(get_repo)):
    """Replace settings; missing keys fall back to defaults."""
    try:
        return repo.settings.set_all(body)
    except ValueError as e:
        raise HTTPException(400, str(e))


@router.post("/settings/reset")
async def reset_settings(repo: Repository = Depends(get_repo)):
    """Restore default settings."""
    return repo.settings.reset()


@router.get("/backup")
async def download_backup(repo: Repository = Depends(get_repo)):
    """Export settings, modules and sessions as a downloadable JSON file."""
    return JSONResponse(
        export_backup(repo),
        headers={"Content-Disposition": f'attachment; filename="{backup_filename()}"'},
    )


@router.post("/backup/import", response_model=ImportResult)
async def upload_backup(request: Request, mode: str = "replace", repo: Repository = Depends(get_repo)):
    """Import a backup file (replace or merge). Invalid files change nothing."""
    try:
        payload = parse_backup(await request.body())
        return import_backup(repo, payload, mode)
    except BackupError as e:
        raise HTTPException(400, str(e))
