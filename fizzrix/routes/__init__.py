"""FastAPI API endpoints under /api.

Endpoint groups: health + settings + backup, modules, sessions (with their
cards). Sessions are top-level resources that reference a module by
module_id; a module's sessions are listed with /api/sessions?module_id=...

Every handler takes the Repository via the get_repo dependency.
"""

from fastapi import APIRouter

from .modules import router as modules_router
from .sessions import router as sessions_router
from .settings import router as settings_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(modules_router)
router.include_router(sessions_router)
