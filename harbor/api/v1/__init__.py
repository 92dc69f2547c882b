"""API v1 router."""

from fastapi import APIRouter

from harbor.api.v1.containers import router as containers_router
from harbor.api.v1.files import router as files_router
from harbor.api.v1.sessions import router as sessions_router
from harbor.api.v1.versions import router as versions_router

router = APIRouter()

# Include sub-routers
router.include_router(sessions_router, prefix="/sessions", tags=["sessions"])
router.include_router(files_router, prefix="/sessions/{session_id}/files", tags=["files"])
router.include_router(
    versions_router, prefix="/sessions/{session_id}/versions", tags=["versions"]
)
router.include_router(containers_router, prefix="/containers", tags=["containers"])
