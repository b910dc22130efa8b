"""
Main API router. Mounts all sub-routers.
"""

from fastapi import APIRouter, Request

from ..core.flags import get_flags

router = APIRouter()


# ── Health (no auth) ─────────────────────────────────────────────────

@router.get("/health")
async def health():
    return {"status": "ok", "service": "basespeak"}


# ── Vendor status (no auth) ──────────────────────────────────────────

@router.get("/status")
async def vendor_status(request: Request):
    """Which upstream vendors are configured. False means that stage runs on its fallback."""
    from ..core.config import get_settings

    settings = get_settings()
    flags = get_flags()
    orchestrator = getattr(request.app.state, "orchestrator", None)

    def configured(component) -> bool:
        return bool(component is not None and component.configured)

    return {
        "storage": bool(settings.aws_access_key_id) if flags.use_s3 else True,
        "llm": configured(getattr(orchestrator, "generator", None)),
        "speech": configured(getattr(orchestrator, "synthesizer", None)),
        "lipsync": flags.use_lipsync and configured(getattr(orchestrator, "lipsync", None)),
    }


# ── V1 routes ────────────────────────────────────────────────────────

from .avatars import avatars_router
from .files import files_router
from .jobs import jobs_router
from .reply import reply_router

# Identity is resolved per route through get_user; /v1/files stays public.
router.include_router(reply_router, prefix="/v1")
router.include_router(jobs_router, prefix="/v1")
router.include_router(avatars_router, prefix="/v1")
router.include_router(files_router, prefix="/v1")
