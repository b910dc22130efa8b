"""
FastAPI dependencies. Injected into route handlers.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..services import realtime
from .auth import AuthenticatedUser, get_current_user
from .database import get_session_factory
from .storage import StorageBackend


async def get_db() -> AsyncSession:
    """Yields an async DB session per request. Realtime events go out after commit."""
    async with get_session_factory()() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            realtime.discard_pending(session)
            raise
        await realtime.publish_pending(session)


async def get_user(
    x_user_id: str = Header(default=""),
    x_user: str = Header(default=""),
) -> AuthenticatedUser:
    """
    Resolve the caller from the x-user-id (or legacy x-user) header.
    Returns dev user if FF_USE_AUTH=false.
    """
    try:
        return await get_current_user(x_user_id or x_user)
    except PermissionError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
        )


def get_orchestrator(request: Request):
    """The ReplyOrchestrator built at startup."""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reply pipeline not ready",
        )
    return orchestrator


def get_job_service(request: Request):
    """The legacy job status service built at startup."""
    service = getattr(request.app.state, "job_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Job service not ready",
        )
    return service


def get_storage_dep(request: Request) -> StorageBackend:
    """Returns the storage backend chosen at startup (S3 or local)."""
    storage: Optional[StorageBackend] = getattr(request.app.state, "storage", None)
    if storage is None:
        from .storage import get_storage
        storage = get_storage()
    return storage
