"""
Job status API (single-job replies).

GET /v1/job/{job_id} — Poll a lip-sync render; persists the clip when it finishes
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.auth import AuthenticatedUser
from ..core.dependencies import get_db, get_job_service, get_user
from ..orchestrator.jobs import JobNotFoundError, JobStatusService
from ..services.lipsync import LipsyncTransportError
from .schemas import CamelModel

logger = logging.getLogger(__name__)

jobs_router = APIRouter(tags=["jobs"])


class JobStatusOut(CamelModel):
    status: str
    mp4_url: Optional[str] = None
    message_id: Optional[str] = None
    error: Optional[str] = None


@jobs_router.get("/job/{job_id}", response_model=JobStatusOut)
async def job_status(
    job_id: str,
    user: AuthenticatedUser = Depends(get_user),
    db: AsyncSession = Depends(get_db),
    service: JobStatusService = Depends(get_job_service),
):
    """Status of a render job, in the queued/running/done/error vocabulary."""
    try:
        result = await service.resolve(db, job_id, user_id=user.user_id)
    except JobNotFoundError:
        raise HTTPException(status_code=404, detail="Job not found")
    except LipsyncTransportError as e:
        logger.warning("Job %s poll could not reach vendor: %s", job_id, e)
        raise HTTPException(status_code=502, detail="Lip-sync vendor unreachable")
    except Exception:
        logger.exception("Job status handler failed (job=%s)", job_id)
        raise HTTPException(status_code=500, detail="Failed to poll job")

    return JobStatusOut(
        status=result.status.value,
        mp4_url=result.video_url,
        message_id=result.message_id,
        error=result.error,
    )
