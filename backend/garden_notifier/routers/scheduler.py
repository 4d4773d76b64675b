"""Scheduler trigger API endpoints, called by an external cron or Cloud Scheduler."""
import hmac
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from ..config import settings
from ..exceptions import ScanError
from ..schemas.scheduler import SchedulerRunRequest, SchedulerRunResponse, SchedulerStatusResponse
from ..services.pipeline import NotificationPipeline
from .dependencies import get_pipeline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/scheduler", tags=["scheduler"])


async def verify_scheduler_token(
    request: Request,
    x_scheduler_token: Optional[str] = Header(None),
):
    """Check the caller's token against SCHEDULER_AUTH_TOKEN.

    The token is read from the X-Scheduler-Token header, falling back to a
    ``scheduler_token`` field in the JSON body. An empty configured token
    disables the check.
    """
    expected = settings.scheduler_auth_token
    if not expected:
        return

    token = x_scheduler_token
    if not token:
        try:
            token = SchedulerRunRequest.model_validate(await request.json()).scheduler_token
        except (ValueError, ValidationError):
            token = None

    # Bytes, since compare_digest rejects non-ASCII str
    if not token or not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        logger.warning(f"Scheduler request rejected from {request.client.host if request.client else 'unknown'}")
        raise HTTPException(status_code=401, detail="Invalid scheduler token")


@router.post(
    "/notifications",
    response_model=SchedulerRunResponse,
    dependencies=[Depends(verify_scheduler_token)],
)
async def process_scheduled_notifications(pipeline: NotificationPipeline = Depends(get_pipeline)):
    """Run the notification pipeline once and return its summary."""
    try:
        result = await pipeline.run_scheduled_processing()
    except ScanError as e:
        logger.error(f"Scheduled notification run aborted: {e}")
        return JSONResponse(
            status_code=500,
            content=SchedulerRunResponse(
                success=False,
                message=f"Error while processing notifications: {e}",
            ).model_dump(),
        )

    message = "Processing completed"
    if result.cancelled:
        message = "Processing stopped at the run deadline"
    return SchedulerRunResponse(success=True, message=message, **result.to_dict())


@router.get(
    "/status",
    response_model=SchedulerStatusResponse,
    dependencies=[Depends(verify_scheduler_token)],
)
async def get_scheduler_status():
    """Health probe for the external scheduler."""
    return SchedulerStatusResponse(status="healthy", service="scheduler")
