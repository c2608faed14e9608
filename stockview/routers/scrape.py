from fastapi import APIRouter, Depends, HTTPException

from stockview.dependencies import get_services
from stockview.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from stockview.schemas.scrape import (
    ConfirmResponse,
    OTPSubmitRequest,
    OTPSubmitResponse,
    PendingOTPResponse,
    ScrapePreview,
    ScrapeSession,
    ScrapeStartRequest,
    ScrapeStartResponse,
    ScrapeStatusResponse,
)
from stockview.services.container import ServiceContainer

router = APIRouter(prefix="/scrape", tags=["scrape"])


@router.post("", response_model=ScrapeStartResponse, status_code=202)
async def start_scrape(scrape_request: ScrapeStartRequest, services: ServiceContainer = Depends(get_services)):
    """Queue a scrape for an account. Poll /scrape/{job_id}/status for progress."""
    try:
        session = await services.jobs.start(scrape_request.account_name, scrape_request.broker_id)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return ScrapeStartResponse(job_id=session.id, status=session.status)


@router.get("/otp/pending", response_model=PendingOTPResponse)
async def pending_otp(services: ServiceContainer = Depends(get_services)):
    """Jobs currently paused waiting for an OTP."""
    return PendingOTPResponse(job_ids=services.otp.pending_sessions())


@router.get("/{job_id}", response_model=ScrapeSession)
async def get_scrape(job_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        return await services.sessions.get_session(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{job_id}/status", response_model=ScrapeStatusResponse)
async def get_scrape_status(job_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        session = await services.sessions.get_session(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return ScrapeStatusResponse(
        job_id=session.id,
        status=session.status,
        progress=session.progress,
        awaiting_otp=services.otp.is_pending(session.id),
        error=session.error,
        error_kind=session.error_kind,
    )


@router.get("/{job_id}/preview", response_model=ScrapePreview)
async def get_scrape_preview(job_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        session = await services.sessions.get_session(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    if session.preview is None:
        raise HTTPException(status_code=404, detail="Preview not available yet")
    return session.preview


@router.post("/{job_id}/confirm", response_model=ConfirmResponse)
async def confirm_scrape(job_id: str, services: ServiceContainer = Depends(get_services)):
    """Persist the previewed holdings into the account and every view that contains it."""
    try:
        account = await services.commit.confirm(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return ConfirmResponse(job_id=job_id, account=account)


@router.post("/{job_id}/cancel", response_model=ScrapeSession)
async def cancel_scrape(job_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        return await services.jobs.cancel(job_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{job_id}/otp", response_model=OTPSubmitResponse)
async def submit_otp(
    job_id: str,
    otp_request: OTPSubmitRequest,
    services: ServiceContainer = Depends(get_services),
):
    """Hand the OTP to a paused scrape, or hold it for the scrape's next OTP prompt."""
    try:
        accepted = await services.jobs.submit_otp(job_id, otp_request.otp)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidTransitionError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return OTPSubmitResponse(job_id=job_id, accepted=accepted, held=not accepted)
