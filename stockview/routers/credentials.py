from fastapi import APIRouter, Depends, HTTPException
from typing import List

from stockview.dependencies import get_services
from stockview.exceptions import DuplicateNameError, NotFoundError
from stockview.schemas.credentials import CredentialSummary, CredentialUpdate, StoredCredential
from stockview.services.container import ServiceContainer

router = APIRouter(prefix="/credentials", tags=["credentials"])


@router.get("", response_model=List[CredentialSummary])
async def list_credentials(services: ServiceContainer = Depends(get_services)):
    """Stored broker logins. Passwords and PINs are never returned."""
    return [CredentialSummary.from_stored(c) for c in await services.credentials.list_credentials()]


@router.post("", response_model=CredentialSummary, status_code=201)
async def create_credentials(credential: StoredCredential, services: ServiceContainer = Depends(get_services)):
    try:
        saved = await services.credentials.create_credentials(credential)
    except DuplicateNameError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return CredentialSummary.from_stored(saved)


@router.get("/{account_name}", response_model=CredentialSummary)
async def get_credentials(account_name: str, services: ServiceContainer = Depends(get_services)):
    stored = await services.credentials.get_stored(account_name)
    if stored is None:
        raise HTTPException(status_code=404, detail="Credentials not found")
    return CredentialSummary.from_stored(stored)


@router.put("/{account_name}", response_model=CredentialSummary)
async def update_credentials(
    account_name: str,
    changes: CredentialUpdate,
    services: ServiceContainer = Depends(get_services),
):
    try:
        updated = await services.credentials.update_credentials(account_name, changes)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Credentials not found")
    return CredentialSummary.from_stored(updated)


@router.delete("/{account_name}")
async def delete_credentials(account_name: str, services: ServiceContainer = Depends(get_services)):
    if not await services.credentials.delete_credentials(account_name):
        raise HTTPException(status_code=404, detail="Credentials not found")
    return {"status": "deleted", "account_name": account_name}
