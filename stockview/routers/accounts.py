from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List

from stockview.dependencies import get_services
from stockview.exceptions import DuplicateNameError, NotFoundError, ValidationError
from stockview.schemas.account import Account, AccountCreate, NameCheckResponse, Stock
from stockview.services.container import ServiceContainer

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.get("", response_model=List[Account])
async def list_accounts(services: ServiceContainer = Depends(get_services)):
    return await services.accounts.list_accounts()


@router.post("", response_model=Account, status_code=201)
async def create_account(account_data: AccountCreate, services: ServiceContainer = Depends(get_services)):
    """Create an empty account. Names are unique ignoring case."""
    try:
        return await services.accounts.create_account(account_data.name)
    except DuplicateNameError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/check-name", response_model=NameCheckResponse)
async def check_account_name(
    name: str = Query(..., min_length=1, description="Account name to check"),
    services: ServiceContainer = Depends(get_services),
):
    return NameCheckResponse(name=name, is_unique=await services.accounts.is_name_unique(name))


@router.get("/{account_id}", response_model=Account)
async def get_account(account_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        return await services.accounts.get_account(account_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")


@router.get("/{account_id}/stocks", response_model=List[Stock])
async def get_account_stocks(account_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        return await services.accounts.get_account_stocks(account_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")


@router.delete("/{account_id}")
async def delete_account(account_id: str, services: ServiceContainer = Depends(get_services)):
    """Delete an account with its stocks; views that included it are regenerated."""
    try:
        await services.accounts.delete_account(account_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Account not found")
    return {"status": "deleted", "id": account_id}
