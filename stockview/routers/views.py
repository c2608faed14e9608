from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List

from stockview.dependencies import get_services
from stockview.exceptions import DuplicateNameError, NotFoundError, ValidationError
from stockview.schemas.account import NameCheckResponse
from stockview.schemas.view import View, ViewCreate, ViewDetailResponse, ViewStock
from stockview.services.container import ServiceContainer

router = APIRouter(prefix="/views", tags=["views"])


@router.get("", response_model=List[View])
async def list_views(services: ServiceContainer = Depends(get_services)):
    return await services.views.list_views()


@router.post("", response_model=View, status_code=201)
async def create_view(view_data: ViewCreate, services: ServiceContainer = Depends(get_services)):
    """Create a view combining accounts; its holdings are aggregated immediately."""
    try:
        return await services.views.create_view(view_data.name, view_data.account_ids)
    except DuplicateNameError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/check-name", response_model=NameCheckResponse)
async def check_view_name(
    name: str = Query(..., min_length=1, description="View name to check"),
    services: ServiceContainer = Depends(get_services),
):
    return NameCheckResponse(name=name, is_unique=await services.views.is_name_unique(name))


@router.get("/{view_id}", response_model=ViewDetailResponse)
async def get_view(view_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        return await services.views.get_view_detail(view_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="View not found")


@router.get("/{view_id}/stocks", response_model=List[ViewStock])
async def get_view_stocks(view_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        return await services.views.get_view_stocks(view_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="View not found")


@router.delete("/{view_id}")
async def delete_view(view_id: str, services: ServiceContainer = Depends(get_services)):
    try:
        await services.views.delete_view(view_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="View not found")
    return {"status": "deleted", "id": view_id}
