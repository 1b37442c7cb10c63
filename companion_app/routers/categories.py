from typing import List
from fastapi import APIRouter, Depends
from companion_app.core.dependencies import get_companion_service, get_current_caller
from companion_app.schemas.companion import CategorySchema
from companion_app.services.companions import CompanionService

router = APIRouter(prefix="/categories", tags=["categories"])

@router.get("/", response_model=List[CategorySchema], summary="List categories")
async def list_categories(
    caller_id: str = Depends(get_current_caller),
    companion_svc: CompanionService = Depends(get_companion_service),
):
    return await companion_svc.list_categories()
