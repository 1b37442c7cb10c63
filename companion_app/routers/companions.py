import logging
from typing import Any, Dict, List, Optional
from fastapi import APIRouter, Body, Depends, HTTPException, Query, Response, status
from companion_app.core.dependencies import get_companion_service, get_current_caller
from companion_app.core.exceptions import CompanionAppError
from companion_app.schemas.companion import (
    CompanionCreateUpdateResponseSchema,
    CompanionResponseSchema,
    CompanionSummarySchema,
)
from companion_app.services.companions import CompanionService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/companions", tags=["companions"])


@router.post(
    "/",
    response_model=CompanionCreateUpdateResponseSchema,
    status_code=status.HTTP_201_CREATED,
)
async def create_companion(
    definition: Dict[str, Any] = Body(...),
    caller_id: str = Depends(get_current_caller),
    companion_svc: CompanionService = Depends(get_companion_service),
):
    """
    Create a companion owned by the caller.
    - **name**, **description**, **image_ref**, **category_id**: required.
    - **instructions**, **seed**: at least 200 characters each.
    """
    try:
        companion = await companion_svc.create_or_update(caller_id, definition)
        return CompanionCreateUpdateResponseSchema(
            status="success",
            message=f"Companion '{companion.name}' created successfully",
            companion_id=companion.id,
        )
    except CompanionAppError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error creating companion: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal server error occurred while creating the companion."
        )

@router.get(
    "/",
    response_model=List[CompanionSummarySchema],
    summary="List companions"
)
async def list_companions(
    category_id: Optional[str] = None,
    name: Optional[str] = None,
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=50, ge=1, le=200),
    caller_id: str = Depends(get_current_caller),
    companion_svc: CompanionService = Depends(get_companion_service),
):
    """
    List companions newest first, optionally filtered by category and name fragment.
    """
    return await companion_svc.list_companions(category_id=category_id, name=name, skip=skip, limit=limit)

@router.get(
    "/{companion_id}",
    response_model=CompanionResponseSchema,
    summary="Get a companion by ID"
)
async def read_companion(
    companion_id: str,
    caller_id: str = Depends(get_current_caller),
    companion_svc: CompanionService = Depends(get_companion_service),
):
    return await companion_svc.get_companion(companion_id)

@router.patch(
    "/{companion_id}",
    response_model=CompanionCreateUpdateResponseSchema,
    summary="Update a companion"
)
async def update_companion(
    companion_id: str,
    definition: Dict[str, Any] = Body(...),
    caller_id: str = Depends(get_current_caller),
    companion_svc: CompanionService = Depends(get_companion_service),
):
    """
    Replace every authoring field of a companion the caller owns.
    The full definition is required; id, owner and creation time are kept.
    """
    try:
        companion = await companion_svc.create_or_update(caller_id, definition, existing_id=companion_id)
        return CompanionCreateUpdateResponseSchema(
            status="success",
            message=f"Companion '{companion.name}' updated successfully",
            companion_id=companion.id,
        )
    except CompanionAppError:
        raise
    except Exception as e:
        logger.error(f"Unexpected error updating companion {companion_id}: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal server error occurred while updating the companion."
        )

@router.delete(
    "/{companion_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a companion"
)
async def delete_companion(
    companion_id: str,
    caller_id: str = Depends(get_current_caller),
    companion_svc: CompanionService = Depends(get_companion_service),
):
    """
    Delete a companion the caller owns, along with every conversation held with it.
    """
    await companion_svc.delete_companion(caller_id, companion_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
