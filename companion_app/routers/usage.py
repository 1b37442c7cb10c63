from fastapi import APIRouter, Depends
from companion_app.core.dependencies import get_current_caller, get_entitlement_service, get_usage_limiter
from companion_app.schemas.usage import UsageStatus
from companion_app.services.entitlement import EntitlementService
from companion_app.services.usage_limiter import UsageLimiter

router = APIRouter(prefix="/usage", tags=["usage"])

@router.get("/", response_model=UsageStatus, summary="Caller's plan and remaining free messages")
async def get_usage(
    caller_id: str = Depends(get_current_caller),
    entitlements: EntitlementService = Depends(get_entitlement_service),
    limiter: UsageLimiter = Depends(get_usage_limiter),
):
    if await entitlements.is_entitled(caller_id):
        return UsageStatus(entitled=True)
    decision = limiter.peek(caller_id)
    return UsageStatus(
        entitled=False,
        quota=limiter.quota,
        used=decision.used,
        remaining=decision.remaining,
        window_resets_at=decision.window_resets_at,
    )
