import hmac
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from companion_app.core.config import Settings
from companion_app.core.dependencies import get_entitlement_service, get_settings
from companion_app.schemas.usage import EntitlementEvent
from companion_app.services.entitlement import EntitlementService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

@router.post("/entitlement", summary="Entitlement change from the billing provider")
async def entitlement_webhook(
    event: EntitlementEvent,
    x_webhook_secret: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    entitlements: EntitlementService = Depends(get_entitlement_service),
):
    """
    Grants (period end set) or revokes (period end null) a caller's entitlement.
    Authenticated with the shared secret in the ``X-Webhook-Secret`` header.
    """
    if not settings.ENTITLEMENT_WEBHOOK_SECRET:
        logger.error("Entitlement webhook called but ENTITLEMENT_WEBHOOK_SECRET is not configured.")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Webhook not configured.")
    if not x_webhook_secret or not hmac.compare_digest(x_webhook_secret, settings.ENTITLEMENT_WEBHOOK_SECRET):
        logger.warning(f"Rejected entitlement webhook for caller {event.caller_id}: bad secret")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook secret.")

    subscription = await entitlements.apply_event(event.caller_id, event.current_period_end)
    return {"status": "success", "caller_id": subscription.caller_id}
