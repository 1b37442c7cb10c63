import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from companion_app.core.exceptions import StorageError
from companion_app.models.subscription import UserSubscription
from companion_app.utils.time_utils import Clock, ensure_utc, utcnow

logger = logging.getLogger(__name__)

__all__ = ["EntitlementService"]

class EntitlementService:
    """
    Answers "does this caller hold an active paid entitlement" from the
    subscription record kept current by the entitlement webhook.

    State is read on every call and never cached, so an upgrade or downgrade
    takes effect on the caller's next request.
    """
    def __init__(self, db: Session, grace_seconds: int = 0, clock: Clock = utcnow):
        self.db = db
        self.grace = timedelta(seconds=grace_seconds)
        self._clock = clock

    async def is_entitled(self, caller_id: str) -> bool:
        try:
            subscription = self.db.get(UserSubscription, caller_id)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error reading entitlement for caller {caller_id}: {e}", exc_info=True)
            raise StorageError("entitlement read", str(e)) from e

        if subscription is None or subscription.current_period_end is None:
            return False
        entitled = ensure_utc(subscription.current_period_end) + self.grace > self._clock()
        logger.debug(f"Caller {caller_id} entitled={entitled} (period end {subscription.current_period_end})")
        return entitled

    async def apply_event(self, caller_id: str, current_period_end: Optional[datetime]) -> UserSubscription:
        """Records an entitlement change. A null period end revokes the entitlement."""
        period_end = ensure_utc(current_period_end)
        try:
            subscription = self.db.get(UserSubscription, caller_id)
            if subscription is None:
                subscription = UserSubscription(caller_id=caller_id, current_period_end=period_end)
                self.db.add(subscription)
            else:
                subscription.current_period_end = period_end
            self.db.commit()
            self.db.refresh(subscription)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Database error applying entitlement event for caller {caller_id}: {e}", exc_info=True)
            raise StorageError("entitlement write", str(e)) from e

        logger.info(f"Entitlement for caller {caller_id} set to period end {period_end}")
        return subscription
