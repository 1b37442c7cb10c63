from sqlalchemy import Column, String, DateTime
from companion_app.database import Base
from companion_app.utils.time_utils import utcnow

class UserSubscription(Base):
    """Entitlement state, written only by the entitlement webhook."""
    __tablename__ = "user_subscriptions"

    caller_id = Column(String(255), primary_key=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<UserSubscription(caller_id='{self.caller_id}', current_period_end={self.current_period_end})>"
