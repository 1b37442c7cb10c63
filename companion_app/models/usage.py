from sqlalchemy import Column, Integer, String, DateTime
from companion_app.database import Base

class UsageRecord(Base):
    """Free-tier message counter for one caller. Created on the caller's first message."""
    __tablename__ = "usage_records"

    caller_id = Column(String(255), primary_key=True)
    message_count = Column(Integer, nullable=False, default=0)
    window_start = Column(DateTime(timezone=True), nullable=False)

    def __repr__(self):
        return f"<UsageRecord(caller_id='{self.caller_id}', count={self.message_count}, window_start={self.window_start})>"
