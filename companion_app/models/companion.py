from sqlalchemy import Column, String, Text, DateTime, ForeignKey
from companion_app.database import Base
from companion_app.utils.time_utils import utcnow
import uuid

class Companion(Base):
    __tablename__ = "companions"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String(255), nullable=False, index=True)
    name = Column(Text, nullable=False, index=True)
    description = Column(Text, nullable=False)
    instructions = Column(Text, nullable=False)
    seed = Column(Text, nullable=False)
    image_ref = Column(Text, nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Companion(id={self.id}, name='{self.name}', owner_id='{self.owner_id}')>"
