from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from companion_app.database import Base
import uuid

class Category(Base):
    """Read-only reference data; rows are managed outside this service."""
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, index=True, default=lambda: str(uuid.uuid4()))
    name = Column(String(100), unique=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Category(id={self.id}, name='{self.name}')>"
