# companion_app/models/message.py
import uuid
from sqlalchemy import Column, Index, Integer, String, TEXT, DateTime, CheckConstraint, ForeignKey, UniqueConstraint
from companion_app.database import Base

class Message(Base):
    """
    One turn of a conversation between a caller and a companion.

    Rows are append-only. ``seq`` is assigned by the conversation store and is
    strictly increasing within one (companion_id, caller_id) pair; the unique
    constraint makes a concurrent writer that computed the same next value fail
    instead of silently interleaving.
    """
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    companion_id = Column(String(36), ForeignKey("companions.id", ondelete="CASCADE"), nullable=False)
    caller_id = Column(String(255), nullable=False)
    seq = Column(Integer, nullable=False)
    role = Column(String(10), nullable=False) # 'user', 'assistant'
    content = Column(TEXT, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        CheckConstraint("role IN ('user', 'assistant')", name="message_role_check"),
        UniqueConstraint("companion_id", "caller_id", "seq", name="uq_messages_pair_seq"),
        Index("idx_messages_pair_seq", "companion_id", "caller_id", "seq"),
    )

    def __repr__(self):
        return f"<Message(id={self.id}, companion_id={self.companion_id}, caller_id='{self.caller_id}', seq={self.seq}, role='{self.role}')>"
