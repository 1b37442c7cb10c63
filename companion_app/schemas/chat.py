from typing import List, Literal
from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime

Role = Literal["user", "assistant"]

class ChatTurn(BaseModel):
    """A role/content pair as handed to the completion collaborator."""
    role: Role
    content: str

class SendMessageRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=4000, examples=["Hi Ada, what are you working on?"])

class MessageSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    seq: int
    role: Role
    content: str
    created_at: datetime

class ConversationResponse(BaseModel):
    companion_id: str
    messages: List[MessageSchema]
