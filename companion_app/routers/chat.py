from fastapi import APIRouter, Depends, Response, status
import logging
from companion_app.core.dependencies import get_current_caller, get_session_orchestrator
from companion_app.schemas.chat import ConversationResponse, MessageSchema, SendMessageRequest
from companion_app.services.session import SessionOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chat", tags=["chat"])

def _to_response(companion_id: str, messages) -> ConversationResponse:
    return ConversationResponse(
        companion_id=companion_id,
        messages=[MessageSchema.model_validate(m) for m in messages],
    )

@router.get("/{companion_id}", response_model=ConversationResponse, summary="Conversation with a companion")
async def get_conversation(
    companion_id: str,
    caller_id: str = Depends(get_current_caller),
    orchestrator: SessionOrchestrator = Depends(get_session_orchestrator),
):
    """
    Returns the caller's own messages with this companion, oldest first.
    """
    messages = await orchestrator.get_conversation(caller_id, companion_id)
    return _to_response(companion_id, messages)

@router.post("/{companion_id}", response_model=ConversationResponse, summary="Send a message to a companion")
async def send_message(
    companion_id: str,
    request: SendMessageRequest,
    caller_id: str = Depends(get_current_caller),
    orchestrator: SessionOrchestrator = Depends(get_session_orchestrator),
):
    """
    Appends the caller's message, generates the companion's reply and returns the updated conversation.
    """
    logger.info(f"Received message from caller {caller_id} for companion {companion_id} ({len(request.text)} chars)")
    messages = await orchestrator.send_message(caller_id, companion_id, request.text)
    return _to_response(companion_id, messages)

@router.delete("/{companion_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Reset a conversation")
async def reset_conversation(
    companion_id: str,
    caller_id: str = Depends(get_current_caller),
    orchestrator: SessionOrchestrator = Depends(get_session_orchestrator),
):
    await orchestrator.reset_conversation(caller_id, companion_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
