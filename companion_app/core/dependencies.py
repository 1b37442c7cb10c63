import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from companion_app.core.config import Settings, settings
from companion_app.core.exceptions import AuthenticationRequired
from companion_app.database import get_db
from companion_app.services.companions import CompanionService
from companion_app.services.conversation import ConversationStore
from companion_app.services.entitlement import EntitlementService
from companion_app.services.identity import GoogleIdentityOracle
from companion_app.services.llm_service import LlmService
from companion_app.services.session import SessionOrchestrator
from companion_app.services.usage_limiter import UsageLimiter
from companion_app.utils.tokenizer_service import TokenizerService

logger = logging.getLogger(__name__)

# --- Caching Instances ---
# Stateless clients are built once per process; everything holding a DB session is built per request.
_llm_service_instance: Optional[LlmService] = None
_tokenizer_service_instance: Optional[TokenizerService] = None
_identity_oracle_instance: Optional[GoogleIdentityOracle] = None
# --- End Caching Instances ---

def get_settings() -> Settings:
    return settings

def get_tokenizer_service(settings: Settings = Depends(get_settings)) -> TokenizerService:
    global _tokenizer_service_instance
    if _tokenizer_service_instance is None:
        _tokenizer_service_instance = TokenizerService(settings.TOKENIZER_ENCODING)
    return _tokenizer_service_instance

def get_llm_service(settings: Settings = Depends(get_settings)) -> LlmService:
    """
    Provides the process-wide LlmService, creating it on first use.

    Raises:
        HTTPException: 503 if the Google API key is not configured or the client cannot start.
    """
    global _llm_service_instance
    if _llm_service_instance is None:
        if not settings.GOOGLE_API_KEY or not settings.MODEL_NAME:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="LLM configuration is missing in environment variables."
            )
        try:
            _llm_service_instance = LlmService(api_key=settings.GOOGLE_API_KEY, model=settings.MODEL_NAME)
        except ConnectionError as e:
            logger.error(f"Could not initialize LlmService: {e}", exc_info=True)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail=f"Could not initialize LLM service: {e}"
            )
    return _llm_service_instance

def get_identity_oracle(settings: Settings = Depends(get_settings)) -> GoogleIdentityOracle:
    global _identity_oracle_instance
    if _identity_oracle_instance is None:
        if not settings.GOOGLE_CLIENT_ID:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Identity configuration (GOOGLE_CLIENT_ID) is missing in environment variables."
            )
        _identity_oracle_instance = GoogleIdentityOracle(client_id=settings.GOOGLE_CLIENT_ID)
    return _identity_oracle_instance

async def get_current_caller(
    authorization: Optional[str] = Header(default=None),
    identity: GoogleIdentityOracle = Depends(get_identity_oracle),
) -> str:
    """Resolves the caller id from the bearer token. Anonymous callers are refused."""
    caller_id = await identity.resolve_caller(authorization)
    if not caller_id:
        raise AuthenticationRequired()
    return caller_id

def get_companion_service(db: Session = Depends(get_db)) -> CompanionService:
    return CompanionService(db=db)

def get_conversation_store(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> ConversationStore:
    return ConversationStore(db=db, max_append_attempts=settings.MESSAGE_APPEND_ATTEMPTS)

def get_entitlement_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> EntitlementService:
    return EntitlementService(db=db, grace_seconds=settings.ENTITLEMENT_GRACE_SECONDS)

def get_usage_limiter(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> UsageLimiter:
    return UsageLimiter(
        db=db,
        quota=settings.FREE_MESSAGE_QUOTA,
        window_seconds=settings.FREE_QUOTA_WINDOW_SECONDS,
    )

def get_session_orchestrator(
    companion_svc: CompanionService = Depends(get_companion_service),
    store: ConversationStore = Depends(get_conversation_store),
    entitlements: EntitlementService = Depends(get_entitlement_service),
    limiter: UsageLimiter = Depends(get_usage_limiter),
    llm_service: LlmService = Depends(get_llm_service),
    tokenizer_svc: TokenizerService = Depends(get_tokenizer_service),
    settings: Settings = Depends(get_settings),
) -> SessionOrchestrator:
    """
    Provides a SessionOrchestrator wired to this request's database session.
    """
    return SessionOrchestrator(
        companion_svc=companion_svc,
        store=store,
        entitlements=entitlements,
        limiter=limiter,
        llm_service=llm_service,
        tokenizer_svc=tokenizer_svc,
        history_window_turns=settings.HISTORY_WINDOW_TURNS,
        max_context_tokens=settings.MAX_CONTEXT_TOKENS,
        completion_timeout=settings.COMPLETION_TIMEOUT_SECONDS,
    )
