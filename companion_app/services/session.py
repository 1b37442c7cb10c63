import asyncio
import logging
from typing import Callable, List, Sequence

from companion_app.core.exceptions import GenerationFailed, QuotaExceeded
from companion_app.models.message import Message
from companion_app.schemas.chat import ChatTurn
from companion_app.services.companions import CompanionService
from companion_app.services.conversation import ConversationStore
from companion_app.services.entitlement import EntitlementService
from companion_app.services.llm_service import LlmService
from companion_app.services.usage_limiter import UsageLimiter
from companion_app.utils.prompting import build_persona_prompt, parse_seed_turns
from companion_app.utils.tokenizer_service import TokenizerService

DEFAULT_HISTORY_WINDOW_TURNS = 10
DEFAULT_MAX_CONTEXT_TOKENS = 3500
DEFAULT_COMPLETION_TIMEOUT_SECONDS = 60.0

logger = logging.getLogger(__name__)


def select_history_window(
    messages: Sequence[Message],
    max_turns: int,
    token_budget: int,
    count_tokens: Callable[[str], int],
) -> List[ChatTurn]:
    """
    Picks the trailing slice of a conversation to send to the model.

    At most ``max_turns`` turns (two messages each) are kept, then the oldest
    are dropped until the slice fits ``token_budget``. The slice always starts
    on a user message, so a reply is never sent without the message it answered.
    The newest message is always kept, even if it alone is over budget.
    """
    if not messages:
        return []
    window = list(messages[-max_turns * 2:]) if max_turns > 0 else [messages[-1]]

    total = sum(count_tokens(m.content) for m in window)
    while len(window) > 1 and (total > token_budget or window[0].role != "user"):
        dropped = window.pop(0)
        total -= count_tokens(dropped.content)

    return [ChatTurn(role=m.role, content=m.content) for m in window]


class SessionOrchestrator:
    """
    Coordinates one conversational exchange between a caller and a companion.

    Holds no lock of its own: per-conversation ordering comes from the
    conversation store's sequence numbers and per-caller quota atomicity from
    the usage limiter's transaction, so unrelated conversations run in parallel.
    """
    def __init__(
        self,
        companion_svc: CompanionService,
        store: ConversationStore,
        entitlements: EntitlementService,
        limiter: UsageLimiter,
        llm_service: LlmService,
        tokenizer_svc: TokenizerService,
        history_window_turns: int = DEFAULT_HISTORY_WINDOW_TURNS,
        max_context_tokens: int = DEFAULT_MAX_CONTEXT_TOKENS,
        completion_timeout: float = DEFAULT_COMPLETION_TIMEOUT_SECONDS,
    ):
        self.companion_svc = companion_svc
        self.store = store
        self.entitlements = entitlements
        self.limiter = limiter
        self.llm_service = llm_service
        self.tokenizer_svc = tokenizer_svc
        self.history_window_turns = history_window_turns
        self.max_context_tokens = max_context_tokens
        self.completion_timeout = completion_timeout

    async def get_conversation(self, caller_id: str, companion_id: str) -> List[Message]:
        """The caller's messages with this companion, oldest first. Raises NotFound for an unknown companion."""
        await self.companion_svc.get_companion(companion_id)
        return self.store.list_messages(companion_id, caller_id)

    async def reset_conversation(self, caller_id: str, companion_id: str) -> int:
        await self.companion_svc.get_companion(companion_id)
        return self.store.reset(companion_id, caller_id)

    async def send_message(self, caller_id: str, companion_id: str, text: str) -> List[Message]:
        """
        Records the caller's message, asks the model for the companion's reply and records it.

        If the model fails the user message stays persisted with no reply after it
        and GenerationFailed is raised; resending is a new message, not a replay.
        If the request is cancelled while the model is working, no reply is written.

        Returns:
            The full updated conversation, oldest first.

        Raises:
            NotFound: Unknown companion.
            QuotaExceeded: Non-entitled caller is out of free messages; nothing is written.
            GenerationFailed: The model failed, timed out or returned nothing.
            StorageError: A read or write failed.
        """
        companion = await self.companion_svc.get_companion(companion_id)

        if not await self.entitlements.is_entitled(caller_id):
            decision = self.limiter.check_and_increment(caller_id)
            if not decision.allowed:
                raise QuotaExceeded(caller_id, self.limiter.quota, decision.window_resets_at)

        user_message = self.store.append(companion_id, caller_id, "user", text)
        user_seq = user_message.seq

        # Messages a concurrent call appended after ours belong to that call's context
        history = [m for m in self.store.list_messages(companion_id, caller_id) if m.seq <= user_seq]

        seed_turns = parse_seed_turns(companion.seed)
        persona = build_persona_prompt(
            companion.name,
            companion.instructions,
            example_dialogue=None if seed_turns else companion.seed,
        )
        count_tokens = self.tokenizer_svc.count_tokens
        token_budget = self.max_context_tokens - count_tokens(persona) - sum(count_tokens(t.content) for t in seed_turns)
        history_turns = select_history_window(history, self.history_window_turns, token_budget, count_tokens)
        logger.info(
            f"Companion {companion_id}, caller {caller_id}: sending {len(history_turns)}/{len(history)} "
            f"history messages (budget {token_budget} tokens)"
        )
        # Release the connection before waiting on the model
        self.store.end_read()

        try:
            reply = await asyncio.wait_for(
                self.llm_service.complete(persona, seed_turns, history_turns),
                timeout=self.completion_timeout,
            )
        except asyncio.TimeoutError as e:
            logger.error(f"Completion timed out after {self.completion_timeout}s for companion {companion_id}, caller {caller_id}")
            raise GenerationFailed(companion_id, "timeout") from e
        except Exception as e:
            logger.error(f"Completion failed for companion {companion_id}, caller {caller_id}: {e}", exc_info=True)
            raise GenerationFailed(companion_id, str(e)) from e

        reply = (reply or "").strip()
        if not reply:
            logger.warning(f"Empty completion for companion {companion_id}, caller {caller_id}")
            raise GenerationFailed(companion_id, "empty completion")

        self.store.append(companion_id, caller_id, "assistant", reply)
        return self.store.list_messages(companion_id, caller_id)
