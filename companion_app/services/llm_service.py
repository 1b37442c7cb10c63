import asyncio
import logging
from typing import List, Optional

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from companion_app.core.exceptions import CompletionError
from companion_app.schemas.chat import ChatTurn

logger = logging.getLogger(__name__)

__all__ = ['LlmService']

# Gemini names the assistant side of a conversation "model"
_GEMINI_ROLES = {"user": "user", "assistant": "model"}

class LlmService:
    """
    Completion collaborator backed by Google's Generative AI models.

    Given a persona directive, the companion's seed dialogue and the trailing
    conversation, produces the companion's next utterance. One call, one
    complete reply: nothing is streamed, so a caller never observes partial text.
    """
    def __init__(self, api_key: str, model: str):
        """
        Initializes the LlmService.

        Args:
            api_key (str): Google API Key for authenticating with the Google GenAI service.
            model (str): Model name used for every completion.

        Raises:
            ConnectionError: If initialization of Google GenAI Client fails.
        """
        self.model = model
        logger.info(f"Initializing LlmService with model='{self.model}'")

        try:
            self.client = genai.Client(api_key=api_key)
        except Exception as e:
            logger.error(f"Failed to initialize Google GenAI Client: {e}", exc_info=True)
            raise ConnectionError(f"Failed to initialize Google GenAI Client: {e}") from e

    @staticmethod
    def _build_contents(seed_turns: List[ChatTurn], history_turns: List[ChatTurn]) -> List[types.Content]:
        """Seed dialogue first, then the live history, with same-role neighbours merged."""
        merged: List[ChatTurn] = []
        for turn in [*seed_turns, *history_turns]:
            if merged and merged[-1].role == turn.role:
                merged[-1] = ChatTurn(role=turn.role, content=f"{merged[-1].content}\n\n{turn.content}")
            else:
                merged.append(turn)
        return [
            types.Content(role=_GEMINI_ROLES[turn.role], parts=[types.Part(text=turn.content)])
            for turn in merged
        ]

    @staticmethod
    def _extract_text(response) -> Optional[str]:
        text_response = None
        if getattr(response, 'text', None):
            text_response = response.text
        elif getattr(response, 'candidates', None):
            candidate = response.candidates[0]
            content = getattr(candidate, 'content', None)
            if content and getattr(content, 'parts', None):
                text_response = getattr(content.parts[0], 'text', None)
        return text_response

    async def complete(
        self,
        persona: str,
        seed_turns: List[ChatTurn],
        history_turns: List[ChatTurn],
    ) -> str:
        """
        Generates the companion's reply.

        Args:
            persona: System directive (framing plus the companion's instructions).
            seed_turns: Example dialogue replayed ahead of the real conversation.
            history_turns: Trailing conversation, ending with the caller's new message.

        Returns:
            The reply text, stripped.

        Raises:
            CompletionError: The API failed or returned no text.
        """
        contents = self._build_contents(seed_turns, history_turns)
        logger.info(f"Requesting completion with model {self.model}: {len(seed_turns)} seed turns, {len(history_turns)} history turns")
        logger.debug(f"Persona for completion:\n{persona}")

        try:
            # Use asyncio.to_thread for the blocking SDK call
            response = await asyncio.to_thread(
                self.client.models.generate_content,
                model=self.model,
                contents=contents,
                config=types.GenerateContentConfig(system_instruction=persona),
            )
        except genai_errors.APIError as api_err:
            logger.error(f"Google API Error during generation with {self.model}: {api_err}", exc_info=True)
            raise CompletionError(f"LLM API Error: {api_err}") from api_err
        except Exception as e:
            logger.error(f"Unexpected error during generation with {self.model}: {e}", exc_info=True)
            raise CompletionError(f"LLM call failed: {e}") from e

        text_response = self._extract_text(response)
        if not text_response or not text_response.strip():
            logger.warning(f"LLM response did not contain text. Response: {response}")
            raise CompletionError("LLM returned an empty completion")
        return text_response.strip()
