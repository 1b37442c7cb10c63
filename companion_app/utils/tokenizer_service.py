import logging
import math
from typing import Optional
import tiktoken
from tiktoken import Encoding

logger = logging.getLogger(__name__)

# Rough characters-per-token ratio for English text, used when no encoding is available
_FALLBACK_CHARS_PER_TOKEN = 4

class TokenizerService:
    def __init__(self, tokenizer_encoding: str = "cl100k_base"):
        self.tokenizer: Optional[Encoding] = self._load_tokenizer(tokenizer_encoding)
        if not self.tokenizer:
            logger.warning(
                f"Tokenizer with encoding '{tokenizer_encoding}' not available. "
                f"Token counts will be estimated at {_FALLBACK_CHARS_PER_TOKEN} characters per token."
            )

    def _load_tokenizer(self, encoding_name: str) -> Optional[Encoding]:
        """Loads the tiktoken encoding; the first load downloads its BPE file."""
        try:
            tokenizer = tiktoken.get_encoding(encoding_name)
            logger.info(f"Successfully loaded tiktoken tokenizer with encoding: {encoding_name}")
            return tokenizer
        except Exception as e:
            logger.error(f"Failed to load tiktoken tokenizer encoding '{encoding_name}': {e}", exc_info=True)
            return None

    def count_tokens(self, text: str) -> int:
        """Number of tokens in ``text``; an estimate if the encoding could not be loaded."""
        if not text:
            return 0
        if self.tokenizer:
            try:
                return len(self.tokenizer.encode(text))
            except Exception as e:
                logger.error(f"Error encoding text for token count: {e}", exc_info=True)
        return math.ceil(len(text) / _FALLBACK_CHARS_PER_TOKEN)
