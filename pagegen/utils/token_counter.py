"""Token counting for context budgets and usage estimates."""

import tiktoken

from pagegen.utils.logging import get_logger

LOGGER = get_logger(__name__)


class TokenCounter:
    """Counts tokens with tiktoken.

    Used to keep the grounding context inside its budget and to estimate
    usage when a streaming provider does not report it.
    """

    def __init__(self, model: str = "gpt-4o-mini"):
        self.model = model
        try:
            self.encoder = tiktoken.encoding_for_model(model)
        except KeyError:
            LOGGER.debug(f"Model {model} not known to tiktoken, using cl100k_base encoding")
            self.encoder = tiktoken.get_encoding("cl100k_base")

    def count_tokens(self, text: str) -> int:
        """Count tokens in text."""
        if not text:
            return 0
        return len(self.encoder.encode(text, disallowed_special=()))
