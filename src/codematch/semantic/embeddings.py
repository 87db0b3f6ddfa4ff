"""OpenAI embedding client used by the semantic index and agent."""

import logging
import time
from functools import wraps
from typing import Dict, List, Optional

import openai
from openai import OpenAI

logger = logging.getLogger(__name__)


def retry_on_openai_error(max_retries=3, delay=1.0):
    """
    Decorator to retry OpenAI API calls on transient errors.

    Args:
        max_retries: Maximum number of retry attempts
        delay: Delay between retries in seconds (with exponential backoff)
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            last_exception = None
            for attempt in range(max_retries):
                try:
                    return func(*args, **kwargs)
                except (openai.RateLimitError, openai.APIConnectionError, openai.APITimeoutError) as e:
                    last_exception = e
                    if attempt < max_retries - 1:
                        wait_time = delay * (2 ** attempt)  # Exponential backoff
                        logger.warning(f"OpenAI API error (attempt {attempt + 1}/{max_retries}): {e}. Retrying in {wait_time:.1f}s...")
                        time.sleep(wait_time)
                    else:
                        logger.error(f"OpenAI API failed after {max_retries} attempts: {e}")
                        raise
            raise last_exception
        return wrapper
    return decorator


class EmbeddingService:
    """
    Turns short texts (queries, entity names) into embedding vectors.

    Attributes:
        openai_client (OpenAI): Embedding client.
        model (str): Embedding model name.
        token_usage (Dict): Tracks OpenAI API token usage and costs.
    """

    EMBEDDING_MODEL = "text-embedding-3-large"
    COST_PER_1M_TOKENS = 0.13  # USD
    MAX_CHARS = 8000

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client: Optional[OpenAI] = None):
        self.openai_client = client or OpenAI(api_key=api_key)
        self.model = model or self.EMBEDDING_MODEL
        self.token_usage: Dict[str, float] = {
            "embedding_tokens": 0,
            "embedding_calls": 0,
            "total_cost_usd": 0.0,
        }

    def embed(self, text: str) -> Optional[List[float]]:
        """
        Embed a single text.

        Args:
            text: The text to embed

        Returns:
            The embedding vector, or None if the API call failed
        """
        vectors = self.embed_batch([text])
        return vectors[0] if vectors else None

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts in one request; returns [] on API failure."""
        cleaned = [t.replace("\n", " ")[: self.MAX_CHARS] for t in texts if t and t.strip()]
        if not cleaned:
            return []
        try:
            return self._create(cleaned)
        except openai.APIError as e:
            logger.error(f"❌ OpenAI Embedding Error: {e}")
            return []

    @retry_on_openai_error(max_retries=3, delay=1.0)
    def _create(self, texts: List[str]) -> List[List[float]]:
        response = self.openai_client.embeddings.create(input=texts, model=self.model)

        tokens_used = response.usage.total_tokens
        self.token_usage["embedding_tokens"] += tokens_used
        self.token_usage["embedding_calls"] += 1
        self.token_usage["total_cost_usd"] = (
            self.token_usage["embedding_tokens"] / 1_000_000
        ) * self.COST_PER_1M_TOKENS

        return [item.embedding for item in response.data]
