"""
Fireworks chat-completions client (OpenAI-compatible API).
"""
from typing import Optional
from openai import AsyncOpenAI
from config import settings
import logging

logger = logging.getLogger(__name__)

TEMPERATURE = 0.7
MAX_TOKENS = 2000


class FireworksClient:
    """Client for Fireworks chat completions through the OpenAI SDK."""

    def __init__(self, api_key: Optional[str] = None):
        """
        Initialize Fireworks client.

        Args:
            api_key: API key; defaults to FIREWORKS_API_KEY

        Raises:
            ValueError: If no API key is configured
        """
        api_key = api_key or settings.FIREWORKS_API_KEY
        if not api_key:
            raise ValueError("FIREWORKS_API_KEY must be configured")

        self.client = AsyncOpenAI(api_key=api_key, base_url=settings.FIREWORKS_BASE_URL)
        self.model = settings.FIREWORKS_MODEL

    async def chat_completion(self, system_prompt: str, user_content: str) -> Optional[str]:
        """
        Run a single system+user completion.

        Args:
            system_prompt: System instruction
            user_content: User message content

        Returns:
            The assistant message content (may be None or empty)

        Raises:
            openai.APIError: Propagated unchanged for the caller to classify
        """
        logger.info(f"Calling {self.model} ({len(user_content)} chars of input)")
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_content},
            ],
            temperature=TEMPERATURE,
            max_tokens=MAX_TOKENS,
        )
        if not response.choices:
            return None
        return response.choices[0].message.content


_fireworks_client: Optional[FireworksClient] = None


def get_fireworks_client() -> FireworksClient:
    """Get or create the global Fireworks client instance."""
    global _fireworks_client
    if _fireworks_client is None:
        _fireworks_client = FireworksClient()
    return _fireworks_client
