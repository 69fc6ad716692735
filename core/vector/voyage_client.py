"""
Voyage AI embeddings client.
"""
import logging
import math
from typing import Any, Dict, List, Optional

import httpx

from config import settings

logger = logging.getLogger(__name__)

MAX_TOKEN_ESTIMATE = 32000
REQUEST_TIMEOUT_SECONDS = 60.0


class VectorizationError(Exception):
    """
    Raised when an embedding cannot be produced.

    Codes: EMPTY_TEXT, TEXT_TOO_LONG, INVALID_API_KEY, API_RATE_LIMIT,
    INVALID_EMBEDDING_DIMENSIONS, API_ERROR, UNKNOWN_ERROR.
    """

    def __init__(self, message: str, code: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters."""
    return math.ceil(len(text) / 4)


def _is_finite_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


class VoyageClient:
    """Client for the Voyage AI embeddings endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        dimensions: Optional[int] = None,
    ):
        """
        Args:
            api_key: API key; defaults to VOYAGE_API_KEY
            http_client: Shared AsyncClient; one is created per request otherwise
            dimensions: Expected vector length; defaults to EMBEDDING_DIMENSIONS
        """
        self.api_key = api_key or settings.VOYAGE_API_KEY
        self.base_url = settings.VOYAGE_BASE_URL.rstrip("/")
        self.model = settings.VOYAGE_MODEL
        self.dimensions = dimensions or settings.EMBEDDING_DIMENSIONS
        self._http_client = http_client

    def _validate_input(self, text: str) -> None:
        if not text or not text.strip():
            raise VectorizationError("Text cannot be empty", "EMPTY_TEXT")

        estimated = estimate_tokens(text)
        if estimated > MAX_TOKEN_ESTIMATE:
            raise VectorizationError(
                f"Text too long: ~{estimated} tokens exceeds maximum of {MAX_TOKEN_ESTIMATE}",
                "TEXT_TOO_LONG",
                {"estimated_tokens": estimated, "max_tokens": MAX_TOKEN_ESTIMATE},
            )

    def _validate_embedding(self, embedding: Any) -> List[float]:
        actual = len(embedding) if isinstance(embedding, list) else 0
        if actual != self.dimensions:
            raise VectorizationError(
                f"Invalid embedding dimensions: expected {self.dimensions}, got {actual}",
                "INVALID_EMBEDDING_DIMENSIONS",
                {"expected_dimensions": self.dimensions, "actual_dimensions": actual},
            )
        if not all(_is_finite_number(value) for value in embedding):
            raise VectorizationError(
                "Embedding contains non-numeric or non-finite values",
                "INVALID_EMBEDDING_DIMENSIONS",
                {"expected_dimensions": self.dimensions, "actual_dimensions": actual},
            )
        return [float(value) for value in embedding]

    async def _post(self, payload: Dict[str, Any]) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        url = f"{self.base_url}/embeddings"
        if self._http_client is not None:
            return await self._http_client.post(url, json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS) as client:
            return await client.post(url, json=payload, headers=headers)

    async def generate_embedding(self, text: str) -> List[float]:
        """
        Embed a document.

        Args:
            text: Compressed file description

        Returns:
            List of exactly `dimensions` finite floats

        Raises:
            VectorizationError: On invalid input, API failure or a malformed vector
        """
        self._validate_input(text)

        if not self.api_key:
            raise VectorizationError(
                "VOYAGE_API_KEY environment variable is not set", "INVALID_API_KEY"
            )

        try:
            response = await self._post(
                {"input": [text], "model": self.model, "input_type": "document"}
            )
        except httpx.HTTPError as e:
            logger.error(f"Voyage request failed: {e}")
            raise VectorizationError(f"Voyage AI API error: {e}", "API_ERROR") from e

        if response.status_code == 429:
            raise VectorizationError(
                "Voyage AI rate limit exceeded. Please try again later.",
                "API_RATE_LIMIT",
                {"status": response.status_code},
            )
        if response.status_code in (401, 403):
            raise VectorizationError(
                "Invalid Voyage AI API key", "INVALID_API_KEY", {"status": response.status_code}
            )
        if response.status_code >= 400:
            raise VectorizationError(
                f"Voyage AI API error: HTTP {response.status_code}",
                "API_ERROR",
                {"status": response.status_code, "body": response.text[:500]},
            )

        try:
            body = response.json()
        except ValueError as e:
            raise VectorizationError("Voyage AI returned invalid JSON", "API_ERROR") from e

        data = (body.get("data") if isinstance(body, dict) else None) or []
        embedding = data[0].get("embedding") if data and isinstance(data[0], dict) else None
        vector = self._validate_embedding(embedding)
        logger.info(f"Generated {len(vector)}-dimensional embedding ({len(text)} chars)")
        return vector


_voyage_client: Optional[VoyageClient] = None


def get_voyage_client() -> VoyageClient:
    """Get or create the global Voyage client instance."""
    global _voyage_client
    if _voyage_client is None:
        _voyage_client = VoyageClient()
    return _voyage_client


async def generate_embedding(text: str) -> List[float]:
    """Embed text with the global client."""
    return await get_voyage_client().generate_embedding(text)
