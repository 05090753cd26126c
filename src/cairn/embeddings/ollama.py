"""
Ollama embeddings provider.
"""

from typing import Any, Dict, List, Optional

import aiohttp

from cairn.core.exceptions import EmbeddingUnavailableError
from cairn.core.logging import SensitiveDataMasker, logger


_masker = SensitiveDataMasker()


class OllamaEmbeddings:
    """
    Embeddings from a local or remote Ollama server.

    Features:
    1. One shared HTTP session, created lazily inside the running loop
    2. No retries: failures go straight back to the caller
    3. Request timeout as a second line of defence behind EmbeddingEngine's
    """

    def __init__(
        self,
        base_url: str = "http://localhost:11434",
        model: str = "nomic-embed-text",
        timeout_seconds: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout_seconds = timeout_seconds
        self._session: Optional[aiohttp.ClientSession] = None
        logger.info("OllamaEmbeddings ready", base_url=self.base_url, model=self.model)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds)
            )
        return self._session

    async def embed(self, text: str) -> List[float]:
        """
        Requests the embedding of one text.

        Raises:
            EmbeddingUnavailableError: HTTP error, connection failure or a
                response without an embedding
        """
        payload: Dict[str, Any] = {"model": self.model, "prompt": text}
        session = self._get_session()

        try:
            async with session.post(f"{self.base_url}/api/embeddings", json=payload) as response:
                response.raise_for_status()
                result: Dict[str, Any] = await response.json()
        except aiohttp.ClientError as e:
            logger.error(
                "Ollama embedding request failed",
                base_url=self.base_url,
                error=_masker.mask(str(e)),
            )
            raise EmbeddingUnavailableError(
                "Failed to get embedding from Ollama",
                code="OLLAMA_EMBEDDING_FAILED",
                context={"url": self.base_url, "model": self.model},
                cause=e,
            )

        embedding = result.get("embedding")
        if not isinstance(embedding, list) or not embedding:
            raise EmbeddingUnavailableError(
                "Ollama response did not contain an embedding",
                code="OLLAMA_EMPTY_EMBEDDING",
                context={"url": self.base_url, "model": self.model, "keys": sorted(result)},
            )
        return embedding

    async def aclose(self) -> None:
        """Closes the HTTP session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
