"""
Embedding Client

This module implements the embedding boundary used by ingestion and query
time retrieval. It calls the OpenAI embeddings API (or any compatible
provider) and is responsible for:

- One request per batch (batch sizing is the caller's concern)
- Network and transport error isolation
- Strict response validation
- Deterministic output ordering, matching the input order

The class is stateless and safe to reuse across requests. It performs no
retries and no caching: failures surface to the caller as EmbeddingError.
"""

from __future__ import annotations

from typing import List, Sequence, Optional
import logging
import httpx

from ..config import settings
from ..core.errors import AssistantError

logger = logging.getLogger("kb.embedder")


class EmbeddingError(AssistantError):
    """Raised when embedding generation fails."""


class Embedder:
    """
    Asynchronous text-to-vector client.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Optional override for the API key. Defaults to
            settings.openai_api_key; a missing key raises ConfigurationError.

        model : Optional[str]
            Optional override for embedding model. Defaults to settings.embedding_model.

        base_url : Optional[str]
            Embeddings endpoint URL. Defaults to settings.embedding_api_url.

        timeout : Optional[float]
            HTTP timeout for each request.

        transport : Optional[httpx.AsyncBaseTransport]
            Custom transport, used by tests to intercept requests.
        """
        self.api_key = api_key or settings.require_openai_api_key()
        self.model = model or settings.embedding_model
        self.base_url = base_url or settings.embedding_api_url
        self.timeout = timeout or settings.embedding_timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(self, text: str) -> List[float]:
        """
        Generate the embedding of a single text.
        """
        embeddings = await self.embed_batch([text])
        if len(embeddings) != 1:
            raise EmbeddingError(
                f"Expected 1 embedding, received {len(embeddings)}."
            )
        return embeddings[0]

    async def embed_batch(self, texts: Sequence[str]) -> List[List[float]]:
        """
        Generate embeddings for a batch of input texts in one request.

        Parameters
        ----------
        texts : Sequence[str]
            Input text strings.

        Returns
        -------
        List[List[float]]
            One embedding per input, in input order. An empty input returns
            an empty list without any network call.

        Raises
        ------
        EmbeddingError
            If the request fails or the response is malformed.
        """
        if not texts:
            return []

        batch = list(texts)
        headers = {"Authorization": f"Bearer {self.api_key}"}
        payload = {
            "model": self.model,
            "input": batch,
        }

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            try:
                response = await client.post(
                    self.base_url,
                    json=payload,
                    headers=headers,
                )
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error(
                    "Embedding request failed (%s): batch size=%d, error=%s",
                    type(exc).__name__,
                    len(batch),
                    str(exc),
                )
                raise EmbeddingError(
                    f"Embedding generation failed: {type(exc).__name__}"
                ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            logger.error("Embedding response is not JSON: %s", response.text[:200])
            raise EmbeddingError("Embedding response is not valid JSON.") from exc

        embeddings = self._extract_embeddings(data)
        if len(embeddings) != len(batch):
            raise EmbeddingError(
                f"Embedding count mismatch: sent {len(batch)}, "
                f"received {len(embeddings)}."
            )

        return embeddings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_embeddings(data: dict) -> List[List[float]]:
        """
        Parse and validate embedding output format.

        OpenAI returns:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }

        Records are re-ordered by `index` when the provider supplies it.

        Raises
        ------
        EmbeddingError
            If the API returns unexpected structure.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingError("Embedding response missing 'data' field.")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingError("'data' field must be a list.")

        indexed: List[tuple] = []

        for position, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingError(
                    f"Malformed embedding record at index {position}: {record!r}"
                )

            emb = record["embedding"]
            if not isinstance(emb, list) or not emb or not all(
                isinstance(x, (float, int)) for x in emb
            ):
                raise EmbeddingError(
                    f"Invalid embedding vector at index {position}: must be float list."
                )

            order = record.get("index", position)
            if isinstance(order, bool) or not isinstance(order, int):
                raise EmbeddingError(
                    f"Invalid index at record {position}: {order!r}"
                )

            indexed.append((order, [float(x) for x in emb]))

        indexed.sort(key=lambda item: item[0])
        return [emb for _, emb in indexed]
