"""
Embedding Client Tests

Requests are intercepted with httpx.MockTransport; nothing leaves the process.
"""

import json

import httpx
import pytest
from unittest.mock import patch

from kb_assistant.config import settings
from kb_assistant.core.errors import ConfigurationError
from kb_assistant.embeddings.embedder import Embedder, EmbeddingError


def make_embedder(handler):
    return Embedder(
        api_key="test-key",
        model="test-model",
        base_url="https://embeddings.test/v1/embeddings",
        transport=httpx.MockTransport(handler),
    )


class TestEmbedder:

    @pytest.mark.asyncio
    async def test_batch_sends_one_request_in_input_order(self):
        requests = []

        def handler(request):
            requests.append(request)
            body = json.loads(request.content)
            # Provider answers out of order; index decides placement
            data = [
                {"index": i, "embedding": [float(i), 0.5]}
                for i in reversed(range(len(body["input"])))
            ]
            return httpx.Response(200, json={"data": data})

        embedder = make_embedder(handler)
        result = await embedder.embed_batch(["alpha", "beta", "gamma"])

        assert result == [[0.0, 0.5], [1.0, 0.5], [2.0, 0.5]]
        assert len(requests) == 1
        assert requests[0].headers["Authorization"] == "Bearer test-key"
        assert json.loads(requests[0].content) == {
            "model": "test-model",
            "input": ["alpha", "beta", "gamma"],
        }

    @pytest.mark.asyncio
    async def test_empty_batch_makes_no_request(self):
        def handler(request):
            raise AssertionError("no request expected")

        assert await make_embedder(handler).embed_batch([]) == []

    @pytest.mark.asyncio
    async def test_single_embed(self):
        def handler(request):
            return httpx.Response(200, json={"data": [{"embedding": [1, 2, 3]}]})

        assert await make_embedder(handler).embed("rates") == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_http_error_wrapped(self):
        def handler(request):
            return httpx.Response(503, json={"error": "overloaded"})

        with pytest.raises(EmbeddingError, match="HTTPStatusError"):
            await make_embedder(handler).embed_batch(["alpha"])

    @pytest.mark.asyncio
    async def test_transport_error_wrapped(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(EmbeddingError):
            await make_embedder(handler).embed("alpha")

    @pytest.mark.asyncio
    async def test_missing_data_field(self):
        def handler(request):
            return httpx.Response(200, json={"object": "list"})

        with pytest.raises(EmbeddingError, match="missing 'data'"):
            await make_embedder(handler).embed("alpha")

    @pytest.mark.asyncio
    async def test_non_numeric_vector_rejected(self):
        def handler(request):
            return httpx.Response(200, json={"data": [{"embedding": ["a", "b"]}]})

        with pytest.raises(EmbeddingError, match="Invalid embedding vector"):
            await make_embedder(handler).embed("alpha")

    @pytest.mark.asyncio
    async def test_count_mismatch_rejected(self):
        def handler(request):
            return httpx.Response(200, json={"data": [{"embedding": [0.1]}]})

        with pytest.raises(EmbeddingError, match="count mismatch"):
            await make_embedder(handler).embed_batch(["alpha", "beta"])


def test_missing_api_key_fails_fast():
    """Constructing without any key raises before any request."""
    with patch.object(settings, "openai_api_key", None):
        with pytest.raises(ConfigurationError, match="OPENAI_API_KEY"):
            Embedder()


class TestMalformedResponses:

    @pytest.mark.asyncio
    async def test_non_json_body_is_embedding_error(self):
        def handler(request):
            return httpx.Response(200, text="<html>gateway</html>")

        with pytest.raises(EmbeddingError, match="not valid JSON"):
            await make_embedder(handler).embed_batch(["alpha"])

    @pytest.mark.asyncio
    async def test_non_integer_index_is_embedding_error(self):
        def handler(request):
            return httpx.Response(200, json={"data": [
                {"index": "0", "embedding": [0.1]},
                {"index": 1, "embedding": [0.2]},
            ]})

        with pytest.raises(EmbeddingError, match="Invalid index"):
            await make_embedder(handler).embed_batch(["alpha", "beta"])
