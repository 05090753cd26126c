"""
Tests for the Ollama provider against a local aiohttp server.
"""

import socket

import pytest
from aiohttp import web
from aiohttp import test_utils

from cairn.core.exceptions import EmbeddingUnavailableError
from cairn.embeddings import OllamaEmbeddings


def free_port() -> int:
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


def make_app(handler) -> web.Application:
    app = web.Application()
    app.router.add_post("/api/embeddings", handler)
    return app


@pytest.fixture
async def serve():
    servers = []

    async def _serve(handler) -> str:
        server = test_utils.TestServer(make_app(handler))
        await server.start_server()
        servers.append(server)
        return str(server.make_url(""))

    yield _serve

    for server in servers:
        await server.close()


class TestOllamaEmbeddings:
    async def test_returns_embedding(self, serve):
        received = {}

        async def handler(request: web.Request) -> web.Response:
            received.update(await request.json())
            return web.json_response({"embedding": [0.1, 0.2, 0.3]})

        provider = OllamaEmbeddings(base_url=await serve(handler), model="nomic-embed-text")
        try:
            embedding = await provider.embed("hello world")
        finally:
            await provider.aclose()

        assert embedding == [0.1, 0.2, 0.3]
        assert received == {"model": "nomic-embed-text", "prompt": "hello world"}

    async def test_http_error(self, serve):
        async def handler(request: web.Request) -> web.Response:
            return web.Response(status=500, text="boom")

        provider = OllamaEmbeddings(base_url=await serve(handler))
        try:
            with pytest.raises(EmbeddingUnavailableError) as exc_info:
                await provider.embed("hello")
        finally:
            await provider.aclose()

        assert exc_info.value.code == "OLLAMA_EMBEDDING_FAILED"

    async def test_missing_embedding(self, serve):
        async def handler(request: web.Request) -> web.Response:
            return web.json_response({"error": "model not found"})

        provider = OllamaEmbeddings(base_url=await serve(handler))
        try:
            with pytest.raises(EmbeddingUnavailableError) as exc_info:
                await provider.embed("hello")
        finally:
            await provider.aclose()

        assert exc_info.value.code == "OLLAMA_EMPTY_EMBEDDING"
        assert exc_info.value.context["keys"] == ["error"]

    async def test_connection_refused(self):
        provider = OllamaEmbeddings(base_url=f"http://127.0.0.1:{free_port()}")
        try:
            with pytest.raises(EmbeddingUnavailableError):
                await provider.embed("hello")
        finally:
            await provider.aclose()

    async def test_aclose_is_idempotent(self):
        provider = OllamaEmbeddings()

        await provider.aclose()
        await provider.aclose()
