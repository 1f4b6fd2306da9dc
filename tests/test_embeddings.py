# File: tests/test_embeddings.py
from __future__ import annotations

from types import SimpleNamespace

import httpx
import openai
import pytest

from conftest import FakeEmbedder
from unveil_seo.embeddings.diagnostics import diagnose_embeddings, index_stats, reset_embeddings
from unveil_seo.embeddings.encoding import (
    UNEMBEDDABLE_SENTINEL,
    embedding_from_string,
    embedding_to_string,
    is_sentinel,
)
from unveil_seo.embeddings.generator import EmbeddingBatcher, EmbeddingClient, build_embedding_text
from unveil_seo.errors import RateLimitedError, UpstreamError

# --------------------------------------------------------------------------- #
#                               Embedding text                                #
# --------------------------------------------------------------------------- #


@pytest.mark.parametrize(
    "title,h1,meta,expected",
    [
        ("Semis", "Réussir ses semis", "Guide", "Semis Semis Réussir ses semis Réussir ses semis Guide"),
        ("Semis", "Semis", None, "Semis Semis"),
        (None, " Paillage ", "", "Paillage Paillage"),
        (None, None, "Seulement la meta", "Seulement la meta"),
        ("  ", None, None, ""),
    ],
)
def test_build_embedding_text(title, h1, meta, expected):
    assert build_embedding_text(title, h1, meta) == expected


def test_encoding_helpers():
    text = embedding_to_string([0.1, 2, -0.5])
    assert text == "[0.1,2.0,-0.5]"
    assert embedding_from_string(text) == [0.1, 2.0, -0.5]
    assert embedding_from_string(None) == []
    assert embedding_from_string(UNEMBEDDABLE_SENTINEL) == []
    assert is_sentinel(" [] ")
    assert not is_sentinel("[0.1]")
    with pytest.raises(ValueError):
        embedding_from_string("not json")
    with pytest.raises(ValueError):
        embedding_from_string('["a", "b"]')


# --------------------------------------------------------------------------- #
#                               OpenAI wrapper                                #
# --------------------------------------------------------------------------- #


class _FakeEmbeddingsAPI:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def create(self, *, model, input):
        self.calls.append({"model": model, "input": input})
        if self.error is not None:
            raise self.error
        return SimpleNamespace(data=[SimpleNamespace(embedding=self.result)])


class _FakeOpenAI:
    def __init__(self, **kwargs):
        self.embeddings = _FakeEmbeddingsAPI(**kwargs)
        self.closed = False

    async def close(self):
        self.closed = True


_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


@pytest.mark.asyncio()
async def test_embedding_client_returns_vector():
    fake = _FakeOpenAI(result=[0.1, 0.2, 0.3])
    client = EmbeddingClient("sk-test", model="text-embedding-3-small", dimensions=3, client=fake)
    assert await client.embed("  compost maison ") == [0.1, 0.2, 0.3]
    assert fake.embeddings.calls == [{"model": "text-embedding-3-small", "input": "compost maison"}]
    await client.close()
    assert fake.closed


@pytest.mark.asyncio()
async def test_embedding_client_rejects_empty_text():
    client = EmbeddingClient("sk-test", dimensions=3, client=_FakeOpenAI(result=[0.1, 0.2, 0.3]))
    with pytest.raises(ValueError):
        await client.embed("   ")


@pytest.mark.asyncio()
async def test_embedding_client_checks_dimensions():
    client = EmbeddingClient("sk-test", dimensions=1536, client=_FakeOpenAI(result=[0.1, 0.2]))
    with pytest.raises(UpstreamError):
        await client.embed("compost")


@pytest.mark.asyncio()
@pytest.mark.parametrize(
    "error,expected,status",
    [
        (
            openai.RateLimitError("slow down", response=httpx.Response(429, request=_REQUEST), body=None),
            RateLimitedError,
            429,
        ),
        (
            openai.InternalServerError("boom", response=httpx.Response(500, request=_REQUEST), body=None),
            UpstreamError,
            500,
        ),
        (openai.APIConnectionError(request=_REQUEST), UpstreamError, None),
    ],
)
async def test_embedding_client_maps_sdk_errors(error, expected, status):
    client = EmbeddingClient("sk-test", dimensions=3, client=_FakeOpenAI(error=error))
    with pytest.raises(expected) as exc_info:
        await client.embed("compost")
    assert exc_info.value.service == "openai"
    assert exc_info.value.status_code == status


# --------------------------------------------------------------------------- #
#                                   Batcher                                   #
# --------------------------------------------------------------------------- #


@pytest.fixture()
def seeded(store):
    store.add_page(url="https://e.test/1", title="Semis de tomates")
    store.add_page(url="https://e.test/2", title=None, h1=None, meta_description="  ")
    store.add_page(url="https://e.test/3", h1="Paillage", meta_description="Tout sur le paillage")
    store.add_page(url="https://e.test/4", title="Déjà fait", embedding="[0.5,0.5,0.5]")
    return store


@pytest.mark.asyncio()
async def test_batcher_embeds_and_marks_empty_pages(seeded, embedder, fast_config):
    totals = await EmbeddingBatcher(seeded, embedder, fast_config.embedding).run()

    assert totals == {"processed": 2, "failed": 0, "skipped": 1}
    assert seeded.pages[2]["embedding"] == UNEMBEDDABLE_SENTINEL
    assert len(embedding_from_string(seeded.pages[1]["embedding"])) == 3
    assert seeded.pages[4]["embedding"] == "[0.5,0.5,0.5]"
    assert embedder.calls == [
        "Semis de tomates Semis de tomates",
        "Paillage Paillage Tout sur le paillage",
    ]
    # nothing left to do on a second pass
    assert await EmbeddingBatcher(seeded, embedder, fast_config.embedding).run() == {
        "processed": 0, "failed": 0, "skipped": 0,
    }


@pytest.mark.asyncio()
async def test_batcher_walks_batches_with_cursor(store, embedder, fast_config):
    for i in range(7):
        store.add_page(url=f"https://e.test/{i}", title=f"Page numéro {i}")
    settings = fast_config.embedding.model_copy(update={"batch_size": 3, "max_concurrent": 2})
    totals = await EmbeddingBatcher(store, embedder, settings).run()
    assert totals["processed"] == 7
    assert len(embedder.calls) == 7


@pytest.mark.asyncio()
async def test_batcher_retries_rate_limited_pages_once(seeded, embedder, fast_config):
    embedder.rate_limit_once.add("Semis de tomates Semis de tomates")
    embedder.always_rate_limited.add("Paillage Paillage Tout sur le paillage")

    totals = await EmbeddingBatcher(seeded, embedder, fast_config.embedding).run()

    assert totals == {"processed": 1, "failed": 1, "skipped": 1}
    assert seeded.pages[1]["embedding"] is not None
    # a page that failed stays null for the next run
    assert seeded.pages[3]["embedding"] is None


@pytest.mark.asyncio()
async def test_batcher_counts_failures_and_moves_on(seeded, embedder, fast_config):
    embedder.failing.add("Semis de tomates Semis de tomates")
    totals = await EmbeddingBatcher(seeded, embedder, fast_config.embedding).run()
    assert totals == {"processed": 1, "failed": 1, "skipped": 1}


# --------------------------------------------------------------------------- #
#                             Stats and diagnostics                           #
# --------------------------------------------------------------------------- #


@pytest.mark.asyncio()
async def test_index_stats(seeded):
    await seeded.insert_job({"id": "j1", "created_at": "2024-01-01T00:00:00", "completed_at": "2024-01-01T00:05:00"})
    stats = await index_stats(seeded)
    assert stats == {
        "totalPages": 4,
        "pagesWithEmbeddings": 1,
        "pagesWithoutEmbeddings": 3,
        "embeddingProgress": 25,
        "lastSync": "2024-01-01T00:05:00",
    }


@pytest.mark.asyncio()
async def test_index_stats_empty(store):
    stats = await index_stats(store)
    assert stats["embeddingProgress"] == 0
    assert stats["lastSync"] is None


@pytest.mark.asyncio()
async def test_diagnose_embeddings(seeded):
    seeded.add_page(url="https://e.test/5", title="Ab")
    seeded.add_page(url="https://e.test/6", embedding="[0.1,0.2]")
    seeded.add_page(url="https://e.test/7", embedding=UNEMBEDDABLE_SENTINEL)

    report = await diagnose_embeddings(seeded, dimensions=3)

    stats = report["stats"]
    assert stats["total"] == 4
    assert stats["embeddable"] == 3
    assert stats["unembeddable"] == 1
    assert stats["onlyTitle"] == 2
    assert stats["multipleFields"] == 1
    assert stats["minLength"] == 2
    assert report["examples"]["unembeddable"] == [{"id": 2}]
    assert report["examples"]["shortContent"][0]["content"] == "Ab"
    assert report["examples"]["markedUnembeddable"] == [{"id": 7, "url": "https://e.test/7"}]
    assert report["compatibilityIssues"] == ["Page 6 has 2 dimensions, expected 3"]
    assert report["performanceCheck"]["success"] is True
    assert "1 pages have no content and should be marked as unembeddable" in report["recommendations"]
    assert report["message"] == "Diagnosed 4 pages without embeddings"


@pytest.mark.asyncio()
async def test_reset_embeddings_clears_vectors_and_sentinels(seeded):
    seeded.add_page(url="https://e.test/5", embedding=UNEMBEDDABLE_SENTINEL)
    assert await reset_embeddings(seeded, batch_size=1) == 2
    assert await seeded.count_embedded_pages() == 0


@pytest.mark.asyncio()
async def test_fake_embedder_is_deterministic():
    embedder = FakeEmbedder()
    assert await embedder.embed("compost") == await embedder.embed("compost")
    assert await embedder.embed("compost") != await embedder.embed("paillage")
