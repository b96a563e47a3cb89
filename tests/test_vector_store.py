import asyncio
import time

import lancedb
import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding

from pbirag.src.core.errors import EmbeddingError, SearchError
from pbirag.src.database.vector_store import EmbeddingClient, LanceSearchClient

from tests.fakes import FailingEmbedder, SlowEmbedder


@pytest.fixture
def index_dir(tmp_path):
    db = lancedb.connect(str(tmp_path))
    db.create_table(
        "docs",
        data=[
            {"vector": [1.0, 0.0, 0.0, 0.0], "text": "DAX is a formula language.", "source": "powerbi.pdf"},
            {"vector": [0.9, 0.1, 0.0, 0.0], "text": "Measures are evaluated in filter context.", "source": "powerbi.pdf"},
            {"vector": [0.95, 0.05, 0.0, 0.0], "text": "   ", "source": "powerbi.pdf"},
            {"vector": [0.0, 0.0, 1.0, 0.0], "text": "Power Query shapes data before loading.", "source": "etl.pdf"},
            {"vector": [0.0, 1.0, 0.0, 0.0], "text": None, "source": None},
        ],
    )
    return str(tmp_path)


async def test_embed_returns_fixed_dimension_vector():
    client = EmbeddingClient(DeterministicFakeEmbedding(size=16))
    first = await client.embed("What is DAX?")
    second = await client.embed("What is DAX?")
    assert len(first) == 16
    assert first == second


async def test_embed_failure_is_fatal():
    with pytest.raises(EmbeddingError) as excinfo:
        await EmbeddingClient(FailingEmbedder()).embed("q")
    assert excinfo.value.public_message == "Embedding service unavailable"
    assert isinstance(excinfo.value.__cause__, ConnectionError)


async def test_embed_timeout_is_fatal():
    with pytest.raises(EmbeddingError):
        await EmbeddingClient(SlowEmbedder()).embed("q", timeout=0.05)


async def test_search_orders_by_similarity_and_drops_blank_text(index_dir):
    client = LanceSearchClient(uri=index_dir, table_name="docs")

    passages = await client.search([1.0, 0.0, 0.0, 0.0], top_k=5)

    texts = [p.text for p in passages]
    assert texts[0] == "DAX is a formula language."
    assert texts[1] == "Measures are evaluated in filter context."
    assert "   " not in texts
    assert len(passages) == 3
    distances = [p.distance for p in passages]
    assert distances == sorted(distances)
    assert passages[0].source == "powerbi.pdf"


async def test_search_respects_top_k(index_dir):
    client = LanceSearchClient(uri=index_dir, table_name="docs")
    passages = await client.search([1.0, 0.0, 0.0, 0.0], top_k=1)
    assert [p.text for p in passages] == ["DAX is a formula language."]


async def test_search_missing_table_raises_search_error(tmp_path):
    client = LanceSearchClient(uri=str(tmp_path), table_name="not_built_yet")
    with pytest.raises(SearchError) as excinfo:
        await client.search([1.0, 0.0], top_k=3)
    assert excinfo.value.public_message == "Vector database unavailable"


async def test_search_rejects_non_positive_top_k(index_dir):
    client = LanceSearchClient(uri=index_dir, table_name="docs")
    with pytest.raises(ValueError):
        await client.search([1.0, 0.0, 0.0, 0.0], top_k=-1)


async def test_search_timeout_is_fatal(index_dir, monkeypatch):
    client = LanceSearchClient(uri=index_dir, table_name="docs")

    def slow_query(self, vector, top_k):
        time.sleep(0.5)
        return []

    monkeypatch.setattr(LanceSearchClient, "_query", slow_query)
    with pytest.raises(SearchError):
        await client.search([1.0, 0.0, 0.0, 0.0], top_k=3, timeout=0.05)
    await asyncio.sleep(0.5)
