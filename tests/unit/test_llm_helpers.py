from __future__ import annotations

import time
from types import SimpleNamespace

import pytest

from flowq.llm import gemini
from flowq.llm import retry as llm_retry
from flowq.llm.embeddings import VertexEmbeddingClient


@pytest.fixture(autouse=True)
def fresh_model_cache():
    gemini.clear_model_cache()
    yield
    gemini.clear_model_cache()


class FakeEmbeddingModel:
    def __init__(self, vectors):
        self.vectors = vectors
        self.requests = []

    def get_embeddings(self, texts):
        self.requests.append(texts)
        return [SimpleNamespace(values=vector) for vector in self.vectors]


def test_init_requires_a_project(monkeypatch):
    monkeypatch.delenv("GOOGLE_CLOUD_PROJECT", raising=False)
    monkeypatch.setattr(gemini, "GOOGLE_CLOUD_PROJECT", "")

    assert gemini.llm_credentials_configured() is False
    with pytest.raises(gemini.GeminiInitializationError):
        gemini.init_vertexai()


def test_credentials_from_environment(monkeypatch):
    monkeypatch.setenv("GOOGLE_CLOUD_PROJECT", "flowq-test")
    assert gemini.llm_credentials_configured() is True


def test_embed_text_returns_floats(monkeypatch):
    model = FakeEmbeddingModel([[1, 2, 3]])
    monkeypatch.setattr(llm_retry, "get_embedding_model", lambda: model)

    assert VertexEmbeddingClient().embed("Calendar booking") == [1.0, 2.0, 3.0]
    assert model.requests == [["Calendar booking"]]


def test_empty_embedding_response_is_an_error(monkeypatch):
    monkeypatch.setattr(llm_retry, "get_embedding_model", lambda: FakeEmbeddingModel([]))
    with pytest.raises(ValueError):
        llm_retry.embed_text("anything")


def test_run_with_timeout_gives_up():
    with pytest.raises(TimeoutError):
        llm_retry.run_with_timeout(time.sleep, 0.01, 0.2)


def test_run_with_timeout_returns_value():
    assert llm_retry.run_with_timeout(sum, 1.0, [1, 2, 3]) == 6


def test_function_call_args_become_plain_python():
    class ProtoMap:
        def __init__(self, data):
            self._data = data

        def items(self):
            return self._data.items()

    args = ProtoMap({"metric_key": "lead_created", "extracted_data": ProtoMap({"tags": ("a", "b")})})

    assert llm_retry._to_plain(args) == {
        "metric_key": "lead_created",
        "extracted_data": {"tags": ["a", "b"]},
    }
