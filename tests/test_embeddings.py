"""Tests for the embedding gateway."""

import random

import pytest

from codeshield.errors import DimensionMismatch, ProviderError, ProviderUnavailable
from codeshield.rag.embeddings import EmbeddingService

from conftest import VOCAB, FakeProvider


class TestEmbed:
    def test_returns_provider_vector(self):
        service = EmbeddingService(FakeProvider(), dimensions=len(VOCAB))
        assert service.embed("jwt token jwt") == [2.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0]

    def test_unavailable_provider_gives_fallback_vector(self):
        provider = FakeProvider(available=False)
        service = EmbeddingService(provider, dimensions=16, rng=random.Random(7))

        vector = service.embed("anything")

        assert len(vector) == 16
        assert all(0.0 <= x < 1.0 for x in vector)
        assert provider.embedded == []

    @pytest.mark.parametrize(
        "error", [ProviderError("timeout"), ProviderUnavailable("no key")]
    )
    def test_provider_failure_gives_fallback_vector(self, error):
        service = EmbeddingService(FakeProvider(embed_error=error), dimensions=len(VOCAB))
        vector = service.embed("jwt")
        assert len(vector) == len(VOCAB)
        assert all(0.0 <= x < 1.0 for x in vector)

    def test_non_numeric_vector_gives_fallback_vector(self):
        class TextVectorProvider(FakeProvider):
            def embed(self, text):
                return ["x"] * len(VOCAB)

        service = EmbeddingService(TextVectorProvider(), dimensions=len(VOCAB))
        vector = service.embed("jwt")

        assert len(vector) == len(VOCAB)
        assert all(0.0 <= x < 1.0 for x in vector)

    def test_wrong_dimension_raises(self):
        service = EmbeddingService(FakeProvider(fail_on="bad"), dimensions=len(VOCAB))
        with pytest.raises(DimensionMismatch):
            service.embed("bad input")

    def test_rejects_non_positive_dimensions(self):
        with pytest.raises(ValueError):
            EmbeddingService(FakeProvider(), dimensions=0)


class TestEmbedMany:
    def test_preserves_input_order(self):
        service = EmbeddingService(FakeProvider(), dimensions=len(VOCAB), max_workers=4)
        texts = ["jwt", "token", "password", "hash", "encrypt", "sql"]

        vectors = service.embed_many(texts)

        assert [v.index(1.0) for v in vectors] == [0, 1, 2, 3, 4, 5]

    def test_empty_input(self):
        assert EmbeddingService(FakeProvider(), dimensions=len(VOCAB)).embed_many([]) == []

    def test_failure_propagates(self):
        service = EmbeddingService(FakeProvider(fail_on="bad"), dimensions=len(VOCAB))
        with pytest.raises(DimensionMismatch):
            service.embed_many(["jwt", "bad chunk", "hash"])
